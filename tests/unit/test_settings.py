"""
Settings Tests
==============
Environment snapshot into the frozen config structs.
"""

import pytest

from config.settings import Settings, build_engine_config
from src.shared.config.strategy import MonitorConfig


class TestBuildEngineConfig:

    def test_defaults(self):
        config = build_engine_config()

        assert config.monitor.recenter_threshold == Settings.CENTER_DISTANCE_THRESHOLD
        assert config.swap.quote_attempts == Settings.MAX_RETRIES
        assert config.bundle.priority_tier == Settings.JITO_PRIORITY_LEVEL.lower()

    def test_exit_rules_enabled_by_positive_values(self, monkeypatch):
        monkeypatch.setattr(Settings, "TAKE_PROFIT_PCT", 20.0)
        monkeypatch.setattr(Settings, "STOP_LOSS_PCT", 0.0)

        rules = build_engine_config().exit_rules

        assert rules.take_profit_enabled
        assert rules.take_profit_pct == 20.0
        assert not rules.stop_loss_enabled

    def test_overrides_replace_sections(self):
        monitor = MonitorConfig(interval_sec=1.0, recenter_threshold=0.3)

        assert build_engine_config(monitor=monitor).monitor is monitor

    def test_invalid_threshold_rejected(self):
        with pytest.raises(ValueError):
            MonitorConfig(recenter_threshold=0)
