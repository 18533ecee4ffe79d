"""
CLI Tests
=========
Argument validation that must happen before any engine is wired.
"""

import pytest
from unittest.mock import MagicMock
from typer.testing import CliRunner

import main
from config.settings import Settings

runner = CliRunner()


@pytest.fixture
def no_pool(monkeypatch):
    monkeypatch.setattr(Settings, "POOL_ADDRESS", "")
    session = MagicMock(side_effect=AssertionError("engine must not start without a pool"))
    monkeypatch.setattr(main, "engine_session", session)
    return session


class TestPoolRequired:

    @pytest.mark.parametrize("args", [
        ["run", "--sol-amount", "1.5"],
        ["monitor", "--position", "PosA"],
        ["close", "--position", "PosA"],
    ])
    def test_missing_pool_exits_before_wiring(self, no_pool, args):
        result = runner.invoke(main.app, args)

        assert result.exit_code == 2
        assert "No pool address" in result.output
        no_pool.assert_not_called()
