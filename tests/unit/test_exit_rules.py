"""
Exit Rules Tests
================
P&L against initial capital (claimed fees included) and the
take-profit > trailing stop > stop-loss priority.
"""

import pytest

from src.liquidity.exit_rules import ExitKind, ExitRules, PnlTracker
from src.shared.config.strategy import ExitRulesConfig


def rules(**config) -> ExitRules:
    return ExitRules(ExitRulesConfig(**config), PnlTracker(initial_capital_usd=100.0))


class TestPnlTracker:

    def test_claimed_fees_count_towards_value(self):
        tracker = PnlTracker(initial_capital_usd=100.0)
        tracker.record_rebalance(fees_earned_usd=3.0, claimed_fees_usd=2.0)

        assert tracker.total_value(99.0) == 101.0
        assert tracker.pnl_usd(99.0) == pytest.approx(1.0)
        assert tracker.pnl_pct(99.0) == pytest.approx(1.0)
        assert tracker.rebalance_count == 1
        assert tracker.total_fees_earned_usd == 3.0

    def test_unknown_capital_has_no_percentage(self):
        assert PnlTracker(initial_capital_usd=0.0).pnl_pct(50.0) is None


class TestExitRules:

    def test_disabled_never_fires(self):
        assert rules().evaluate(1_000.0) is None

    def test_take_profit(self):
        signal = rules(take_profit_enabled=True, take_profit_pct=15.0).evaluate(115.0)
        assert signal.kind == ExitKind.TAKE_PROFIT
        assert signal.pnl_pct == pytest.approx(15.0)

    def test_stop_loss(self):
        r = rules(stop_loss_enabled=True, stop_loss_pct=10.0)
        assert r.evaluate(91.0) is None
        assert r.evaluate(90.0).kind == ExitKind.STOP_LOSS

    def test_trailing_stop_arms_then_fires(self):
        r = rules(trailing_stop_enabled=True, trailing_trigger_pct=5.0, trailing_stop_pct=3.0)

        assert r.evaluate(104.0) is None
        assert not r.tracker.trailing_active

        assert r.evaluate(106.0) is None
        assert r.tracker.trailing_active
        assert r.tracker.dynamic_stop_pct == pytest.approx(3.0)

        assert r.evaluate(110.0) is None
        assert r.tracker.peak_pnl_pct == pytest.approx(10.0)
        assert r.tracker.dynamic_stop_pct == pytest.approx(7.0)

        signal = r.evaluate(106.5)
        assert signal.kind == ExitKind.TRAILING_STOP

    def test_take_profit_wins_over_trailing(self):
        r = rules(
            take_profit_enabled=True, take_profit_pct=15.0,
            trailing_stop_enabled=True, trailing_trigger_pct=5.0, trailing_stop_pct=3.0,
        )
        r.tracker.trailing_active = True
        r.tracker.peak_pnl_pct = 30.0
        r.tracker.dynamic_stop_pct = 27.0

        assert r.evaluate(120.0).kind == ExitKind.TAKE_PROFIT

    def test_trailing_wins_over_stop_loss(self):
        r = rules(
            stop_loss_enabled=True, stop_loss_pct=10.0,
            trailing_stop_enabled=True, trailing_trigger_pct=5.0, trailing_stop_pct=3.0,
        )
        r.tracker.trailing_active = True
        r.tracker.peak_pnl_pct = 6.0
        r.tracker.dynamic_stop_pct = 3.0

        assert r.evaluate(85.0).kind == ExitKind.TRAILING_STOP
