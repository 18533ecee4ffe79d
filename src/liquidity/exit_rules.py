"""
Exit Rules
==========
P&L tracking for one position run plus take-profit, trailing-stop and
stop-loss checks. Evaluated before the re-center decision on every tick.

Priority when several fire on the same tick: take-profit, trailing stop,
stop-loss.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.shared.config.strategy import ExitRulesConfig
from src.shared.system.logging import Logger


class ExitKind(Enum):
    TAKE_PROFIT = "TAKE_PROFIT"
    TRAILING_STOP = "TRAILING_STOP"
    STOP_LOSS = "STOP_LOSS"


@dataclass(frozen=True)
class ExitSignal:
    kind: ExitKind
    pnl_pct: float
    reason: str


@dataclass
class PnlTracker:
    """
    Running P&L against initial capital. Fees already claimed to the wallet
    by re-centers still count towards the position's value.
    """
    initial_capital_usd: float
    claimed_fees_usd: float = 0.0
    total_fees_earned_usd: float = 0.0
    rebalance_count: int = 0

    # Trailing stop state
    peak_pnl_pct: float = 0.0
    trailing_active: bool = False
    dynamic_stop_pct: Optional[float] = None

    def total_value(self, position_value_usd: float) -> float:
        return position_value_usd + self.claimed_fees_usd

    def pnl_usd(self, position_value_usd: float) -> float:
        return self.total_value(position_value_usd) - self.initial_capital_usd

    def pnl_pct(self, position_value_usd: float) -> Optional[float]:
        if self.initial_capital_usd <= 0:
            return None
        return self.pnl_usd(position_value_usd) / self.initial_capital_usd * 100

    def record_rebalance(self, fees_earned_usd: float, claimed_fees_usd: float) -> None:
        self.rebalance_count += 1
        self.total_fees_earned_usd += fees_earned_usd
        self.claimed_fees_usd += claimed_fees_usd


class ExitRules:
    def __init__(self, config: ExitRulesConfig, tracker: PnlTracker):
        self.config = config
        self.tracker = tracker

    def _update_trailing(self, pnl_pct: float) -> None:
        config, t = self.config, self.tracker
        if not t.trailing_active and pnl_pct >= config.trailing_trigger_pct:
            t.trailing_active = True
            t.peak_pnl_pct = pnl_pct
            t.dynamic_stop_pct = pnl_pct - config.trailing_stop_pct
            Logger.info(f"[EXIT] Trailing stop armed at {pnl_pct:+.1f}%, stop {t.dynamic_stop_pct:+.1f}%")
        elif t.trailing_active and pnl_pct > t.peak_pnl_pct:
            t.peak_pnl_pct = pnl_pct
            new_stop = pnl_pct - config.trailing_stop_pct
            if t.dynamic_stop_pct is None or new_stop > t.dynamic_stop_pct:
                t.dynamic_stop_pct = new_stop
                Logger.info(f"[EXIT] New peak {pnl_pct:+.1f}%, stop moved to {new_stop:+.1f}%")

    def evaluate(self, position_value_usd: float) -> Optional[ExitSignal]:
        """Update trailing state and return the exit that fires, if any."""
        if not self.config.any_enabled:
            return None
        pnl_pct = self.tracker.pnl_pct(position_value_usd)
        if pnl_pct is None:
            return None

        config, t = self.config, self.tracker
        if config.trailing_stop_enabled:
            self._update_trailing(pnl_pct)

        if config.take_profit_enabled and pnl_pct >= config.take_profit_pct:
            return ExitSignal(
                ExitKind.TAKE_PROFIT, pnl_pct,
                f"take profit at {pnl_pct:+.1f}% (target +{config.take_profit_pct}%)",
            )
        if (
            config.trailing_stop_enabled
            and t.trailing_active
            and t.dynamic_stop_pct is not None
            and pnl_pct <= t.dynamic_stop_pct
        ):
            return ExitSignal(
                ExitKind.TRAILING_STOP, pnl_pct,
                f"trailing stop at {pnl_pct:+.1f}% (stop {t.dynamic_stop_pct:+.1f}%, peak {t.peak_pnl_pct:+.1f}%)",
            )
        if config.stop_loss_enabled and pnl_pct <= -config.stop_loss_pct:
            return ExitSignal(
                ExitKind.STOP_LOSS, pnl_pct,
                f"stop loss at {pnl_pct:+.1f}% (limit -{config.stop_loss_pct}%)",
            )
        return None
