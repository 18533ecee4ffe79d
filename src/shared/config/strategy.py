from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MonitorConfig:
    interval_sec: float = 5.0
    # Re-center when |active - centre| > width * threshold
    recenter_threshold: float = 0.45
    max_ticks: Optional[int] = None

    def __post_init__(self):
        if not 0 < self.recenter_threshold:
            raise ValueError("recenter_threshold must be positive")
        if self.interval_sec < 0:
            raise ValueError("interval_sec must be >= 0")


@dataclass(frozen=True)
class ExitRulesConfig:
    """Percentages are P&L relative to initial capital, e.g. 15.0 == +15%."""

    take_profit_enabled: bool = False
    take_profit_pct: float = 15.0

    stop_loss_enabled: bool = False
    stop_loss_pct: float = 10.0

    trailing_stop_enabled: bool = False
    trailing_trigger_pct: float = 5.0
    trailing_stop_pct: float = 3.0

    swap_to_sol_on_exit: bool = True

    @property
    def any_enabled(self) -> bool:
        return self.take_profit_enabled or self.stop_loss_enabled or self.trailing_stop_enabled
