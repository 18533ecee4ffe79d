"""
Liquidity Package
=================
Meteora DLMM position lifecycle: monitoring, re-centering and exits.

Components:
- types.py: Data classes for pool/position state
- exit_rules.py: P&L tracking, take-profit / trailing / stop-loss
- position_closer.py: Close + swap-to-SOL on exit
- position_monitor.py: The per-tick control loop

Only types are re-exported here; the bridge imports them.
"""

from src.liquidity.types import (
    ActiveBinSnapshot,
    BinLiquidity,
    PoolSnapshot,
    Position,
    PositionValuation,
    RangeGeometry,
)

__all__ = [
    "ActiveBinSnapshot",
    "BinLiquidity",
    "PoolSnapshot",
    "Position",
    "PositionValuation",
    "RangeGeometry",
]
