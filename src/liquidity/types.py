"""
DLMM Types
==========
Data classes for pool and position state as the monitor sees it.
Amounts are raw integer token units unless the name says otherwise.
"""

from dataclasses import dataclass, field
from typing import List, Optional
import time


@dataclass(frozen=True)
class TokenInfo:
    mint: str
    decimals: int
    symbol: Optional[str] = None

    def to_ui(self, raw: int) -> float:
        return raw / (10 ** self.decimals)


@dataclass(frozen=True)
class ActiveBinSnapshot:
    """The pool's active bin. Read fresh every tick, never cached."""
    bin_id: int
    price: float
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class BinLiquidity:
    bin_id: int
    amount_x: int = 0
    amount_y: int = 0


@dataclass(frozen=True)
class Position:
    """
    An open liquidity range. Replaced, not mutated, when re-centered.
    """
    position_id: str
    lower_bin_id: int
    upper_bin_id: int
    bins: List[BinLiquidity] = field(default_factory=list)
    fee_x: int = 0
    fee_y: int = 0

    @property
    def total_x(self) -> int:
        return sum(b.amount_x for b in self.bins)

    @property
    def total_y(self) -> int:
        return sum(b.amount_y for b in self.bins)

    @property
    def width(self) -> int:
        return self.upper_bin_id - self.lower_bin_id + 1

    @property
    def centre(self) -> float:
        return (self.lower_bin_id + self.upper_bin_id) / 2

    def contains(self, bin_id: int) -> bool:
        return self.lower_bin_id <= bin_id <= self.upper_bin_id

    def __repr__(self):
        return f"<Position {self.position_id[:8]}... bins=[{self.lower_bin_id}, {self.upper_bin_id}]>"


@dataclass(frozen=True)
class PoolSnapshot:
    """One refresh of the pool: tokens, active bin and the owner's positions."""
    pool_address: str
    token_x: TokenInfo
    token_y: TokenInfo
    active_bin: Optional[ActiveBinSnapshot]
    positions: List[Position] = field(default_factory=list)

    def find_position(self, position_id: str) -> Optional[Position]:
        for position in self.positions:
            if position.position_id == position_id:
                return position
        return None


@dataclass(frozen=True)
class RangeGeometry:
    width: int
    centre: float
    distance: float

    @classmethod
    def of(cls, position: Position, active_bin_id: int) -> "RangeGeometry":
        return cls(
            width=position.width,
            centre=position.centre,
            distance=abs(active_bin_id - position.centre),
        )

    def needs_recenter(self, threshold: float) -> bool:
        return self.distance > self.width * threshold


@dataclass(frozen=True)
class PositionValuation:
    """USD view of a position at one tick."""
    amount_x: float
    amount_y: float
    fee_x: float
    fee_y: float
    price_x: float
    price_y: float

    @property
    def liquidity_usd(self) -> float:
        return self.amount_x * self.price_x + self.amount_y * self.price_y

    @property
    def fees_usd(self) -> float:
        return self.fee_x * self.price_x + self.fee_y * self.price_y

    @property
    def total_usd(self) -> float:
        return self.liquidity_usd + self.fees_usd

    @classmethod
    def of(cls, position: Position, snapshot: PoolSnapshot, price_x: float, price_y: float) -> "PositionValuation":
        return cls(
            amount_x=snapshot.token_x.to_ui(position.total_x),
            amount_y=snapshot.token_y.to_ui(position.total_y),
            fee_x=snapshot.token_x.to_ui(position.fee_x),
            fee_y=snapshot.token_y.to_ui(position.fee_y),
            price_x=price_x,
            price_y=price_y,
        )


@dataclass(frozen=True)
class OpenedPosition:
    pool_address: str
    position_id: str
    initial_capital_usd: float = 0.0
    signature: Optional[str] = None


@dataclass(frozen=True)
class RecenterResult:
    pool_address: str
    position_id: str
    fees_earned_usd: float = 0.0
    claimed_fees_usd: float = 0.0
    compounded: bool = False
