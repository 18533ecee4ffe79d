"""
Wire Schemas
============
Pydantic models for every JSON payload the engine consumes: the swap venue
(Jupiter), the bundle relay (Jito) and the DLMM bridge process.

A payload missing a required field fails validation here, and the calling
stage maps the ValidationError to its own typed failure.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


# ═══════════════════════════════════════════════════════════════════════════════
# SWAP VENUE
# ═══════════════════════════════════════════════════════════════════════════════

class RoutePlanStep(_Wire):
    swap_info: Dict[str, Any] = Field(default_factory=dict, alias="swapInfo")
    percent: Optional[float] = None

    @property
    def label(self) -> str:
        return str(self.swap_info.get("label") or "?")


class JupiterQuoteResponse(_Wire):
    """GET /quote success body. Amounts are decimal strings on the wire."""
    input_mint: str = Field(..., alias="inputMint")
    output_mint: str = Field(..., alias="outputMint")
    in_amount: int = Field(..., alias="inAmount")
    out_amount: int = Field(..., alias="outAmount")
    price_impact_pct: float = Field(..., alias="priceImpactPct")
    slippage_bps: int = Field(default=0, alias="slippageBps")
    route_plan: List[RoutePlanStep] = Field(default_factory=list, alias="routePlan")

    @property
    def route(self) -> str:
        return " -> ".join(step.label for step in self.route_plan) or "direct"


class SwapBuildResponse(_Wire):
    """POST /swap success body."""
    swap_transaction: str = Field(..., alias="swapTransaction", min_length=1)
    last_valid_block_height: Optional[int] = Field(default=None, alias="lastValidBlockHeight")
    prioritization_fee_lamports: Optional[int] = Field(default=None, alias="prioritizationFeeLamports")
    compute_unit_limit: Optional[int] = Field(default=None, alias="computeUnitLimit")


class VenueErrorResponse(_Wire):
    """API-level failure body returned with either 200 or 4xx."""
    error: str
    error_code: Optional[str] = Field(default=None, alias="errorCode")


# ═══════════════════════════════════════════════════════════════════════════════
# BUNDLE RELAY
# ═══════════════════════════════════════════════════════════════════════════════

TipTier = Literal["low", "medium", "high", "veryhigh"]


class TipFloor(_Wire):
    """Landed-tip percentiles in SOL. Immutable; one instance per fetch."""
    landed_tips_25th_percentile: float
    landed_tips_50th_percentile: float
    landed_tips_75th_percentile: float
    landed_tips_95th_percentile: float
    ema_landed_tips_50th_percentile: Optional[float] = None
    time: Optional[str] = None
    is_default: bool = False

    @classmethod
    def default(cls) -> "TipFloor":
        return cls(
            landed_tips_25th_percentile=0.000006,
            landed_tips_50th_percentile=0.00001,
            landed_tips_75th_percentile=0.000036,
            landed_tips_95th_percentile=0.0014,
            ema_landed_tips_50th_percentile=0.00001,
            is_default=True,
        )

    def percentile_for(self, tier: str) -> float:
        tier = tier.lower()
        if tier == "veryhigh":
            return self.landed_tips_95th_percentile
        if tier == "high":
            return self.landed_tips_75th_percentile
        if tier == "low":
            return self.landed_tips_25th_percentile
        return self.ema_landed_tips_50th_percentile or self.landed_tips_50th_percentile


class InflightBundleStatus(_Wire):
    bundle_id: str
    status: Literal["Invalid", "Pending", "Failed", "Landed"]
    landed_slot: Optional[int] = None


class BundleStatusEntry(_Wire):
    """Final status once the relay has seen the bundle land."""
    bundle_id: str
    transactions: List[str] = Field(default_factory=list)
    slot: int
    confirmation_status: Optional[str] = None
    err: Optional[Dict[str, Any]] = None

    @property
    def errored(self) -> bool:
        # The relay reports {"Ok": null} on success
        return bool(self.err) and "Ok" not in self.err


# ═══════════════════════════════════════════════════════════════════════════════
# DLMM BRIDGE
# ═══════════════════════════════════════════════════════════════════════════════

class BridgeToken(_Wire):
    mint: str
    decimals: int
    symbol: Optional[str] = None


class BridgeActiveBin(_Wire):
    bin_id: int = Field(..., alias="binId")
    price: float


class BridgeBin(_Wire):
    bin_id: int = Field(..., alias="binId")
    position_x_amount: int = Field(default=0, alias="positionXAmount")
    position_y_amount: int = Field(default=0, alias="positionYAmount")


class BridgePosition(_Wire):
    public_key: str = Field(..., alias="publicKey")
    lower_bin_id: int = Field(..., alias="lowerBinId")
    upper_bin_id: int = Field(..., alias="upperBinId")
    position_bin_data: List[BridgeBin] = Field(default_factory=list, alias="positionBinData")
    fee_x: int = Field(default=0, alias="feeX")
    fee_y: int = Field(default=0, alias="feeY")


class BridgeSnapshot(_Wire):
    pool: str
    token_x: BridgeToken = Field(..., alias="tokenX")
    token_y: BridgeToken = Field(..., alias="tokenY")
    active_bin: Optional[BridgeActiveBin] = Field(default=None, alias="activeBin")
    positions: List[BridgePosition] = Field(default_factory=list)


class BridgeOpenResult(_Wire):
    pool: str
    position_id: str = Field(..., alias="positionId")
    initial_capital_usd: float = Field(default=0.0, alias="initialCapitalUsd")
    signature: Optional[str] = None


class BridgeRecenterResult(_Wire):
    pool: str
    position_id: str = Field(..., alias="positionId")
    fees_earned_usd: float = Field(default=0.0, alias="feesEarnedUsd")
    claimed_fees_usd: float = Field(default=0.0, alias="claimedFeesUsd")
    compounded: bool = False


class BridgeCloseTransactions(_Wire):
    transactions: List[str] = Field(..., min_length=1)
