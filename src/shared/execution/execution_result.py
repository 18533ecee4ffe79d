"""
Unified Execution Result
========================
Return value of the swap pipeline and the sequential send path.

Failures are values: callers branch on `success` / `error_code`
instead of catching exceptions.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from enum import Enum
import time


class ExecutionStatus(Enum):
    """Status codes for execution results."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class ErrorCode(Enum):
    """Standardized error codes for execution failures."""

    # Swap pipeline
    QUOTE_UNAVAILABLE = "QUOTE_UNAVAILABLE"
    BUILD_FAILED = "BUILD_FAILED"
    EXECUTION_EXHAUSTED = "EXECUTION_EXHAUSTED"

    # Ledger
    BLOCKHASH_EXPIRED = "BLOCKHASH_EXPIRED"
    ONCHAIN_FAILURE = "ONCHAIN_FAILURE"
    RPC_ERROR = "RPC_ERROR"

    # Bundles
    BUNDLE_REJECTED = "BUNDLE_REJECTED"
    BUNDLE_TIMEOUT = "BUNDLE_TIMEOUT"
    BUNDLE_FAILED = "BUNDLE_FAILED"
    PARTIAL_BUNDLE = "PARTIAL_BUNDLE"

    UNKNOWN = "UNKNOWN"


@dataclass
class ExecutionResult:
    """
    Result of one swap or sequential send.

    Usage:
        result = await pipeline.swap(...)
        if result.success:
            log(f"Swapped, tx={result.tx_signature}")
        else:
            handle_error(result.error_code)
    """

    success: bool
    status: ExecutionStatus = ExecutionStatus.FAILED

    tx_signature: Optional[str] = None
    signatures: list = field(default_factory=list)

    input_mint: Optional[str] = None
    output_mint: Optional[str] = None
    requested_amount: int = 0
    quoted_out_amount: int = 0
    price_impact_pct: float = 0.0

    error_code: Optional[ErrorCode] = None
    error_message: Optional[str] = None

    venue: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    latency_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging and events."""
        return {
            "success": self.success,
            "status": self.status.value,
            "tx_signature": self.tx_signature,
            "signatures": list(self.signatures),
            "input_mint": self.input_mint,
            "output_mint": self.output_mint,
            "requested_amount": self.requested_amount,
            "quoted_out_amount": self.quoted_out_amount,
            "price_impact_pct": self.price_impact_pct,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": self.error_message,
            "venue": self.venue,
            "latency_ms": self.latency_ms,
        }

    def __repr__(self) -> str:
        if self.success:
            sig = self.tx_signature[:12] if self.tx_signature else "N/A"
            return f"ExecutionResult(SUCCESS: out={self.quoted_out_amount}, tx={sig}...)"
        return f"ExecutionResult(FAILED: {self.error_code}, {self.error_message})"


# ═══════════════════════════════════════════════════════════════════════════════
# FACTORY FUNCTIONS
# ═══════════════════════════════════════════════════════════════════════════════

def success_result(tx_signature: str, venue: str, **kwargs) -> ExecutionResult:
    """Create a successful execution result."""
    return ExecutionResult(
        success=True,
        status=ExecutionStatus.SUCCESS,
        tx_signature=tx_signature,
        signatures=kwargs.get("signatures") or [tx_signature],
        venue=venue,
        input_mint=kwargs.get("input_mint"),
        output_mint=kwargs.get("output_mint"),
        requested_amount=kwargs.get("requested_amount", 0),
        quoted_out_amount=kwargs.get("quoted_out_amount", 0),
        price_impact_pct=kwargs.get("price_impact_pct", 0.0),
        latency_ms=kwargs.get("latency_ms", 0.0),
    )


def failure_result(
    error_code: ErrorCode,
    error_message: str,
    venue: str = None,
    **kwargs
) -> ExecutionResult:
    """Create a failed execution result. Never carries signatures."""
    return ExecutionResult(
        success=False,
        status=kwargs.get("status", ExecutionStatus.FAILED),
        error_code=error_code,
        error_message=error_message,
        venue=venue,
        input_mint=kwargs.get("input_mint"),
        output_mint=kwargs.get("output_mint"),
        requested_amount=kwargs.get("requested_amount", 0),
        latency_ms=kwargs.get("latency_ms", 0.0),
    )
