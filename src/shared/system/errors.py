"""
Engine Error Taxonomy
=====================
Exceptions raised inside a stage. Stage and protocol boundaries turn them
into result values (ExecutionResult, BundleResult, Optional returns), so
only FatalError is expected to reach the operator.
"""

from typing import Any, Optional


class EngineError(Exception):
    """Base class for all engine errors."""


# ─────────────────────────────────────────────────────────────────────────────
# Reads: skipped at the tick boundary and retried next tick
# ─────────────────────────────────────────────────────────────────────────────

class TransientReadError(EngineError):
    """State or price read failed. The monitor skips the tick."""


class ChainGatewayError(TransientReadError):
    """Ledger RPC call failed at the transport or RPC level."""


class PriceUnavailable(TransientReadError):
    """Price oracle returned nothing usable for a mint."""


class BridgeError(TransientReadError):
    """DLMM bridge process failed or returned an unusable payload."""


# ─────────────────────────────────────────────────────────────────────────────
# Execution
# ─────────────────────────────────────────────────────────────────────────────

class BuildError(EngineError):
    """Swap venue refused to build a transaction or omitted the payload."""


class ConfirmationError(EngineError):
    """Transaction was sent but could not be confirmed."""

    def __init__(self, message: str, signature: Optional[str] = None):
        super().__init__(message)
        self.signature = signature


class BlockhashExpiredError(ConfirmationError):
    """Block height passed the lease's last valid height before confirmation."""


class OnChainFailure(EngineError):
    """The ledger accepted the transaction but the program errored."""

    def __init__(self, signature: str, err: Any):
        super().__init__(f"Transaction {signature} failed on-chain: {err}")
        self.signature = signature
        self.err = err


class RelayError(EngineError):
    """Bundle relay call failed."""


class BundleRejected(RelayError):
    """Relay refused the bundle outright."""


# ─────────────────────────────────────────────────────────────────────────────
# Fatal
# ─────────────────────────────────────────────────────────────────────────────

class FatalError(EngineError):
    """Ends the run: wallet unreadable, pool unreadable or position gone."""
