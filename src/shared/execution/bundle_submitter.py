"""
Bundle Submitter
================
Jito bundle submission and confirmation handling.

Responsibilities:
- Price the tip from the relay's tip floor (best effort, defaults on failure)
- Append the tip transfer and submit the bundle
- Poll until the bundle lands, fails or times out
- Retry, rebuilding against a fresh blockhash once the old one has expired

A bundle is only reported as landed when the relay lists every one of its
signatures in a landed slot. Relay acceptance alone means nothing.
"""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from src.shared.config.execution import BundleConfig, SwapConfig
from src.shared.config.infrastructure import LAMPORTS_PER_SOL
from src.shared.execution.execution_result import (
    ErrorCode,
    ExecutionResult,
    failure_result,
    success_result,
)
from src.shared.execution.schemas import TipFloor
from src.shared.execution.transactions import (
    build_tip_transaction,
    encode_transaction,
    sign_with_blockhash,
    signatures_of,
)
from src.shared.infrastructure.chain_gateway import BlockhashLease, ChainGateway
from src.shared.infrastructure.jito_adapter import JitoAdapter
from src.shared.system.errors import (
    BundleRejected,
    ChainGatewayError,
    ConfirmationError,
    OnChainFailure,
    RelayError,
)
from src.shared.system.logging import Logger
from src.shared.system.retry import RetryExhausted, RetryPolicy, retry_async
from src.shared.system.signal_bus import SignalBus, SignalType

Rebuild = Callable[[BlockhashLease], Awaitable[List[VersionedTransaction]]]


# ═══════════════════════════════════════════════════════════════════════════════
# RESULT TYPES
# ═══════════════════════════════════════════════════════════════════════════════

class BundleStatus(Enum):
    """Status of a submitted bundle."""
    PENDING = "PENDING"
    LANDED = "LANDED"
    FAILED = "FAILED"
    DROPPED = "DROPPED"
    TIMEOUT = "TIMEOUT"


@dataclass(frozen=True)
class BundleLanding:
    """Outcome of polling one bundle id."""
    status: BundleStatus
    slot: Optional[int] = None
    signatures: List[str] = field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    final: bool = False

    @property
    def landed(self) -> bool:
        return self.status == BundleStatus.LANDED


@dataclass
class BundleResult:
    """Result of submit_and_confirm. A failure never carries signatures."""

    status: BundleStatus = BundleStatus.PENDING
    bundle_id: Optional[str] = None
    slot: Optional[int] = None
    signatures: List[str] = field(default_factory=list)
    transaction_count: int = 0
    tip_lamports: int = 0
    attempts: int = 0
    latency_ms: float = 0.0
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None

    # Signatures of the final attempt, kept so a caller can check for a late landing
    attempted_signatures: List[str] = field(default_factory=list, repr=False)

    @property
    def success(self) -> bool:
        return self.status == BundleStatus.LANDED

    @property
    def tip_sol(self) -> float:
        return self.tip_lamports / LAMPORTS_PER_SOL


@dataclass(frozen=True)
class SignatureLanding:
    signature: str
    found: bool
    slot: Optional[int] = None
    success: bool = False
    error: Optional[str] = None


class _BundleNotLanded(Exception):
    def __init__(self, landing: BundleLanding):
        super().__init__(landing.error or landing.status.value)
        self.landing = landing


# ═══════════════════════════════════════════════════════════════════════════════
# TIP ECONOMICS
# ═══════════════════════════════════════════════════════════════════════════════

def calculate_tip(tip_floor: TipFloor, tier: str, tx_count: int, config: Optional[BundleConfig] = None) -> int:
    """
    Tip in lamports for a bundle of `tx_count` caller transactions.

    Takes the tier's percentile, scales it gently with bundle size and
    clamps to the configured bounds.
    """
    config = config or BundleConfig()
    base = math.floor(tip_floor.percentile_for(tier) * LAMPORTS_PER_SOL)
    if base <= 0:
        base = config.default_tip_lamports
    scale = 1 + (math.sqrt(max(tx_count, 1)) - 1) * 0.2
    tip = math.floor(base * scale)
    return max(config.min_tip_lamports, min(tip, config.max_tip_lamports))


async def fetch_tip_floor(relay: JitoAdapter) -> TipFloor:
    """Never raises; returns a fresh default floor when the relay fails."""
    try:
        return await relay.get_tip_floor()
    except RelayError as e:
        Logger.warning(f"[BUNDLE] Tip floor unavailable, using defaults: {e}")
        return TipFloor.default()


def should_use_bundle(tx_count: int, network: str, multi_position: bool, config: Optional[BundleConfig] = None) -> bool:
    """Bundles only pay off for multi-transaction position work on mainnet."""
    config = config or BundleConfig()
    if not config.enabled:
        return False
    if network.lower() not in ("mainnet", "mainnet-beta"):
        return False
    return multi_position and 1 < tx_count <= config.max_bundle_size - 1


# ═══════════════════════════════════════════════════════════════════════════════
# BUNDLE SUBMITTER
# ═══════════════════════════════════════════════════════════════════════════════

class BundleSubmitter:
    """
    Submits caller transactions plus a tip as one Jito bundle.

    Usage:
        submitter = BundleSubmitter(gateway, jito, keypair, config)
        lease = await gateway.latest_blockhash()
        result = await submitter.submit_and_confirm(signed_txs, lease)
    """

    def __init__(
        self,
        gateway: ChainGateway,
        relay: JitoAdapter,
        keypair: Keypair,
        config: Optional[BundleConfig] = None,
        bus: Optional[SignalBus] = None,
        sequential_config: Optional[SwapConfig] = None,
    ):
        self.gateway = gateway
        self.relay = relay
        self.keypair = keypair
        self.config = config or BundleConfig()
        self.bus = bus
        self.sequential_config = sequential_config or SwapConfig()

    # ═══════════════════════════════════════════════════════════════════
    # TIP DISCOVERY
    # ═══════════════════════════════════════════════════════════════════

    async def fetch_tip_floor(self) -> TipFloor:
        return await fetch_tip_floor(self.relay)

    # ═══════════════════════════════════════════════════════════════════
    # SUBMISSION
    # ═══════════════════════════════════════════════════════════════════

    async def submit_and_confirm(
        self,
        transactions: List[VersionedTransaction],
        lease: BlockhashLease,
        tier: Optional[str] = None,
        rebuild: Optional[Rebuild] = None,
    ) -> BundleResult:
        """
        Submit `transactions` (signed against `lease`) with a tip appended.

        `rebuild` is called with a fresh lease when the shared blockhash has
        expired between attempts; without it the caller's transactions are
        resent as they are.
        """
        max_caller_txs = self.config.max_bundle_size - 1
        if not transactions:
            raise ValueError("Cannot submit an empty bundle")
        if len(transactions) > max_caller_txs:
            raise ValueError(f"Bundle holds at most {max_caller_txs} transactions plus the tip")

        start = time.time()
        tier = (tier or self.config.priority_tier).lower()

        tip_floor = await self.fetch_tip_floor()
        tip_lamports = calculate_tip(tip_floor, tier, len(transactions), self.config)
        tip_account = await self.relay.get_random_tip_account()
        Logger.info(
            f"[BUNDLE] {len(transactions)} tx(s), tier {tier}, tip {tip_lamports} lamports"
            f"{' (default floor)' if tip_floor.is_default else ''}"
        )

        state = {"lease": lease, "txs": list(transactions), "prior": [], "bundle_id": None, "attempts": 0}

        async def attempt():
            state["attempts"] += 1
            if state["prior"]:
                prior = await self._prior_attempt_landing(state["prior"])
                if prior is not None:
                    if prior.landed:
                        return state["bundle_id"], prior
                    raise _BundleNotLanded(prior)

            if await self.gateway.is_expired(state["lease"]):
                fresh = await self.gateway.latest_blockhash()
                Logger.warning("[BUNDLE] Blockhash expired, rebuilding tip transaction")
                if rebuild is not None:
                    state["txs"] = list(await rebuild(fresh))
                else:
                    Logger.warning("[BUNDLE] No rebuild hook; caller transactions keep the expired blockhash")
                state["lease"] = fresh

            tip_tx = build_tip_transaction(self.keypair, tip_account, tip_lamports, state["lease"].blockhash)
            bundle = state["txs"] + [tip_tx]
            expected = signatures_of(bundle)
            state["prior"] = expected

            bundle_id = await self.relay.send_bundle([encode_transaction(tx) for tx in bundle])
            state["bundle_id"] = bundle_id
            landing = await self.wait_for_landing(bundle_id, expected)
            if not landing.landed:
                raise _BundleNotLanded(landing)
            return bundle_id, landing

        try:
            bundle_id, landing = await retry_async(
                attempt,
                self.config.submit_policy(),
                "BUNDLE",
                retry_on=(_BundleNotLanded, RelayError, ChainGatewayError),
                should_retry=self._should_retry,
            )
        except (RetryExhausted, _BundleNotLanded) as e:
            last = e.last_error if isinstance(e, RetryExhausted) else e
            result = self._failure(last, state, tip_lamports, len(transactions) + 1, start)
        else:
            result = BundleResult(
                status=BundleStatus.LANDED,
                bundle_id=bundle_id,
                slot=landing.slot,
                signatures=list(landing.signatures),
                transaction_count=len(landing.signatures),
                tip_lamports=tip_lamports,
                attempts=state["attempts"],
                latency_ms=(time.time() - start) * 1000,
                attempted_signatures=list(state["prior"]),
            )
            Logger.success(f"[BUNDLE] Landed in slot {landing.slot}: {len(landing.signatures)} tx(s)")

        self._emit(result)
        return result

    def _should_retry(self, error: BaseException) -> bool:
        if isinstance(error, _BundleNotLanded):
            landing = error.landing
            if landing.final:
                return False
            if landing.error_code in (ErrorCode.BUNDLE_FAILED, ErrorCode.PARTIAL_BUNDLE):
                return self.config.retry_onchain_failures
        return True

    def _failure(self, error, state, tip_lamports: int, count: int, start: float) -> BundleResult:
        if isinstance(error, _BundleNotLanded):
            landing = error.landing
            status, code, message = landing.status, landing.error_code, landing.error
        elif isinstance(error, BundleRejected):
            status, code, message = BundleStatus.DROPPED, ErrorCode.BUNDLE_REJECTED, str(error)
        else:
            status, code, message = BundleStatus.FAILED, ErrorCode.RPC_ERROR, str(error)

        Logger.error(f"[BUNDLE] Failed after {state['attempts']} attempt(s): {message}")
        return BundleResult(
            status=status,
            transaction_count=count,
            tip_lamports=tip_lamports,
            attempts=state["attempts"],
            latency_ms=(time.time() - start) * 1000,
            error=message or status.value,
            error_code=code or ErrorCode.BUNDLE_FAILED,
            attempted_signatures=list(state["prior"]),
        )

    async def _prior_attempt_landing(self, signatures: List[str]) -> Optional[BundleLanding]:
        """
        Ledger view of the previous attempt's signatures. None when nothing
        landed, so resubmitting cannot execute the same work twice.
        """
        outcomes = [await self.gateway.get_transaction_outcome(sig) for sig in signatures]
        found = [o for o in outcomes if o is not None]
        if not found:
            return None

        if len(found) != len(signatures):
            return BundleLanding(
                status=BundleStatus.FAILED,
                error=f"previous attempt partially visible ({len(found)}/{len(signatures)})",
                error_code=ErrorCode.PARTIAL_BUNDLE,
                final=True,
            )
        failed = [o for o in found if not o.succeeded]
        if failed:
            return BundleLanding(
                status=BundleStatus.FAILED,
                error=f"previous attempt landed with errors: {failed[0].err}",
                error_code=ErrorCode.ONCHAIN_FAILURE,
                final=True,
            )
        Logger.info("[BUNDLE] Previous attempt landed late")
        return BundleLanding(status=BundleStatus.LANDED, slot=found[0].slot, signatures=list(signatures))

    # ═══════════════════════════════════════════════════════════════════
    # CONFIRMATION
    # ═══════════════════════════════════════════════════════════════════

    async def wait_for_landing(self, bundle_id: str, expected_signatures: List[str]) -> BundleLanding:
        """Poll relay status until landed, failed or timed out."""
        deadline = time.monotonic() + self.config.timeout_ms / 1000
        interval = self.config.poll_interval_ms / 1000

        while time.monotonic() < deadline:
            try:
                landing = await self._check_status(bundle_id, expected_signatures)
            except RelayError as e:
                Logger.debug(f"[BUNDLE] Status check error: {e}")
                landing = None

            if landing is not None:
                return landing
            await asyncio.sleep(interval)

        return BundleLanding(
            status=BundleStatus.TIMEOUT,
            error=f"bundle {bundle_id[:16]} not confirmed within {self.config.timeout_ms} ms",
            error_code=ErrorCode.BUNDLE_TIMEOUT,
        )

    async def _check_status(self, bundle_id: str, expected: List[str]) -> Optional[BundleLanding]:
        inflight = await self.relay.get_inflight_bundle_status(bundle_id)
        if inflight is None or inflight.status == "Pending":
            return None
        if inflight.status == "Failed":
            return BundleLanding(
                status=BundleStatus.FAILED, error="relay reported Failed", error_code=ErrorCode.BUNDLE_FAILED
            )
        if inflight.status == "Invalid":
            return BundleLanding(
                status=BundleStatus.DROPPED, error="relay reported Invalid", error_code=ErrorCode.BUNDLE_REJECTED
            )

        # Landed: only the final status lists which transactions made it
        entry = await self.relay.get_bundle_status(bundle_id)
        if entry is None:
            return None
        if entry.errored:
            return BundleLanding(
                status=BundleStatus.FAILED, slot=entry.slot,
                error=f"bundle errored: {entry.err}", error_code=ErrorCode.BUNDLE_FAILED,
            )
        missing = [sig for sig in expected if sig not in entry.transactions]
        if missing:
            return BundleLanding(
                status=BundleStatus.FAILED,
                slot=entry.slot,
                error=f"only {len(expected) - len(missing)}/{len(expected)} transactions landed",
                error_code=ErrorCode.PARTIAL_BUNDLE,
            )
        return BundleLanding(status=BundleStatus.LANDED, slot=entry.slot, signatures=list(expected))

    # ═══════════════════════════════════════════════════════════════════
    # VERIFICATION / FALLBACK
    # ═══════════════════════════════════════════════════════════════════

    async def verify_landing(self, result: BundleResult) -> List[SignatureLanding]:
        """Independent ledger lookup of each reported signature."""
        checks = []
        for signature in result.signatures:
            outcome = await self.gateway.get_transaction_outcome(signature)
            if outcome is None:
                checks.append(SignatureLanding(signature=signature, found=False, error="not found"))
            else:
                checks.append(SignatureLanding(
                    signature=signature,
                    found=True,
                    slot=outcome.slot,
                    success=outcome.succeeded,
                    error=None if outcome.succeeded else str(outcome.err),
                ))
        return checks

    async def execute_with_fallback(
        self,
        templates: List[VersionedTransaction],
        network: str,
        multi_position: bool = True,
        tier: Optional[str] = None,
    ) -> ExecutionResult:
        """
        Sign `templates` (owner is the only signer) and land them as a bundle
        when eligible, otherwise one by one through the gateway.
        """
        if should_use_bundle(len(templates), network, multi_position, self.config):
            lease = await self.gateway.latest_blockhash()

            async def rebuild(fresh: BlockhashLease) -> List[VersionedTransaction]:
                return [sign_with_blockhash(t, fresh.blockhash, self.keypair) for t in templates]

            signed = await rebuild(lease)
            bundle = await self.submit_and_confirm(signed, lease, tier=tier, rebuild=rebuild)
            if bundle.success:
                return success_result(bundle.signatures[0], "JITO", signatures=bundle.signatures)

            late = await self._prior_attempt_landing(bundle.attempted_signatures)
            if late is not None:
                if late.landed:
                    return success_result(late.signatures[0], "JITO", signatures=late.signatures)
                return failure_result(late.error_code, late.error, "JITO")
            Logger.warning(f"[BUNDLE] Bundle failed ({bundle.error}); falling back to sequential sends")

        return await self.send_sequential(templates)

    async def send_sequential(self, templates: List[VersionedTransaction]) -> ExecutionResult:
        """Each transaction: fresh blockhash -> sign -> send -> confirm, retried."""
        landed: List[str] = []
        policy = RetryPolicy(
            max_attempts=self.sequential_config.execute_attempts,
            delay_sec=self.sequential_config.retry_delay_sec,
        )

        for index, template in enumerate(templates, start=1):
            async def attempt(template=template) -> str:
                lease = await self.gateway.latest_blockhash()
                tx = sign_with_blockhash(template, lease.blockhash, self.keypair)
                signature = await self.gateway.send_raw_transaction(bytes(tx))
                await self.gateway.confirm_transaction(signature, lease)
                outcome = await self.gateway.get_transaction_outcome(signature)
                if outcome is None:
                    raise ConfirmationError(f"Confirmed transaction {signature} not found", signature)
                if not outcome.succeeded:
                    raise OnChainFailure(signature, outcome.err)
                return signature

            try:
                signature = await retry_async(
                    attempt,
                    policy,
                    f"SEND {index}/{len(templates)}",
                    retry_on=(ChainGatewayError, ConfirmationError, OnChainFailure),
                    should_retry=lambda e: not isinstance(e, OnChainFailure)
                    or self.sequential_config.retry_onchain_failures,
                )
            except (RetryExhausted, OnChainFailure) as e:
                message = f"transaction {index}/{len(templates)} failed after {len(landed)} landed: {e}"
                Logger.error(f"[BUNDLE] {message}")
                return failure_result(ErrorCode.EXECUTION_EXHAUSTED, message, "RPC")
            landed.append(signature)

        return success_result(landed[-1], "RPC", signatures=landed)

    # ═══════════════════════════════════════════════════════════════════
    # EVENTS
    # ═══════════════════════════════════════════════════════════════════

    def _emit(self, result: BundleResult) -> None:
        if self.bus is None:
            return
        signal = SignalType.BUNDLE_SUCCEEDED if result.success else SignalType.BUNDLE_FAILED
        self.bus.emit(
            signal,
            "BUNDLE",
            bundle_id=result.bundle_id,
            slot=result.slot,
            signatures=list(result.signatures),
            transaction_count=result.transaction_count,
            tip_lamports=result.tip_lamports,
            tip_sol=result.tip_sol,
            error=result.error,
        )
