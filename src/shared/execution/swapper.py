"""
Jupiter Swap Pipeline
=====================
Convert an amount of one token into another at a bounded price impact.

Three stages, each usable on its own:
    quote()   -> Optional[Quote]       first quote under the impact bound, or None
    build()   -> BuiltSwap             raises BuildError
    execute() -> Optional[str]         signature, or None once attempts run out

swap() chains them and reports a single ExecutionResult.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import httpx
from pydantic import ValidationError
from solders.keypair import Keypair

from src.shared.config.execution import SwapConfig
from src.shared.config.infrastructure import InfrastructureConfig
from src.shared.execution.execution_result import ErrorCode, ExecutionResult, failure_result, success_result
from src.shared.execution.schemas import JupiterQuoteResponse, SwapBuildResponse, VenueErrorResponse
from src.shared.execution.transactions import decode_transaction, sign_with_blockhash
from src.shared.infrastructure.chain_gateway import ChainGateway
from src.shared.system.errors import (
    BlockhashExpiredError,
    BuildError,
    ChainGatewayError,
    ConfirmationError,
    OnChainFailure,
)
from src.shared.system.logging import Logger
from src.shared.system.retry import RetryExhausted, retry_async
from src.shared.system.signal_bus import SignalBus, SignalType

VENUE = "JUPITER"


class _QuoteRejected(Exception):
    """Venue error or impact above the bound; a fresh quote may pass."""


def _execution_error_code(error: Optional[BaseException]) -> ErrorCode:
    if isinstance(error, BlockhashExpiredError):
        return ErrorCode.BLOCKHASH_EXPIRED
    if isinstance(error, OnChainFailure):
        return ErrorCode.ONCHAIN_FAILURE
    return ErrorCode.EXECUTION_EXHAUSTED


@dataclass(frozen=True)
class Quote:
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    price_impact_pct: float
    route: str
    payload: Dict[str, Any] = field(repr=False, compare=False)

    @property
    def impact_percent(self) -> float:
        """priceImpactPct is a fraction on the wire."""
        return abs(self.price_impact_pct) * 100


@dataclass(frozen=True)
class BuiltSwap:
    quote: Quote
    transaction_b64: str = field(repr=False)
    last_valid_block_height: Optional[int] = None
    prioritization_fee_lamports: Optional[int] = None


class JupiterSwapper:
    """
    Quote / build / execute against the Jupiter swap API.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        gateway: ChainGateway,
        config: Optional[SwapConfig] = None,
        infra: Optional[InfrastructureConfig] = None,
        bus: Optional[SignalBus] = None,
    ):
        self.http = http
        self.gateway = gateway
        self.config = config or SwapConfig()
        self.api_url = (infra or InfrastructureConfig()).jupiter_api_url.rstrip("/")
        self.bus = bus

    # ═══════════════════════════════════════════════════════════════════
    # QUOTE
    # ═══════════════════════════════════════════════════════════════════

    async def quote(
        self,
        input_mint: str,
        output_mint: str,
        amount_raw: int,
        slippage_bps: Optional[int] = None,
        max_attempts: Optional[int] = None,
        max_impact_pct: Optional[float] = None,
    ) -> Optional[Quote]:
        """First quote whose impact is below `max_impact_pct`, else None."""
        slippage = self.config.slippage_bps if slippage_bps is None else slippage_bps
        max_impact = self.config.max_price_impact_pct if max_impact_pct is None else max_impact_pct
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(int(amount_raw)),
            "slippageBps": slippage,
        }

        async def attempt() -> Quote:
            response = await self.http.get(f"{self.api_url}/quote", params=params)
            data = response.json()
            if not isinstance(data, dict) or "error" in data:
                raise _QuoteRejected(f"venue error: {self._venue_error(data)}")
            response.raise_for_status()

            try:
                parsed = JupiterQuoteResponse.model_validate(data)
            except ValidationError as e:
                raise _QuoteRejected(f"malformed quote: {e.error_count()} error(s)") from e

            quote = Quote(
                input_mint=parsed.input_mint,
                output_mint=parsed.output_mint,
                in_amount=parsed.in_amount,
                out_amount=parsed.out_amount,
                price_impact_pct=parsed.price_impact_pct,
                route=parsed.route,
                payload=data,
            )
            if quote.impact_percent >= max_impact:
                raise _QuoteRejected(f"price impact {quote.impact_percent:.3f}% >= {max_impact}%")
            return quote

        try:
            quote = await retry_async(
                attempt,
                self.config.quote_policy(max_attempts),
                "QUOTE",
                retry_on=(httpx.HTTPError, ValueError, _QuoteRejected),
            )
        except RetryExhausted as e:
            Logger.warning(f"[SWAP] No acceptable quote for {input_mint[:6]}->{output_mint[:6]}: {e.last_error}")
            return None

        Logger.info(
            f"[SWAP] Quote {quote.in_amount} -> {quote.out_amount} "
            f"(impact {quote.impact_percent:.3f}%, route {quote.route})"
        )
        return quote

    @staticmethod
    def _venue_error(data: Any) -> str:
        try:
            return VenueErrorResponse.model_validate(data).error
        except ValidationError:
            return repr(data)[:200]

    # ═══════════════════════════════════════════════════════════════════
    # BUILD
    # ═══════════════════════════════════════════════════════════════════

    async def build(
        self,
        quote: Quote,
        user_public_key: str,
        priority_level: Optional[str] = None,
        max_priority_fee_lamports: Optional[int] = None,
    ) -> BuiltSwap:
        """Ask the venue for a transaction for `quote`. Raises BuildError."""
        payload = {
            "quoteResponse": quote.payload,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "dynamicSlippage": {"maxBps": self.config.dynamic_slippage_max_bps},
            "prioritizationFeeLamports": {
                "priorityLevelWithMaxLamports": {
                    "maxLamports": max_priority_fee_lamports or self.config.max_priority_fee_lamports,
                    "priorityLevel": priority_level or self.config.priority_level,
                }
            },
        }

        async def attempt() -> Dict[str, Any]:
            response = await self.http.post(f"{self.api_url}/swap", json=payload)
            if response.status_code >= 500:
                response.raise_for_status()
            return response.json()

        try:
            data = await retry_async(attempt, self.config.build_policy(), "BUILD", retry_on=(httpx.HTTPError,))
        except RetryExhausted as e:
            raise BuildError(f"swap build request failed: {e.last_error}") from e.last_error
        except ValueError as e:
            raise BuildError(f"swap build response was not JSON: {e}") from e

        if not isinstance(data, dict) or "error" in data:
            raise BuildError(f"venue refused to build: {self._venue_error(data)}")
        try:
            parsed = SwapBuildResponse.model_validate(data)
        except ValidationError as e:
            raise BuildError("venue response omitted the transaction payload") from e

        return BuiltSwap(
            quote=quote,
            transaction_b64=parsed.swap_transaction,
            last_valid_block_height=parsed.last_valid_block_height,
            prioritization_fee_lamports=parsed.prioritization_fee_lamports,
        )

    # ═══════════════════════════════════════════════════════════════════
    # EXECUTE
    # ═══════════════════════════════════════════════════════════════════

    async def execute(self, built: BuiltSwap, signer: Keypair, max_attempts: Optional[int] = None) -> Optional[str]:
        """
        Fresh blockhash -> sign -> send -> confirm, repeated from scratch on
        failure. Returns the signature, or None when attempts run out.
        """
        signature, _ = await self._execute(built, signer, max_attempts)
        return signature

    async def _execute(
        self, built: BuiltSwap, signer: Keypair, max_attempts: Optional[int] = None
    ) -> Tuple[Optional[str], Optional[BaseException]]:
        """Signature, or None plus the error that ended the last attempt."""
        template = decode_transaction(built.transaction_b64)

        async def attempt() -> str:
            lease = await self.gateway.latest_blockhash()
            tx = sign_with_blockhash(template, lease.blockhash, signer)
            signature = await self.gateway.send_raw_transaction(bytes(tx))
            Logger.info(f"[SWAP] Sent {signature} (valid to height {lease.last_valid_block_height})")

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
                self.config.execute_policy(max_attempts),
                "EXECUTE",
                retry_on=(ChainGatewayError, ConfirmationError, OnChainFailure),
                should_retry=self._should_retry_execution,
            )
        except RetryExhausted as e:
            Logger.error(f"[SWAP] Execution exhausted: {e.last_error}")
            return None, e.last_error
        except OnChainFailure as e:
            Logger.error(f"[SWAP] On-chain failure, not retrying: {e}")
            return None, e

        Logger.success(f"[SWAP] Confirmed: https://solscan.io/tx/{signature}")
        return signature, None

    def _should_retry_execution(self, error: BaseException) -> bool:
        if isinstance(error, OnChainFailure):
            Logger.warning(f"[SWAP] Program error on {error.signature}: {error.err}")
            return self.config.retry_onchain_failures
        return True

    # ═══════════════════════════════════════════════════════════════════
    # END TO END
    # ═══════════════════════════════════════════════════════════════════

    async def swap(
        self,
        input_mint: str,
        output_mint: str,
        amount_raw: int,
        signer: Keypair,
        slippage_bps: Optional[int] = None,
        max_impact_pct: Optional[float] = None,
    ) -> ExecutionResult:
        """quote -> build -> execute. Failures come back as values."""
        start = time.time()
        context = dict(input_mint=input_mint, output_mint=output_mint, requested_amount=int(amount_raw))

        quote = await self.quote(
            input_mint, output_mint, amount_raw, slippage_bps=slippage_bps, max_impact_pct=max_impact_pct
        )
        if quote is None:
            result = failure_result(ErrorCode.QUOTE_UNAVAILABLE, "no acceptable quote", VENUE, **context)
        else:
            try:
                built = await self.build(quote, str(signer.pubkey()))
                signature, error = await self._execute(built, signer)
            except BuildError as e:
                Logger.error(f"[SWAP] Build failed: {e}")
                result = failure_result(ErrorCode.BUILD_FAILED, str(e), VENUE, **context)
            else:
                if signature is None:
                    result = failure_result(
                        _execution_error_code(error), f"no signature after all attempts: {error}", VENUE, **context
                    )
                else:
                    result = success_result(
                        signature,
                        VENUE,
                        quoted_out_amount=quote.out_amount,
                        price_impact_pct=quote.impact_percent,
                        **context,
                    )

        result.latency_ms = (time.time() - start) * 1000
        if self.bus is not None:
            signal = SignalType.SWAP_SUCCEEDED if result.success else SignalType.SWAP_FAILED
            self.bus.emit(signal, "SWAP", **result.to_dict())
        return result
