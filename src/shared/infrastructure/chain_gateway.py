"""
Chain Gateway
=============
Thin accessor over the Solana JSON-RPC used by every component.

Reads (blockhash, balances, transaction lookups) are retried with a small
bounded policy. Writes (send, confirm) are single shots; their callers own
the retry decision because a retry there means rebuilding the transaction.

Usage:
    gateway = ChainGateway(AsyncClient(rpc_url), config)
    lease = await gateway.latest_blockhash()
    sig = await gateway.send_raw_transaction(bytes(tx))
    await gateway.confirm_transaction(sig, lease)
"""

from dataclasses import dataclass
from typing import Any, Optional

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException, TransactionExpiredBlockheightExceededError, UnconfirmedTxError
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature

from src.shared.config.infrastructure import InfrastructureConfig
from src.shared.system.errors import BlockhashExpiredError, ChainGatewayError, ConfirmationError
from src.shared.system.logging import Logger
from src.shared.system.retry import RetryExhausted, RetryPolicy, retry_async

_RPC_ERRORS = (RPCException, SolanaRpcException, httpx.HTTPError)


@dataclass(frozen=True)
class BlockhashLease:
    """A blockhash plus the last block height at which it is still valid."""
    blockhash: Hash
    last_valid_block_height: int


@dataclass(frozen=True)
class TransactionOutcome:
    signature: str
    slot: int
    err: Optional[Any] = None

    @property
    def succeeded(self) -> bool:
        return self.err is None


class ChainGateway:
    """Retried ledger reads, single-shot ledger writes."""

    def __init__(self, client: AsyncClient, config: Optional[InfrastructureConfig] = None):
        config = config or InfrastructureConfig()
        self.client = client
        self.read_policy = RetryPolicy(
            max_attempts=config.rpc_read_attempts,
            delay_sec=config.rpc_read_delay_sec,
            backoff=2.0,
        )

    async def _read(self, label: str, call):
        async def attempt():
            try:
                return await call()
            except _RPC_ERRORS as e:
                raise ChainGatewayError(f"{label}: {e}") from e

        try:
            return await retry_async(attempt, self.read_policy, f"RPC {label}", retry_on=(ChainGatewayError,))
        except RetryExhausted as e:
            raise ChainGatewayError(str(e)) from e.last_error

    # ═══════════════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════════════

    async def latest_blockhash(self) -> BlockhashLease:
        resp = await self._read("getLatestBlockhash", lambda: self.client.get_latest_blockhash(Confirmed))
        value = resp.value
        return BlockhashLease(blockhash=value.blockhash, last_valid_block_height=value.last_valid_block_height)

    async def block_height(self) -> int:
        resp = await self._read("getBlockHeight", lambda: self.client.get_block_height(Confirmed))
        return int(resp.value)

    async def is_expired(self, lease: BlockhashLease) -> bool:
        return await self.block_height() > lease.last_valid_block_height

    async def get_balance(self, owner: Pubkey) -> int:
        """Lamports held by `owner`."""
        resp = await self._read("getBalance", lambda: self.client.get_balance(owner, Confirmed))
        return int(resp.value)

    async def get_token_balance(self, owner: Pubkey, mint: Pubkey) -> int:
        """Raw token amount summed over all of `owner`'s accounts for `mint`."""
        resp = await self._read(
            "getTokenAccountsByOwner",
            lambda: self.client.get_token_accounts_by_owner_json_parsed(
                owner, TokenAccountOpts(mint=mint), Confirmed
            ),
        )
        total = 0
        for account in resp.value:
            parsed = account.account.data.parsed
            total += int(parsed["info"]["tokenAmount"]["amount"])
        return total

    async def get_transaction_outcome(self, signature: str) -> Optional[TransactionOutcome]:
        """None when the ledger does not know the signature (yet)."""
        sig = Signature.from_string(signature)
        resp = await self._read(
            "getTransaction",
            lambda: self.client.get_transaction(
                sig, encoding="json", commitment=Confirmed, max_supported_transaction_version=0
            ),
        )
        value = resp.value
        if value is None:
            return None
        meta = value.transaction.meta
        return TransactionOutcome(signature=signature, slot=value.slot, err=meta.err if meta else None)

    # ═══════════════════════════════════════════════════════════════════
    # WRITES
    # ═══════════════════════════════════════════════════════════════════

    async def send_raw_transaction(self, raw: bytes, skip_preflight: bool = False) -> str:
        try:
            resp = await self.client.send_raw_transaction(
                raw, opts=TxOpts(skip_preflight=skip_preflight, preflight_commitment=Confirmed)
            )
        except _RPC_ERRORS as e:
            raise ChainGatewayError(f"sendTransaction: {e}") from e
        signature = str(resp.value)
        Logger.debug(f"[RPC] Sent {signature}")
        return signature

    async def confirm_transaction(self, signature: str, lease: BlockhashLease) -> None:
        """
        Wait for `confirmed` commitment, bounded by the lease's expiry height.
        Raises BlockhashExpiredError once the height passes.
        """
        sig = Signature.from_string(signature)
        try:
            resp = await self.client.confirm_transaction(
                sig,
                Confirmed,
                sleep_seconds=0.5,
                last_valid_block_height=lease.last_valid_block_height,
            )
        except TransactionExpiredBlockheightExceededError as e:
            raise BlockhashExpiredError(f"Blockhash expired before {signature} confirmed", signature) from e
        except UnconfirmedTxError as e:
            raise ConfirmationError(f"Unable to confirm {signature}: {e}", signature) from e
        except _RPC_ERRORS as e:
            raise ChainGatewayError(f"confirmTransaction: {e}") from e

        statuses = resp.value
        status = statuses[0] if statuses else None
        if status is None:
            raise ConfirmationError(f"No status for {signature}", signature)

    async def close(self) -> None:
        await self.client.close()
