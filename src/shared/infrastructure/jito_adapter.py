"""
Jito Block Engine Adapter (Async)
=================================
HTTP client for the bundle relay: tip floor, tip accounts, bundle submission
and bundle status.

Features:
- Async HTTP (httpx) on a shared client
- Regional failover with rotation on 429 / transport errors
- Typed responses (pydantic) instead of raw dicts
"""

import random
import time
from typing import List, Optional

import httpx
from pydantic import ValidationError

from src.shared.config.execution import BundleConfig
from src.shared.config.infrastructure import InfrastructureConfig
from src.shared.execution.schemas import BundleStatusEntry, InflightBundleStatus, TipFloor
from src.shared.system.errors import BundleRejected, RelayError
from src.shared.system.logging import Logger
from src.shared.system.retry import RetryExhausted, retry_async

DEFAULT_TIP_ACCOUNTS = [
    "96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5",
    "HFqU5x63VTqvQss8hp11i4wVV8bD44PvwucfZ2bU7gRe",
    "Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY",
    "ADaUMid9yfUytqMBgopwjb2DTLSokTSzL1zt6iGPaS49",
    "DfXygSm4jCyNCybVYYK6DwvWqjKee8pbDmJGcLWNDXjh",
    "ADuUkR4vqLUMWXxW9gh6D6L8pMSawimctcNZ5pGwDcEt",
    "DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL",
    "3AVi9Tg9Uo68tJfuvoKvqKNWKkC5wPdSSdeBnizKZ6jT",
]

REGIONAL_HOSTS = [
    "https://frankfurt.mainnet.block-engine.jito.wtf",
    "https://amsterdam.mainnet.block-engine.jito.wtf",
    "https://ny.mainnet.block-engine.jito.wtf",
    "https://tokyo.mainnet.block-engine.jito.wtf",
]

# getInflightBundleStatuses lives on its own path
METHOD_PATHS = {
    "getInflightBundleStatuses": "/api/v1/getInflightBundleStatuses",
}
DEFAULT_PATH = "/api/v1/bundles"


class _RetryableRelayError(RelayError):
    """429 or transport failure; rotate and try again."""


def _first_value(result, method: str):
    """First entry of a `{"value": [...]}` status result, or None."""
    if result is None:
        return None
    if not isinstance(result, dict) or not isinstance(result.get("value") or [], list):
        raise RelayError(f"{method} result malformed: {result!r:.200}")
    values = result.get("value") or []
    return values[0] if values else None


class JitoAdapter:
    def __init__(
        self,
        http: httpx.AsyncClient,
        infra: Optional[InfrastructureConfig] = None,
        config: Optional[BundleConfig] = None,
    ):
        infra = infra or InfrastructureConfig()
        self.http = http
        self.config = config or BundleConfig()
        self.tip_floor_url = infra.jito_tip_floor_url

        preferred = infra.jito_block_engine_url.rstrip("/")
        self._endpoints = [preferred]
        if "mainnet.block-engine.jito.wtf" in preferred:
            fallback = [host for host in REGIONAL_HOSTS if host != preferred]
            random.shuffle(fallback)
            self._endpoints += fallback
        self._current_endpoint_idx = 0

        self._tip_accounts: List[str] = []
        self._tip_accounts_fetched = 0.0

    @property
    def base_url(self) -> str:
        return self._endpoints[self._current_endpoint_idx]

    def _rotate_endpoint(self):
        if len(self._endpoints) == 1:
            return
        self._current_endpoint_idx = (self._current_endpoint_idx + 1) % len(self._endpoints)
        Logger.info(f"[RELAY] Rotating endpoint to {self.base_url}")

    async def _rpc_call(self, method: str, params: list = None):
        """JSON-RPC call returning `result`. Raises RelayError on failure."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params or []}

        async def attempt():
            url = self.base_url + METHOD_PATHS.get(method, DEFAULT_PATH)
            try:
                response = await self.http.post(url, json=payload)
            except httpx.HTTPError as e:
                self._rotate_endpoint()
                raise _RetryableRelayError(f"{method} transport error: {e}") from e

            if response.status_code == 429 or response.status_code >= 500:
                Logger.warning(f"[RELAY] HTTP {response.status_code} on {self.base_url}")
                self._rotate_endpoint()
                raise _RetryableRelayError(f"{method} HTTP {response.status_code}")

            try:
                body = response.json()
            except ValueError as e:
                self._rotate_endpoint()
                raise _RetryableRelayError(f"{method} returned a non-JSON body: {e}") from e
            if not isinstance(body, dict):
                self._rotate_endpoint()
                raise _RetryableRelayError(f"{method} returned {type(body).__name__}, expected an object")

            if body.get("error"):
                error = body["error"]
                message = error.get("message") if isinstance(error, dict) else str(error)
                raise RelayError(f"{method} rejected: {message}")
            if response.status_code != 200:
                raise RelayError(f"{method} HTTP {response.status_code}")
            return body.get("result")

        try:
            return await retry_async(
                attempt, self.config.relay_policy(), f"RELAY {method}", retry_on=(_RetryableRelayError,)
            )
        except RetryExhausted as e:
            raise RelayError(str(e)) from e.last_error

    # ═══════════════════════════════════════════════════════════════════
    # TIPS
    # ═══════════════════════════════════════════════════════════════════

    async def get_tip_floor(self) -> TipFloor:
        """Latest landed-tip percentiles. Raises RelayError when unusable."""
        try:
            response = await self.http.get(self.tip_floor_url)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RelayError(f"tip floor fetch failed: {e}") from e

        if not isinstance(data, list) or not data:
            raise RelayError("tip floor response was empty")
        try:
            return TipFloor.model_validate(data[0])
        except ValidationError as e:
            raise RelayError(f"tip floor response malformed: {e}") from e

    async def get_tip_accounts(self, force_refresh: bool = False) -> List[str]:
        now = time.time()
        if not force_refresh and self._tip_accounts:
            if now - self._tip_accounts_fetched < self.config.tip_account_cache_sec:
                return self._tip_accounts

        try:
            accounts = await self._rpc_call("getTipAccounts")
        except RelayError as e:
            Logger.debug(f"[RELAY] getTipAccounts unavailable, using published accounts: {e}")
            accounts = None

        if isinstance(accounts, list) and accounts:
            self._tip_accounts = list(accounts)
            self._tip_accounts_fetched = now
            Logger.debug(f"[RELAY] Cached {len(accounts)} tip accounts")
            return self._tip_accounts
        return self._tip_accounts or list(DEFAULT_TIP_ACCOUNTS)

    async def get_random_tip_account(self) -> str:
        return random.choice(await self.get_tip_accounts())

    # ═══════════════════════════════════════════════════════════════════
    # BUNDLES
    # ═══════════════════════════════════════════════════════════════════

    async def send_bundle(self, encoded_transactions: List[str]) -> str:
        """Submit base64 transactions. Returns the bundle id."""
        if not encoded_transactions:
            raise ValueError("Cannot submit an empty bundle")
        try:
            bundle_id = await self._rpc_call("sendBundle", [encoded_transactions, {"encoding": "base64"}])
        except RelayError as e:
            raise BundleRejected(str(e)) from e

        if not isinstance(bundle_id, str) or not bundle_id:
            raise BundleRejected(f"sendBundle returned no bundle id: {bundle_id!r}")
        Logger.info(f"[RELAY] Bundle submitted: {bundle_id[:16]}...")
        return bundle_id

    async def get_inflight_bundle_status(self, bundle_id: str) -> Optional[InflightBundleStatus]:
        result = await self._rpc_call("getInflightBundleStatuses", [[bundle_id]])
        value = _first_value(result, "getInflightBundleStatuses")
        if value is None:
            return None
        try:
            return InflightBundleStatus.model_validate(value)
        except ValidationError as e:
            raise RelayError(f"inflight status malformed: {e}") from e

    async def get_bundle_status(self, bundle_id: str) -> Optional[BundleStatusEntry]:
        result = await self._rpc_call("getBundleStatuses", [[bundle_id]])
        value = _first_value(result, "getBundleStatuses")
        if value is None:
            return None
        try:
            return BundleStatusEntry.model_validate(value)
        except ValidationError as e:
            raise RelayError(f"bundle status malformed: {e}") from e
