import time
from typing import Dict, Optional, Protocol, Tuple

import httpx

from src.shared.config.infrastructure import InfrastructureConfig
from src.shared.system.errors import PriceUnavailable
from src.shared.system.logging import Logger


class PriceOracle(Protocol):
    async def get_price(self, mint: str) -> float:
        """USD price of one whole token. Raises PriceUnavailable."""
        ...


class JupiterPriceOracle:
    """
    USD prices from the Jupiter price API, cached per mint.
    """

    def __init__(self, http: httpx.AsyncClient, config: Optional[InfrastructureConfig] = None):
        config = config or InfrastructureConfig()
        self.http = http
        self.url = config.jupiter_price_url.rstrip("/")
        self.ttl = config.price_cache_ttl_sec
        self._cache: Dict[str, Tuple[float, float]] = {}

    async def get_price(self, mint: str) -> float:
        cached = self._cache.get(mint)
        if cached and time.time() - cached[1] < self.ttl:
            return cached[0]

        try:
            response = await self.http.get(self.url, params={"ids": mint})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PriceUnavailable(f"price fetch failed for {mint}: {e}") from e

        info = data.get(mint) if isinstance(data, dict) else None
        try:
            price = float(info["usdPrice"])
        except (KeyError, TypeError, ValueError) as e:
            raise PriceUnavailable(f"no USD price for {mint}: {e!r}") from e
        if not price > 0:
            raise PriceUnavailable(f"no USD price for {mint}: {price}")

        self._cache[mint] = (price, time.time())
        Logger.debug(f"[PRICE] {mint[:6]}... = ${price:.6f}")
        return price

    def invalidate(self, mint: Optional[str] = None) -> None:
        if mint is None:
            self._cache.clear()
        else:
            self._cache.pop(mint, None)
