"""
Jupiter Price Oracle
====================
get_price(mint) -> USD price | None, with a short TTL cache.

Handles both the v3 response shape ({mint: {"usdPrice": ...}}) and the
v2 shape ({"data": {mint: {"price": "..."}}}).
"""

import time
from typing import Dict, Optional, Tuple

import httpx

from config.settings import Settings
from src.shared.system.logging import Logger


class JupiterPriceOracle:
    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        cache_ttl: Optional[float] = None,
    ):
        self.api_url = api_url or Settings.PRICE_API_URL
        self.api_key = Settings.JUPITER_API_KEY if api_key is None else api_key
        self.timeout = timeout or Settings.PRICE_TIMEOUT_S
        self.cache_ttl = Settings.PRICE_CACHE_TTL_S if cache_ttl is None else cache_ttl
        self._price_cache: Dict[str, Tuple[float, float]] = {}

    @staticmethod
    def _extract_price(payload: Dict, mint: str) -> Optional[float]:
        entry = payload.get(mint)
        if entry is None and isinstance(payload.get("data"), dict):
            entry = payload["data"].get(mint)
        if not entry:
            return None
        raw = entry.get("usdPrice", entry.get("price"))
        if raw in (None, ""):
            return None
        price = float(raw)
        return price if price > 0 else None

    async def get_price(self, mint: str) -> Optional[float]:
        cached = self._price_cache.get(mint)
        if cached and time.time() - cached[1] < self.cache_ttl:
            return cached[0]

        headers = {"x-api-key": self.api_key} if self.api_key else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.api_url, params={"ids": mint}, headers=headers)
        except httpx.HTTPError as e:
            Logger.warning(f"[ORACLE] Price request failed for {mint[:8]}: {e}")
            return None

        if response.status_code != 200:
            Logger.warning(f"[ORACLE] HTTP {response.status_code} for {mint[:8]}")
            return None

        price = self._extract_price(response.json(), mint)
        if price is None:
            Logger.debug(f"[ORACLE] No price for {mint[:8]}")
            return None

        self._price_cache[mint] = (price, time.time())
        return price
