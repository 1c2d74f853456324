"""
Jito Block Engine Relay (Async)
===============================
Atomic multi-transaction submission for launch plans.

- Async HTTP (httpx)
- Regional failover with rotation
- Tip account cache (doubles as the availability check)
- Landing status polling
"""

import asyncio
import random
import time
from typing import Dict, List, Optional

import httpx

from config.settings import Settings
from src.shared.system.logging import Logger


class JitoBundleRelay:
    MAINNET_API = "https://mainnet.block-engine.jito.wtf/api/v1/bundles"

    REGIONAL_ENDPOINTS = {
        "mainnet": "https://mainnet.block-engine.jito.wtf/api/v1/bundles",
        "frankfurt": "https://frankfurt.mainnet.block-engine.jito.wtf/api/v1/bundles",
        "amsterdam": "https://amsterdam.mainnet.block-engine.jito.wtf/api/v1/bundles",
        "ny": "https://ny.mainnet.block-engine.jito.wtf/api/v1/bundles",
        "tokyo": "https://tokyo.mainnet.block-engine.jito.wtf/api/v1/bundles",
    }

    TIP_CACHE_TTL = 300
    REQUEST_TIMEOUT = 5
    RATE_LIMIT_COOLDOWN = 5
    STATUS_POLL_INTERVAL = 2.0

    def __init__(self, region: Optional[str] = None, max_retries: int = 5):
        region = region or Settings.JITO_REGION
        preferred = self.REGIONAL_ENDPOINTS.get(region, self.MAINNET_API)
        fallback = [ep for ep in self.REGIONAL_ENDPOINTS.values() if ep != preferred]
        random.shuffle(fallback)
        self._endpoints = [preferred] + fallback
        self._current_endpoint_idx = 0
        self.api_url = self._endpoints[0]
        self.max_retries = max_retries

        self._tip_accounts: List[str] = []
        self._tip_accounts_fetched = 0.0
        self._bundles_submitted = 0
        self._bundles_landed = 0
        self._rate_limited_until = 0.0

    def _rotate_endpoint(self) -> None:
        self._current_endpoint_idx = (self._current_endpoint_idx + 1) % len(self._endpoints)
        self.api_url = self._endpoints[self._current_endpoint_idx]
        Logger.debug(f"[JITO] Rotating endpoint to {self.api_url.split('//')[1].split('.')[0]}")

    async def _rpc_call(self, method: str, params: Optional[list] = None) -> Optional[Dict]:
        if time.time() < self._rate_limited_until:
            return None

        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params or []}

        async with httpx.AsyncClient(timeout=self.REQUEST_TIMEOUT) as client:
            for _ in range(self.max_retries):
                try:
                    response = await client.post(self.api_url, json=payload)
                except httpx.HTTPError as e:
                    Logger.debug(f"[JITO] Transport error: {e}")
                    self._rotate_endpoint()
                    await asyncio.sleep(0.5)
                    continue

                if response.status_code == 200:
                    return response.json()
                if response.status_code == 429:
                    Logger.warning(f"[JITO] Rate limit (429) on {self.api_url}")
                    self._rotate_endpoint()
                    await asyncio.sleep(0.2)
                    continue
                Logger.debug(f"[JITO] HTTP {response.status_code}")
                self._rotate_endpoint()

        self._rate_limited_until = time.time() + self.RATE_LIMIT_COOLDOWN
        Logger.warning(f"[JITO] All regions failed. Cooldown {self.RATE_LIMIT_COOLDOWN}s")
        return None

    async def get_tip_accounts(self, force_refresh: bool = False) -> List[str]:
        now = time.time()
        if not force_refresh and self._tip_accounts and now - self._tip_accounts_fetched < self.TIP_CACHE_TTL:
            return self._tip_accounts

        response = await self._rpc_call("getTipAccounts")
        if response and isinstance(response.get("result"), list) and response["result"]:
            self._tip_accounts = response["result"]
            self._tip_accounts_fetched = now
            Logger.debug(f"[JITO] Cached {len(self._tip_accounts)} tip accounts")
        return self._tip_accounts

    async def get_random_tip_account(self) -> Optional[str]:
        accounts = await self.get_tip_accounts()
        return random.choice(accounts) if accounts else None

    async def is_available(self) -> bool:
        return len(await self.get_tip_accounts()) > 0

    async def submit_bundle(self, serialized_transactions: List[str]) -> Optional[str]:
        """Submit base58-encoded signed transactions; returns the bundle id or None."""
        if not serialized_transactions:
            return None

        response = await self._rpc_call("sendBundle", [serialized_transactions])
        self._bundles_submitted += 1

        if not response:
            return None
        bundle_id = response.get("result")
        if bundle_id:
            Logger.info(f"[JITO] Bundle submitted: {bundle_id[:16]}... ({len(serialized_transactions)} txs)")
            return bundle_id
        Logger.warning(f"[JITO] Submit failed: {response.get('error', {})}")
        return None

    async def get_bundle_status(self, bundle_id: str) -> Optional[Dict]:
        response = await self._rpc_call("getInflightBundleStatuses", [[bundle_id]])
        if response:
            return response.get("result")
        return None

    async def wait_for_landing(self, bundle_id: str, timeout: float = 30.0) -> bool:
        start = time.time()
        while time.time() - start < timeout:
            status = await self.get_bundle_status(bundle_id)
            values = (status or {}).get("value") or []
            if values:
                state = values[0].get("status", "")
                if state == "Landed":
                    self._bundles_landed += 1
                    Logger.success(f"[JITO] Bundle landed: {bundle_id[:16]}...")
                    return True
                if state in ("Invalid", "Failed"):
                    Logger.warning(f"[JITO] Bundle {bundle_id[:16]}... {state}")
                    return False
            await asyncio.sleep(self.STATUS_POLL_INTERVAL)
        return False

    def get_stats(self) -> Dict[str, int]:
        return {"bundles_submitted": self._bundles_submitted, "bundles_landed": self._bundles_landed}
