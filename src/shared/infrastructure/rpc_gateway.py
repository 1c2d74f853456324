"""
Async RPC Gateway
=================
Solana JSON-RPC over httpx with provider failover and per-provider stats.

Transport failures (timeouts, 429, 5xx) rotate to the next provider.
JSON-RPC errors are real answers and are raised, not retried.
"""

import base64
import time
from typing import Any, Dict, List, Optional

import httpx

from config.settings import Settings
from src.liquidity.errors import RpcError, SimulationFailedError, decode_program_error
from src.shared.system.logging import Logger

PREFLIGHT_FAILURE_CODE = -32002


class RpcGateway:
    def __init__(
        self,
        rpc_urls: Optional[List[str]] = None,
        timeout: Optional[float] = None,
        commitment: Optional[str] = None,
    ):
        urls = rpc_urls or [Settings.RPC_URL, *Settings.RPC_FALLBACK_URLS]
        self.rpc_urls = list(dict.fromkeys(u for u in urls if u))
        if not self.rpc_urls:
            raise ValueError("At least one RPC URL is required")

        self.timeout = timeout or Settings.RPC_TIMEOUT_S
        self.commitment = commitment or Settings.RPC_COMMITMENT
        self.current_index = 0
        self._client: Optional[httpx.AsyncClient] = None
        self._request_id = 0
        self.stats: Dict[str, Dict] = {
            url: {"success": 0, "errors": 0, "avg_latency": 0.0, "last_error_time": 0.0}
            for url in self.rpc_urls
        }

    async def __aenter__(self) -> "RpcGateway":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def get_active_url(self) -> str:
        return self.rpc_urls[self.current_index]

    def switch_provider(self, reason: str = "Unknown") -> None:
        old_url = self.get_active_url()
        self.current_index = (self.current_index + 1) % len(self.rpc_urls)
        if len(self.rpc_urls) > 1:
            Logger.warning(f"🔄 [RPC] Switching provider {old_url} -> {self.get_active_url()} ({reason})")

    def _record_success(self, url: str, latency_ms: float) -> None:
        s = self.stats[url]
        s["success"] += 1
        s["avg_latency"] = latency_ms if s["avg_latency"] == 0 else 0.9 * s["avg_latency"] + 0.1 * latency_ms

    def _record_error(self, url: str) -> None:
        s = self.stats[url]
        s["errors"] += 1
        s["last_error_time"] = time.time()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _call(self, method: str, params: list) -> Any:
        """Return the JSON-RPC `result`, trying each provider at most once."""
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}
        client = self._get_client()
        last_error = "no providers"

        for _ in range(len(self.rpc_urls)):
            url = self.get_active_url()
            start = time.time()
            try:
                response = await client.post(url, json=payload)
            except httpx.HTTPError as e:
                self._record_error(url)
                last_error = f"{type(e).__name__}: {e}"
                self.switch_provider(reason=last_error)
                continue

            if response.status_code == 429 or response.status_code >= 500:
                self._record_error(url)
                last_error = f"HTTP {response.status_code}"
                self.switch_provider(reason=last_error)
                continue

            self._record_success(url, (time.time() - start) * 1000)
            body = response.json()
            if "error" in body:
                self._raise_rpc_error(method, body["error"])
            return body.get("result")

        raise RpcError(method, f"all providers failed ({last_error})")

    @staticmethod
    def _raise_rpc_error(method: str, error: Dict) -> None:
        if error.get("code") == PREFLIGHT_FAILURE_CODE:
            data = error.get("data") or {}
            logs = data.get("logs") or []
            raise SimulationFailedError(decode_program_error(data.get("err"), logs), logs)
        raise RpcError(method, error.get("message", str(error)))

    # =========================================================================
    # RpcClient protocol
    # =========================================================================

    async def get_account_info(self, address: str, encoding: str = "base64") -> Optional[Dict[str, Any]]:
        result = await self._call(
            "getAccountInfo", [address, {"encoding": encoding, "commitment": self.commitment}]
        )
        return (result or {}).get("value")

    async def get_mint_info(self, mint: str) -> Optional[Dict[str, Any]]:
        """jsonParsed mint account, including Token-2022 extensions."""
        return await self.get_account_info(mint, encoding="jsonParsed")

    async def get_token_account_balance(self, address: str) -> Optional[int]:
        try:
            result = await self._call("getTokenAccountBalance", [address, {"commitment": self.commitment}])
        except RpcError as e:
            if "could not find account" in str(e):
                return None
            raise
        return int(result["value"]["amount"])

    async def get_latest_blockhash(self) -> str:
        result = await self._call("getLatestBlockhash", [{"commitment": self.commitment}])
        return result["value"]["blockhash"]

    async def send_raw_transaction(self, tx_bytes: bytes) -> str:
        encoded = base64.b64encode(tx_bytes).decode("ascii")
        return await self._call(
            "sendTransaction",
            [encoded, {"encoding": "base64", "preflightCommitment": self.commitment, "maxRetries": 0}],
        )

    async def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        result = await self._call("getSignatureStatuses", [[signature], {"searchTransactionHistory": True}])
        values = (result or {}).get("value") or [None]
        return values[0]

    async def simulate_transaction(self, tx_bytes: bytes) -> Dict[str, Any]:
        encoded = base64.b64encode(tx_bytes).decode("ascii")
        result = await self._call(
            "simulateTransaction",
            [encoded, {"encoding": "base64", "sigVerify": False, "replaceRecentBlockhash": True,
                       "commitment": self.commitment}],
        )
        return result["value"]

    def get_stats(self) -> Dict[str, Any]:
        return {"active_provider": self.get_active_url(), "providers": self.stats}
