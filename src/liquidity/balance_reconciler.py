"""
Balance Reconciler
==================
Single owner of CachedBalance records. Remote nodes lag behind submitted
transactions, so an optimistic value written after a locally confirmed
transaction wins over remote reads until the freshness window has passed.

All reads go through `read()`, which decides staleness deterministically from
the injected clock.
"""

import time
from typing import Awaitable, Callable, Optional

from config.settings import Settings
from src.liquidity.interfaces import CacheStore
from src.liquidity.types import CachedBalance
from src.shared.system.logging import Logger

RemoteFetch = Callable[[], Awaitable[Optional[int]]]


class BalanceReconciler:
    PREFIX = "balance:"

    def __init__(
        self,
        store: CacheStore,
        freshness_window_s: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.freshness_window_s = (
            Settings.BALANCE_FRESHNESS_WINDOW_S if freshness_window_s is None else freshness_window_s
        )
        self.clock = clock

    def _key(self, account: str) -> str:
        return f"{self.PREFIX}{account}"

    def cached(self, account: str) -> Optional[CachedBalance]:
        raw = self.store.get(self._key(account))
        return CachedBalance.from_dict(raw) if raw else None

    def _save(self, account: str, balance: CachedBalance) -> None:
        self.store.put(self._key(account), balance.to_dict())

    def is_optimistic_fresh(self, balance: CachedBalance) -> bool:
        if balance.last_optimistic_update_at is None:
            return False
        return self.clock() - balance.last_optimistic_update_at <= self.freshness_window_s

    async def read(self, account: str, fetch_remote: RemoteFetch) -> int:
        """
        Current balance for `account`.

        Returns the optimistic value while it is inside the freshness window;
        otherwise reads remote and replaces the cached record.
        """
        cached = self.cached(account)
        if cached is not None and self.is_optimistic_fresh(cached):
            return cached.value

        remote = await fetch_remote()
        if remote is None:
            # Account not visible yet; keep whatever we had
            return cached.value if cached is not None else 0

        self._save(account, CachedBalance(value=remote, fetched_at=self.clock()))
        return remote

    def apply_delta(self, account: str, delta: int) -> CachedBalance:
        """Optimistic update after a locally confirmed transaction."""
        now = self.clock()
        cached = self.cached(account)
        base = cached.value if cached is not None else 0
        updated = CachedBalance(
            value=max(0, base + delta),
            fetched_at=cached.fetched_at if cached is not None else now,
            last_optimistic_update_at=now,
        )
        self._save(account, updated)
        Logger.debug(f"[CACHE] {account[:8]} optimistic {base} -> {updated.value}")
        return updated

    def set_optimistic(self, account: str, value: int) -> CachedBalance:
        now = self.clock()
        cached = self.cached(account)
        updated = CachedBalance(
            value=value,
            fetched_at=cached.fetched_at if cached is not None else now,
            last_optimistic_update_at=now,
        )
        self._save(account, updated)
        return updated
