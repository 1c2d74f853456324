"""
Cache Stores
============
Key/value stores behind the CacheStore protocol.

- InMemoryCacheStore: process-local dict (tests, one-shot CLI runs)
- SqliteCacheStore: JSON values in a single SQLite table, survives restarts

PoolOverrides records newly created pools per mint so they are visible
across sessions before any indexer has picked them up.
"""

import json
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from config.settings import Settings
from src.liquidity.interfaces import CacheStore
from src.liquidity.types import PoolFamily
from src.shared.system.logging import Logger


class InMemoryCacheStore:
    def __init__(self):
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value


class SqliteCacheStore:
    """
    SQLite-backed store. Values must be JSON-serializable.

    One connection per thread; WAL mode for concurrent readers.
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = Path(db_path or Settings.CACHE_DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._init_schema()

    def _get_connection(self) -> sqlite3.Connection:
        if getattr(self._local, "conn", None) is None:
            self._local.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn.execute("PRAGMA synchronous=NORMAL")
        return self._local.conn

    @contextmanager
    def _transaction(self):
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _init_schema(self):
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_cache (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

    def get(self, key: str) -> Optional[Any]:
        row = self._get_connection().execute(
            "SELECT value FROM kv_cache WHERE key = ?", (key,)
        ).fetchone()
        return json.loads(row[0]) if row else None

    def put(self, key: str, value: Any) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv_cache (key, value, updated_at) VALUES (?, ?, ?)",
                (key, json.dumps(value), time.time()),
            )

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None


class PoolOverrides:
    """User-visible record of pools this user created, keyed by token mint."""

    PREFIX = "pool_override:"

    def __init__(self, store: CacheStore):
        self.store = store

    def remember(self, mint: str, pool_address: str, family: PoolFamily, counter_mint: str = "") -> None:
        self.store.put(
            f"{self.PREFIX}{mint}",
            {
                "pool_address": pool_address,
                "family": family.value,
                "counter_mint": counter_mint,
                "created_at": time.time(),
            },
        )
        Logger.info(f"[CACHE] Remembered {family.value} pool {pool_address[:8]} for {mint[:8]}")

    def lookup(self, mint: str) -> Optional[Dict[str, Any]]:
        record = self.store.get(f"{self.PREFIX}{mint}")
        if record is None:
            return None
        return {**record, "family": PoolFamily(record["family"])}
