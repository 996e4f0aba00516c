from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Protocol


class CounterStore(Protocol):
    """
    Key -> string store. Each get/put is atomic on its own; there are no
    transactions spanning several keys.
    """

    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str) -> None: ...


class MemoryStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def put(self, key: str, value: str) -> None:
        self.data[key] = str(value)


def _connect(path: str) -> sqlite3.Connection:
    p = str(path or "").strip()
    if not p:
        raise ValueError("Missing store path")
    Path(p).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(p, timeout=30, isolation_level=None, check_same_thread=False)
    conn.execute("PRAGMA busy_timeout = 5000;")
    try:
        conn.execute("PRAGMA journal_mode = WAL;")
    except Exception:
        pass
    conn.execute("CREATE TABLE IF NOT EXISTS counters (k TEXT PRIMARY KEY, v TEXT NOT NULL);")
    return conn


class SqliteStore:
    """SQLite-backed store; one autocommit statement per get/put."""

    def __init__(self, path: str | Path) -> None:
        self.path = str(path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def _db(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = _connect(self.path)
        return self._conn

    def _get_sync(self, key: str) -> str | None:
        with self._lock:
            row = self._db().execute("SELECT v FROM counters WHERE k=?", (key,)).fetchone()
        return str(row[0]) if row else None

    def _put_sync(self, key: str, value: str) -> None:
        with self._lock:
            self._db().execute("INSERT OR REPLACE INTO counters (k, v) VALUES (?, ?)", (key, str(value)))

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._get_sync, key)

    async def put(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._put_sync, key, value)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
