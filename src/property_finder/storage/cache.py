"""Key/value caches with absolute expiry, backed by SQLite or memory."""

import abc
import asyncio
import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from rich.console import Console

from property_finder.config.settings import CACHE_CLEANUP_INTERVAL, CACHE_DB_PATH

console = Console()


def now_ms() -> int:
    return int(time.time() * 1000)


def _is_cacheable(value: Any) -> bool:
    """Empty results are not cached so that "nothing found" gets retried soon."""
    if value is None:
        return False
    if isinstance(value, (list, tuple, dict, set)) and len(value) == 0:
        return False
    return True


class CacheStore(abc.ABC):
    """Common contract for every cache backend.

    Values must be JSON serializable. Last write wins under concurrent use.
    """

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._clock = clock

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if missing, expired or corrupt."""
        ...

    @abc.abstractmethod
    async def set(self, key: str, value: Any, ttl_ms: int) -> None:
        ...

    @abc.abstractmethod
    async def cleanup(self) -> int:
        """Delete all expired entries, return how many were removed."""
        ...

    async def get_or_set(
        self, key: str, fetcher: Callable[[], Awaitable[Any]], ttl_ms: int
    ) -> Any:
        """Return the cached value or fetch, cache and return a fresh one."""
        cached = await self.get(key)
        if cached is not None:
            return cached

        fresh = await fetcher()
        if _is_cacheable(fresh):
            await self.set(key, fresh, ttl_ms)
        return fresh

    def close(self) -> None:
        pass


class MemoryCache(CacheStore):
    """In-process cache; entries are stored serialized like the SQLite backend."""

    def __init__(self, clock: Callable[[], int] = now_ms):
        super().__init__(clock)
        self._items: dict[str, tuple[str, int]] = {}

    async def get(self, key: str) -> Optional[Any]:
        item = self._items.get(key)
        if item is None:
            return None

        raw, expiry = item
        if self._clock() >= expiry:
            del self._items[key]
            return None

        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            console.print(f"[yellow]Removing corrupted cache entry: {key}[/]")
            del self._items[key]
            return None

    async def set(self, key: str, value: Any, ttl_ms: int) -> None:
        self._items[key] = (json.dumps(value), self._clock() + ttl_ms)

    async def cleanup(self) -> int:
        now = self._clock()
        expired = [k for k, (_, expiry) in self._items.items() if expiry <= now]
        for key in expired:
            del self._items[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._items)


class SQLiteCache(CacheStore):
    """Persistent cache in an embedded SQLite database."""

    def __init__(self, db_path: Path | str = CACHE_DB_PATH, clock: Callable[[], int] = now_ms):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file (":memory:" for tests)
            clock: Returns the current time in epoch milliseconds
        """
        super().__init__(clock)
        self.db_path = Path(db_path) if db_path != ":memory:" else db_path
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self._create_tables()

    def _create_tables(self) -> None:
        cursor = self.conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS cache (
                key TEXT PRIMARY KEY,
                value TEXT,
                expiry INTEGER
            )
        """)
        # Index for the periodic sweep
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_cache_expiry ON cache(expiry)")
        self.conn.commit()

    def _delete(self, key: str) -> None:
        self.conn.execute("DELETE FROM cache WHERE key = ?", (key,))
        self.conn.commit()

    async def get(self, key: str) -> Optional[Any]:
        row = self.conn.execute(
            "SELECT value, expiry FROM cache WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None

        value, expiry = row
        if self._clock() >= expiry:
            self._delete(key)
            return None

        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError) as e:
            console.print(f"[yellow]Error parsing cached value for {key}: {e}[/]")
            self._delete(key)
            return None

    async def set(self, key: str, value: Any, ttl_ms: int) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO cache (key, value, expiry) VALUES (?, ?, ?)",
            (key, json.dumps(value), self._clock() + ttl_ms),
        )
        self.conn.commit()

    async def cleanup(self) -> int:
        cursor = self.conn.execute("DELETE FROM cache WHERE expiry <= ?", (self._clock(),))
        self.conn.commit()
        return cursor.rowcount

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


async def periodic_cleanup(cache: CacheStore, interval: float = CACHE_CLEANUP_INTERVAL) -> None:
    """Sweep expired entries forever; run as a background task."""
    while True:
        await asyncio.sleep(interval)
        removed = await cache.cleanup()
        if removed:
            console.print(f"[dim]Cache cleanup: removed {removed} expired entries[/]")
