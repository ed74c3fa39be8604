"""Two-tier caching with per-entry TTL for Switchyard.

The process-local tier is always present. The shared tier is best-effort:
it may be absent, fail to initialise, or become unreachable later, and the
cache keeps working from the local tier in every one of those cases.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Protocol, runtime_checkable

import aiosqlite
import redis.asyncio as redis
from pydantic import BaseModel, ConfigDict

from switchyard.config import Settings, get_settings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def cache_key(namespace: str, query: str, **params: Any) -> str:
    """Deterministic cache key generation.

    Format: {namespace}:{query}:{params_hash}
    Hash is first 12 chars of SHA256 of sorted JSON params.

    Args:
        namespace: Source namespace (e.g., "live_data")
        query: Query type (e.g., "weather")
        **params: Lookup parameters

    Returns:
        Cache key string in format {namespace}:{query}:{params_hash}
    """
    sorted_params = sorted(params.items())
    params_hash = hashlib.sha256(
        json.dumps(sorted_params, sort_keys=True, default=str).encode()
    ).hexdigest()[:12]
    return f"{namespace}:{query}:{params_hash}"


class CacheEntry(BaseModel):
    """Local cache entry with its expiry instant (clock seconds)."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check if entry has passed its expiry instant."""
        return now > self.expires_at


class LocalCache:
    """Process-local tier: thread-safe dict with lazy expiry on read."""

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None on miss.

        An expired entry is evicted and reported as a miss.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                logger.debug(f"Local cache expired: {key}")
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl_seconds)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def __contains__(self, key: object) -> bool:
        # Raw inspection, does not apply expiry
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@runtime_checkable
class SharedTier(Protocol):
    """Transport for the shared cache tier.

    Values are opaque serialized strings; expiry is handled natively by the
    transport.
    """

    @property
    def name(self) -> str: ...

    async def connect(self) -> None: ...

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, data: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def clear(self) -> None: ...

    async def close(self) -> None: ...


class NullSharedTier:
    """Always-miss shared tier used when no shared backend is available."""

    @property
    def name(self) -> str:
        return "none"

    async def connect(self) -> None:
        return None

    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, data: str, ttl_seconds: int) -> None:
        return None

    async def delete(self, key: str) -> None:
        return None

    async def clear(self) -> None:
        return None

    async def close(self) -> None:
        return None


class RedisSharedTier:
    """Shared tier on Redis with native per-key expiry."""

    KEY_PREFIX = "switchyard:"

    def __init__(
        self,
        url: str,
        socket_timeout: float = 5.0,
        client: redis.Redis | None = None,
    ) -> None:
        self._url = url
        self._socket_timeout = socket_timeout
        self._client = client

    @property
    def name(self) -> str:
        return "redis"

    async def connect(self) -> None:
        """Create the client and verify the server answers PING."""
        if self._client is None:
            self._client = redis.Redis.from_url(
                self._url,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
                decode_responses=True,
            )
        await self._client.ping()
        logger.info("Redis connected for shared caching")

    def _require_client(self) -> redis.Redis:
        if self._client is None:
            raise ConnectionError("Redis shared tier is not connected")
        return self._client

    async def get(self, key: str) -> str | None:
        return await self._require_client().get(self.KEY_PREFIX + key)

    async def set(self, key: str, data: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        await self._require_client().set(self.KEY_PREFIX + key, data, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._require_client().delete(self.KEY_PREFIX + key)

    async def clear(self) -> None:
        client = self._require_client()
        keys = [k async for k in client.scan_iter(match=self.KEY_PREFIX + "*")]
        if keys:
            await client.delete(*keys)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class SQLiteSharedTier:
    """Shared tier on a SQLite file in WAL mode.

    Shares entries between processes on one host.
    """

    def __init__(self, db_path: str | Path = "~/.cache/switchyard/cache.db") -> None:
        self._db_path = Path(db_path).expanduser()
        self._conn: aiosqlite.Connection | None = None

    @property
    def name(self) -> str:
        return "sqlite"

    async def connect(self) -> None:
        """Initialize connection and configure SQLite for performance."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(str(self._db_path), timeout=30.0)

        # Enable WAL mode for better concurrency
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA synchronous=NORMAL")

        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS cache (
                key TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                expires_at REAL NOT NULL
            )
        """)
        await self._conn.commit()
        logger.info(f"SQLite shared cache initialized at {self._db_path}")

    async def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            await self.connect()
        assert self._conn is not None  # For mypy
        return self._conn

    async def get(self, key: str) -> str | None:
        conn = await self._connection()
        cursor = await conn.execute("SELECT data, expires_at FROM cache WHERE key = ?", (key,))
        row = await cursor.fetchone()
        if row is None:
            return None
        if time.time() > row[1]:
            await conn.execute("DELETE FROM cache WHERE key = ?", (key,))
            await conn.commit()
            return None
        return row[0]

    async def set(self, key: str, data: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        conn = await self._connection()
        await conn.execute(
            "INSERT OR REPLACE INTO cache (key, data, expires_at) VALUES (?, ?, ?)",
            (key, data, time.time() + ttl_seconds),
        )
        await conn.commit()

    async def delete(self, key: str) -> None:
        conn = await self._connection()
        await conn.execute("DELETE FROM cache WHERE key = ?", (key,))
        await conn.commit()

    async def clear(self) -> None:
        conn = await self._connection()
        await conn.execute("DELETE FROM cache")
        await conn.commit()

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None


class TieredCache:
    """Coordinates the shared tier and the local tier.

    Reads consult the shared tier first and fall back to the local tier.
    Writes, deletes and clears go to both. Shared-tier failures are logged
    and skipped, never raised to the caller.
    """

    def __init__(
        self,
        shared: SharedTier | None = None,
        local: LocalCache | None = None,
    ) -> None:
        self._shared: SharedTier = shared or NullSharedTier()
        self._local = local or LocalCache()
        self._hits = 0
        self._misses = 0
        self._stats_lock = threading.Lock()

    @property
    def local(self) -> LocalCache:
        return self._local

    @property
    def shared_available(self) -> bool:
        return not isinstance(self._shared, NullSharedTier)

    async def connect(self) -> None:
        """Initialise the shared tier, degrading to local-only on failure."""
        try:
            await self._shared.connect()
        except Exception as e:
            logger.warning(
                f"Shared cache tier '{self._shared.name}' unavailable, using local cache only: {e}"
            )
            self._shared = NullSharedTier()

    async def get(self, key: str) -> Any | None:
        """Get a value, checking the shared tier then the local tier."""
        try:
            raw = await self._shared.get(key)
            if raw is not None:
                value = json.loads(raw)
                self._record(hit=True)
                logger.debug(f"Cache HIT ({self._shared.name}): {key}")
                return value
        except Exception as e:
            logger.warning(f"Shared cache get failed for {key}: {e}")

        value = self._local.get(key)
        if value is not None:
            self._record(hit=True)
            logger.debug(f"Cache HIT (local): {key}")
            return value

        self._record(hit=False)
        logger.debug(f"Cache MISS: {key}")
        return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store in the shared tier (if any) and always in the local tier."""
        try:
            await self._shared.set(key, json.dumps(value, default=str), ttl_seconds)
        except Exception as e:
            logger.warning(f"Shared cache set failed for {key}: {e}")

        self._local.set(key, value, ttl_seconds)
        logger.debug(f"Cache SET: {key} (TTL: {ttl_seconds}s)")

    async def delete(self, key: str) -> None:
        try:
            await self._shared.delete(key)
        except Exception as e:
            logger.warning(f"Shared cache delete failed for {key}: {e}")
        self._local.delete(key)
        logger.debug(f"Cache DELETE: {key}")

    async def clear(self) -> None:
        try:
            await self._shared.clear()
        except Exception as e:
            logger.warning(f"Shared cache clear failed: {e}")
        count = self._local.clear()
        logger.info(f"Cache cleared ({count} local entries)")

    async def close(self) -> None:
        try:
            await self._shared.close()
        except Exception as e:
            logger.warning(f"Shared cache close failed: {e}")

    def purge_expired(self) -> int:
        return self._local.purge_expired()

    def _record(self, hit: bool) -> None:
        with self._stats_lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1

    def stats(self) -> dict[str, Any]:
        with self._stats_lock:
            total = self._hits + self._misses
            return {
                "local_size": len(self._local),
                "shared_tier": self._shared.name,
                "shared_connected": self.shared_available,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total * 100, 2) if total > 0 else 0.0,
            }


def build_cache(settings: Settings | None = None) -> TieredCache:
    """Build a TieredCache for the configured shared backend.

    The returned cache still needs ``await cache.connect()``.
    """
    settings = settings or get_settings()
    shared: SharedTier
    if settings.cache_backend == "redis":
        shared = RedisSharedTier(settings.redis_url)
    elif settings.cache_backend == "sqlite":
        shared = SQLiteSharedTier(settings.sqlite_cache_path)
    else:
        shared = NullSharedTier()
    return TieredCache(shared=shared)


__all__ = [
    "cache_key",
    "CacheEntry",
    "LocalCache",
    "SharedTier",
    "NullSharedTier",
    "RedisSharedTier",
    "SQLiteSharedTier",
    "TieredCache",
    "build_cache",
]
