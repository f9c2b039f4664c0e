"""String-keyed JSON document store with Redis primary and in-memory fallback.

The grievance pipeline persists everything (grievances, id indexes,
departments, AI logs, users, sessions) through :class:`KeyValueStore`.
Redis is probed once, lazily; if it is not configured or not reachable
at that point the store runs on a process-local backend for the rest of
its lifetime.  Unlike a cache, a failed Redis operation after the probe
is *not* silently redirected to memory: the error propagates so that no
write is lost to a backend nobody reads.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import Any, Protocol, runtime_checkable

import orjson
import structlog

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Backend protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class StoreBackend(Protocol):
    """Async byte-level key-value backend."""

    async def get(self, key: str) -> bytes | None: ...

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def exists(self, key: str) -> bool: ...

    async def scan_prefix(self, prefix: str) -> list[bytes]: ...


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


def _escape_glob(text: str) -> str:
    """Escape Redis ``MATCH`` glob metacharacters in *text*."""
    return "".join(f"\\{ch}" if ch in "*?[]\\" else ch for ch in text)


class RedisStoreBackend:
    """Redis-backed store using ``redis.asyncio`` with connection pooling."""

    __slots__ = ("_pool", "_redis")

    def __init__(self, url: str = "redis://localhost:6379/0", *, max_connections: int = 20) -> None:
        import redis.asyncio as aioredis

        self._pool = aioredis.ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            decode_responses=False,
        )
        self._redis = aioredis.Redis(connection_pool=self._pool)

    # -- StoreBackend interface ------------------------------------------------

    async def get(self, key: str) -> bytes | None:
        return await self._redis.get(key)

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> None:
        if ttl_seconds is not None:
            await self._redis.set(key, value, ex=ttl_seconds)
        else:
            await self._redis.set(key, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)

    async def exists(self, key: str) -> bool:
        return bool(await self._redis.exists(key))

    async def scan_prefix(self, prefix: str) -> list[bytes]:
        keys = [key async for key in self._redis.scan_iter(match=f"{_escape_glob(prefix)}*", count=500)]
        if not keys:
            return []
        values = await self._redis.mget(keys)
        return [value for value in values if value is not None]

    # -- Lifecycle -------------------------------------------------------------

    async def close(self) -> None:
        await self._redis.aclose()
        await self._pool.aclose()

    async def ping(self) -> bool:
        """Return *True* if the Redis server is reachable."""
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class _Entry:
    """Single stored value with optional TTL."""

    __slots__ = ("expires_at", "value")

    def __init__(self, value: bytes, ttl_seconds: int | None) -> None:
        self.value = value
        self.expires_at: float | None = (time.monotonic() + ttl_seconds) if ttl_seconds is not None else None

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() > self.expires_at


class InMemoryStoreBackend:
    """Dict-based backend for tests and single-process development.

    Guarded by an :class:`asyncio.Lock`.  Expired entries are evicted
    lazily on access.  Nothing is ever evicted for space.
    """

    __slots__ = ("_data", "_lock")

    def __init__(self) -> None:
        self._data: dict[str, _Entry] = {}
        self._lock = asyncio.Lock()

    # -- StoreBackend interface ------------------------------------------------

    async def get(self, key: str) -> bytes | None:
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if entry.expired:
                del self._data[key]
                return None
            return entry.value

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> None:
        async with self._lock:
            self._data[key] = _Entry(value, ttl_seconds)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None

    async def scan_prefix(self, prefix: str) -> list[bytes]:
        async with self._lock:
            expired = [key for key, entry in self._data.items() if entry.expired]
            for key in expired:
                del self._data[key]
            return [entry.value for key, entry in self._data.items() if key.startswith(prefix)]

    @property
    def size(self) -> int:
        """Return the current number of (possibly expired) entries."""
        return len(self._data)


# ---------------------------------------------------------------------------
# KeyValueStore  --  public API
# ---------------------------------------------------------------------------


class KeyValueStore:
    """JSON document store facade over a :class:`StoreBackend`.

    Parameters
    ----------
    redis_url:
        Redis connection string.  Pass *None* to skip Redis entirely.
    namespace:
        Optional prefix prepended to every key (e.g. ``"grievease:"``).
    """

    __slots__ = (
        "_fallback",
        "_namespace",
        "_redis",
        "_redis_available",
        "_redis_checked",
    )

    def __init__(
        self,
        *,
        redis_url: str | None = "redis://localhost:6379/0",
        namespace: str = "",
    ) -> None:
        self._namespace = namespace
        self._fallback = InMemoryStoreBackend()
        self._redis: RedisStoreBackend | None = None
        self._redis_available: bool = False
        self._redis_checked: bool = False

        if redis_url is not None:
            try:
                self._redis = RedisStoreBackend(url=redis_url)
            except Exception:
                logger.warning("store.redis_init_failed", redis_url=redis_url)
                self._redis = None

    # -- Internal helpers ------------------------------------------------------

    def _make_key(self, key: str) -> str:
        if self._namespace:
            return f"{self._namespace}{key}"
        return key

    async def _backend(self) -> StoreBackend:
        """Return the selected backend, probing Redis once lazily."""
        if self._redis is not None and not self._redis_checked:
            self._redis_checked = True
            self._redis_available = await self._redis.ping()
            if self._redis_available:
                logger.info("store.redis_connected")
            else:
                logger.warning("store.redis_unavailable_using_inmemory")

        if self._redis_available and self._redis is not None:
            return self._redis
        return self._fallback

    # -- Public API ------------------------------------------------------------

    @property
    def backend_name(self) -> str:
        if self._redis_available:
            return "redis"
        return "memory"

    async def get(self, key: str, default: Any = None) -> Any:
        """Retrieve a stored value, deserialised from bytes via *orjson*."""
        backend = await self._backend()
        raw = await backend.get(self._make_key(key))
        if raw is None:
            return default
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.error("store.corrupt_value", key=key)
            return default

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Serialise *value* via *orjson* and store it."""
        backend = await self._backend()
        await backend.set(self._make_key(key), orjson.dumps(value), ttl_seconds=ttl_seconds)

    async def delete(self, key: str) -> None:
        backend = await self._backend()
        await backend.delete(self._make_key(key))

    async def exists(self, key: str) -> bool:
        backend = await self._backend()
        return await backend.exists(self._make_key(key))

    async def scan_prefix(self, prefix: str) -> list[Any]:
        """Return every value whose key starts with *prefix* (unordered)."""
        backend = await self._backend()
        values: list[Any] = []
        for raw in await backend.scan_prefix(self._make_key(prefix)):
            try:
                values.append(orjson.loads(raw))
            except orjson.JSONDecodeError:
                logger.error("store.corrupt_value", prefix=prefix)
        return values

    # -- Lifecycle -------------------------------------------------------------

    async def close(self) -> None:
        """Cleanly shut down the Redis connection pool (if any)."""
        if self._redis is not None:
            with contextlib.suppress(Exception):
                await self._redis.close()

    @staticmethod
    def in_memory(namespace: str = "") -> KeyValueStore:
        """Create a store that never touches Redis.

        Example::

            store = KeyValueStore.in_memory()
        """
        return KeyValueStore(redis_url=None, namespace=namespace)
