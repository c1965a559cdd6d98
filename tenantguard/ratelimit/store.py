"""Shared counter store for rate-limit windows and login attempts.

Two implementations:
  RedisCounterStore     — redis.asyncio; increment + expiry run as ONE Lua script
                          so a counter can never be left without a TTL.
  InMemoryCounterStore  — single-process fallback for development and tests.

Every Redis failure (connection refused, timeout, protocol error) surfaces as
``CounterStoreUnavailable``. Callers decide whether to fail open.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional, Protocol, runtime_checkable

import redis.asyncio as redis
from redis.exceptions import RedisError

from tenantguard.utils.logger import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]

# KEYS[1] = counter key, ARGV[1] = absolute expiry (unix seconds).
# EXPIREAT is only set on the first increment of a window.
_INCR_EXPIREAT_LUA = """
local count = redis.call('INCR', KEYS[1])
if count == 1 then
    redis.call('EXPIREAT', KEYS[1], ARGV[1])
end
return count
"""

# KEYS[1] = counter key, ARGV[1] = TTL in seconds.
# The TTL is refreshed on every increment (window measured from the last hit).
_INCR_EXPIRE_LUA = """
local count = redis.call('INCR', KEYS[1])
redis.call('EXPIRE', KEYS[1], ARGV[1])
return count
"""


class CounterStoreUnavailable(Exception):
    """Raised when the counter store cannot be reached.

    HTTP mapping: none. The rate limiter and lockout tracker fail open.
    """

    def __init__(self, message: str = "Counter store unavailable") -> None:
        super().__init__(message)
        self.message = message


@runtime_checkable
class CounterStore(Protocol):
    """Atomic counters with expiry."""

    async def incr_expire_at(self, key: str, expire_at: int) -> int:
        """Increment ``key`` and, on creation, expire it at unix time ``expire_at``."""
        ...

    async def incr_expire_in(self, key: str, ttl_seconds: int) -> int:
        """Increment ``key`` and (re)set its TTL to ``ttl_seconds``."""
        ...

    async def get_count(self, key: str) -> int:
        """Current value of ``key``; 0 when absent or expired."""
        ...

    async def ttl(self, key: str) -> int:
        """Seconds until ``key`` expires; 0 when absent."""
        ...

    async def delete(self, key: str) -> None:
        ...

    async def ping(self) -> bool:
        """True if the store answers. Must not raise."""
        ...

    async def close(self) -> None:
        ...


# ─── Redis ────────────────────────────────────────────────────────────────────


class RedisCounterStore:
    """Counter store backed by a shared Redis instance."""

    def __init__(
        self,
        url: Optional[str] = None,
        socket_timeout: float = 1.0,
        client: Optional[redis.Redis] = None,
    ) -> None:
        if client is None:
            if url is None:
                raise ValueError("RedisCounterStore needs a url or a client")
            client = redis.from_url(
                url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
            )
        self._client = client
        self._incr_expire_at = client.register_script(_INCR_EXPIREAT_LUA)
        self._incr_expire_in = client.register_script(_INCR_EXPIRE_LUA)

    async def incr_expire_at(self, key: str, expire_at: int) -> int:
        try:
            return int(await self._incr_expire_at(keys=[key], args=[expire_at]))
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise CounterStoreUnavailable(str(exc)) from exc

    async def incr_expire_in(self, key: str, ttl_seconds: int) -> int:
        try:
            return int(await self._incr_expire_in(keys=[key], args=[ttl_seconds]))
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise CounterStoreUnavailable(str(exc)) from exc

    async def get_count(self, key: str) -> int:
        try:
            value = await self._client.get(key)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise CounterStoreUnavailable(str(exc)) from exc
        return int(value) if value is not None else 0

    async def ttl(self, key: str) -> int:
        try:
            remaining = await self._client.ttl(key)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise CounterStoreUnavailable(str(exc)) from exc
        # -2 = missing key, -1 = no expiry
        return max(0, int(remaining))

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise CounterStoreUnavailable(str(exc)) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError, asyncio.TimeoutError):
            return False

    async def close(self) -> None:
        await self._client.aclose()
        logger.debug("Redis counter store closed")


# ─── In-memory ────────────────────────────────────────────────────────────────


class InMemoryCounterStore:
    """Process-local counter store.

    Counts are not shared between workers or instances. Expired entries are
    dropped on access, and every ``sweep_interval`` writes a full sweep removes
    the rest (keys of past windows are never read again). ``clock`` is
    injectable for tests.
    """

    def __init__(self, clock: Clock = time.time, sweep_interval: int = 256) -> None:
        self._clock = clock
        self._counters: dict[str, tuple[int, float]] = {}  # key -> (count, expires_at)
        self._lock = asyncio.Lock()
        self._sweep_interval = max(1, sweep_interval)
        self._writes = 0

    def _live(self, key: str) -> Optional[tuple[int, float]]:
        entry = self._counters.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._counters[key]
            return None
        return entry

    def _after_write(self) -> None:
        self._writes += 1
        if self._writes % self._sweep_interval:
            return
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._counters.items() if expires_at <= now]
        for key in expired:
            del self._counters[key]
        if expired:
            logger.debug("In-memory counter sweep", removed=len(expired), live=len(self._counters))

    async def incr_expire_at(self, key: str, expire_at: int) -> int:
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                count, expires = 1, float(expire_at)
            else:
                count, expires = entry[0] + 1, entry[1]
            self._counters[key] = (count, expires)
            self._after_write()
            return count

    async def incr_expire_in(self, key: str, ttl_seconds: int) -> int:
        async with self._lock:
            entry = self._live(key)
            count = 1 if entry is None else entry[0] + 1
            self._counters[key] = (count, self._clock() + ttl_seconds)
            self._after_write()
            return count

    async def get_count(self, key: str) -> int:
        async with self._lock:
            entry = self._live(key)
            return entry[0] if entry else 0

    async def ttl(self, key: str) -> int:
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                return 0
            return max(0, int(entry[1] - self._clock()))

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._counters.pop(key, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._counters.clear()


def create_counter_store(url: Optional[str], socket_timeout: float = 1.0) -> CounterStore:
    """Redis when ``url`` is configured, otherwise the in-process store."""
    if url:
        logger.info("Counter store selected", backend="redis")
        return RedisCounterStore(url=url, socket_timeout=socket_timeout)
    logger.warning(
        "REDIS_URL not set — using in-memory counter store (single instance only)"
    )
    return InMemoryCounterStore()
