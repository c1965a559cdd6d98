"""Unit tests for tenantguard/ratelimit — counter stores and the fixed-window limiter.

Verifies:
  - InMemoryCounterStore increments, expiry, TTL and sweeping of past windows
  - RedisCounterStore wraps Redis failures in CounterStoreUnavailable
  - Window start / counter key layout
  - Remaining decrements; the request that reaches the limit is still admitted
  - A new window starts a new counter
  - Retry-After is at least 1 and rounds up
  - Tier selection by path prefix
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from tenantguard.config import RateLimitConfig, RateLimitTier
from tenantguard.ratelimit import (
    CounterStoreUnavailable,
    InMemoryCounterStore,
    RateLimiter,
    RateLimitResult,
    RedisCounterStore,
    create_counter_store,
)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _config(window: int = 60, limit: int = 3) -> RateLimitConfig:
    config = RateLimitConfig()
    config.tiers["api"] = RateLimitTier(name="api", window=window, limit=limit)
    return config


# ─── InMemoryCounterStore ─────────────────────────────────────────────────────


class TestInMemoryCounterStore:
    async def test_incr_expire_at_counts_and_keeps_first_expiry(self) -> None:
        clock = FakeClock(100.0)
        store = InMemoryCounterStore(clock=clock)

        assert await store.incr_expire_at("k", 160) == 1
        assert await store.incr_expire_at("k", 999) == 2
        assert await store.ttl("k") == 60

    async def test_counter_expires(self) -> None:
        clock = FakeClock(100.0)
        store = InMemoryCounterStore(clock=clock)
        await store.incr_expire_at("k", 160)

        clock.now = 160.0
        assert await store.get_count("k") == 0
        assert await store.incr_expire_at("k", 220) == 1

    async def test_incr_expire_in_refreshes_ttl(self) -> None:
        clock = FakeClock(100.0)
        store = InMemoryCounterStore(clock=clock)
        await store.incr_expire_in("k", 60)

        clock.now = 150.0
        assert await store.incr_expire_in("k", 60) == 2
        assert await store.ttl("k") == 60

    async def test_missing_key(self) -> None:
        store = InMemoryCounterStore()
        assert await store.get_count("absent") == 0
        assert await store.ttl("absent") == 0

    async def test_delete(self) -> None:
        store = InMemoryCounterStore()
        await store.incr_expire_in("k", 60)
        await store.delete("k")
        assert await store.get_count("k") == 0

    async def test_ping(self) -> None:
        assert await InMemoryCounterStore().ping() is True

    async def test_past_windows_swept(self) -> None:
        clock = FakeClock(0.0)
        store = InMemoryCounterStore(clock=clock, sweep_interval=10)
        limiter = RateLimiter(store, _config(window=60, limit=5), clock=clock)

        for window in range(500):
            clock.now = window * 60.0
            await limiter.increment("ip:10.0.0.2", "api")

        assert len(store._counters) <= 10
        assert (await limiter.check("ip:10.0.0.2", "api")).remaining == 4

    async def test_sweep_keeps_live_counters(self) -> None:
        clock = FakeClock(100.0)
        store = InMemoryCounterStore(clock=clock, sweep_interval=2)
        await store.incr_expire_at("old", 110)
        await store.incr_expire_at("live", 1000)

        clock.now = 200.0
        await store.incr_expire_at("live", 1000)
        await store.incr_expire_at("other", 1000)

        assert set(store._counters) == {"live", "other"}
        assert await store.get_count("live") == 2


# ─── RedisCounterStore ────────────────────────────────────────────────────────


def _redis_client(script_result=None, script_error=None) -> MagicMock:
    client = MagicMock()
    script = AsyncMock(return_value=script_result, side_effect=script_error)
    client.register_script.return_value = script
    client.get = AsyncMock(side_effect=RedisConnectionError("refused"))
    client.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
    client.aclose = AsyncMock()
    return client


class TestRedisCounterStore:
    async def test_incr_runs_script_with_key_and_expiry(self) -> None:
        client = _redis_client(script_result=4)
        store = RedisCounterStore(client=client)

        assert await store.incr_expire_at("rate_limit:api:ip:1.2.3.4:60", 120) == 4
        script = client.register_script.return_value
        script.assert_awaited_with(keys=["rate_limit:api:ip:1.2.3.4:60"], args=[120])

    async def test_script_failure_becomes_unavailable(self) -> None:
        client = _redis_client(script_error=RedisConnectionError("refused"))
        store = RedisCounterStore(client=client)

        with pytest.raises(CounterStoreUnavailable):
            await store.incr_expire_at("k", 120)
        with pytest.raises(CounterStoreUnavailable):
            await store.incr_expire_in("k", 60)

    async def test_read_failure_becomes_unavailable(self) -> None:
        store = RedisCounterStore(client=_redis_client())
        with pytest.raises(CounterStoreUnavailable):
            await store.get_count("k")

    async def test_ping_never_raises(self) -> None:
        store = RedisCounterStore(client=_redis_client())
        assert await store.ping() is False

    async def test_close(self) -> None:
        client = _redis_client()
        await RedisCounterStore(client=client).close()
        client.aclose.assert_awaited_once()

    def test_needs_url_or_client(self) -> None:
        with pytest.raises(ValueError):
            RedisCounterStore()


class TestCreateCounterStore:
    def test_without_url_uses_memory(self) -> None:
        assert isinstance(create_counter_store(None), InMemoryCounterStore)

    def test_with_url_uses_redis(self) -> None:
        store = create_counter_store("redis://localhost:6379/0")
        assert isinstance(store, RedisCounterStore)


# ─── RateLimiter ──────────────────────────────────────────────────────────────


class TestRateLimiter:
    async def test_counter_key_layout(self) -> None:
        clock = FakeClock(1_000_030.0)
        limiter = RateLimiter(InMemoryCounterStore(clock=clock), _config(), clock=clock)

        start = limiter.window_start(60)
        assert start == 1_000_020
        assert limiter.counter_key("api", "ip:1.2.3.4", start) == "rate_limit:api:ip:1.2.3.4:1000020"

    async def test_remaining_decrements_and_limit_request_admitted(self) -> None:
        clock = FakeClock(1_000_020.0)
        limiter = RateLimiter(InMemoryCounterStore(clock=clock), _config(limit=3), clock=clock)

        results = [await limiter.increment("ip:1.2.3.4", "api") for _ in range(3)]

        assert [r.remaining for r in results] == [2, 1, 0]
        assert not any(r.exceeded for r in results)

        fourth = await limiter.increment("ip:1.2.3.4", "api")
        assert fourth.exceeded
        assert fourth.remaining == 0
        assert fourth.reset == 1_000_080

    async def test_new_window_resets_count(self) -> None:
        clock = FakeClock(1_000_020.0)
        limiter = RateLimiter(InMemoryCounterStore(clock=clock), _config(limit=1), clock=clock)

        await limiter.increment("ip:1.2.3.4", "api")
        assert (await limiter.increment("ip:1.2.3.4", "api")).exceeded

        clock.now = 1_000_080.0
        result = await limiter.increment("ip:1.2.3.4", "api")
        assert not result.exceeded
        assert result.count == 1

    async def test_identities_are_independent(self) -> None:
        clock = FakeClock(1_000_020.0)
        limiter = RateLimiter(InMemoryCounterStore(clock=clock), _config(limit=1), clock=clock)

        await limiter.increment("user:a", "api")
        assert not (await limiter.increment("user:b", "api")).exceeded

    async def test_check_does_not_count(self) -> None:
        clock = FakeClock(1_000_020.0)
        limiter = RateLimiter(InMemoryCounterStore(clock=clock), _config(), clock=clock)

        await limiter.increment("ip:1.2.3.4", "api")
        assert (await limiter.check("ip:1.2.3.4", "api")).count == 1
        assert (await limiter.check("ip:1.2.3.4", "api")).count == 1

    async def test_unknown_tier(self) -> None:
        limiter = RateLimiter(InMemoryCounterStore())
        with pytest.raises(ValueError):
            await limiter.increment("ip:1.2.3.4", "nope")

    def test_tier_for_path(self) -> None:
        limiter = RateLimiter(InMemoryCounterStore())
        assert limiter.tier_for_path("/api/auth/login") == "auth"
        assert limiter.tier_for_path("/api/auth") == "auth"
        assert limiter.tier_for_path("/api/authors") == "api"
        assert limiter.tier_for_path("/api/organizations/security/settings") == "api"
        assert limiter.tier_for_path("/public/page") == "public"


class TestRetryAfter:
    def test_rounds_up(self) -> None:
        result = RateLimitResult(limit=1, remaining=0, reset=100, count=2)
        assert result.retry_after(98.2) == 2

    def test_at_least_one(self) -> None:
        result = RateLimitResult(limit=1, remaining=0, reset=100, count=2)
        assert result.retry_after(100.0) == 1
        assert result.retry_after(105.0) == 1
