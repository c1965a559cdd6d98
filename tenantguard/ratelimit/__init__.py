"""TenantGuard rate limiting — counter store + fixed-window limiter."""

from tenantguard.ratelimit.limiter import RateLimiter, RateLimitResult
from tenantguard.ratelimit.store import (
    CounterStore,
    CounterStoreUnavailable,
    InMemoryCounterStore,
    RedisCounterStore,
    create_counter_store,
)

__all__ = [
    "CounterStore",
    "CounterStoreUnavailable",
    "InMemoryCounterStore",
    "RateLimitResult",
    "RateLimiter",
    "RedisCounterStore",
    "create_counter_store",
]
