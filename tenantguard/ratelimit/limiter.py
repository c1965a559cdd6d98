"""Tiered fixed-window rate limiter.

Window start is ``floor(now / window) * window``; the counter key is
``rate_limit:{tier}:{identity}:{window_start}`` and expires at the window end.
A request is over quota when the post-increment count exceeds the tier limit,
so the request that brings ``remaining`` to 0 is still admitted.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Optional

from tenantguard.config import RateLimitConfig, RateLimitTier
from tenantguard.ratelimit.store import Clock, CounterStore

KEY_PREFIX = "rate_limit"


@dataclass(frozen=True)
class RateLimitResult:
    limit: int
    remaining: int
    reset: int          # unix seconds at which the window ends
    count: int

    @property
    def exceeded(self) -> bool:
        return self.count > self.limit

    def retry_after(self, now: float) -> int:
        """Whole seconds until the window resets, at least 1."""
        return max(1, math.ceil(self.reset - now))


class RateLimiter:
    """Fixed-window counter per (tier, identity).

    Raises ``CounterStoreUnavailable`` from the store unchanged; the guard
    owns the fail-open decision.
    """

    def __init__(
        self,
        store: CounterStore,
        config: Optional[RateLimitConfig] = None,
        clock: Clock = time.time,
    ) -> None:
        self._store = store
        self._config = config or RateLimitConfig()
        self._clock = clock

    @property
    def clock(self) -> Clock:
        return self._clock

    def tier(self, name: str) -> RateLimitTier:
        try:
            return self._config.tiers[name]
        except KeyError:
            raise ValueError(f"Unknown rate limit tier: {name}") from None

    def tier_for_path(self, path: str) -> str:
        """First configured prefix that matches ``path`` wins."""
        for prefix, tier in self._config.prefixes:
            if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
                return tier
        return self._config.default_tier

    def window_start(self, window: int, now: Optional[float] = None) -> int:
        now = self._clock() if now is None else now
        return int(now // window) * window

    @staticmethod
    def counter_key(tier: str, identity: str, window_start: int) -> str:
        return f"{KEY_PREFIX}:{tier}:{identity}:{window_start}"

    async def increment(self, identity: str, tier_name: str) -> RateLimitResult:
        """Count one request for ``identity`` in the current window of ``tier_name``."""
        tier = self.tier(tier_name)
        start = self.window_start(tier.window)
        reset = start + tier.window
        count = await self._store.incr_expire_at(
            self.counter_key(tier.name, identity, start), reset
        )
        return RateLimitResult(
            limit=tier.limit,
            remaining=max(0, tier.limit - count),
            reset=reset,
            count=count,
        )

    async def check(self, identity: str, tier_name: str) -> RateLimitResult:
        """Report the current window without counting a request."""
        tier = self.tier(tier_name)
        start = self.window_start(tier.window)
        count = await self._store.get_count(self.counter_key(tier.name, identity, start))
        return RateLimitResult(
            limit=tier.limit,
            remaining=max(0, tier.limit - count),
            reset=start + tier.window,
            count=count,
        )
