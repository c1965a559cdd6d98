"""Tiered rate limiting guard.

Fails OPEN when the counter store is unreachable: the request proceeds
without rate headers and a warning is logged.
"""

from __future__ import annotations

from typing import Optional

from tenantguard.constants import (
    RATE_LIMIT_LIMIT_HEADER,
    RATE_LIMIT_REMAINING_HEADER,
    RATE_LIMIT_RESET_HEADER,
    RETRY_AFTER_HEADER,
)
from tenantguard.guards.base import GuardContext
from tenantguard.models.rejection import Rejection
from tenantguard.ratelimit.limiter import RateLimiter
from tenantguard.ratelimit.store import CounterStoreUnavailable
from tenantguard.utils.logger import get_logger

logger = get_logger(__name__)


class RateLimitGuard:
    name = "rate_limit"

    def __init__(self, limiter: RateLimiter) -> None:
        self._limiter = limiter

    async def check(self, ctx: GuardContext) -> Optional[Rejection]:
        tier = self._limiter.tier_for_path(ctx.path)
        identity = ctx.identity
        try:
            result = await self._limiter.increment(identity, tier)
        except CounterStoreUnavailable as exc:
            logger.warning(
                "Rate limit skipped — counter store unavailable",
                path=ctx.path,
                identity=identity,
                tier=tier,
                error=str(exc),
            )
            return None

        headers = {
            RATE_LIMIT_LIMIT_HEADER: str(result.limit),
            RATE_LIMIT_REMAINING_HEADER: str(result.remaining),
            RATE_LIMIT_RESET_HEADER: str(result.reset),
        }

        if result.exceeded:
            headers[RETRY_AFTER_HEADER] = str(result.retry_after(self._limiter.clock()))
            logger.warning(
                "Request rejected: rate limit exceeded",
                path=ctx.path,
                identity=identity,
                tier=tier,
                count=result.count,
                limit=result.limit,
            )
            return Rejection(
                status_code=429,
                code="rate_limited",
                message="Too many requests",
                headers=headers,
                reason=f"tier:{tier}",
            )

        ctx.response_headers.update(headers)
        return None
