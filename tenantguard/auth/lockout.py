"""Failed-login tracking in the shared counter store.

Each failure increments ``login_attempts:<identifier>`` and refreshes its TTL
to the lockout window, so the window is measured from the last failure.
An identifier is locked while its count is at or above ``max_attempts``.

Counter-store outages fail open: logins proceed without lockout.
"""

from __future__ import annotations

from tenantguard.ratelimit.store import CounterStore, CounterStoreUnavailable
from tenantguard.utils.logger import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "login_attempts"


class AccountLockedError(Exception):
    """Raised while an identifier is locked out.

    HTTP mapping: 429 Too Many Requests with Retry-After.
    """

    def __init__(self, retry_after: int) -> None:
        super().__init__("Too many failed login attempts")
        self.message = "Too many failed login attempts. Try again later."
        self.retry_after = retry_after


class LoginAttemptTracker:
    def __init__(self, store: CounterStore) -> None:
        self._store = store

    @staticmethod
    def _key(identifier: str) -> str:
        return f"{KEY_PREFIX}:{identifier.strip().lower()}"

    async def ensure_not_locked(self, identifier: str, max_attempts: int) -> None:
        """Raise AccountLockedError if ``identifier`` is currently locked."""
        key = self._key(identifier)
        try:
            count = await self._store.get_count(key)
            if count < max_attempts:
                return
            ttl = await self._store.ttl(key)
        except CounterStoreUnavailable as exc:
            logger.warning("Lockout check skipped — counter store unavailable", error=str(exc))
            return
        if ttl > 0:
            raise AccountLockedError(retry_after=ttl)

    async def record_failure(self, identifier: str, lockout_minutes: int) -> int:
        """Count a failed attempt. Returns the new count (0 if the store is down)."""
        try:
            return await self._store.incr_expire_in(self._key(identifier), lockout_minutes * 60)
        except CounterStoreUnavailable as exc:
            logger.warning("Failed login not recorded — counter store unavailable", error=str(exc))
            return 0

    async def reset(self, identifier: str) -> None:
        try:
            await self._store.delete(self._key(identifier))
        except CounterStoreUnavailable as exc:
            logger.warning("Login attempts not reset — counter store unavailable", error=str(exc))
