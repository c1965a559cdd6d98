"""CSRF double-submit validation.

The client receives a random token (response body + ``X-CSRF-Token`` header)
and an httpOnly cookie holding ``HMAC-SHA256(secret, token)``. A mutating
request is valid iff the keyed hash of its ``X-CSRF-Token`` header equals the
cookie. Issuance happens only at ``GET /api/auth/csrf``; the guard never issues.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import Optional

from starlette.responses import Response

from tenantguard.config import Config
from tenantguard.constants import CSRF_HEADER, CSRF_METHODS, CSRF_TOKEN_BYTES
from tenantguard.guards.base import GuardContext
from tenantguard.models.rejection import Rejection
from tenantguard.utils.logger import get_logger

logger = get_logger(__name__)


def generate_csrf_token() -> str:
    return secrets.token_hex(CSRF_TOKEN_BYTES)


def hash_csrf_token(token: str, secret: str) -> str:
    return hmac.new(secret.encode(), token.encode(), hashlib.sha256).hexdigest()


def verify_csrf_token(token: Optional[str], cookie_value: Optional[str], secret: str) -> bool:
    """Constant-time comparison of the header token's keyed hash and the cookie."""
    if not token or not cookie_value:
        return False
    return hmac.compare_digest(hash_csrf_token(token, secret), cookie_value)


def set_csrf_cookie(response: Response, token: str, config: Config) -> None:
    response.set_cookie(
        key=config.csrf.cookie_name,
        value=hash_csrf_token(token, config.csrf.secret),
        httponly=True,
        samesite="strict",
        secure=config.is_production,
        path="/",
    )


class CsrfGuard:
    name = "csrf"

    async def check(self, ctx: GuardContext) -> Optional[Rejection]:
        if ctx.method not in CSRF_METHODS:
            return None

        csrf = ctx.config.csrf
        if ctx.path in csrf.exempt_paths:
            return None
        if csrf.exempt_api_key_requests and ctx.api_key is not None and ctx.session is None:
            return None

        token = ctx.request.headers.get(CSRF_HEADER)
        cookie_value = ctx.request.cookies.get(csrf.cookie_name)
        if not verify_csrf_token(token, cookie_value, csrf.secret):
            logger.warning(
                "Request rejected: CSRF validation failed",
                path=ctx.path,
                identity=ctx.identity,
                has_token=bool(token),
                has_cookie=bool(cookie_value),
            )
            ctx.audit("security_alert", "high", reason="csrf_invalid")
            return Rejection.forbidden("Invalid CSRF token", code="csrf_invalid")
        return None
