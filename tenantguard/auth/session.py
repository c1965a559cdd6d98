"""Session tokens (HS256 JWT via python-jose).

A session is carried either as ``Authorization: Bearer <jwt>`` or in the
session cookie. Claims: ``sub`` (user id), ``org`` (organization id),
``role``, ``email``, ``iat``, ``exp``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from starlette.requests import Request

from tenantguard.config import AuthConfig
from tenantguard.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Session:
    user_id: str
    organization_id: Optional[str]
    role: str
    email: Optional[str] = None
    expires_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def create_session_token(
    auth: AuthConfig,
    user_id: str,
    organization_id: Optional[str],
    role: str,
    email: Optional[str] = None,
    ttl: timedelta = timedelta(hours=24),
) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": user_id,
        "org": organization_id,
        "role": role,
        "email": email,
        "iat": now,
        "exp": now + ttl,
    }
    return jwt.encode(claims, auth.secret, algorithm=auth.algorithm)


def decode_session_token(auth: AuthConfig, token: str) -> Optional[Session]:
    """Verify ``token``. Returns None for bad signatures, expiry or missing claims."""
    try:
        payload = jwt.decode(token, auth.secret, algorithms=[auth.algorithm])
    except JWTError as exc:
        logger.debug("Session token rejected", error=str(exc))
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None

    exp = payload.get("exp")
    return Session(
        user_id=user_id,
        organization_id=payload.get("org"),
        role=payload.get("role") or "user",
        email=payload.get("email"),
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
    )


def extract_session_token(request: Request, auth: AuthConfig) -> Optional[str]:
    """Bearer token first, then the session cookie."""
    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(auth.session_cookie) or None


def resolve_session(request: Request, auth: AuthConfig) -> Optional[Session]:
    token = extract_session_token(request, auth)
    if token is None:
        return None
    return decode_session_token(auth, token)
