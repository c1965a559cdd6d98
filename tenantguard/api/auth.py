"""Authentication endpoints.

  GET  /api/auth/csrf    — issue a CSRF token + keyed-hash cookie
  POST /api/auth/login   — email/password login with lockout
  POST /api/auth/logout  — clear session and CSRF cookies

These run behind the guard chain, which skips session, API-key and injection
checks under /api/auth. Login and logout are still CSRF-protected: clients
call /api/auth/csrf first.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel

from tenantguard.audit import SecurityAuditEvent, emit_audit_event
from tenantguard.auth.lockout import AccountLockedError
from tenantguard.auth.session import create_session_token, resolve_session
from tenantguard.auth.users import InvalidCredentialsError, authenticate_user, get_user_by_email
from tenantguard.config import Config
from tenantguard.constants import CSRF_HEADER
from tenantguard.guards.csrf import generate_csrf_token, set_csrf_cookie
from tenantguard.settings.store import get_effective_settings
from tenantguard.utils.logger import get_logger
from tenantguard.utils.net import get_client_ip

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    email: str
    password: str


def _client_details(request: Request, config: Config) -> dict:
    return {
        "ip_address": get_client_ip(request, config.server.trust_proxy_headers),
        "user_agent": request.headers.get("user-agent"),
    }


@router.get("/csrf")
async def issue_csrf_token(request: Request, response: Response) -> dict:
    """Return a fresh token; the cookie carries its keyed hash."""
    config: Config = request.app.state.config
    token = generate_csrf_token()
    set_csrf_cookie(response, token, config)
    response.headers[CSRF_HEADER] = token
    return {"csrfToken": token}


@router.post("/login")
async def login(body: LoginRequest, request: Request, response: Response) -> dict:
    """Authenticate and open a session.

    Raises:
        HTTP 429: Identifier locked after too many failures (Retry-After set).
        HTTP 401: Wrong email or password.
    """
    config: Config = request.app.state.config
    tracker = request.app.state.login_tracker
    audit_backend = request.app.state.audit_backend

    known_user = await get_user_by_email(body.email, config.db_path)
    settings = await get_effective_settings(
        known_user.organization_id if known_user else None, config.db_path
    )

    try:
        await tracker.ensure_not_locked(body.email, settings.max_login_attempts)
    except AccountLockedError as exc:
        logger.warning("Login rejected: account locked", retry_after=exc.retry_after)
        raise HTTPException(
            status_code=429,
            detail={"message": exc.message, "code": "account_locked"},
            headers={"Retry-After": str(exc.retry_after)},
        ) from exc

    try:
        user = await authenticate_user(body.email, body.password, config.db_path)
    except InvalidCredentialsError as exc:
        attempts = await tracker.record_failure(body.email, settings.lockout_duration)
        logger.info("Login failed", attempts=attempts)
        if known_user is not None:
            emit_audit_event(
                audit_backend,
                SecurityAuditEvent(
                    event_type="login",
                    severity="high" if attempts >= settings.max_login_attempts else "medium",
                    organization_id=known_user.organization_id,
                    user_id=known_user.id,
                    details={"success": False, "attempts": attempts},
                    **_client_details(request, config),
                ),
            )
        raise HTTPException(
            status_code=401,
            detail={"message": exc.message, "code": "invalid_credentials"},
        ) from exc

    await tracker.reset(body.email)

    ttl = timedelta(hours=settings.session_timeout)
    token = create_session_token(
        config.auth,
        user_id=user.id,
        organization_id=user.organization_id,
        role=user.role,
        email=user.email,
        ttl=ttl,
    )
    response.set_cookie(
        key=config.auth.session_cookie,
        value=token,
        max_age=int(ttl.total_seconds()),
        httponly=True,
        samesite="strict",
        secure=config.is_production,
        path="/",
    )

    emit_audit_event(
        audit_backend,
        SecurityAuditEvent(
            event_type="login",
            severity="low",
            organization_id=user.organization_id,
            user_id=user.id,
            details={"success": True},
            **_client_details(request, config),
        ),
    )
    logger.info("Login succeeded", user_id=user.id, organization_id=user.organization_id)

    return {
        "token": token,
        "expiresAt": (datetime.now(timezone.utc) + ttl).isoformat(),
        "passwordExpired": user.password_expired(settings.password_policy),
        "user": {
            "id": user.id,
            "email": user.email,
            "organizationId": user.organization_id,
            "role": user.role,
        },
    }


@router.post("/logout")
async def logout(request: Request, response: Response) -> dict:
    config: Config = request.app.state.config
    session = resolve_session(request, config.auth)
    response.delete_cookie(config.auth.session_cookie, path="/")
    response.delete_cookie(config.csrf.cookie_name, path="/")

    if session is not None:
        emit_audit_event(
            request.app.state.audit_backend,
            SecurityAuditEvent(
                event_type="logout",
                severity="low",
                organization_id=session.organization_id,
                user_id=session.user_id,
                **_client_details(request, config),
            ),
        )
    return {"success": True}
