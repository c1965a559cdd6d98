"""Session dependencies for the TenantGuard API routers.

Provides FastAPI Depends()-compatible callables:

  authenticate_request()  — the caller's Session, or HTTP 401
  require_admin()         — Session with role 'admin' and an organization:
                            401 without session, 404 without organization,
                            403 for non-admins

The guard chain stores the verified session on ``request.state.session``.
When the chain did not run (routes mounted outside ``/api/``) the token is
verified here instead.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from tenantguard.auth.session import Session, resolve_session
from tenantguard.utils.logger import get_logger

logger = get_logger(__name__)


async def authenticate_request(request: Request) -> Session:
    """FastAPI dependency: return the authenticated Session.

    Raises:
        HTTPException(401): No valid session token on the request.
    """
    session = getattr(request.state, "session", None)
    if session is None:
        session = resolve_session(request, request.app.state.config.auth)

    if session is None:
        logger.warning(
            "Authentication failed: no session",
            path=str(request.url.path),
            method=request.method,
        )
        raise HTTPException(status_code=401, detail="Unauthorized")
    return session


async def require_admin(request: Request) -> Session:
    """FastAPI dependency: return the Session of an organization admin.

    Raises:
        HTTPException(401): No valid session.
        HTTPException(404): Session is not bound to an organization.
        HTTPException(403): Caller is not an admin.
    """
    session = await authenticate_request(request)
    if not session.organization_id:
        raise HTTPException(status_code=404, detail="Organization not found")
    if not session.is_admin:
        logger.warning(
            "Admin access denied",
            user_id=session.user_id,
            role=session.role,
            path=str(request.url.path),
        )
        raise HTTPException(status_code=403, detail="Forbidden")
    return session
