"""User self-service endpoints.

  POST /api/users/password — change own password under the org policy
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from tenantguard.audit import SecurityAuditEvent, emit_audit_event
from tenantguard.auth.middleware import authenticate_request
from tenantguard.auth.passwords import PasswordPolicyError
from tenantguard.auth.session import Session
from tenantguard.auth.users import InvalidCredentialsError, change_password
from tenantguard.config import Config
from tenantguard.settings.store import get_effective_settings
from tenantguard.utils.net import get_client_ip

router = APIRouter(prefix="/api/users", tags=["users"])


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    current_password: str
    new_password: str


@router.post("/password")
async def update_password(
    body: ChangePasswordRequest,
    request: Request,
    session: Session = Depends(authenticate_request),
) -> dict:
    """Change the caller's password.

    Raises:
        HTTP 400: Wrong current password, or the new one violates policy/reuse.
    """
    config: Config = request.app.state.config
    settings = await get_effective_settings(session.organization_id, config.db_path)

    try:
        await change_password(
            session.user_id,
            body.current_password,
            body.new_password,
            settings.password_policy,
            config.db_path,
        )
    except InvalidCredentialsError as exc:
        raise HTTPException(
            status_code=400,
            detail={"message": exc.message, "code": "invalid_credentials"},
        ) from exc
    except PasswordPolicyError as exc:
        raise HTTPException(
            status_code=400,
            detail={
                "message": "Password does not meet policy",
                "code": "password_policy",
                "details": exc.errors,
            },
        ) from exc

    emit_audit_event(
        request.app.state.audit_backend,
        SecurityAuditEvent(
            event_type="password_change",
            severity="medium",
            organization_id=session.organization_id,
            user_id=session.user_id,
            ip_address=get_client_ip(request, config.server.trust_proxy_headers),
            user_agent=request.headers.get("user-agent"),
        ),
    )
    return {"success": True}
