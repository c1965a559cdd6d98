"""Organization security administration endpoints.

  GET    /api/organizations/security/settings       — current settings (defaults if none)
  PUT    /api/organizations/security/settings       — validated partial upsert
  GET    /api/organizations/security/api-keys       — list keys (never the hash)
  POST   /api/organizations/security/api-keys       — create; plaintext returned ONCE
  DELETE /api/organizations/security/api-keys/{id}  — revoke
  GET    /api/organizations/security/audit-logs     — filtered audit query

All endpoints require an organization admin (Depends(require_admin)) and are
throttled per client address by slowapi.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from tenantguard.audit import (
    EVENT_TYPES,
    SEVERITIES,
    AuditFilters,
    SecurityAuditEvent,
    emit_audit_event,
)
from tenantguard.auth.keys import InvalidKeyError, create_api_key, list_api_keys, revoke_api_key
from tenantguard.auth.limiter import ADMIN_ENDPOINT_RATE_LIMIT, limiter
from tenantguard.auth.middleware import require_admin
from tenantguard.auth.session import Session
from tenantguard.config import Config
from tenantguard.settings.models import SecuritySettingsUpdate
from tenantguard.settings.store import get_effective_settings, upsert_security_settings
from tenantguard.utils.logger import get_logger
from tenantguard.utils.net import get_client_ip

logger = get_logger(__name__)

router = APIRouter(prefix="/api/organizations/security", tags=["organization-security"])


# ─── Request Models ───────────────────────────────────────────────────────────


class CreateApiKeyRequest(BaseModel):
    """Request body for POST /api-keys.

    organizationId is never accepted from the body; it comes from the session.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(min_length=1, max_length=100)
    scopes: list[str] = Field(default_factory=list)
    expires_at: Optional[datetime] = None


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _audit(request: Request, session: Session, event_type: str, severity: str, **details: Any) -> None:
    config: Config = request.app.state.config
    emit_audit_event(
        request.app.state.audit_backend,
        SecurityAuditEvent(
            event_type=event_type,
            severity=severity,
            organization_id=session.organization_id,
            user_id=session.user_id,
            ip_address=get_client_ip(request, config.server.trust_proxy_headers),
            user_agent=request.headers.get("user-agent"),
            details=details,
        ),
    )


def _parse_date(value: Optional[str], field_name: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail={"message": f"Invalid {field_name}", "code": "invalid_filter"},
        ) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ─── Settings ─────────────────────────────────────────────────────────────────


@router.get("/settings")
@limiter.limit(ADMIN_ENDPOINT_RATE_LIMIT)
async def get_settings(
    request: Request,
    session: Session = Depends(require_admin),
) -> dict:
    config: Config = request.app.state.config
    settings = await get_effective_settings(session.organization_id, config.db_path)
    return {"settings": settings.model_dump(by_alias=True)}


@router.put("/settings")
@limiter.limit(ADMIN_ENDPOINT_RATE_LIMIT)
async def update_settings(
    request: Request,
    payload: dict = Body(...),
    session: Session = Depends(require_admin),
) -> dict:
    """Validate and merge the update onto the current settings.

    Raises:
        HTTP 400: Values out of range or malformed allowlist entries.
    """
    config: Config = request.app.state.config
    try:
        update = SecuritySettingsUpdate.model_validate(payload)
        current = await get_effective_settings(session.organization_id, config.db_path)
        merged = update.apply_to(current)
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail={
                "message": "Invalid security settings data",
                "code": "invalid_settings",
                "details": [
                    {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
                    for err in exc.errors()
                ],
            },
        ) from exc

    await upsert_security_settings(
        session.organization_id, merged, updated_by=session.user_id, db_path=config.db_path
    )
    _audit(
        request,
        session,
        "settings_changed",
        "medium",
        changed=sorted(update.model_dump(by_alias=True, exclude_unset=True)),
    )
    return {"settings": merged.model_dump(by_alias=True)}


# ─── API keys ─────────────────────────────────────────────────────────────────


@router.get("/api-keys")
@limiter.limit(ADMIN_ENDPOINT_RATE_LIMIT)
async def get_api_keys(
    request: Request,
    session: Session = Depends(require_admin),
) -> dict:
    config: Config = request.app.state.config
    keys = await list_api_keys(session.organization_id, config.db_path)
    return {"apiKeys": [key.to_public_dict() for key in keys]}


@router.post("/api-keys", status_code=201)
@limiter.limit(ADMIN_ENDPOINT_RATE_LIMIT)
async def post_api_key(
    body: CreateApiKeyRequest,
    request: Request,
    session: Session = Depends(require_admin),
) -> dict:
    """Create a key. The plaintext is in this response and nowhere else."""
    config: Config = request.app.state.config
    plaintext, api_key = await create_api_key(
        organization_id=session.organization_id,
        name=body.name,
        created_by=session.user_id,
        scopes=body.scopes,
        expires_at=body.expires_at,
        db_path=config.db_path,
    )
    _audit(request, session, "api_key_created", "medium", key_id=api_key.id, name=api_key.name)
    return {
        "apiKey": api_key.to_public_dict(),
        "key": plaintext,
        "message": "API key created. Store this key — it will not be shown again.",
    }


@router.delete("/api-keys/{key_id}")
@limiter.limit(ADMIN_ENDPOINT_RATE_LIMIT)
async def delete_api_key(
    key_id: str,
    request: Request,
    session: Session = Depends(require_admin),
) -> dict:
    """Revoke a key of the caller's organization.

    Raises:
        HTTP 404: Key not found in this organization.
    """
    config: Config = request.app.state.config
    try:
        await revoke_api_key(session.organization_id, key_id, config.db_path)
    except InvalidKeyError as exc:
        raise HTTPException(
            status_code=404,
            detail={"message": exc.message, "code": "not_found"},
        ) from exc
    _audit(request, session, "api_key_revoked", "medium", key_id=key_id)
    return {"success": True}


# ─── Audit logs ───────────────────────────────────────────────────────────────


@router.get("/audit-logs")
@limiter.limit(ADMIN_ENDPOINT_RATE_LIMIT)
async def get_audit_logs(
    request: Request,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    event_type: Optional[str] = Query(None, alias="eventType"),
    severity: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None, alias="userId"),
    limit: int = Query(50, ge=1, le=100),
    session: Session = Depends(require_admin),
) -> dict:
    if event_type is not None and event_type not in EVENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail={"message": "Invalid eventType", "code": "invalid_filter"},
        )
    if severity is not None and severity not in SEVERITIES:
        raise HTTPException(
            status_code=400,
            detail={"message": "Invalid severity", "code": "invalid_filter"},
        )

    filters = AuditFilters(
        organization_id=session.organization_id,
        event_type=event_type,
        severity=severity,
        user_id=user_id,
        since=_parse_date(start_date, "startDate"),
        until=_parse_date(end_date, "endDate"),
        limit=limit,
    )
    events = await request.app.state.audit_backend.query_events(filters)
    return {"logs": [event.to_dict() for event in events]}
