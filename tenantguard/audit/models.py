"""SecurityAuditEvent dataclass and type aliases for the audit log."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional, get_args

from tenantguard.utils.ulid import generate_ulid

# ─── Type Aliases ─────────────────────────────────────────────────────────────

EventType = Literal[
    "login",
    "logout",
    "password_change",
    "mfa_enabled",
    "mfa_disabled",
    "api_key_created",
    "api_key_revoked",
    "role_changed",
    "permission_changed",
    "integration_access",
    "data_export",
    "settings_changed",
    "security_alert",
]
SeverityType = Literal["low", "medium", "high", "critical"]

EVENT_TYPES: frozenset[str] = frozenset(get_args(EventType))
SEVERITIES: frozenset[str] = frozenset(get_args(SeverityType))


# ─── SecurityAuditEvent ───────────────────────────────────────────────────────


@dataclass
class SecurityAuditEvent:
    """One row of the organization security audit log.

    ``details`` is free-form JSON. It must never contain secrets: no
    passwords, plaintext API keys, session tokens or CSRF tokens.

    Usage at call sites:
        emit_audit_event(backend, event)   # fire-and-forget
    """

    event_type: EventType
    severity: SeverityType
    organization_id: Optional[str] = None
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=generate_ulid)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "organizationId": self.organization_id,
            "userId": self.user_id,
            "eventType": self.event_type,
            "severity": self.severity,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "details": self.details,
            "createdAt": self.created_at.isoformat(),
        }
