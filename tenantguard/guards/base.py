"""Guard protocol and the per-request context shared along the chain.

A guard inspects a ``GuardContext`` and returns ``None`` to continue or a
``Rejection`` to stop the chain. Guards may enrich the context (session,
API key, organization) and queue response headers for the eventual response.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from starlette.requests import Request

from tenantguard.audit import AuditBackend, SecurityAuditEvent, emit_audit_event
from tenantguard.auth.keys import ApiKey
from tenantguard.auth.session import Session
from tenantguard.config import Config
from tenantguard.models.rejection import Rejection
from tenantguard.settings.models import SecuritySettings
from tenantguard.settings.store import get_security_settings

_UNSET: Any = object()


def hardening_headers(production: bool) -> dict[str, str]:
    """Response headers attached to every request that passes the org checks."""
    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "X-XSS-Protection": "1; mode=block",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Permissions-Policy": "camera=(), microphone=(), geolocation=(), interest-cohort=()",
        "Content-Security-Policy": "default-src 'self'; frame-ancestors 'none'",
    }
    if production:
        headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return headers


@dataclass
class GuardContext:
    """State of one request as it moves through the chain."""

    request: Request
    config: Config
    client_ip: str
    db_path: str
    audit_backend: Optional[AuditBackend] = None
    session: Optional[Session] = None
    api_key: Optional[ApiKey] = None
    organization_id: Optional[str] = None
    response_headers: dict[str, str] = field(default_factory=dict)
    _settings: Any = field(default=_UNSET, repr=False)

    @property
    def path(self) -> str:
        return self.request.url.path

    @property
    def method(self) -> str:
        return self.request.method.upper()

    @property
    def user_agent(self) -> str:
        return self.request.headers.get("user-agent", "")

    @property
    def identity(self) -> str:
        """Rate-limit identity: the session user, else the client address."""
        if self.session is not None:
            return f"user:{self.session.user_id}"
        return f"ip:{self.client_ip}"

    async def org_settings(self) -> Optional[SecuritySettings]:
        """Settings of ``organization_id``, loaded once per request.

        None when there is no organization or it has no stored settings.
        """
        if self._settings is _UNSET:
            if self.organization_id:
                self._settings = await get_security_settings(self.organization_id, self.db_path)
            else:
                self._settings = None
        return self._settings

    def audit(self, event_type: str, severity: str, **details: Any) -> None:
        """Queue a security audit event for this request (fire-and-forget)."""
        emit_audit_event(
            self.audit_backend,
            SecurityAuditEvent(
                event_type=event_type,
                severity=severity,
                organization_id=self.organization_id,
                user_id=self.session.user_id if self.session else None,
                ip_address=self.client_ip,
                user_agent=self.user_agent or None,
                details={"path": self.path, "method": self.method, **details},
            ),
        )


class Guard(Protocol):
    name: str

    async def check(self, ctx: GuardContext) -> Optional[Rejection]:
        ...
