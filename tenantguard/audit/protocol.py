"""AuditBackend Protocol, AuditFilters and the fire-and-forget emitter.

Layout:
    models.py         — SecurityAuditEvent + type aliases
    protocol.py       — AuditBackend Protocol + AuditFilters + NullAuditBackend
    sqlite_backend.py — LocalSQLiteBackend
    factory.py        — create_audit_backend()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from tenantguard.audit.models import SecurityAuditEvent
from tenantguard.utils.logger import get_logger

logger = get_logger(__name__)


# ─── AuditFilters ─────────────────────────────────────────────────────────────


@dataclass
class AuditFilters:
    """Query filters for AuditBackend.query_events().

    organization_id is always required: audit logs never cross tenants.
    """

    organization_id: str
    event_type: Optional[str] = None
    severity: Optional[str] = None
    user_id: Optional[str] = None
    since: Optional[datetime] = None
    """Include events with created_at >= since (UTC)."""
    until: Optional[datetime] = None
    """Include events with created_at <= until (UTC)."""
    limit: int = 50


# ─── AuditBackend Protocol ────────────────────────────────────────────────────


@runtime_checkable
class AuditBackend(Protocol):
    """Pluggable audit backend interface.

    log_event() is invoked through emit_audit_event() so that audit writes
    never block or fail a request.
    """

    async def log_event(self, event: SecurityAuditEvent) -> None:
        """Persist an event. Must NEVER raise."""
        ...

    async def query_events(self, filters: AuditFilters) -> list[SecurityAuditEvent]:
        """Events matching filters, newest first."""
        ...

    async def health_check(self) -> bool:
        """True if the backend is operational. Must not raise."""
        ...

    async def close(self) -> None:
        ...


# ─── NullAuditBackend ────────────────────────────────────────────────────────


class NullAuditBackend:
    """No-op AuditBackend for tests and for apps started without a lifespan."""

    async def log_event(self, event: SecurityAuditEvent) -> None:
        logger.debug("NullAuditBackend.log_event", event_type=event.event_type)

    async def query_events(self, filters: AuditFilters) -> list[SecurityAuditEvent]:
        return []

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        pass


assert isinstance(NullAuditBackend(), AuditBackend), (
    "NullAuditBackend does not satisfy AuditBackend protocol"
)


# ─── Fire-and-forget emitter ──────────────────────────────────────────────────

# Strong references so pending writes are not garbage-collected mid-flight.
_pending: set[asyncio.Task] = set()


def emit_audit_event(backend: Optional[AuditBackend], event: SecurityAuditEvent) -> None:
    """Schedule ``backend.log_event(event)`` without awaiting it."""
    if backend is None:
        return
    task = asyncio.create_task(backend.log_event(event))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
