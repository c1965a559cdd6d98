"""TenantGuard security audit log.

Re-exports the public API:

    from tenantguard.audit import SecurityAuditEvent, AuditBackend, emit_audit_event

Layout:
    models.py         — SecurityAuditEvent + EventType / SeverityType
    protocol.py       — AuditBackend Protocol + AuditFilters + NullAuditBackend
    sqlite_backend.py — LocalSQLiteBackend (aiosqlite, WAL mode)
    factory.py        — create_audit_backend()
"""

from tenantguard.audit.models import (
    EVENT_TYPES,
    SEVERITIES,
    EventType,
    SecurityAuditEvent,
    SeverityType,
)
from tenantguard.audit.protocol import (
    AuditBackend,
    AuditFilters,
    NullAuditBackend,
    emit_audit_event,
)

__all__ = [
    # Type aliases
    "EventType",
    "SeverityType",
    "EVENT_TYPES",
    "SEVERITIES",
    # Dataclasses
    "SecurityAuditEvent",
    "AuditFilters",
    # Protocol + implementations
    "AuditBackend",
    "NullAuditBackend",
    "emit_audit_event",
]
