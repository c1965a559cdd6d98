"""LocalSQLiteBackend — aiosqlite-based async audit backend.

Features:
  - WAL mode: PRAGMA journal_mode=WAL
  - Long-lived connection: opened in initialize(), closed in close()
  - Idempotent writes: INSERT OR IGNORE on the event id
  - log_event() swallows every failure; the request path never sees it
"""

from __future__ import annotations

import json
import os
from datetime import datetime
from typing import Any, Optional

import aiosqlite

from tenantguard.audit.models import SecurityAuditEvent
from tenantguard.audit.protocol import AuditFilters
from tenantguard.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS security_audit_log (
    id               TEXT PRIMARY KEY,
    organization_id  TEXT,
    user_id          TEXT,
    event_type       TEXT NOT NULL,
    severity         TEXT NOT NULL CHECK(severity IN ('low', 'medium', 'high', 'critical')),
    ip_address       TEXT,
    user_agent       TEXT,
    details          TEXT NOT NULL DEFAULT '{}',
    created_at       TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_security_audit_org_created
    ON security_audit_log(organization_id, created_at DESC);

CREATE INDEX IF NOT EXISTS idx_security_audit_event_type
    ON security_audit_log(event_type);
"""


def _row_to_event(row: aiosqlite.Row) -> SecurityAuditEvent:
    return SecurityAuditEvent(
        id=row["id"],
        organization_id=row["organization_id"],
        user_id=row["user_id"],
        event_type=row["event_type"],
        severity=row["severity"],
        ip_address=row["ip_address"],
        user_agent=row["user_agent"],
        details=json.loads(row["details"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class LocalSQLiteBackend:
    """Async SQLite audit backend.

    Usage:
        backend = LocalSQLiteBackend(db_path)
        await backend.initialize()
        emit_audit_event(backend, event)   # fire-and-forget
        events = await backend.query_events(AuditFilters(organization_id="org_1"))
        await backend.close()
    """

    def __init__(self, db_path: str = "~/.tenantguard/tenantguard.db") -> None:
        self._db_path: str = os.path.expanduser(db_path)
        self._db: Optional[aiosqlite.Connection] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the connection, enable WAL and create the audit table."""
        parent_dir = os.path.dirname(self._db_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode=WAL;")
        await self._db.executescript(_CREATE_SCHEMA_SQL)
        await self._db.commit()
        logger.info("audit_db_ready", db_path=self._db_path)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("audit_db_closed", db_path=self._db_path)

    # ── AuditBackend Protocol Methods ─────────────────────────────────────────

    async def log_event(self, event: SecurityAuditEvent) -> None:
        """Persist an audit event. Catches ALL exceptions."""
        try:
            assert self._db is not None, "Database not initialized — call initialize() first"
            await self._db.execute(
                """INSERT OR IGNORE INTO security_audit_log
                   (id, organization_id, user_id, event_type, severity,
                    ip_address, user_agent, details, created_at)
                   VALUES (?,?,?,?,?,?,?,?,?)""",
                (
                    event.id,
                    event.organization_id,
                    event.user_id,
                    event.event_type,
                    event.severity,
                    event.ip_address,
                    event.user_agent,
                    json.dumps(event.details, default=str),
                    event.created_at.isoformat(),
                ),
            )
            await self._db.commit()
        except Exception as exc:
            logger.error(
                "audit_write_failed",
                event_id=event.id,
                event_type=event.event_type,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def query_events(self, filters: AuditFilters) -> list[SecurityAuditEvent]:
        """Events for one organization, newest first. Bound parameters only."""
        assert self._db is not None, "Database not initialized"
        sql, params = _build_select_sql(filters)
        cursor = await self._db.execute(sql, params)
        rows = await cursor.fetchall()
        return [_row_to_event(row) for row in rows]

    async def health_check(self) -> bool:
        try:
            assert self._db is not None
            await self._db.execute("SELECT 1")
            return True
        except Exception:
            return False


def _build_select_sql(filters: AuditFilters) -> tuple[str, list[Any]]:
    conditions: list[str] = ["organization_id = ?"]
    params: list[Any] = [filters.organization_id]

    if filters.event_type is not None:
        conditions.append("event_type = ?")
        params.append(filters.event_type)

    if filters.severity is not None:
        conditions.append("severity = ?")
        params.append(filters.severity)

    if filters.user_id is not None:
        conditions.append("user_id = ?")
        params.append(filters.user_id)

    if filters.since is not None:
        conditions.append("created_at >= ?")
        params.append(filters.since.isoformat())

    if filters.until is not None:
        conditions.append("created_at <= ?")
        params.append(filters.until.isoformat())

    sql = (
        "SELECT * FROM security_audit_log WHERE "
        + " AND ".join(conditions)
        + " ORDER BY created_at DESC LIMIT ?"
    )
    params.append(filters.limit)
    return sql, params
