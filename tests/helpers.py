"""Shared test helpers: recording audit backend, session and CSRF headers."""

from __future__ import annotations

import asyncio
from typing import Optional

from tenantguard.audit import AuditFilters, SecurityAuditEvent
from tenantguard.auth.session import create_session_token
from tenantguard.config import Config
from tenantguard.guards.csrf import hash_csrf_token

TEST_AUTH_SECRET = "test-auth-secret"
TEST_CSRF_SECRET = "test-csrf-secret"
TEST_CSRF_TOKEN = "a" * 64
CLIENT_IP = "10.0.0.2"


class RecordingAuditBackend:
    """AuditBackend that keeps events in memory."""

    def __init__(self) -> None:
        self.events: list[SecurityAuditEvent] = []

    async def log_event(self, event: SecurityAuditEvent) -> None:
        self.events.append(event)

    async def query_events(self, filters: AuditFilters) -> list[SecurityAuditEvent]:
        matching = [e for e in self.events if e.organization_id == filters.organization_id]
        return sorted(matching, key=lambda e: e.created_at, reverse=True)[: filters.limit]

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        pass

    def of_type(self, event_type: str) -> list[SecurityAuditEvent]:
        return [e for e in self.events if e.event_type == event_type]


async def drain_tasks() -> None:
    """Let fire-and-forget tasks (audit writes, lastUsedAt updates) finish."""
    for _ in range(20):
        await asyncio.sleep(0.01)


def session_headers(
    config: Config,
    user_id: str = "user_1",
    organization_id: Optional[str] = "org_1",
    role: str = "admin",
) -> dict[str, str]:
    token = create_session_token(config.auth, user_id, organization_id, role)
    return {"Authorization": f"Bearer {token}"}


def csrf_headers(config: Config, token: str = TEST_CSRF_TOKEN) -> dict[str, str]:
    """Header token plus the matching keyed-hash cookie."""
    cookie_value = hash_csrf_token(token, config.csrf.secret)
    return {"X-CSRF-Token": token, "Cookie": f"{config.csrf.cookie_name}={cookie_value}"}
