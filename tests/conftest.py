"""Root test configuration for TenantGuard.

Provides:
  - a per-test Config with fixed secrets and a tmp_path database
  - an initialized database
  - a RecordingAuditBackend per test
  - ``app`` / ``client`` fixtures: create_app() with app.state populated by
    hand (httpx.ASGITransport does not run the lifespan)

Session-token and CSRF header helpers live in tests/helpers.py.

bcrypt is switched to its minimum cost factor so credential tests stay fast.
"""

from __future__ import annotations

from typing import Any, AsyncIterator

import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from tenantguard.auth import passwords
from tenantguard.auth.lockout import LoginAttemptTracker
from tenantguard.config import Config
from tenantguard.db import init_database
from tenantguard.main import create_app
from tenantguard.ratelimit import InMemoryCounterStore, RateLimiter
from tests.helpers import CLIENT_IP, TEST_AUTH_SECRET, TEST_CSRF_SECRET, RecordingAuditBackend


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(passwords, "_BCRYPT_ROUNDS", 4)


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Reset the slowapi admin limiter storage between tests.

    Prevents test-to-test rate limit bleed where multiple tests hitting the
    admin endpoints within the same minute would trigger a 429.
    """
    from tenantguard.auth.limiter import limiter
    try:
        limiter._storage.reset()
    except Exception:
        pass  # Storage may not support reset in all backends — safe to ignore


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "TENANTGUARD_CONFIG",
        "TENANTGUARD_PORT",
        "TENANTGUARD_ENV",
        "TENANTGUARD_DB_PATH",
        "TENANTGUARD_AUDIT_DB_PATH",
        "REDIS_URL",
        "AUTH_SECRET",
        "CSRF_SECRET",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def test_config(tmp_path: Any) -> Config:
    config = Config()
    config.auth.secret = TEST_AUTH_SECRET
    config.csrf.secret = TEST_CSRF_SECRET
    config.database.path = str(tmp_path / "tenantguard.db")
    return config


@pytest.fixture
async def db_path(test_config: Config) -> str:
    await init_database(test_config.db_path)
    return test_config.db_path


@pytest.fixture
def audit_backend() -> RecordingAuditBackend:
    return RecordingAuditBackend()


@pytest.fixture
def counter_store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture
def app(
    test_config: Config,
    db_path: str,
    audit_backend: RecordingAuditBackend,
    counter_store: InMemoryCounterStore,
) -> FastAPI:
    """create_app() with state populated the way the lifespan would.

    Tests may replace ``app.state.rate_limiter`` before the first request.
    """
    application = create_app()
    application.state.config = test_config
    application.state.audit_backend = audit_backend
    application.state.counter_store = counter_store
    application.state.rate_limiter = RateLimiter(counter_store, test_config.rate_limits)
    application.state.login_tracker = LoginAttemptTracker(counter_store)
    application.state.ready = True

    @application.get("/api/echo")
    async def echo(request: Request) -> dict:
        return {"organizationId": request.headers.get("x-organization-id")}

    @application.get("/api/webhooks/echo")
    async def webhook_echo() -> dict:
        return {"reached": True}

    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app, client=(CLIENT_IP, 9999))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
