"""Unit tests for tenantguard/main.py: application factory, lifespan and /health.

Covers:
  - create_app() importable, independent instances, ready=False before lifespan
  - lifespan wires config, counter store, rate limiter, lockout tracker, audit
  - shutdown closes the counter store and the audit backend
  - /health: 503 before ready, ok / degraded afterwards; the main database is
    checked on its own file, independent of the audit backend
  - startup refused on bad config (SystemExit)
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import aiosqlite
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from tenantguard.audit import NullAuditBackend
from tenantguard.auth.lockout import LoginAttemptTracker
from tenantguard.config import Config
from tenantguard.db import check_database, init_database
from tenantguard.main import create_app, lifespan
from tenantguard.ratelimit import InMemoryCounterStore, RateLimiter


def _stub_config(tmp_path: Any) -> Config:
    config = Config.defaults()
    config.auth.secret = "a"
    config.csrf.secret = "b"
    config.database.path = str(tmp_path / "tenantguard.db")
    return config


class TestCreateAppFactory:
    def test_create_app_returns_fastapi_instance(self) -> None:
        assert isinstance(create_app(), FastAPI)

    def test_independent_instances(self) -> None:
        assert create_app() is not create_app()

    def test_ready_false_before_lifespan(self) -> None:
        assert create_app().state.ready is False


class TestLifespan:
    async def test_startup_and_shutdown(self, tmp_path: Any, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("tenantguard.main.load_config", lambda: _stub_config(tmp_path))
        application = create_app()

        async with lifespan(application):
            state = application.state
            assert state.ready is True
            assert isinstance(state.config, Config)
            assert isinstance(state.counter_store, InMemoryCounterStore)
            assert isinstance(state.rate_limiter, RateLimiter)
            assert isinstance(state.login_tracker, LoginAttemptTracker)
            assert await state.audit_backend.health_check() is True
            assert (tmp_path / "tenantguard.db").exists()

        assert application.state.ready is False
        assert await application.state.audit_backend.health_check() is False

    async def test_bad_config_refuses_startup(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def _fail() -> Config:
            raise SystemExit(1)

        monkeypatch.setattr("tenantguard.main.load_config", _fail)
        with pytest.raises(SystemExit):
            async with lifespan(create_app()):
                pass


class TestHealth:
    async def _get_health(self, application: FastAPI):
        transport = ASGITransport(app=application)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            return await client.get("/health")

    async def test_503_before_ready(self) -> None:
        response = await self._get_health(create_app())
        assert response.status_code == 503
        assert response.json()["error"]["status"] == "starting"

    async def test_ok_when_ready(self, tmp_path: Any) -> None:
        config = _stub_config(tmp_path)
        await init_database(config.db_path)
        application = create_app()
        application.state.config = config
        application.state.audit_backend = NullAuditBackend()
        application.state.counter_store = InMemoryCounterStore()
        application.state.ready = True

        response = await self._get_health(application)
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] == "ok"
        assert body["audit"] == "ok"
        assert body["counter_store"] == "ok"
        assert body["counter_backend"] == "InMemoryCounterStore"
        assert body["environment"] == "development"

    async def test_degraded_when_counter_store_down(self, tmp_path: Any) -> None:
        store = AsyncMock()
        store.ping.return_value = False

        application = create_app()
        application.state.config = _stub_config(tmp_path)
        application.state.audit_backend = NullAuditBackend()
        application.state.counter_store = store
        application.state.ready = True

        response = await self._get_health(application)
        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["counter_store"] == "unavailable"

    async def test_missing_main_database_reported_even_when_audit_is_healthy(
        self, tmp_path: Any
    ) -> None:
        application = create_app()
        application.state.config = _stub_config(tmp_path)
        application.state.audit_backend = NullAuditBackend()
        application.state.counter_store = InMemoryCounterStore()
        application.state.ready = True

        response = await self._get_health(application)

        body = response.json()
        assert body["status"] == "degraded"
        assert body["database"] == "error"
        assert body["audit"] == "ok"
        assert not (tmp_path / "tenantguard.db").exists()


class TestCheckDatabase:
    async def test_initialized_database(self, tmp_path: Any) -> None:
        path = str(tmp_path / "tenantguard.db")
        await init_database(path)
        assert await check_database(path) is True

    async def test_missing_file_not_created(self, tmp_path: Any) -> None:
        path = tmp_path / "absent.db"
        assert await check_database(str(path)) is False
        assert not path.exists()

    async def test_file_without_schema(self, tmp_path: Any) -> None:
        path = tmp_path / "other.db"
        async with aiosqlite.connect(str(path)) as db:
            await db.execute("CREATE TABLE unrelated (id INTEGER)")
            await db.commit()
        assert await check_database(str(path)) is False
