"""Unit tests for tenantguard/auth/middleware.py.

Verifies:
  - authenticate_request() prefers the session the guard chain stored
  - falls back to verifying the token itself, 401 when there is none
  - require_admin(): 404 without organization, 403 for non-admins
"""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Optional

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from tenantguard.auth.middleware import authenticate_request, require_admin
from tenantguard.auth.session import Session, create_session_token
from tenantguard.config import Config

pytestmark = pytest.mark.asyncio


def _config() -> Config:
    config = Config.defaults()
    config.auth.secret = "middleware-test-secret"
    return config


def _request(config: Config, headers: Optional[dict[str, str]] = None, session: Any = None) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/settings",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "app": SimpleNamespace(state=SimpleNamespace(config=config)),
        "state": {},
    }
    request = Request(scope)
    if session is not None:
        request.state.session = session
    return request


class TestAuthenticateRequest:
    async def test_uses_session_from_chain(self) -> None:
        session = Session(user_id="user_1", organization_id="org_1", role="admin")
        result = await authenticate_request(_request(_config(), session=session))
        assert result is session

    async def test_verifies_bearer_token(self) -> None:
        config = _config()
        token = create_session_token(config.auth, "user_2", "org_2", "user")

        result = await authenticate_request(_request(config, {"Authorization": f"Bearer {token}"}))

        assert result.user_id == "user_2"
        assert result.organization_id == "org_2"

    async def test_missing_token(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await authenticate_request(_request(_config()))
        assert exc_info.value.status_code == 401

    async def test_garbage_token(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await authenticate_request(_request(_config(), {"Authorization": "Bearer not-a-jwt"}))
        assert exc_info.value.status_code == 401


class TestRequireAdmin:
    async def test_admin_allowed(self) -> None:
        session = Session(user_id="user_1", organization_id="org_1", role="admin")
        assert await require_admin(_request(_config(), session=session)) is session

    async def test_no_organization(self) -> None:
        session = Session(user_id="user_1", organization_id=None, role="admin")
        with pytest.raises(HTTPException) as exc_info:
            await require_admin(_request(_config(), session=session))
        assert exc_info.value.status_code == 404

    async def test_non_admin(self) -> None:
        session = Session(user_id="user_1", organization_id="org_1", role="manager")
        with pytest.raises(HTTPException) as exc_info:
            await require_admin(_request(_config(), session=session))
        assert exc_info.value.status_code == 403

    async def test_no_session(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await require_admin(_request(_config()))
        assert exc_info.value.status_code == 401
