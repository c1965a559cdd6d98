"""API-key authentication for service callers.

A valid key binds the request to the key's organization: the trusted
``X-Organization-Id`` header is stamped onto the request for downstream
handlers. The chain strips any client-supplied value first.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from tenantguard.auth.keys import touch_last_used, validate_api_key
from tenantguard.constants import (
    API_KEY_HEADER,
    AUTH_PATH_PREFIX,
    ORGANIZATION_HEADER,
    WEBHOOK_PATH_PREFIX,
)
from tenantguard.guards.base import GuardContext
from tenantguard.models.rejection import Rejection
from tenantguard.utils.logger import get_logger

logger = get_logger(__name__)

# Strong references for pending lastUsedAt updates.
_pending: set[asyncio.Task] = set()


def set_request_header(ctx: GuardContext, name: str, value: str) -> None:
    """Replace header ``name`` on the ASGI scope seen by downstream handlers."""
    raw_name = name.lower().encode("latin-1")
    headers = [(k, v) for k, v in ctx.request.scope["headers"] if k.lower() != raw_name]
    headers.append((raw_name, value.encode("latin-1")))
    ctx.request.scope["headers"] = headers


class ApiKeyGuard:
    name = "api_key"

    async def check(self, ctx: GuardContext) -> Optional[Rejection]:
        if ctx.path.startswith(AUTH_PATH_PREFIX) or ctx.path.startswith(WEBHOOK_PATH_PREFIX):
            return None

        plaintext = ctx.request.headers.get(API_KEY_HEADER)
        if not plaintext:
            return None

        api_key = await validate_api_key(plaintext, ctx.db_path)
        if api_key is None:
            logger.warning("Request rejected: invalid API key", path=ctx.path, identity=ctx.identity)
            ctx.audit("security_alert", "medium", reason="invalid_api_key")
            return Rejection.unauthorized("Invalid or inactive API key", code="invalid_api_key")

        ctx.api_key = api_key
        if ctx.session is None:
            ctx.organization_id = api_key.organization_id
        elif ctx.session.organization_id != api_key.organization_id:
            logger.warning(
                "Request rejected: API key organization does not match session",
                path=ctx.path,
                identity=ctx.identity,
                key_id=api_key.id,
            )
            return Rejection.forbidden("API key does not belong to this organization", code="organization_mismatch")

        set_request_header(ctx, ORGANIZATION_HEADER, api_key.organization_id)
        ctx.request.state.api_key = api_key

        task = asyncio.create_task(touch_last_used(api_key.id, ctx.db_path))
        _pending.add(task)
        task.add_done_callback(_pending.discard)
        return None
