"""Guard chain middleware for ``/api/**``.

Runs the guards in order and stops at the first rejection:

  1. InjectionGuard        — SQL-injection triage on query + JSON body
  2. SessionGuard          — session JWT, org IP allowlist, user-agent policy
  3. ApiKeyGuard           — hashed API key, organization binding
  4. CsrfGuard             — double-submit token for mutating methods
  5. SecurityHeadersGuard  — org allowlist for every caller, hardening headers
  6. RateLimitGuard        — tiered fixed window, fails open

Paths outside ``/api/`` bypass the chain. Any exception raised by a guard
becomes a generic 500; the traceback goes to the server log only.

Collaborators are read from ``app.state`` per request (``config``,
``rate_limiter``, ``audit_backend``) so tests can swap them without a lifespan.
"""

from __future__ import annotations

from typing import Optional, Sequence

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from tenantguard.constants import API_PREFIX, ORGANIZATION_HEADER, REQUEST_ID_HEADER
from tenantguard.guards.api_key import ApiKeyGuard
from tenantguard.guards.base import Guard, GuardContext
from tenantguard.guards.csrf import CsrfGuard
from tenantguard.guards.injection import InjectionGuard
from tenantguard.guards.rate_limit import RateLimitGuard
from tenantguard.guards.security_headers import SecurityHeadersGuard
from tenantguard.guards.session import SessionGuard
from tenantguard.models.rejection import build_internal_error_response, build_rejection_response
from tenantguard.ratelimit.limiter import RateLimiter
from tenantguard.utils.logger import clear_request_id, get_logger, set_request_id
from tenantguard.utils.net import get_client_ip
from tenantguard.utils.ulid import generate_ulid

logger = get_logger(__name__)


def build_default_guards(limiter: RateLimiter) -> list[Guard]:
    return [
        InjectionGuard(),
        SessionGuard(),
        ApiKeyGuard(),
        CsrfGuard(),
        SecurityHeadersGuard(),
        RateLimitGuard(limiter),
    ]


def strip_request_header(request: Request, name: str) -> None:
    """Remove a client-supplied header before anything reads it."""
    raw_name = name.lower().encode("latin-1")
    request.scope["headers"] = [
        (k, v) for k, v in request.scope["headers"] if k.lower() != raw_name
    ]


class GuardChainMiddleware(BaseHTTPMiddleware):
    """Apply the guard chain to every ``/api/`` request.

    ``guards`` overrides the default chain (tests); otherwise it is built once
    from ``app.state.rate_limiter`` on first use.
    """

    def __init__(self, app, guards: Optional[Sequence[Guard]] = None) -> None:
        super().__init__(app)
        self._guards: Optional[list[Guard]] = list(guards) if guards is not None else None

    def _resolve_guards(self, request: Request) -> list[Guard]:
        if self._guards is None:
            self._guards = build_default_guards(request.app.state.rate_limiter)
        return self._guards

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        if not request.url.path.startswith(API_PREFIX):
            return await call_next(request)

        # Organization context is set by the chain only, never by the client.
        strip_request_header(request, ORGANIZATION_HEADER)

        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_ulid()
        set_request_id(request_id)
        try:
            return await self._run(request, call_next, request_id)
        finally:
            clear_request_id()

    async def _run(self, request: Request, call_next, request_id: str) -> Response:
        state = request.app.state
        config = state.config
        ctx = GuardContext(
            request=request,
            config=config,
            client_ip=get_client_ip(request, config.server.trust_proxy_headers),
            db_path=config.db_path,
            audit_backend=getattr(state, "audit_backend", None),
        )

        guard_name = "setup"
        try:
            for guard in self._resolve_guards(request):
                guard_name = guard.name
                rejection = await guard.check(ctx)
                if rejection is not None:
                    response = build_rejection_response(rejection)
                    response.headers[REQUEST_ID_HEADER] = request_id
                    return response
        except Exception:
            logger.error(
                "Guard failed with unexpected exception",
                guard=guard_name,
                path=ctx.path,
                identity=ctx.identity,
                exc_info=True,
            )
            response = build_internal_error_response()
            response.headers[REQUEST_ID_HEADER] = request_id
            return response

        response = await call_next(request)
        for name, value in ctx.response_headers.items():
            response.headers[name] = value
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
