"""TenantGuard FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()            → app.state.config
  2. init_database()          → schema for users / settings / api_keys
  3. create_audit_backend()   → app.state.audit_backend
  4. create_counter_store()   → app.state.counter_store (Redis or in-memory)
  5. RateLimiter()            → app.state.rate_limiter
  6. LoginAttemptTracker()    → app.state.login_tracker
  7. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → close counter store → close audit backend

Middleware (Starlette: the LAST added runs FIRST):
  SlowAPIMiddleware → GuardChainMiddleware → routes
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from tenantguard.api.auth import router as auth_router
from tenantguard.api.security import router as security_router
from tenantguard.api.users import router as users_router
from tenantguard.audit.factory import create_audit_backend
from tenantguard.auth.limiter import limiter
from tenantguard.auth.lockout import LoginAttemptTracker
from tenantguard.config import load_config
from tenantguard.db import init_database
from tenantguard.guards.chain import GuardChainMiddleware
from tenantguard.health import router as health_router
from tenantguard.ratelimit.limiter import RateLimiter
from tenantguard.ratelimit.store import create_counter_store
from tenantguard.utils.logger import get_logger

logger = get_logger(__name__)

_STATUS_CODES: dict[int, str] = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    429: "rate_limited",
    503: "unavailable",
}


def error_body(status_code: int, detail: Any) -> dict:
    """Normalize an HTTPException detail into ``{"error": {"message", "code"}}``."""
    if isinstance(detail, dict) and "message" in detail:
        return {"error": detail}
    if isinstance(detail, dict):
        return {"error": {"code": _STATUS_CODES.get(status_code, "error"), **detail}}
    return {
        "error": {
            "message": str(detail),
            "code": _STATUS_CODES.get(status_code, "error"),
        }
    }


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence.

    Raises:
        SystemExit(1): From load_config() on invalid configuration.
        RuntimeError: From init_database() on an incompatible schema.
    """
    config = load_config()
    app.state.config = config

    await init_database(config.db_path)

    audit_backend = await create_audit_backend(config)
    app.state.audit_backend = audit_backend

    counter_store = create_counter_store(config.redis.url, config.redis.socket_timeout_s)
    app.state.counter_store = counter_store
    if not await counter_store.ping():
        # Fail-open: the service starts, rate limiting resumes when the store is back.
        logger.warning("Counter store not reachable at startup — rate limiting fails open")

    app.state.rate_limiter = RateLimiter(counter_store, config.rate_limits)
    app.state.login_tracker = LoginAttemptTracker(counter_store)

    app.state.ready = True
    logger.info(
        "TenantGuard ready",
        environment=config.environment,
        host=config.server.host,
        port=config.server.port,
    )

    yield

    app.state.ready = False
    logger.info("TenantGuard shutting down")
    await counter_store.close()
    await audit_backend.close()


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the TenantGuard FastAPI application.

    Call this function directly in tests to get an isolated app instance and
    populate ``app.state`` by hand instead of running the lifespan.
    """
    # Swagger UI and ReDoc are disabled unless DEBUG=true.
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="TenantGuard",
        description="Request guard chain for multi-tenant SaaS APIs",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    application.state.ready = False

    # slowapi reads the admin endpoint limiter from app state.
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    application.add_middleware(GuardChainMiddleware)
    application.add_middleware(SlowAPIMiddleware)

    application.include_router(health_router)
    application.include_router(auth_router)
    application.include_router(users_router)
    application.include_router(security_router)

    # Global exception handlers
    @application.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status_code, exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning(
            "Request validation failed",
            path=str(request.url.path),
            errors=len(exc.errors()),
        )
        return JSONResponse(
            status_code=400,
            content={"error": {"message": "Invalid request", "code": "validation_error"}},
        )

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500,
            content={"error": {"message": "Internal server error", "code": "internal_error"}},
        )

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
