"""Health endpoint for TenantGuard.

  GET /health — 503 before ``app.state.ready``; 200 afterwards with the state of
                the main database, the audit backend and the counter store.

A counter-store outage reports ``degraded``, not an error: the rate limiter
and lockout tracker fail open, so the service keeps serving.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from tenantguard.config import Config
from tenantguard.db import check_database

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Readiness plus dependency status.

    Response body (200):
        {
          "status": "ok" | "degraded",
          "environment": "development" | "production",
          "database": "ok" | "error",
          "audit": "ok" | "error",
          "counter_store": "ok" | "unavailable",
          "counter_backend": "RedisCounterStore" | "InMemoryCounterStore"
        }
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={"status": "starting", "message": "TenantGuard is starting up"},
        )

    config: Config = request.app.state.config
    counter_store = request.app.state.counter_store
    audit_backend = request.app.state.audit_backend

    database_ok = await check_database(config.db_path)
    audit_ok = await audit_backend.health_check()
    store_ok = await counter_store.ping()

    return {
        "status": "ok" if database_ok and audit_ok and store_ok else "degraded",
        "environment": config.environment,
        "database": "ok" if database_ok else "error",
        "audit": "ok" if audit_ok else "error",
        "counter_store": "ok" if store_ok else "unavailable",
        "counter_backend": type(counter_store).__name__,
    }
