"""Programmatic uvicorn entry point for TenantGuard.

Reads host and port from the loaded config (127.0.0.1:8000 by default) and
starts uvicorn with hardened defaults:

  --limit-concurrency 100  Max concurrent connections; HTTP 503 when exceeded
  --backlog 50             OS connection queue depth
  --timeout-keep-alive 5   Short keep-alive window (Slow Loris exposure)

Usage:
    python -m tenantguard.run
    tenantguard                 # via pyproject.toml [project.scripts]

Set server.trust_proxy_headers: true only when a reverse proxy that
overwrites X-Forwarded-For sits in front of the service.
"""

from __future__ import annotations

import uvicorn

from tenantguard.config import load_config

UVICORN_LIMIT_CONCURRENCY: int = 100

UVICORN_BACKLOG: int = 50

UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start TenantGuard with hardened uvicorn defaults.

    Raises:
        SystemExit: Propagated from load_config() on config errors.
    """
    config = load_config()

    uvicorn.run(
        "tenantguard.main:app",
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
        proxy_headers=config.server.trust_proxy_headers,
    )


if __name__ == "__main__":
    main()
