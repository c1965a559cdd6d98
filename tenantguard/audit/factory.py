"""Audit backend factory.

The audit log shares the application database file (``config.db_path``).
TENANTGUARD_AUDIT_DB_PATH overrides it, e.g. to keep audit on a separate volume.
"""

from __future__ import annotations

import os

from tenantguard.audit.protocol import AuditBackend
from tenantguard.audit.sqlite_backend import LocalSQLiteBackend
from tenantguard.config import Config
from tenantguard.utils.logger import get_logger

logger = get_logger(__name__)

_ENV_AUDIT_DB_PATH = "TENANTGUARD_AUDIT_DB_PATH"


async def create_audit_backend(config: Config) -> AuditBackend:
    """Create and initialize the audit backend.

    Raises:
        OSError / aiosqlite.Error: If the database cannot be opened.
                                   Propagated to the lifespan, startup refused.
    """
    db_path = os.getenv(_ENV_AUDIT_DB_PATH) or config.db_path
    backend = LocalSQLiteBackend(db_path=db_path)
    await backend.initialize()

    logger.info(
        "audit_backend_selected",
        backend="LocalSQLiteBackend",
        db_path=db_path,
    )
    return backend
