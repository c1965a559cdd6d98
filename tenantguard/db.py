"""SQLite schema for TenantGuard's relational data.

Tables:
  users              — credential store backing /api/auth/login
  security_settings  — one JSON document per organization
  api_keys           — SHA-256 hashes of service keys (plaintext never stored)

The audit log lives in the same file but is owned by
``tenantguard.audit.sqlite_backend.LocalSQLiteBackend``.

All access goes through aiosqlite with one short-lived connection per
operation and bound parameters only.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union

import aiosqlite

from tenantguard.utils.logger import get_logger

logger = get_logger(__name__)

_DEFAULT_DB_PATH: str = str(Path.home() / ".tenantguard" / "tenantguard.db")

_SCHEMA_VERSION = 1

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id                   TEXT PRIMARY KEY,
    email                TEXT NOT NULL UNIQUE,
    password_hash        TEXT NOT NULL,
    organization_id      TEXT,
    role                 TEXT NOT NULL DEFAULT 'user'
                         CHECK(role IN ('admin', 'manager', 'user')),
    password_history     TEXT NOT NULL DEFAULT '[]',
    password_changed_at  TEXT NOT NULL,
    created_at           TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS security_settings (
    organization_id  TEXT PRIMARY KEY,
    settings         TEXT NOT NULL,
    updated_by       TEXT,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS api_keys (
    id               TEXT PRIMARY KEY,
    organization_id  TEXT NOT NULL,
    name             TEXT NOT NULL,
    hashed_key       TEXT NOT NULL UNIQUE,
    scopes           TEXT NOT NULL DEFAULT '[]',
    expires_at       TEXT,
    last_used_at     TEXT,
    created_by       TEXT,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL,
    is_active        INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_api_keys_org ON api_keys (organization_id);
"""


def resolve_db_path(db_path: Optional[Union[str, Path]] = None) -> Path:
    """Resolve the database path from the argument or TENANTGUARD_DB_PATH."""
    if db_path is not None:
        return Path(os.path.expanduser(str(db_path)))
    env_path = os.environ.get("TENANTGUARD_DB_PATH")
    if env_path:
        return Path(os.path.expanduser(env_path))
    return Path(_DEFAULT_DB_PATH)


async def init_database(db_path: Optional[Union[str, Path]] = None) -> Path:
    """Create the schema if missing. Idempotent.

    Sets file permissions to 0o600 on every call.

    Raises:
        RuntimeError: If the file carries a newer schema version.
        OSError: If the parent directory cannot be created.
    """
    path = resolve_db_path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    async with aiosqlite.connect(str(path)) as db:
        await db.execute("PRAGMA journal_mode=WAL")
        cursor = await db.execute("PRAGMA user_version")
        row = await cursor.fetchone()
        version = row[0] if row else 0
        if version > _SCHEMA_VERSION:
            raise RuntimeError(
                f"Unsupported database schema version: {version}. "
                f"Delete {path} or upgrade TenantGuard."
            )
        await db.executescript(_CREATE_SCHEMA_SQL)
        await db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION}")
        await db.commit()

    os.chmod(path, 0o600)

    logger.debug("Database initialized", path=str(path))
    return path


async def check_database(db_path: Optional[Union[str, Path]] = None) -> bool:
    """Return True when the schema is readable. Never raises.

    Opens the file read-write without creating it, so a missing database
    reports unhealthy instead of being recreated empty.
    """
    path = resolve_db_path(db_path)
    try:
        async with aiosqlite.connect(f"file:{path}?mode=rw", uri=True) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM security_settings")
            await cursor.fetchone()
        return True
    except (aiosqlite.Error, OSError) as exc:
        logger.warning("Database health check failed", path=str(path), error=str(exc))
        return False
