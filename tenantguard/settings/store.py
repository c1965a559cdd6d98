"""Security settings persistence (aiosqlite).

Rows are created lazily by upsert and never deleted. A missing row is
reported as ``None``; callers treat that as "no restrictions".
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

import aiosqlite

from tenantguard.db import resolve_db_path
from tenantguard.settings.models import SecuritySettings
from tenantguard.utils.logger import get_logger

logger = get_logger(__name__)


async def get_security_settings(
    organization_id: str,
    db_path: Optional[Union[str, Path]] = None,
) -> Optional[SecuritySettings]:
    """Return the stored settings for ``organization_id`` or None."""
    path = resolve_db_path(db_path)
    async with aiosqlite.connect(str(path)) as db:
        async with db.execute(
            "SELECT settings FROM security_settings WHERE organization_id = ?",
            (organization_id,),
        ) as cursor:
            row = await cursor.fetchone()
    if row is None:
        return None
    return SecuritySettings.model_validate_json(row[0])


async def get_effective_settings(
    organization_id: Optional[str],
    db_path: Optional[Union[str, Path]] = None,
) -> SecuritySettings:
    """Stored settings, or the defaults when the org has none."""
    if organization_id:
        stored = await get_security_settings(organization_id, db_path)
        if stored is not None:
            return stored
    return SecuritySettings()


async def upsert_security_settings(
    organization_id: str,
    settings: SecuritySettings,
    updated_by: Optional[str] = None,
    db_path: Optional[Union[str, Path]] = None,
) -> SecuritySettings:
    """Create or replace the settings document for ``organization_id``."""
    path = resolve_db_path(db_path)
    now = datetime.now(timezone.utc).isoformat()
    document = settings.model_dump_json(by_alias=True)

    async with aiosqlite.connect(str(path)) as db:
        await db.execute(
            "INSERT INTO security_settings "
            "(organization_id, settings, updated_by, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(organization_id) DO UPDATE SET "
            "settings = excluded.settings, "
            "updated_by = excluded.updated_by, "
            "updated_at = excluded.updated_at",
            (organization_id, document, updated_by, now, now),
        )
        await db.commit()

    logger.info("Security settings saved", organization_id=organization_id, updated_by=updated_by)
    return settings
