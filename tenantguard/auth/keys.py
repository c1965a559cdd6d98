"""Organization API key store.

Implements:
  - create_api_key()    — generate tg-<ULID>.<secret>, store SHA-256 hash only
  - validate_api_key()  — hash lookup; active + unexpired keys only
  - touch_last_used()   — lastUsedAt update (call sites fire-and-forget)
  - list_api_keys()     — org keys without hashes
  - revoke_api_key()    — flip is_active=0

Plaintext keys are returned exactly once by create_api_key() and never
persisted. Keys carry 192 bits of randomness, so a fast unsalted SHA-256 is
sufficient for lookup; bcrypt is reserved for user passwords.
"""

from __future__ import annotations

import hashlib
import json
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

import aiosqlite

from tenantguard.db import resolve_db_path
from tenantguard.utils.logger import get_logger
from tenantguard.utils.ulid import generate_ulid

logger = get_logger(__name__)

KEY_PREFIX: str = "tg-"

#: Random part of the key, in bytes (base64url-encoded on the wire).
_SECRET_BYTES: int = 24


class InvalidKeyError(Exception):
    """Raised when an operation references a key that is absent or already revoked.

    HTTP mapping: 404 Not Found (revoke)
    """

    def __init__(self, message: str = "API key not found") -> None:
        super().__init__(message)
        self.message = message


@dataclass
class ApiKey:
    id: str
    organization_id: str
    name: str
    hashed_key: str
    scopes: list[str] = field(default_factory=list)
    is_active: bool = True
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or datetime.now(timezone.utc))

    def to_public_dict(self) -> dict[str, Any]:
        """API representation. The hash is never included."""
        return {
            "id": self.id,
            "organizationId": self.organization_id,
            "name": self.name,
            "scopes": self.scopes,
            "isActive": self.is_active,
            "expiresAt": _iso(self.expires_at),
            "lastUsedAt": _iso(self.last_used_at),
            "createdBy": self.created_by,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def hash_api_key(plaintext: str) -> str:
    """SHA-256 hex digest used as the lookup key."""
    return hashlib.sha256(plaintext.encode()).hexdigest()


_SELECT_COLUMNS = (
    "id, organization_id, name, hashed_key, scopes, is_active, expires_at, "
    "last_used_at, created_by, created_at, updated_at"
)


def _row_to_api_key(row: aiosqlite.Row) -> ApiKey:
    return ApiKey(
        id=row["id"],
        organization_id=row["organization_id"],
        name=row["name"],
        hashed_key=row["hashed_key"],
        scopes=json.loads(row["scopes"]),
        is_active=bool(row["is_active"]),
        expires_at=_parse_dt(row["expires_at"]),
        last_used_at=_parse_dt(row["last_used_at"]),
        created_by=row["created_by"],
        created_at=_parse_dt(row["created_at"]),
        updated_at=_parse_dt(row["updated_at"]),
    )


# ─── Creation ─────────────────────────────────────────────────────────────────


async def create_api_key(
    organization_id: str,
    name: str,
    created_by: Optional[str] = None,
    scopes: Optional[list[str]] = None,
    expires_at: Optional[datetime] = None,
    db_path: Optional[Union[str, Path]] = None,
) -> tuple[str, ApiKey]:
    """Generate a key for ``organization_id`` and store its hash.

    Returns:
        (plaintext_key, api_key) — show plaintext_key ONCE.
    """
    if expires_at is not None and expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    key_id = generate_ulid()
    plaintext = f"{KEY_PREFIX}{key_id}.{secrets.token_urlsafe(_SECRET_BYTES)}"
    now = datetime.now(timezone.utc)

    api_key = ApiKey(
        id=key_id,
        organization_id=organization_id,
        name=name,
        hashed_key=hash_api_key(plaintext),
        scopes=list(scopes or []),
        expires_at=expires_at,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )

    path = resolve_db_path(db_path)
    async with aiosqlite.connect(str(path)) as db:
        await db.execute(
            "INSERT INTO api_keys "
            "(id, organization_id, name, hashed_key, scopes, expires_at, "
            " created_by, created_at, updated_at, is_active) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1)",
            (
                api_key.id,
                organization_id,
                name,
                api_key.hashed_key,
                json.dumps(api_key.scopes),
                _iso(expires_at),
                created_by,
                now.isoformat(),
                now.isoformat(),
            ),
        )
        await db.commit()

    logger.info("API key created", organization_id=organization_id, key_id=key_id)
    return plaintext, api_key


# ─── Lookup ───────────────────────────────────────────────────────────────────


async def get_api_key_by_hash(
    hashed_key: str,
    db_path: Optional[Union[str, Path]] = None,
) -> Optional[ApiKey]:
    path = resolve_db_path(db_path)
    async with aiosqlite.connect(str(path)) as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(
            f"SELECT {_SELECT_COLUMNS} FROM api_keys WHERE hashed_key = ?",
            (hashed_key,),
        ) as cursor:
            row = await cursor.fetchone()
    return _row_to_api_key(row) if row else None


async def validate_api_key(
    plaintext: str,
    db_path: Optional[Union[str, Path]] = None,
) -> Optional[ApiKey]:
    """Return the ApiKey for ``plaintext`` if it exists, is active and unexpired."""
    if not plaintext:
        return None
    api_key = await get_api_key_by_hash(hash_api_key(plaintext), db_path)
    if api_key is None or not api_key.is_active or api_key.is_expired():
        return None
    return api_key


async def touch_last_used(
    key_id: str,
    db_path: Optional[Union[str, Path]] = None,
) -> None:
    """Stamp last_used_at. Fire-and-forget: failures are logged, never raised."""
    try:
        now = datetime.now(timezone.utc).isoformat()
        path = resolve_db_path(db_path)
        async with aiosqlite.connect(str(path)) as db:
            await db.execute(
                "UPDATE api_keys SET last_used_at = ? WHERE id = ?",
                (now, key_id),
            )
            await db.commit()
    except Exception as exc:
        logger.warning("Failed to update last_used_at", key_id=key_id, error=str(exc))


# ─── Admin operations ─────────────────────────────────────────────────────────


async def list_api_keys(
    organization_id: str,
    db_path: Optional[Union[str, Path]] = None,
) -> list[ApiKey]:
    """All keys of the organization, newest first."""
    path = resolve_db_path(db_path)
    async with aiosqlite.connect(str(path)) as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(
            f"SELECT {_SELECT_COLUMNS} FROM api_keys "
            "WHERE organization_id = ? ORDER BY created_at DESC",
            (organization_id,),
        ) as cursor:
            rows = await cursor.fetchall()
    return [_row_to_api_key(row) for row in rows]


async def revoke_api_key(
    organization_id: str,
    key_id: str,
    db_path: Optional[Union[str, Path]] = None,
) -> None:
    """Deactivate a key belonging to ``organization_id``.

    Raises:
        InvalidKeyError: If no such key exists in the organization.
    """
    now = datetime.now(timezone.utc).isoformat()
    path = resolve_db_path(db_path)
    async with aiosqlite.connect(str(path)) as db:
        cursor = await db.execute(
            "UPDATE api_keys SET is_active = 0, updated_at = ? "
            "WHERE id = ? AND organization_id = ?",
            (now, key_id, organization_id),
        )
        await db.commit()
        if cursor.rowcount == 0:
            raise InvalidKeyError()

    logger.info("API key revoked", organization_id=organization_id, key_id=key_id)
