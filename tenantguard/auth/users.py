"""Minimal user credential store (aiosqlite).

Backs the login and change-password endpoints. Password hashes are bcrypt;
``password_history`` keeps previous hashes newest first for reuse checks.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Union

import aiosqlite

from tenantguard.auth.passwords import (
    PasswordPolicyError,
    hash_password,
    is_reused,
    validate_password,
    verify_password,
)
from tenantguard.db import resolve_db_path
from tenantguard.settings.models import PasswordPolicy
from tenantguard.utils.logger import get_logger
from tenantguard.utils.ulid import generate_ulid

logger = get_logger(__name__)

VALID_ROLES: frozenset[str] = frozenset({"admin", "manager", "user"})

#: History entries kept regardless of policy (policy max is 24).
_MAX_HISTORY: int = 24


class InvalidCredentialsError(Exception):
    """Raised when an email/password pair does not match.

    HTTP mapping: 401 Unauthorized
    """

    def __init__(self, message: str = "Invalid credentials") -> None:
        super().__init__(message)
        self.message = message


@dataclass
class User:
    id: str
    email: str
    password_hash: str
    organization_id: Optional[str]
    role: str
    password_changed_at: datetime
    password_history: list[str] = field(default_factory=list)

    def password_expired(self, policy: PasswordPolicy, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now - self.password_changed_at > timedelta(days=policy.expiry_days)


def _row_to_user(row: aiosqlite.Row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        password_hash=row["password_hash"],
        organization_id=row["organization_id"],
        role=row["role"],
        password_changed_at=datetime.fromisoformat(row["password_changed_at"]),
        password_history=json.loads(row["password_history"]),
    )


async def _fetch_one(sql: str, params: tuple, path: Path) -> Optional[User]:
    async with aiosqlite.connect(str(path)) as db:
        db.row_factory = aiosqlite.Row
        async with db.execute(sql, params) as cursor:
            row = await cursor.fetchone()
    return _row_to_user(row) if row else None


async def get_user_by_email(
    email: str,
    db_path: Optional[Union[str, Path]] = None,
) -> Optional[User]:
    return await _fetch_one(
        "SELECT * FROM users WHERE email = ?",
        (email.strip().lower(),),
        resolve_db_path(db_path),
    )


async def get_user_by_id(
    user_id: str,
    db_path: Optional[Union[str, Path]] = None,
) -> Optional[User]:
    return await _fetch_one(
        "SELECT * FROM users WHERE id = ?", (user_id,), resolve_db_path(db_path)
    )


async def create_user(
    email: str,
    password: str,
    organization_id: Optional[str] = None,
    role: str = "user",
    policy: Optional[PasswordPolicy] = None,
    db_path: Optional[Union[str, Path]] = None,
) -> User:
    """Create a user after checking ``password`` against ``policy``.

    Raises:
        PasswordPolicyError: If the password violates the policy.
        ValueError: If ``role`` is unknown.
    """
    if role not in VALID_ROLES:
        raise ValueError(f"Unknown role: {role}")
    errors = validate_password(password, policy or PasswordPolicy())
    if errors:
        raise PasswordPolicyError(errors)

    now = datetime.now(timezone.utc)
    user = User(
        id=generate_ulid(),
        email=email.strip().lower(),
        password_hash=hash_password(password),
        organization_id=organization_id,
        role=role,
        password_changed_at=now,
    )

    path = resolve_db_path(db_path)
    async with aiosqlite.connect(str(path)) as db:
        await db.execute(
            "INSERT INTO users "
            "(id, email, password_hash, organization_id, role, password_history, "
            " password_changed_at, created_at) "
            "VALUES (?, ?, ?, ?, ?, '[]', ?, ?)",
            (
                user.id,
                user.email,
                user.password_hash,
                organization_id,
                role,
                now.isoformat(),
                now.isoformat(),
            ),
        )
        await db.commit()

    logger.info("User created", user_id=user.id, organization_id=organization_id, role=role)
    return user


async def authenticate_user(
    email: str,
    password: str,
    db_path: Optional[Union[str, Path]] = None,
) -> User:
    """Return the user for a matching email/password pair.

    Raises:
        InvalidCredentialsError: Unknown email or wrong password.
    """
    user = await get_user_by_email(email, db_path)
    if user is None or not verify_password(password, user.password_hash):
        raise InvalidCredentialsError()
    return user


async def change_password(
    user_id: str,
    current_password: str,
    new_password: str,
    policy: PasswordPolicy,
    db_path: Optional[Union[str, Path]] = None,
) -> User:
    """Replace a user's password, enforcing policy and reuse history.

    Raises:
        InvalidCredentialsError: Unknown user or wrong current password.
        PasswordPolicyError: New password violates policy or reuses a recent one.
    """
    path = resolve_db_path(db_path)
    user = await get_user_by_id(user_id, path)
    if user is None or not verify_password(current_password, user.password_hash):
        raise InvalidCredentialsError("Current password is incorrect")

    errors = validate_password(new_password, policy)
    if errors:
        raise PasswordPolicyError(errors)
    recent = [user.password_hash] + user.password_history
    if is_reused(new_password, recent, policy.prevent_reuse_count):
        raise PasswordPolicyError(
            [f"Password was used in the last {policy.prevent_reuse_count} changes"]
        )

    now = datetime.now(timezone.utc)
    user.password_history = recent[:_MAX_HISTORY]
    user.password_hash = hash_password(new_password)
    user.password_changed_at = now

    async with aiosqlite.connect(str(path)) as db:
        await db.execute(
            "UPDATE users SET password_hash = ?, password_history = ?, "
            "password_changed_at = ? WHERE id = ?",
            (user.password_hash, json.dumps(user.password_history), now.isoformat(), user.id),
        )
        await db.commit()

    logger.info("Password changed", user_id=user.id)
    return user
