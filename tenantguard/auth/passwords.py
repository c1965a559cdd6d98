"""Password hashing (bcrypt) and organization password-policy checks."""

from __future__ import annotations

import re

import bcrypt

from tenantguard.settings.models import PasswordPolicy

#: bcrypt cost factor
_BCRYPT_ROUNDS: int = 12

_UPPER_RE = re.compile(r"[A-Z]")
_LOWER_RE = re.compile(r"[a-z]")
_DIGIT_RE = re.compile(r"\d")
_SYMBOL_RE = re.compile(r"[^A-Za-z0-9]")


class PasswordPolicyError(Exception):
    """Raised when a password violates the organization policy.

    HTTP mapping: 400 Bad Request with the list of violations.
    """

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode(), salt).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Malformed stored hash
        return False


def validate_password(password: str, policy: PasswordPolicy) -> list[str]:
    """Return every policy violation (empty list = acceptable)."""
    errors: list[str] = []
    if len(password) < policy.min_length:
        errors.append(f"Password must be at least {policy.min_length} characters")
    if len(password) > policy.max_length:
        errors.append(f"Password must be at most {policy.max_length} characters")
    if policy.require_uppercase and not _UPPER_RE.search(password):
        errors.append("Password must contain an uppercase letter")
    if policy.require_lowercase and not _LOWER_RE.search(password):
        errors.append("Password must contain a lowercase letter")
    if policy.require_numbers and not _DIGIT_RE.search(password):
        errors.append("Password must contain a number")
    if policy.require_symbols and not _SYMBOL_RE.search(password):
        errors.append("Password must contain a symbol")
    return errors


def is_reused(password: str, history: list[str], prevent_reuse_count: int) -> bool:
    """True if ``password`` matches one of the last ``prevent_reuse_count`` hashes.

    ``history`` is ordered newest first.
    """
    return any(verify_password(password, old) for old in history[:prevent_reuse_count])
