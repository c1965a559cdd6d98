"""Per-organization security settings.

Serialized with camelCase field names (``mfaRequired``, ``ipAllowlist`` ...)
both in the API and in the stored JSON document. Python code uses the
snake_case attribute names.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from tenantguard.constants import (
    DEFAULT_LOCKOUT_MINUTES,
    DEFAULT_MAX_LOGIN_ATTEMPTS,
    DEFAULT_SESSION_TIMEOUT_HOURS,
)
from tenantguard.utils.net import is_valid_allowlist_entry


def _clean_allowlist(entries: list[str]) -> list[str]:
    cleaned = [entry.strip() for entry in entries]
    invalid = [entry for entry in cleaned if not is_valid_allowlist_entry(entry)]
    if invalid:
        raise ValueError(f"Invalid IP or CIDR entries: {invalid}")
    return cleaned


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PasswordPolicy(_CamelModel):
    min_length: int = Field(default=8, ge=8, le=128)
    max_length: int = Field(default=128, ge=8, le=128)
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_numbers: bool = True
    require_symbols: bool = True
    prevent_reuse_count: int = Field(default=3, ge=1, le=24)
    expiry_days: int = Field(default=90, ge=1, le=365)

    @model_validator(mode="after")
    def _check_bounds(self) -> "PasswordPolicy":
        if self.min_length > self.max_length:
            raise ValueError("minLength must not exceed maxLength")
        return self


class SecuritySettings(_CamelModel):
    """Organization security policy. Absence of a stored row means "no restrictions"."""

    mfa_required: bool = False
    password_policy: PasswordPolicy = Field(default_factory=PasswordPolicy)
    ip_allowlist: list[str] = Field(default_factory=list)
    session_timeout: int = Field(default=DEFAULT_SESSION_TIMEOUT_HOURS, ge=1, le=72)
    max_login_attempts: int = Field(default=DEFAULT_MAX_LOGIN_ATTEMPTS, ge=1, le=10)
    lockout_duration: int = Field(default=DEFAULT_LOCKOUT_MINUTES, ge=1, le=60)

    @field_validator("ip_allowlist")
    @classmethod
    def _check_allowlist(cls, entries: list[str]) -> list[str]:
        return _clean_allowlist(entries)


class SecuritySettingsUpdate(_CamelModel):
    """Partial update body for PUT /api/organizations/security/settings.

    Only fields present in the request are applied; ``passwordPolicy`` is
    replaced as a whole when given.
    """

    mfa_required: Optional[bool] = None
    password_policy: Optional[PasswordPolicy] = None
    ip_allowlist: Optional[list[str]] = None
    session_timeout: Optional[int] = Field(default=None, ge=1, le=72)
    max_login_attempts: Optional[int] = Field(default=None, ge=1, le=10)
    lockout_duration: Optional[int] = Field(default=None, ge=1, le=60)

    @field_validator("ip_allowlist")
    @classmethod
    def _check_allowlist(cls, entries: Optional[list[str]]) -> Optional[list[str]]:
        if entries is None:
            return None
        return _clean_allowlist(entries)

    def apply_to(self, current: SecuritySettings) -> SecuritySettings:
        merged = current.model_dump()
        merged.update(self.model_dump(exclude_unset=True, exclude_none=True))
        return SecuritySettings.model_validate(merged)
