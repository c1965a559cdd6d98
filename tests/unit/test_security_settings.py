"""Unit tests for tenantguard/settings — pydantic models and the aiosqlite store."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from tenantguard.settings import (
    PasswordPolicy,
    SecuritySettings,
    SecuritySettingsUpdate,
    get_effective_settings,
    get_security_settings,
    upsert_security_settings,
)


class TestSecuritySettingsModel:
    def test_defaults(self) -> None:
        settings = SecuritySettings()
        assert settings.ip_allowlist == []
        assert settings.session_timeout == 24
        assert settings.max_login_attempts == 5
        assert settings.lockout_duration == 15
        assert settings.password_policy.min_length == 8

    def test_camel_case_serialization(self) -> None:
        dumped = SecuritySettings().model_dump(by_alias=True)
        assert "ipAllowlist" in dumped
        assert "maxLoginAttempts" in dumped
        assert "minLength" in dumped["passwordPolicy"]

    def test_accepts_camel_case_input(self) -> None:
        settings = SecuritySettings.model_validate({"ipAllowlist": ["10.0.0.0/8"], "sessionTimeout": 8})
        assert settings.ip_allowlist == ["10.0.0.0/8"]
        assert settings.session_timeout == 8

    @pytest.mark.parametrize(
        "field,value",
        [
            ("sessionTimeout", 0),
            ("sessionTimeout", 73),
            ("maxLoginAttempts", 11),
            ("lockoutDuration", 61),
        ],
    )
    def test_ranges(self, field: str, value: int) -> None:
        with pytest.raises(ValidationError):
            SecuritySettings.model_validate({field: value})

    def test_invalid_allowlist_entry(self) -> None:
        with pytest.raises(ValidationError):
            SecuritySettings.model_validate({"ipAllowlist": ["10.0.0.1", "not-an-ip"]})

    def test_password_policy_bounds(self) -> None:
        with pytest.raises(ValidationError):
            PasswordPolicy(min_length=7)
        with pytest.raises(ValidationError):
            PasswordPolicy(min_length=20, max_length=10)
        with pytest.raises(ValidationError):
            PasswordPolicy(prevent_reuse_count=25)


class TestSecuritySettingsUpdate:
    def test_partial_update_keeps_other_fields(self) -> None:
        current = SecuritySettings(session_timeout=8, ip_allowlist=["10.0.0.1"])
        update = SecuritySettingsUpdate.model_validate({"maxLoginAttempts": 3})

        merged = update.apply_to(current)
        assert merged.max_login_attempts == 3
        assert merged.session_timeout == 8
        assert merged.ip_allowlist == ["10.0.0.1"]

    def test_empty_allowlist_clears_restriction(self) -> None:
        current = SecuritySettings(ip_allowlist=["10.0.0.1"])
        merged = SecuritySettingsUpdate.model_validate({"ipAllowlist": []}).apply_to(current)
        assert merged.ip_allowlist == []

    def test_update_validates_ranges(self) -> None:
        with pytest.raises(ValidationError):
            SecuritySettingsUpdate.model_validate({"sessionTimeout": 100})

    def test_update_validates_allowlist(self) -> None:
        with pytest.raises(ValidationError):
            SecuritySettingsUpdate.model_validate({"ipAllowlist": ["300.1.1.1"]})


class TestSettingsStore:
    async def test_missing_settings(self, db_path: str) -> None:
        assert await get_security_settings("org_1", db_path) is None
        effective = await get_effective_settings("org_1", db_path)
        assert effective == SecuritySettings()

    async def test_effective_without_org(self, db_path: str) -> None:
        assert await get_effective_settings(None, db_path) == SecuritySettings()

    async def test_upsert_creates_then_replaces(self, db_path: str) -> None:
        await upsert_security_settings(
            "org_1", SecuritySettings(ip_allowlist=["10.0.0.1"]), updated_by="user_1", db_path=db_path
        )
        stored = await get_security_settings("org_1", db_path)
        assert stored is not None
        assert stored.ip_allowlist == ["10.0.0.1"]

        await upsert_security_settings(
            "org_1", SecuritySettings(session_timeout=4), updated_by="user_1", db_path=db_path
        )
        stored = await get_security_settings("org_1", db_path)
        assert stored is not None
        assert stored.ip_allowlist == []
        assert stored.session_timeout == 4

    async def test_settings_are_per_organization(self, db_path: str) -> None:
        await upsert_security_settings("org_1", SecuritySettings(ip_allowlist=["10.0.0.1"]), db_path=db_path)
        assert await get_security_settings("org_2", db_path) is None
