"""Organization security settings — models and aiosqlite store."""

from tenantguard.settings.models import (
    PasswordPolicy,
    SecuritySettings,
    SecuritySettingsUpdate,
)
from tenantguard.settings.store import (
    get_effective_settings,
    get_security_settings,
    upsert_security_settings,
)

__all__ = [
    "PasswordPolicy",
    "SecuritySettings",
    "SecuritySettingsUpdate",
    "get_effective_settings",
    "get_security_settings",
    "upsert_security_settings",
]
