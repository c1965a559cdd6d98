"""TenantGuard authentication package.

Public API:
  - create_api_key() / validate_api_key() / revoke_api_key() / list_api_keys()
  - create_session_token() / resolve_session() — HS256 session JWTs
  - create_user() / authenticate_user() / change_password()
  - LoginAttemptTracker — failed-login lockout in the counter store
  - authenticate_request() / require_admin() — FastAPI dependencies
"""

from __future__ import annotations

from tenantguard.auth.keys import (
    ApiKey,
    InvalidKeyError,
    create_api_key,
    hash_api_key,
    list_api_keys,
    revoke_api_key,
    touch_last_used,
    validate_api_key,
)
from tenantguard.auth.lockout import AccountLockedError, LoginAttemptTracker
from tenantguard.auth.middleware import authenticate_request, require_admin
from tenantguard.auth.passwords import PasswordPolicyError, hash_password, verify_password
from tenantguard.auth.session import (
    Session,
    create_session_token,
    decode_session_token,
    resolve_session,
)
from tenantguard.auth.users import (
    InvalidCredentialsError,
    User,
    authenticate_user,
    change_password,
    create_user,
)

__all__ = [
    "AccountLockedError",
    "ApiKey",
    "InvalidCredentialsError",
    "InvalidKeyError",
    "LoginAttemptTracker",
    "PasswordPolicyError",
    "Session",
    "User",
    "authenticate_request",
    "authenticate_user",
    "change_password",
    "create_api_key",
    "create_session_token",
    "create_user",
    "decode_session_token",
    "hash_api_key",
    "hash_password",
    "list_api_keys",
    "require_admin",
    "resolve_session",
    "revoke_api_key",
    "touch_last_used",
    "validate_api_key",
    "verify_password",
]
