"""TenantGuard request guards and the chain middleware."""

from tenantguard.guards.api_key import ApiKeyGuard
from tenantguard.guards.base import Guard, GuardContext, hardening_headers
from tenantguard.guards.chain import GuardChainMiddleware, build_default_guards
from tenantguard.guards.csrf import (
    CsrfGuard,
    generate_csrf_token,
    hash_csrf_token,
    set_csrf_cookie,
    verify_csrf_token,
)
from tenantguard.guards.injection import InjectionGuard, contains_sql_injection
from tenantguard.guards.rate_limit import RateLimitGuard
from tenantguard.guards.security_headers import SecurityHeadersGuard
from tenantguard.guards.session import SessionGuard

__all__ = [
    "ApiKeyGuard",
    "CsrfGuard",
    "Guard",
    "GuardChainMiddleware",
    "GuardContext",
    "InjectionGuard",
    "RateLimitGuard",
    "SecurityHeadersGuard",
    "SessionGuard",
    "build_default_guards",
    "contains_sql_injection",
    "generate_csrf_token",
    "hardening_headers",
    "hash_csrf_token",
    "set_csrf_cookie",
    "verify_csrf_token",
]
