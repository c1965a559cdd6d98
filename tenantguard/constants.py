"""Shared constants for TenantGuard.

Header names, path prefixes, method sets and default limits used across the
guard chain. No magic strings in other modules — import from here.
"""

# ─── Path prefixes ────────────────────────────────────────────────────────────

# Only requests under this prefix pass through the guard chain.
API_PREFIX: str = "/api/"

# Authentication endpoints (login, CSRF issuance, callbacks). Skipped by the
# injection, session and API-key guards.
AUTH_PATH_PREFIX: str = "/api/auth"

# Webhook receivers authenticate by signature, never by API key.
WEBHOOK_PATH_PREFIX: str = "/api/webhooks"

# ─── Header and cookie names ──────────────────────────────────────────────────

API_KEY_HEADER: str = "x-api-key"
ORGANIZATION_HEADER: str = "x-organization-id"
CSRF_HEADER: str = "x-csrf-token"
REQUEST_ID_HEADER: str = "x-request-id"

DEFAULT_CSRF_COOKIE: str = "csrf_token"
DEFAULT_SESSION_COOKIE: str = "session_token"

RATE_LIMIT_LIMIT_HEADER: str = "X-RateLimit-Limit"
RATE_LIMIT_REMAINING_HEADER: str = "X-RateLimit-Remaining"
RATE_LIMIT_RESET_HEADER: str = "X-RateLimit-Reset"
RETRY_AFTER_HEADER: str = "Retry-After"

# ─── Methods ──────────────────────────────────────────────────────────────────

# Methods that require a CSRF token.
CSRF_METHODS: frozenset[str] = frozenset({"POST", "PUT", "DELETE", "PATCH"})

# Methods whose JSON body is screened by the injection guard.
BODY_SCAN_METHODS: frozenset[str] = frozenset({"POST", "PUT", "PATCH"})

# ─── CSRF ─────────────────────────────────────────────────────────────────────

# Raw token size in bytes (hex-encoded on the wire → 64 chars).
CSRF_TOKEN_BYTES: int = 32

DEFAULT_CSRF_EXEMPT_PATHS: tuple[str, ...] = (
    "/api/auth/csrf",
    "/api/auth/callback",
    "/api/auth/providers",
    "/api/auth/session",
)

# ─── Rate limit tiers (window seconds, request quota) ────────────────────────

DEFAULT_RATE_LIMIT_TIERS: dict[str, tuple[int, int]] = {
    "auth": (300, 10),    # 10 requests per 5 minutes
    "api": (60, 100),     # 100 requests per minute
    "public": (60, 30),   # 30 requests per minute
}

# Ordered: first matching prefix wins.
DEFAULT_TIER_PREFIXES: tuple[tuple[str, str], ...] = (
    ("/api/auth", "auth"),
    ("/api", "api"),
)

DEFAULT_TIER: str = "public"

# ─── Login lockout defaults (used when an org has no settings row) ───────────

DEFAULT_MAX_LOGIN_ATTEMPTS: int = 5
DEFAULT_LOCKOUT_MINUTES: int = 15
DEFAULT_SESSION_TIMEOUT_HOURS: int = 24

# ─── Admin endpoint throttle (slowapi) ────────────────────────────────────────

ADMIN_RATE_LIMIT: str = "20/minute"
