"""Config loading for TenantGuard.

Reads `.tenantguard/config.yaml` (or `~/.tenantguard/config.yaml`).
Raises SystemExit on parse errors, a missing `version` field, or invalid values.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. TENANTGUARD_CONFIG environment variable (if set)
  3. `.tenantguard/config.yaml` (working directory — for development)
  4. `~/.tenantguard/config.yaml` (home directory — for production deployments)

Environment variable overrides (applied after the file):
  TENANTGUARD_PORT     — server.port
  TENANTGUARD_ENV      — environment ("development" | "production")
  TENANTGUARD_DB_PATH  — database.path
  REDIS_URL            — redis.url
  AUTH_SECRET          — auth.secret (session JWT signing key)
  CSRF_SECRET          — csrf.secret (CSRF cookie HMAC key)

Secrets that are still unset after overrides are generated per process with a
warning in development. In production a missing secret is fatal: a random
per-process secret would silently invalidate sessions across instances.
"""

from __future__ import annotations

import os
import secrets
import sys
from dataclasses import dataclass, field
from typing import Optional

import yaml

from tenantguard.constants import (
    DEFAULT_CSRF_COOKIE,
    DEFAULT_CSRF_EXEMPT_PATHS,
    DEFAULT_RATE_LIMIT_TIERS,
    DEFAULT_SESSION_COOKIE,
    DEFAULT_TIER,
    DEFAULT_TIER_PREFIXES,
)
from tenantguard.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# ─── Validation sets ─────────────────────────────────────────────────────────

VALID_ENVIRONMENTS: frozenset[str] = frozenset({"development", "production"})

# "full"             — serialized JSON body is scanned as a whole
# "dangerous_fields" — only string values under dangerous key names are scanned
VALID_BODY_SCAN_MODES: frozenset[str] = frozenset({"full", "dangerous_fields"})

DEFAULT_CONFIG_PATHS = [
    ".tenantguard/config.yaml",
    os.path.expanduser("~/.tenantguard/config.yaml"),
]


def _config_error(msg: str) -> None:
    print(f"CONFIG ERROR: {msg}", file=sys.stderr)
    raise SystemExit(1)


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ServerConfig:
    """ASGI server binding."""

    host: str = "127.0.0.1"
    port: int = 8000
    # Trust X-Forwarded-For / X-Real-IP for client IP resolution. Enable only
    # behind a reverse proxy that overwrites these headers; otherwise clients
    # choose their own rate-limit identity and allowlist address.
    trust_proxy_headers: bool = False


@dataclass
class RedisConfig:
    """Counter store for rate limiting and login attempts.

    url=None selects the in-process store (single instance, development only).
    """

    url: Optional[str] = None
    socket_timeout_s: float = 1.0


@dataclass
class DatabaseConfig:
    path: str = "~/.tenantguard/tenantguard.db"


@dataclass
class AuthConfig:
    """Session token settings."""

    secret: Optional[str] = None
    algorithm: str = "HS256"
    session_cookie: str = DEFAULT_SESSION_COOKIE
    # Substrings matched case-insensitively against User-Agent.
    blocked_user_agents: list[str] = field(
        default_factory=lambda: ["bot", "crawler", "spider", "curl", "postman", "insomnia"]
    )


@dataclass
class CsrfConfig:
    secret: Optional[str] = None
    cookie_name: str = DEFAULT_CSRF_COOKIE
    exempt_paths: list[str] = field(default_factory=lambda: list(DEFAULT_CSRF_EXEMPT_PATHS))
    # Requests authenticated by API key carry no browser cookies.
    exempt_api_key_requests: bool = True


@dataclass
class RateLimitTier:
    name: str
    window: int   # seconds
    limit: int    # requests per window


@dataclass
class RateLimitConfig:
    tiers: dict[str, RateLimitTier] = field(
        default_factory=lambda: {
            name: RateLimitTier(name=name, window=window, limit=limit)
            for name, (window, limit) in DEFAULT_RATE_LIMIT_TIERS.items()
        }
    )
    prefixes: list[tuple[str, str]] = field(default_factory=lambda: list(DEFAULT_TIER_PREFIXES))
    default_tier: str = DEFAULT_TIER


@dataclass
class InjectionConfig:
    body_scan: str = "full"
    # JSON bodies on these paths are not scanned; they carry credentials that
    # are hashed and never reach a query.
    body_exempt_paths: list[str] = field(default_factory=lambda: ["/api/users/password"])


@dataclass
class Config:
    """Root configuration object populated from .tenantguard/config.yaml.

    All fields have safe defaults — TenantGuard can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    environment: str = "development"
    server: ServerConfig = field(default_factory=ServerConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    csrf: CsrfConfig = field(default_factory=CsrfConfig)
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    injection: InjectionConfig = field(default_factory=InjectionConfig)
    path: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def db_path(self) -> str:
        return os.path.expanduser(self.database.path)

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On invalid environment, body_scan mode, or tier values.
        """
        environment = raw.get("environment", "development")
        if environment not in VALID_ENVIRONMENTS:
            _config_error(
                f"Invalid environment: '{environment}'. "
                f"Supported values: {sorted(VALID_ENVIRONMENTS)}."
            )

        server_raw = raw.get("server", {})
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=server_raw.get("port", 8000),
            trust_proxy_headers=server_raw.get("trust_proxy_headers", False),
        )

        redis_raw = raw.get("redis", {})
        redis = RedisConfig(
            url=redis_raw.get("url"),
            socket_timeout_s=redis_raw.get("socket_timeout_s", 1.0),
        )

        database_raw = raw.get("database", {})
        database = DatabaseConfig(
            path=database_raw.get("path", DatabaseConfig.path),
        )

        auth_raw = raw.get("auth", {})
        auth = AuthConfig(
            secret=auth_raw.get("secret"),
            algorithm=auth_raw.get("algorithm", "HS256"),
            session_cookie=auth_raw.get("session_cookie", DEFAULT_SESSION_COOKIE),
        )
        if "blocked_user_agents" in auth_raw:
            auth.blocked_user_agents = [str(ua) for ua in auth_raw["blocked_user_agents"]]

        csrf_raw = raw.get("csrf", {})
        csrf = CsrfConfig(
            secret=csrf_raw.get("secret"),
            cookie_name=csrf_raw.get("cookie_name", DEFAULT_CSRF_COOKIE),
            exempt_paths=csrf_raw.get("exempt_paths", list(DEFAULT_CSRF_EXEMPT_PATHS)),
            exempt_api_key_requests=csrf_raw.get("exempt_api_key_requests", True),
        )

        rate_limits = _parse_rate_limits(raw.get("rate_limits", {}))

        injection_raw = raw.get("injection", {})
        body_scan = injection_raw.get("body_scan", "full")
        if body_scan not in VALID_BODY_SCAN_MODES:
            _config_error(
                f"Invalid injection.body_scan: '{body_scan}'. "
                f"Supported values: {sorted(VALID_BODY_SCAN_MODES)}."
            )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            environment=environment,
            server=server,
            redis=redis,
            database=database,
            auth=auth,
            csrf=csrf,
            rate_limits=rate_limits,
            injection=InjectionConfig(
                body_scan=body_scan,
                body_exempt_paths=injection_raw.get(
                    "body_exempt_paths", InjectionConfig().body_exempt_paths
                ),
            ),
            path=path,
        )


def _parse_rate_limits(raw: dict) -> RateLimitConfig:
    """Merge configured tiers onto the default tier table."""
    config = RateLimitConfig()

    for name, tier_raw in (raw.get("tiers") or {}).items():
        default = config.tiers.get(name)
        window = tier_raw.get("window", default.window if default else None)
        limit = tier_raw.get("limit", default.limit if default else None)
        if not isinstance(window, int) or not isinstance(limit, int) or window <= 0 or limit <= 0:
            _config_error(
                f"rate_limits.tiers.{name} needs positive integer 'window' and 'limit' "
                f"(got window={window!r}, limit={limit!r})."
            )
        config.tiers[name] = RateLimitTier(name=name, window=window, limit=limit)

    if "prefixes" in raw:
        config.prefixes = [(str(p["prefix"]), str(p["tier"])) for p in raw["prefixes"]]

    config.default_tier = raw.get("default_tier", config.default_tier)

    referenced = {tier for _, tier in config.prefixes} | {config.default_tier}
    unknown = referenced - set(config.tiers)
    if unknown:
        _config_error(f"rate_limits references undefined tiers: {sorted(unknown)}.")

    return config


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate TenantGuard configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).
    Environment overrides and secret resolution are applied in both cases.

    Raises:
        SystemExit(1): On YAML parse error, missing or unsupported ``version``,
                       invalid values, invalid ``TENANTGUARD_PORT``, or missing
                       secrets in production.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("TENANTGUARD_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        _resolve_secrets(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _config_error(
            f"Failed to parse {found_path}: {exc}\n"
            "TenantGuard refuses to start with an invalid config."
        )
    except OSError as exc:
        _config_error(f"Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _config_error(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _config_error(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _config_error(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _config_error(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)
    _resolve_secrets(config)

    if config.server.host == "0.0.0.0" and config.server.trust_proxy_headers:
        logger.warning(
            "Proxy headers trusted while binding on all interfaces: "
            "direct clients can spoof X-Forwarded-For"
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        environment=config.environment,
        redis_configured=config.redis.url is not None,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If TENANTGUARD_PORT is not an integer or TENANTGUARD_ENV
                       is not a supported environment.
    """
    env_port = os.environ.get("TENANTGUARD_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            _config_error(
                f"TENANTGUARD_PORT environment variable is not a valid integer: '{env_port}'"
            )

    env_name = os.environ.get("TENANTGUARD_ENV")
    if env_name is not None:
        if env_name not in VALID_ENVIRONMENTS:
            _config_error(
                f"TENANTGUARD_ENV must be one of {sorted(VALID_ENVIRONMENTS)}, got '{env_name}'"
            )
        config.environment = env_name

    env_db = os.environ.get("TENANTGUARD_DB_PATH")
    if env_db:
        config.database.path = env_db

    env_redis = os.environ.get("REDIS_URL")
    if env_redis:
        config.redis.url = env_redis

    env_auth_secret = os.environ.get("AUTH_SECRET")
    if env_auth_secret:
        config.auth.secret = env_auth_secret

    env_csrf_secret = os.environ.get("CSRF_SECRET")
    if env_csrf_secret:
        config.csrf.secret = env_csrf_secret


def _resolve_secrets(config: Config) -> None:
    """Fill in missing secrets (development) or refuse to start (production)."""
    for section, env_name in ((config.auth, "AUTH_SECRET"), (config.csrf, "CSRF_SECRET")):
        if section.secret:
            continue
        if config.is_production:
            _config_error(f"{env_name} must be set in production.")
        section.secret = secrets.token_hex(32)
        logger.warning(
            "Secret not configured — generated a per-process value",
            setting=env_name,
        )
