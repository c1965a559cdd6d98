"""Session authentication with per-organization IP and user-agent policy.

Order of checks:
  1. /api/auth/** is skipped (login, CSRF issuance).
  2. No valid session: 401, unless an API key header is present on a path
     the API-key guard covers (not /api/webhooks/**), in which case that
     guard decides.
  3. Organization allowlist (if the org has settings and a non-empty list).
  4. User-agent: missing, or containing a blocked tool/bot marker.

The user-agent check is a heuristic. Any client can send any User-Agent.
"""

from __future__ import annotations

from typing import Optional

from tenantguard.auth.session import resolve_session
from tenantguard.constants import API_KEY_HEADER, AUTH_PATH_PREFIX, WEBHOOK_PATH_PREFIX
from tenantguard.guards.base import GuardContext, hardening_headers
from tenantguard.models.rejection import Rejection
from tenantguard.utils.logger import get_logger
from tenantguard.utils.net import ip_in_allowlist

logger = get_logger(__name__)


def is_blocked_user_agent(user_agent: str, blocked: list[str]) -> bool:
    if not user_agent.strip():
        return True
    lowered = user_agent.lower()
    return any(marker.lower() in lowered for marker in blocked)


class SessionGuard:
    name = "session"

    async def check(self, ctx: GuardContext) -> Optional[Rejection]:
        if ctx.path.startswith(AUTH_PATH_PREFIX):
            return None

        session = resolve_session(ctx.request, ctx.config.auth)
        if session is None:
            if ctx.request.headers.get(API_KEY_HEADER) and not ctx.path.startswith(WEBHOOK_PATH_PREFIX):
                return None
            logger.info("Request rejected: no session", path=ctx.path, identity=ctx.identity)
            return Rejection.unauthorized()

        ctx.session = session
        ctx.organization_id = session.organization_id
        ctx.request.state.session = session

        settings = await ctx.org_settings()
        if settings is not None and not ip_in_allowlist(ctx.client_ip, settings.ip_allowlist):
            logger.warning(
                "Request rejected: IP not in organization allowlist",
                path=ctx.path,
                identity=ctx.identity,
                client_ip=ctx.client_ip,
                organization_id=ctx.organization_id,
            )
            ctx.audit("security_alert", "high", reason="ip_not_allowed")
            return Rejection.forbidden("IP address not allowed", code="ip_not_allowed")

        if is_blocked_user_agent(ctx.user_agent, ctx.config.auth.blocked_user_agents):
            logger.warning(
                "Request rejected: blocked user agent",
                path=ctx.path,
                identity=ctx.identity,
                user_agent=ctx.user_agent,
            )
            ctx.audit("security_alert", "medium", reason="blocked_user_agent")
            return Rejection.forbidden("Invalid user agent", code="invalid_user_agent")

        ctx.response_headers.update(hardening_headers(ctx.config.is_production))
        return None
