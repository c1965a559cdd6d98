"""Organization-level allowlist enforcement and response hardening.

Runs after authentication, so it also covers API-key callers whose
organization is known only from the key.
"""

from __future__ import annotations

from typing import Optional

from tenantguard.guards.base import GuardContext, hardening_headers
from tenantguard.models.rejection import Rejection
from tenantguard.utils.logger import get_logger
from tenantguard.utils.net import ip_in_allowlist

logger = get_logger(__name__)


class SecurityHeadersGuard:
    name = "security_headers"

    async def check(self, ctx: GuardContext) -> Optional[Rejection]:
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
            return Rejection.forbidden("Access denied: IP not in allowlist", code="ip_not_allowed")

        ctx.response_headers.update(hardening_headers(ctx.config.is_production))
        return None
