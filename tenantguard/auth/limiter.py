"""Shared slowapi limiter for the organization security admin endpoints.

Separate from the guard-chain rate limiter: this is a coarse per-address cap
on administrative operations (settings changes, key management, audit queries).

The Limiter instance is shared between:
  - tenantguard/api/security.py  (route decorators)
  - tenantguard/main.py          (app.state.limiter + exception handler)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from tenantguard.constants import ADMIN_RATE_LIMIT

limiter = Limiter(key_func=get_remote_address)

ADMIN_ENDPOINT_RATE_LIMIT = ADMIN_RATE_LIMIT
