"""ULID generation for TenantGuard record identifiers.

Used for API key ids, user ids, audit event ids and request ids. ULIDs sort
by creation time, which keeps audit-log listings cheap to order.

Uses the `python-ulid` library; do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: Crockford Base32 ULID, e.g. ``"01KJ0JRVHYA7KX32VPN5ZSCTMV"``.
    """
    return str(ULID())
