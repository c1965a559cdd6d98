"""Client address helpers shared by the guards.

Client IP resolution order (proxy headers are ignored unless trusted):
  1. First entry of ``X-Forwarded-For`` (when proxy headers are trusted)
  2. ``X-Real-IP`` (when proxy headers are trusted)
  3. The ASGI peer address (``request.client.host``)
  4. ``"unknown"``

Allowlist entries may be single addresses or CIDR networks. Malformed entries
never match; they are rejected at write time by the settings API.
"""

from __future__ import annotations

import ipaddress
from typing import Iterable, Optional, Union

from starlette.requests import Request

_Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

UNKNOWN_CLIENT_IP = "unknown"


def get_client_ip(request: Request, trust_proxy_headers: bool = False) -> str:
    """Return the best-effort client IP for ``request``."""
    if trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT_IP


def parse_allowlist_entry(entry: str) -> Optional[_Network]:
    """Parse an IP or CIDR string into a network. Returns None when malformed."""
    try:
        return ipaddress.ip_network(entry.strip(), strict=False)
    except ValueError:
        return None


def is_valid_allowlist_entry(entry: str) -> bool:
    return parse_allowlist_entry(entry) is not None


def ip_in_allowlist(client_ip: str, allowlist: Iterable[str]) -> bool:
    """Return True if ``client_ip`` is covered by any entry in ``allowlist``.

    An empty allowlist means "no restriction" and always returns True.
    An unparseable client IP never matches a non-empty allowlist.
    """
    entries = list(allowlist)
    if not entries:
        return True

    try:
        address = ipaddress.ip_address(client_ip)
    except ValueError:
        return False

    for entry in entries:
        network = parse_allowlist_entry(entry)
        if network is not None and address.version == network.version and address in network:
            return True
    return False
