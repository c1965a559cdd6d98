"""SQL-injection screening for query parameters and JSON bodies.

This is triage, not the defense: every store in TenantGuard uses bound
parameters. The patterns are deliberately broad (quotes, comment markers,
statement terminators, SQL verbs and their URL-encoded forms) and are applied
only to parameters whose names suggest they reach a query builder.

Patterns are compiled once with google-re2 (linear-time matching, no
catastrophic backtracking on attacker-controlled input).

  ``import re2`` ONLY — stdlib ``re`` is not used for attacker-controlled input.
"""

from __future__ import annotations

import json
from typing import Any, Iterator, Optional

import re2

from tenantguard.constants import AUTH_PATH_PREFIX, BODY_SCAN_METHODS
from tenantguard.guards.base import GuardContext
from tenantguard.models.rejection import Rejection
from tenantguard.utils.logger import get_logger

logger = get_logger(__name__)

# Compared case-insensitively.
DANGEROUS_PARAMS: frozenset[str] = frozenset(
    name.lower()
    for name in (
        "query", "q", "search", "filter", "where", "order", "sort", "orderBy",
        "groupBy", "having", "select", "columns", "fields", "include",
        "exclude", "join",
    )
)

# COMPILED AT MODULE LOAD — never per-request
SQL_INJECTION_PATTERNS = (
    re2.compile(r"(?i)(%27)|(')|(--)|(%23)|(#)"),                        # meta-characters
    re2.compile(r"(?i)\b(alter|create|delete|drop|exec(ute)?|insert|merge|select|update|upsert|union|bulk)\b"),
    re2.compile(r"(?i)(%27)|(')|(--)|(%3B)|(;)"),                        # terminators
    re2.compile(r"(?i)(%6F%72)|(%6F%52)"),                               # URL-encoded "or"
    re2.compile(r"(?i)((%3D)|(=))[^\n]*((%27)|(')|(--)|(%3B)|(;))"),      # = ... quote/terminator
    re2.compile(r"(?i)\w*((%27)|('))((%6F)|o|(%4F))((%72)|r|(%52))"),     # 'or
    re2.compile(r"(?i)((%27)|('))union"),                                # 'union
)

_SORT_RE = re2.compile(r"^[a-zA-Z0-9\s\-_.,@()]+$")
_SORT_MAX_LENGTH = 63
# Empty is allowed: a blank page or limit means "default".
_INTEGER_RE = re2.compile(r"^\d*$")
_DATE_RE = re2.compile(r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}:\d{2}(\.\d{3})?Z)?$")

_SORT_PARAMS = ("sort", "orderBy")
_PAGINATION_PARAMS = ("page", "limit")
_DATE_PARAMS = ("startDate", "endDate")


def contains_sql_injection(value: str) -> bool:
    return any(pattern.search(value) for pattern in SQL_INJECTION_PATTERNS)


def is_dangerous_param(name: str) -> bool:
    return name.lower() in DANGEROUS_PARAMS


def _invalid(message: str, reason: str) -> Rejection:
    return Rejection.bad_request(message, code="invalid_request", reason=reason)


def check_query_params(params: list[tuple[str, str]]) -> Optional[Rejection]:
    """Screen query parameters. Returns the first violation."""
    for name, value in params:
        if is_dangerous_param(name) and contains_sql_injection(value):
            return _invalid("Invalid query parameter detected", f"sql_pattern:{name}")

        if name in _SORT_PARAMS:
            if len(value) > _SORT_MAX_LENGTH or not _SORT_RE.match(value):
                return _invalid("Invalid sort parameter", f"bad_identifier:{name}")

        if name in _PAGINATION_PARAMS:
            if not _INTEGER_RE.match(value):
                return _invalid("Invalid pagination parameter", f"bad_integer:{name}")

        if name in _DATE_PARAMS:
            if not _DATE_RE.match(value):
                return _invalid("Invalid date parameter", f"bad_date:{name}")
    return None


def _dangerous_strings(node: Any, dangerous: bool = False) -> Iterator[str]:
    """Yield string values found under dangerous keys, at any depth."""
    if isinstance(node, dict):
        for key, value in node.items():
            yield from _dangerous_strings(value, dangerous or is_dangerous_param(str(key)))
    elif isinstance(node, list):
        for item in node:
            yield from _dangerous_strings(item, dangerous)
    elif isinstance(node, str) and dangerous:
        yield node


def check_json_body(body: Any, mode: str = "full") -> Optional[Rejection]:
    """Screen a parsed JSON body.

    ``full``: the compact serialization is scanned as a whole.
    ``dangerous_fields``: only string values under dangerous key names.
    """
    if mode == "full":
        hit = contains_sql_injection(json.dumps(body, separators=(",", ":"), ensure_ascii=False))
    else:
        hit = any(contains_sql_injection(value) for value in _dangerous_strings(body))
    if hit:
        return _invalid("Invalid request body", "sql_pattern:body")
    return None


class InjectionGuard:
    name = "injection"

    async def check(self, ctx: GuardContext) -> Optional[Rejection]:
        if ctx.path.startswith(AUTH_PATH_PREFIX):
            return None

        injection = ctx.config.injection
        if ctx.method in BODY_SCAN_METHODS and ctx.path not in injection.body_exempt_paths:
            content_type = ctx.request.headers.get("content-type", "")
            if "application/json" in content_type:
                raw = await ctx.request.body()
                try:
                    body = json.loads(raw)
                except ValueError:
                    return Rejection.bad_request(
                        "Invalid JSON body", code="invalid_json", reason="malformed_json"
                    )
                rejection = check_json_body(body, injection.body_scan)
                if rejection is not None:
                    return self._log(ctx, rejection)

        rejection = check_query_params(list(ctx.request.query_params.multi_items()))
        if rejection is not None:
            return self._log(ctx, rejection)
        return None

    @staticmethod
    def _log(ctx: GuardContext, rejection: Rejection) -> Rejection:
        logger.warning(
            "Request rejected: injection screen",
            path=ctx.path,
            identity=ctx.identity,
            reason=rejection.reason,
        )
        return rejection
