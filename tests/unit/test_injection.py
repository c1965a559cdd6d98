"""Unit tests for tenantguard/guards/injection.py.

Verifies:
  - SQL pattern detection (quotes, terminators, comments, keywords, encoded forms)
  - Keyword matching respects word boundaries
  - Only dangerous parameter names are pattern-screened (case-insensitive)
  - sort/orderBy, page/limit and startDate/endDate format checks
  - JSON body screening in "full" and "dangerous_fields" modes
"""

from __future__ import annotations

import pytest

from tenantguard.guards.injection import (
    check_json_body,
    check_query_params,
    contains_sql_injection,
    is_dangerous_param,
)


class TestContainsSqlInjection:
    @pytest.mark.parametrize(
        "value",
        [
            "'; DROP TABLE users; --",
            "1 OR 1=1; --",
            "admin'--",
            "%27%20or%201%3D1",
            "x UNION SELECT password FROM users",
            "delete",
            "name # comment",
            "a=1;",
        ],
    )
    def test_detects(self, value: str) -> None:
        assert contains_sql_injection(value)

    @pytest.mark.parametrize(
        "value",
        ["john smith", "selection", "updated_at", "created", "report-2024", "alpha beta"],
    )
    def test_clean_values(self, value: str) -> None:
        assert not contains_sql_injection(value)


class TestIsDangerousParam:
    def test_case_insensitive(self) -> None:
        assert is_dangerous_param("q")
        assert is_dangerous_param("Q")
        assert is_dangerous_param("ORDERBY")
        assert is_dangerous_param("groupBy")

    def test_other_names(self) -> None:
        assert not is_dangerous_param("note")
        assert not is_dangerous_param("page")


class TestCheckQueryParams:
    def test_dangerous_param_with_sql(self) -> None:
        rejection = check_query_params([("q", "'; DROP TABLE users; --")])
        assert rejection is not None
        assert rejection.status_code == 400
        assert rejection.message == "Invalid query parameter detected"
        assert rejection.code == "invalid_request"

    def test_non_dangerous_param_with_sql_passes(self) -> None:
        assert check_query_params([("note", "'; DROP TABLE users; --")]) is None

    def test_repeated_param_checks_every_value(self) -> None:
        rejection = check_query_params([("filter", "active"), ("filter", "1; drop")])
        assert rejection is not None

    def test_valid_sort(self) -> None:
        assert check_query_params([("sort", "created_at,-name")]) is None

    def test_sort_bad_characters(self) -> None:
        rejection = check_query_params([("sort", "name<script>")])
        assert rejection is not None
        assert rejection.message == "Invalid sort parameter"

    def test_sort_too_long(self) -> None:
        rejection = check_query_params([("orderBy", "a" * 64)])
        assert rejection is not None
        assert rejection.message == "Invalid sort parameter"
        assert check_query_params([("orderBy", "a" * 63)]) is None

    @pytest.mark.parametrize("value", ["1e3", "-1", "10 ", " ", "٣"])
    def test_bad_pagination(self, value: str) -> None:
        rejection = check_query_params([("page", value)])
        assert rejection is not None
        assert rejection.message == "Invalid pagination parameter"

    def test_valid_pagination(self) -> None:
        assert check_query_params([("page", "2"), ("limit", "50")]) is None

    def test_empty_pagination_allowed(self) -> None:
        assert check_query_params([("page", ""), ("limit", "")]) is None

    def test_pagination_names_are_exact(self) -> None:
        assert check_query_params([("Page", "abc")]) is None

    @pytest.mark.parametrize(
        "value", ["2024-01-31", "2024-01-31T10:00:00Z", "2024-01-31T10:00:00.123Z"]
    )
    def test_valid_dates(self, value: str) -> None:
        assert check_query_params([("startDate", value), ("endDate", value)]) is None

    @pytest.mark.parametrize("value", ["31/01/2024", "2024-01-31T10:00:00", "yesterday"])
    def test_bad_dates(self, value: str) -> None:
        rejection = check_query_params([("endDate", value)])
        assert rejection is not None
        assert rejection.message == "Invalid date parameter"


class TestCheckJsonBody:
    def test_full_mode_scans_everything(self) -> None:
        rejection = check_json_body({"name": "O'Brien"}, mode="full")
        assert rejection is not None
        assert rejection.message == "Invalid request body"

    def test_full_mode_clean_body(self) -> None:
        assert check_json_body({"name": "Deploy key", "scopes": ["read"]}, mode="full") is None

    def test_dangerous_fields_ignores_other_keys(self) -> None:
        assert check_json_body({"name": "O'Brien"}, mode="dangerous_fields") is None

    def test_dangerous_fields_nested(self) -> None:
        body = {"items": [{"search": "' or 1=1"}]}
        assert check_json_body(body, mode="dangerous_fields") is not None

    def test_dangerous_fields_values_below_dangerous_key(self) -> None:
        body = {"filter": {"status": "1; DROP TABLE users"}}
        assert check_json_body(body, mode="dangerous_fields") is not None

    def test_dangerous_fields_list_values(self) -> None:
        body = {"fields": ["id", "name; drop"]}
        assert check_json_body(body, mode="dangerous_fields") is not None
