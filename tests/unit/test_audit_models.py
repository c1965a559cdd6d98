"""Unit tests for tenantguard/audit/models.py."""

from __future__ import annotations

from datetime import datetime, timezone

from tenantguard.audit.models import EVENT_TYPES, SEVERITIES, SecurityAuditEvent


class TestEnumerations:
    def test_event_types(self) -> None:
        assert EVENT_TYPES == {
            "login",
            "logout",
            "password_change",
            "mfa_enabled",
            "mfa_disabled",
            "api_key_created",
            "api_key_revoked",
            "role_changed",
            "permission_changed",
            "integration_access",
            "data_export",
            "settings_changed",
            "security_alert",
        }

    def test_severities(self) -> None:
        assert SEVERITIES == {"low", "medium", "high", "critical"}


class TestSecurityAuditEvent:
    def test_defaults(self) -> None:
        event = SecurityAuditEvent(event_type="login", severity="low")

        assert len(event.id) == 26
        assert event.details == {}
        assert event.organization_id is None
        assert event.created_at.tzinfo is not None

    def test_ids_unique(self) -> None:
        ids = {SecurityAuditEvent(event_type="logout", severity="low").id for _ in range(50)}
        assert len(ids) == 50

    def test_details_not_shared(self) -> None:
        first = SecurityAuditEvent(event_type="login", severity="low")
        first.details["success"] = True
        assert SecurityAuditEvent(event_type="login", severity="low").details == {}

    def test_to_dict_uses_camel_case(self) -> None:
        created = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        event = SecurityAuditEvent(
            event_type="security_alert",
            severity="high",
            organization_id="org_1",
            user_id="user_1",
            ip_address="10.0.0.9",
            user_agent="curl/8.0",
            details={"reason": "ip_not_allowed"},
            id="01HZTESTULID0000000000000A",
            created_at=created,
        )

        assert event.to_dict() == {
            "id": "01HZTESTULID0000000000000A",
            "organizationId": "org_1",
            "userId": "user_1",
            "eventType": "security_alert",
            "severity": "high",
            "ipAddress": "10.0.0.9",
            "userAgent": "curl/8.0",
            "details": {"reason": "ip_not_allowed"},
            "createdAt": "2024-05-01T12:00:00+00:00",
        }
