"""Tests for the access audit trail."""

from __future__ import annotations

import logging

from tieraccess.audit import AccessAuditEntry, AccessAuditLogger, AuditStatus
from tieraccess.config import AccessConfig
from tieraccess.permissions import (
    AccessResult,
    Feature,
    Tier,
    TierAccessControl,
    UsageContext,
    create_access_control,
)


def _engine(audit: AccessAuditLogger) -> TierAccessControl:
    return TierAccessControl(audit=audit)


class TestAccessAuditLogger:
    def test_allowed_logged_at_info(self, caplog):
        audit = AccessAuditLogger()
        with caplog.at_level(logging.INFO, logger="tieraccess.audit"):
            _engine(audit).check_permission(Tier.BASIC, Feature.REPORTS, "view", UsageContext(user_id="u-1"))

        [entry] = audit.recent()
        assert entry.status is AuditStatus.ALLOWED
        assert entry.event == "access.granted"
        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.getMessage() == "access.granted"
        assert record.tier == "basic"
        assert record.feature == "reports"

    def test_denied_logged_at_warning(self, caplog):
        audit = AccessAuditLogger()
        ctx = UsageContext(user_id="u-2", metadata={"ip": "10.1.1.1", "endpoint": "/ai", "method": "POST"})
        with caplog.at_level(logging.INFO, logger="tieraccess.audit"):
            _engine(audit).check_permission(Tier.BASIC, Feature.AI_ANALYSIS, "create", ctx)

        [entry] = audit.recent(user_id="u-2")
        assert entry.status is AuditStatus.DENIED
        assert entry.upgrade_required is Tier.PROFESSIONAL
        assert entry.ip == "10.1.1.1"
        assert entry.endpoint == "/ai"
        assert caplog.records[-1].levelno == logging.WARNING

    def test_usage_limit_is_rate_limited(self):
        audit = AccessAuditLogger()
        ctx = UsageContext(user_id="u-3", current_usage=5)
        _engine(audit).check_permission(Tier.BASIC, Feature.REPORTS, "create", ctx)
        assert audit.recent()[-1].status is AuditStatus.RATE_LIMITED

    def test_error_status(self):
        audit = AccessAuditLogger()
        audit.record_decision(
            AccessResult(allowed=False, reason="Error checking permission: boom", error=True),
            user_tier="basic",
            feature="reports",
            action="view",
        )
        [entry] = audit.recent()
        assert entry.status is AuditStatus.ERROR
        assert entry.user_id == "anonymous"

    def test_plain_denial_is_not_error(self):
        audit = AccessAuditLogger()
        audit.record_decision(
            AccessResult(allowed=False, reason="Permission not defined for reports.view"),
            user_tier="basic",
            feature="reports",
            action="view",
        )
        assert audit.recent()[-1].status is AuditStatus.DENIED

    def test_usage_tracked_event(self, caplog):
        audit = AccessAuditLogger()
        with caplog.at_level(logging.INFO, logger="tieraccess.audit"):
            _engine(audit).track_usage(UsageContext(user_id="u-4", feature="reports", action="create"))
        record = caplog.records[-1]
        assert record.getMessage() == "usage.tracked"
        assert record.count == 1

    def test_disabled(self, caplog):
        audit = AccessAuditLogger(enabled=False)
        with caplog.at_level(logging.INFO, logger="tieraccess.audit"):
            _engine(audit).check_permission(Tier.BASIC, Feature.REPORTS, "view")
        assert audit.recent() == []
        assert not caplog.records

    def test_ring_is_bounded(self):
        audit = AccessAuditLogger(max_recent=3)
        for i in range(5):
            audit.log_access_attempt(
                AccessAuditEntry(user_id=f"u-{i}", feature="reports", action="view", status=AuditStatus.ALLOWED)
            )
        assert [e.user_id for e in audit.recent()] == ["u-2", "u-3", "u-4"]
        assert [e.user_id for e in audit.recent(limit=1)] == ["u-4"]
        audit.clear()
        assert audit.recent() == []

    def test_factory_wires_audit(self):
        engine = create_access_control(AccessConfig(audit_enabled=False))
        assert engine._audit is not None
        assert engine._audit.enabled is False
