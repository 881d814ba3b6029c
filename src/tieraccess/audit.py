"""Structured audit trail for access decisions.

Every decision is emitted as one record on the ``tieraccess.audit`` logger
with the event name as message and the entry fields as ``extra``::

    access.denied  user_id=u-1 tier=basic feature=reports action=create ...

A bounded in-memory ring of recent entries backs admin views and tests.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from .permissions.constants import ConditionType, Tier
from .permissions.models import AccessResult, UsageContext

audit_logger = logging.getLogger("tieraccess.audit")


class AuditStatus(str, Enum):
    ALLOWED = "allowed"
    DENIED = "denied"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"


class AccessAuditEntry(BaseModel):
    """One access attempt."""

    user_id: str
    feature: str
    action: str
    status: AuditStatus
    user_tier: Optional[Tier] = None
    required_tier: Optional[Tier] = None
    reason: Optional[str] = None
    upgrade_required: Optional[Tier] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    endpoint: Optional[str] = None
    method: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def event(self) -> str:
        return "access.granted" if self.status is AuditStatus.ALLOWED else "access.denied"


class AccessAuditLogger:
    """Writes audit records and keeps the most recent ones in memory.

    Args:
        enabled: When ``False`` nothing is logged or retained.
        max_recent: Size of the in-memory ring (0 disables retention).
    """

    def __init__(self, enabled: bool = True, max_recent: int = 100) -> None:
        self.enabled = enabled
        self._recent: deque[AccessAuditEntry] = deque(maxlen=max_recent or None)
        self._retain = max_recent > 0
        self._lock = threading.Lock()

    def log_access_attempt(self, entry: AccessAuditEntry) -> None:
        if not self.enabled:
            return
        if self._retain:
            with self._lock:
                self._recent.append(entry)

        level = logging.INFO if entry.status is AuditStatus.ALLOWED else logging.WARNING
        audit_logger.log(level, entry.event, extra=_log_fields(entry))

    def record_decision(
        self,
        result: AccessResult,
        *,
        user_tier: Tier | str | None,
        feature: str,
        action: str,
        context: Optional[UsageContext] = None,
        required_tier: Tier | str | None = None,
    ) -> None:
        """Audit an ``AccessResult`` produced for ``feature.action``."""
        if not self.enabled:
            return
        metadata = context.metadata if context is not None else {}
        self.log_access_attempt(
            AccessAuditEntry(
                user_id=context.user_id if context is not None and context.user_id else "anonymous",
                feature=feature,
                action=action,
                status=_status_for(result),
                user_tier=Tier.parse(user_tier),
                required_tier=Tier.parse(required_tier),
                reason=result.reason,
                upgrade_required=result.upgrade_required,
                ip=metadata.get("ip"),
                user_agent=metadata.get("user_agent"),
                endpoint=metadata.get("endpoint"),
                method=metadata.get("method"),
            )
        )

    def record_usage(self, context: UsageContext, count: int) -> None:
        if not self.enabled:
            return
        audit_logger.info(
            "usage.tracked",
            extra={
                "user_id": context.user_id,
                "feature": context.feature,
                "action": context.action,
                "count": count,
            },
        )

    def recent(self, user_id: Optional[str] = None, limit: Optional[int] = None) -> list[AccessAuditEntry]:
        """Most recent entries, newest last, optionally filtered by user."""
        with self._lock:
            entries = [e for e in self._recent if user_id is None or e.user_id == user_id]
        if limit is not None:
            entries = entries[-limit:]
        return entries

    def clear(self) -> None:
        with self._lock:
            self._recent.clear()


def _status_for(result: AccessResult) -> AuditStatus:
    if result.allowed:
        return AuditStatus.ALLOWED
    if result.error:
        return AuditStatus.ERROR
    if result.has_condition(ConditionType.USAGE_LIMIT):
        return AuditStatus.RATE_LIMITED
    return AuditStatus.DENIED


def _log_fields(entry: AccessAuditEntry) -> dict[str, Any]:
    fields = entry.model_dump(mode="json", exclude_none=True, exclude={"timestamp"})
    # AccessLogFormatter renders "tier" as a context field
    fields["tier"] = fields.pop("user_tier", None)
    return fields


__all__ = ["AccessAuditEntry", "AccessAuditLogger", "AuditStatus", "audit_logger"]
