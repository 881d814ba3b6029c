"""Tier, permission, and key enumerations for tier-based access control.

Provides:
- ``Tier`` — ordered subscription tiers (basic < professional < enterprise).
- ``Permission`` — ordered capability levels (none < read < write < admin).
- ``TimeRestriction`` — usage windows for conditional permissions.
- ``ConditionType`` — kinds of access conditions attached to a result.
- ``Feature`` / ``ResourceType`` — closed sets of gated feature areas and resources.
- ``LimitType`` — quantitative per-tier caps.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

# Sentinel for "no cap" in tier limits.
UNLIMITED = -1

# Usage bucket used when a conditional permission has no time window.
LIFETIME_BUCKET = "lifetime"


class Tier(str, Enum):
    """Subscription tier.

    Tiers form a total order used for hierarchical access checks::

        Tier.ENTERPRISE.rank >= Tier.PROFESSIONAL.rank  # True
    """

    BASIC = "basic"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"

    @property
    def rank(self) -> int:
        return TIER_ORDER.index(self) + 1

    @classmethod
    def parse(cls, value: object) -> Optional[Tier]:
        """Coerce a string or Tier into a Tier, ``None`` if unknown."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return None
        return None

    def higher_tiers(self) -> tuple[Tier, ...]:
        """Tiers strictly above this one, in ascending rank."""
        return TIER_ORDER[TIER_ORDER.index(self) + 1 :]


TIER_ORDER: tuple[Tier, ...] = (Tier.BASIC, Tier.PROFESSIONAL, Tier.ENTERPRISE)


class Permission(str, Enum):
    """Granted capability level.

    Represents the maximum capability, not a bitmask. ``admin`` > ``write`` >
    ``read`` > ``none``.
    """

    NONE = "none"
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _PERMISSION_ORDER.index(self)

    @property
    def granted(self) -> bool:
        return self is not Permission.NONE


_PERMISSION_ORDER: tuple[Permission, ...] = (
    Permission.NONE,
    Permission.READ,
    Permission.WRITE,
    Permission.ADMIN,
)


class TimeRestriction(str, Enum):
    """Rolling window over which a usage limit applies."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ConditionType(str, Enum):
    """Why a conditional permission blocked, or a caveat on an allowed one."""

    USAGE_LIMIT = "usage_limit"
    TIME_RESTRICTION = "time_restriction"
    APPROVAL_REQUIRED = "approval_required"
    CUSTOM = "custom"


class _KeyEnum(str, Enum):
    @classmethod
    def parse(cls, value: object):
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                return None
        return None


class Feature(_KeyEnum):
    """Feature areas gated independently per tier."""

    QUESTIONNAIRE = "questionnaire"
    DASHBOARD = "dashboard"
    REPORTS = "reports"
    EVALUATIONS = "evaluations"
    AI_ANALYSIS = "ai_analysis"
    ROI_CALCULATOR = "roi_calculator"
    FINANCIAL_TRENDS = "financial_trends"
    SCENARIO_MODELING = "scenario_modeling"
    EXIT_PLANNING = "exit_planning"
    STRATEGIC_OPTIONS = "strategic_options"
    ADMIN = "admin"
    SUPPORT = "support"
    API = "api"
    INTEGRATIONS = "integrations"
    COMPLIANCE = "compliance"


class ResourceType(_KeyEnum):
    """Object-level resource types."""

    DOCUMENTS = "documents"
    TEMPLATES = "templates"
    DATA = "data"


class LimitType(_KeyEnum):
    """Quantitative per-tier caps (``-1`` means unlimited)."""

    MAX_REPORTS = "max_reports"
    MAX_EVALUATIONS = "max_evaluations"
    MAX_AI_ANALYSES = "max_ai_analyses"
    MAX_SCENARIOS = "max_scenarios"
    STORAGE_LIMIT = "storage_limit"  # MB
    API_CALLS_PER_MONTH = "api_calls_per_month"
    CONCURRENT_USERS = "concurrent_users"
    DATA_RETENTION_DAYS = "data_retention_days"

    @property
    def label(self) -> str:
        """Human-readable name, e.g. ``"max reports"``."""
        return self.value.replace("_", " ")


__all__ = [
    "LIFETIME_BUCKET",
    "TIER_ORDER",
    "UNLIMITED",
    "ConditionType",
    "Feature",
    "LimitType",
    "Permission",
    "ResourceType",
    "Tier",
    "TimeRestriction",
]
