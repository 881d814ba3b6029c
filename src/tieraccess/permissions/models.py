"""Pydantic models for permission grants, tier tables, and access results."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .constants import (
    UNLIMITED,
    ConditionType,
    Feature,
    LimitType,
    Permission,
    ResourceType,
    Tier,
    TimeRestriction,
)


class ConditionalPermission(BaseModel):
    """A permission qualified by a usage quota, time window, approval flag,
    or custom predicates.

    ``conditions`` maps a registered condition name (see
    :mod:`tieraccess.permissions.conditions`) to its declared value. The
    reserved key ``blocking`` overrides whether a failing custom condition
    denies access.
    """

    model_config = ConfigDict(frozen=True)

    permission: Permission
    usage_limit: Optional[int] = None
    time_restriction: Optional[TimeRestriction] = None
    requires_approval: bool = False
    conditions: dict[str, Any] = Field(default_factory=dict)


PermissionGrant = Union[Permission, ConditionalPermission]
ActionTable = dict[str, PermissionGrant]


def base_permission(grant: Optional[PermissionGrant]) -> Permission:
    """Effective base permission of a grant (``none`` when absent)."""
    if grant is None:
        return Permission.NONE
    if isinstance(grant, ConditionalPermission):
        return grant.permission
    return grant


class TierLimits(BaseModel):
    """Quantitative caps for one tier. ``-1`` means unlimited."""

    model_config = ConfigDict(frozen=True)

    max_reports: int
    max_evaluations: int
    max_ai_analyses: int
    max_scenarios: int
    storage_limit: int
    api_calls_per_month: int
    concurrent_users: int
    data_retention_days: int

    def get(self, limit_type: LimitType | str) -> Optional[int]:
        key = LimitType.parse(limit_type)
        if key is None:
            return None
        return getattr(self, key.value)

    def is_unlimited(self, limit_type: LimitType | str) -> bool:
        return self.get(limit_type) == UNLIMITED


class TierPermissions(BaseModel):
    """Complete permission declaration for one tier."""

    model_config = ConfigDict(frozen=True)

    features: dict[Feature, ActionTable]
    resources: dict[ResourceType, ActionTable]
    limits: TierLimits
    inheritance: tuple[Tier, ...] = ()


class AccessCondition(BaseModel):
    """Explains why a conditional permission blocked, or annotates a
    non-blocking caveat."""

    type: ConditionType
    value: Any = None
    message: Optional[str] = None

    @property
    def blocking(self) -> bool:
        if self.type in (ConditionType.USAGE_LIMIT, ConditionType.TIME_RESTRICTION):
            return True
        if self.type is ConditionType.CUSTOM and isinstance(self.value, dict):
            return bool(self.value.get("blocking"))
        return False


class AccessResult(BaseModel):
    """Outcome of a single permission evaluation.

    Constructed fresh per check and consumed immediately by the caller.
    ``error`` marks a denial caused by an internal failure rather than by the
    matrix; its ``reason`` carries exception text and is not for end users.
    """

    allowed: bool
    permission: Permission = Permission.NONE
    conditions: Optional[list[AccessCondition]] = None
    reason: Optional[str] = None
    upgrade_required: Optional[Tier] = None
    error: bool = Field(default=False, exclude=True)

    @property
    def denied(self) -> bool:
        return not self.allowed

    def has_condition(self, condition_type: ConditionType) -> bool:
        return any(c.type is condition_type for c in self.conditions or ())

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation without empty fields."""
        return self.model_dump(mode="json", exclude_none=True)


class UsageContext(BaseModel):
    """Caller context for a permission check or usage tracking call.

    ``feature`` holds the feature name for feature checks and the resource
    type for resource checks.
    """

    user_id: str = ""
    feature: str = ""
    action: str = ""
    current_usage: Optional[int] = None
    timestamp: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpgradeRecommendation(BaseModel):
    """Minimum tier needed for a denied request and what it unlocks."""

    tier: Tier
    benefits: list[str] = Field(default_factory=list)


__all__ = [
    "AccessCondition",
    "AccessResult",
    "ActionTable",
    "ConditionalPermission",
    "PermissionGrant",
    "TierLimits",
    "TierPermissions",
    "UpgradeRecommendation",
    "UsageContext",
    "base_permission",
]
