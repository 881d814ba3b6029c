"""Tier-based permission matrix and access control engine.

Defines:
- Tier / Permission / Feature / ResourceType / LimitType enumerations
- PERMISSION_MATRIX: per-tier feature, resource, and limit declarations
- PermissionChecker: stateless matrix lookups with inheritance merge
- ConditionRegistry: pluggable custom-condition predicates
- UsageStore implementations: bucketed, atomic usage counters
- TierAccessControl: permission checks, usage tracking, upgrade recommendations
"""

from .checker import (
    PermissionChecker,
    default_checker,
    get_all_permissions,
    get_feature_permission,
    get_resource_permission,
    get_tier_limits,
    is_within_usage_limit,
    merge_tier_permissions,
)
from .conditions import ConditionOutcome, ConditionRegistry, condition_registry, register_condition
from .constants import (
    LIFETIME_BUCKET,
    TIER_ORDER,
    UNLIMITED,
    ConditionType,
    Feature,
    LimitType,
    Permission,
    ResourceType,
    Tier,
    TimeRestriction,
)
from .engine import (
    TierAccessControl,
    check_permission,
    check_tier_limits,
    create_access_control,
    get_access_control,
    get_available_features,
    get_upgrade_recommendations,
    has_tier_access,
    reset_access_control,
    track_usage,
    within_time_window,
)
from .matrix import FEATURE_ACTIONS, PERMISSION_MATRIX, RESOURCE_ACTIONS, validate_matrix
from .models import (
    AccessCondition,
    AccessResult,
    ConditionalPermission,
    PermissionGrant,
    TierLimits,
    TierPermissions,
    UpgradeRecommendation,
    UsageContext,
    base_permission,
)
from .usage import InMemoryUsageStore, RedisUsageStore, create_usage_store, usage_bucket, usage_key

__all__ = [
    "FEATURE_ACTIONS",
    "LIFETIME_BUCKET",
    "PERMISSION_MATRIX",
    "RESOURCE_ACTIONS",
    "TIER_ORDER",
    "UNLIMITED",
    "AccessCondition",
    "AccessResult",
    "ConditionOutcome",
    "ConditionRegistry",
    "ConditionType",
    "ConditionalPermission",
    "Feature",
    "InMemoryUsageStore",
    "LimitType",
    "Permission",
    "PermissionChecker",
    "PermissionGrant",
    "RedisUsageStore",
    "ResourceType",
    "Tier",
    "TierAccessControl",
    "TierLimits",
    "TierPermissions",
    "TimeRestriction",
    "UpgradeRecommendation",
    "UsageContext",
    "base_permission",
    "check_permission",
    "check_tier_limits",
    "condition_registry",
    "create_access_control",
    "create_usage_store",
    "default_checker",
    "get_access_control",
    "get_all_permissions",
    "get_available_features",
    "get_feature_permission",
    "get_resource_permission",
    "get_tier_limits",
    "get_upgrade_recommendations",
    "has_tier_access",
    "is_within_usage_limit",
    "merge_tier_permissions",
    "register_condition",
    "reset_access_control",
    "track_usage",
    "usage_bucket",
    "usage_key",
    "validate_matrix",
]
