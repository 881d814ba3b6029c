"""Stateless lookups over the permission matrix.

Provides:
- ``PermissionChecker`` — tier comparison, feature/resource grant lookup,
  tier limits, and inheritance-merged tier tables.
- ``merge_tier_permissions()`` — pure inheritance merge, run once per checker.
- Module-level helpers bound to the default :data:`PERMISSION_MATRIX`.

Lookups on unknown tiers, features, or actions return ``None`` / ``False``
rather than raising; callers treat ``None`` as "no permission declared".
"""

from __future__ import annotations

from typing import Mapping, Optional

from .constants import UNLIMITED, Feature, LimitType, ResourceType, Tier, TimeRestriction
from .matrix import PERMISSION_MATRIX
from .models import (
    ActionTable,
    ConditionalPermission,
    PermissionGrant,
    TierLimits,
    TierPermissions,
    base_permission,
)


def merge_tier_permissions(
    matrix: Mapping[Tier, TierPermissions],
    tier: Tier,
) -> TierPermissions:
    """Merge inherited tiers' tables underneath a tier's own tables.

    Inherited tiers are applied in declaration order, then the tier's own
    entries are laid on top, per action. Limits are never inherited.

    Example::

        merged = merge_tier_permissions(PERMISSION_MATRIX, Tier.ENTERPRISE)
        merged.features[Feature.REPORTS]["white_label"]  # Permission.ADMIN
    """
    own = matrix[tier]
    if not own.inheritance:
        return own

    features: dict[Feature, ActionTable] = {}
    resources: dict[ResourceType, ActionTable] = {}
    for layer in [matrix[t] for t in own.inheritance if t in matrix] + [own]:
        for feature, actions in layer.features.items():
            features.setdefault(feature, {}).update(actions)
        for resource, actions in layer.resources.items():
            resources.setdefault(resource, {}).update(actions)

    return TierPermissions(
        features=features,
        resources=resources,
        limits=own.limits,
        inheritance=own.inheritance,
    )


class PermissionChecker:
    """Read-only accessor for a permission matrix.

    Merged tier tables are computed once at construction so that
    ``get_all_permissions`` is a dictionary lookup on the hot path.
    """

    def __init__(self, matrix: Optional[Mapping[Tier, TierPermissions]] = None) -> None:
        self._matrix = PERMISSION_MATRIX if matrix is None else matrix
        self._merged = {tier: merge_tier_permissions(self._matrix, tier) for tier in self._matrix}

    @property
    def matrix(self) -> Mapping[Tier, TierPermissions]:
        return self._matrix

    def tiers(self) -> tuple[Tier, ...]:
        """Declared tiers in ascending rank."""
        return tuple(sorted(self._matrix, key=lambda t: t.rank))

    # ── Tier comparison ─────────────────────────────────

    @staticmethod
    def has_tier_access(user_tier: Tier | str, required_tier: Tier | str) -> bool:
        user = Tier.parse(user_tier)
        required = Tier.parse(required_tier)
        if user is None or required is None:
            return False
        return user.rank >= required.rank

    # ── Grant lookup ────────────────────────────────────

    def get_feature_permission(
        self,
        tier: Tier | str,
        feature: Feature | str,
        action: str,
    ) -> Optional[PermissionGrant]:
        """Direct lookup in the tier's own feature table."""
        tier_permissions = self._tier(tier)
        key = Feature.parse(feature)
        if tier_permissions is None or key is None:
            return None
        return tier_permissions.features.get(key, {}).get(action)

    def get_resource_permission(
        self,
        tier: Tier | str,
        resource_type: ResourceType | str,
        action: str,
    ) -> Optional[PermissionGrant]:
        """Direct lookup in the tier's own resource table."""
        tier_permissions = self._tier(tier)
        key = ResourceType.parse(resource_type)
        if tier_permissions is None or key is None:
            return None
        return tier_permissions.resources.get(key, {}).get(action)

    def has_feature_permission(self, tier: Tier | str, feature: Feature | str, action: str) -> bool:
        return base_permission(self.get_feature_permission(tier, feature, action)).granted

    def has_resource_permission(self, tier: Tier | str, resource_type: ResourceType | str, action: str) -> bool:
        return base_permission(self.get_resource_permission(tier, resource_type, action)).granted

    def requires_approval(self, tier: Tier | str, feature: Feature | str, action: str) -> bool:
        grant = self.get_feature_permission(tier, feature, action)
        return isinstance(grant, ConditionalPermission) and grant.requires_approval

    def get_usage_limit(
        self,
        tier: Tier | str,
        feature: Feature | str,
        action: str,
    ) -> Optional[tuple[int, TimeRestriction]]:
        """``(limit, period)`` for a windowed quota, ``None`` otherwise."""
        grant = self.get_feature_permission(tier, feature, action)
        if not isinstance(grant, ConditionalPermission):
            return None
        if grant.usage_limit is None or grant.time_restriction is None:
            return None
        return grant.usage_limit, grant.time_restriction

    # ── Limits ──────────────────────────────────────────

    def get_tier_limits(self, tier: Tier | str) -> Optional[TierLimits]:
        tier_permissions = self._tier(tier)
        return tier_permissions.limits if tier_permissions is not None else None

    def is_within_usage_limit(
        self,
        tier: Tier | str,
        limit_type: LimitType | str,
        current_usage: int,
    ) -> bool:
        limits = self.get_tier_limits(tier)
        if limits is None:
            return False
        limit = limits.get(limit_type)
        if limit is None:
            return False
        if limit == UNLIMITED:
            return True
        return current_usage < limit

    # ── Merged tables ───────────────────────────────────

    def get_all_permissions(self, tier: Tier | str) -> Optional[TierPermissions]:
        key = Tier.parse(tier)
        return self._merged.get(key) if key is not None else None

    def _tier(self, tier: Tier | str) -> Optional[TierPermissions]:
        key = Tier.parse(tier)
        return self._matrix.get(key) if key is not None else None


default_checker = PermissionChecker()


def get_feature_permission(tier: Tier | str, feature: Feature | str, action: str) -> Optional[PermissionGrant]:
    return default_checker.get_feature_permission(tier, feature, action)


def get_resource_permission(
    tier: Tier | str, resource_type: ResourceType | str, action: str
) -> Optional[PermissionGrant]:
    return default_checker.get_resource_permission(tier, resource_type, action)


def get_tier_limits(tier: Tier | str) -> Optional[TierLimits]:
    return default_checker.get_tier_limits(tier)


def get_all_permissions(tier: Tier | str) -> Optional[TierPermissions]:
    return default_checker.get_all_permissions(tier)


def is_within_usage_limit(tier: Tier | str, limit_type: LimitType | str, current_usage: int) -> bool:
    return default_checker.is_within_usage_limit(tier, limit_type, current_usage)


__all__ = [
    "PermissionChecker",
    "default_checker",
    "get_all_permissions",
    "get_feature_permission",
    "get_resource_permission",
    "get_tier_limits",
    "is_within_usage_limit",
    "merge_tier_permissions",
]
