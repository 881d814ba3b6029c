"""Tests for tieraccess.permissions matrix, enums and checker."""

from __future__ import annotations

import pytest

from tieraccess.exceptions import ConfigurationError
from tieraccess.permissions import (
    FEATURE_ACTIONS,
    PERMISSION_MATRIX,
    RESOURCE_ACTIONS,
    TIER_ORDER,
    UNLIMITED,
    ConditionalPermission,
    Feature,
    LimitType,
    Permission,
    PermissionChecker,
    ResourceType,
    Tier,
    TierLimits,
    TierPermissions,
    TimeRestriction,
    base_permission,
    get_all_permissions,
    get_feature_permission,
    get_resource_permission,
    get_tier_limits,
    is_within_usage_limit,
    merge_tier_permissions,
    validate_matrix,
)


def _limits(value: int) -> TierLimits:
    return TierLimits(**{limit.value: value for limit in LimitType})


class TestTier:
    """Tier ordering and parsing."""

    def test_rank_order(self):
        assert Tier.BASIC.rank < Tier.PROFESSIONAL.rank < Tier.ENTERPRISE.rank

    def test_parse_string(self):
        assert Tier.parse("professional") is Tier.PROFESSIONAL
        assert Tier.parse(" Enterprise ") is Tier.ENTERPRISE

    def test_parse_unknown(self):
        assert Tier.parse("platinum") is None
        assert Tier.parse(None) is None
        assert Tier.parse(3) is None

    def test_higher_tiers(self):
        assert Tier.BASIC.higher_tiers() == (Tier.PROFESSIONAL, Tier.ENTERPRISE)
        assert Tier.ENTERPRISE.higher_tiers() == ()


class TestPermissionEnum:
    def test_ordering(self):
        ranks = [p.rank for p in (Permission.NONE, Permission.READ, Permission.WRITE, Permission.ADMIN)]
        assert ranks == sorted(ranks)

    def test_granted(self):
        assert Permission.NONE.granted is False
        assert Permission.READ.granted is True

    def test_base_permission(self):
        assert base_permission(None) is Permission.NONE
        assert base_permission(Permission.WRITE) is Permission.WRITE
        assert base_permission(ConditionalPermission(permission=Permission.READ, usage_limit=3)) is Permission.READ

    def test_limit_label(self):
        assert LimitType.MAX_REPORTS.label == "max reports"


class TestPermissionMatrix:
    """Structure of the declared matrix."""

    def test_all_tiers_declared(self):
        assert set(PERMISSION_MATRIX) == set(TIER_ORDER)

    def test_every_tier_declares_every_feature(self):
        for tier in TIER_ORDER:
            assert set(PERMISSION_MATRIX[tier].features) == set(Feature)
            assert set(PERMISSION_MATRIX[tier].resources) == set(ResourceType)

    def test_inheritance_declarations(self):
        assert PERMISSION_MATRIX[Tier.BASIC].inheritance == ()
        assert PERMISSION_MATRIX[Tier.PROFESSIONAL].inheritance == (Tier.BASIC,)
        assert PERMISSION_MATRIX[Tier.ENTERPRISE].inheritance == (Tier.BASIC, Tier.PROFESSIONAL)

    def test_limits_monotonic(self):
        """Each limit is non-decreasing (or unlimited) by tier rank."""
        for limit_type in LimitType:
            values = [PERMISSION_MATRIX[t].limits.get(limit_type) for t in TIER_ORDER]
            normalized = [float("inf") if v == UNLIMITED else v for v in values]
            assert normalized == sorted(normalized), limit_type

    def test_enterprise_unlimited(self):
        limits = PERMISSION_MATRIX[Tier.ENTERPRISE].limits
        assert all(limits.is_unlimited(limit_type) for limit_type in LimitType)

    def test_basic_report_quota(self):
        grant = PERMISSION_MATRIX[Tier.BASIC].features[Feature.REPORTS]["create"]
        assert isinstance(grant, ConditionalPermission)
        assert grant.permission is Permission.WRITE
        assert grant.usage_limit == 5
        assert grant.time_restriction is TimeRestriction.MONTHLY

    def test_action_registries(self):
        assert "white_label" in FEATURE_ACTIONS[Feature.REPORTS]
        assert "create" in FEATURE_ACTIONS[Feature.REPORTS]
        assert "bulk_operations" in RESOURCE_ACTIONS[ResourceType.DATA]

    def test_grants_are_immutable(self):
        grant = PERMISSION_MATRIX[Tier.BASIC].features[Feature.REPORTS]["create"]
        with pytest.raises(Exception):
            grant.usage_limit = 100  # type: ignore[misc]


class TestValidateMatrix:
    def _tier(self, limit: int, inheritance: tuple = ()) -> TierPermissions:
        return TierPermissions(features={}, resources={}, limits=_limits(limit), inheritance=inheritance)

    def test_default_matrix_valid(self):
        validate_matrix()

    def test_missing_tier(self):
        matrix = {Tier.BASIC: self._tier(1), Tier.PROFESSIONAL: self._tier(2)}
        with pytest.raises(ConfigurationError, match="missing tiers"):
            validate_matrix(matrix)

    def test_non_monotonic_limit(self):
        matrix = {
            Tier.BASIC: self._tier(10),
            Tier.PROFESSIONAL: self._tier(5),
            Tier.ENTERPRISE: self._tier(UNLIMITED),
        }
        with pytest.raises(ConfigurationError, match="lower than"):
            validate_matrix(matrix)

    def test_unlimited_then_finite_rejected(self):
        matrix = {
            Tier.BASIC: self._tier(1),
            Tier.PROFESSIONAL: self._tier(UNLIMITED),
            Tier.ENTERPRISE: self._tier(100),
        }
        with pytest.raises(ConfigurationError):
            validate_matrix(matrix)

    def test_inheritance_from_higher_tier_rejected(self):
        matrix = {
            Tier.BASIC: self._tier(1, inheritance=(Tier.ENTERPRISE,)),
            Tier.PROFESSIONAL: self._tier(2),
            Tier.ENTERPRISE: self._tier(3),
        }
        with pytest.raises(ConfigurationError, match="cannot inherit"):
            validate_matrix(matrix)


class TestPermissionChecker:
    """Lookups over the default matrix."""

    def test_has_tier_access(self):
        assert PermissionChecker.has_tier_access(Tier.ENTERPRISE, Tier.BASIC) is True
        assert PermissionChecker.has_tier_access("professional", "professional") is True
        assert PermissionChecker.has_tier_access(Tier.PROFESSIONAL, Tier.ENTERPRISE) is False
        assert PermissionChecker.has_tier_access("gold", Tier.BASIC) is False

    def test_tier_access_monotonic(self):
        """If t1 >= t2 and t2 >= t3 then t1 >= t3."""
        for t1 in TIER_ORDER:
            for t2 in TIER_ORDER:
                for t3 in TIER_ORDER:
                    if PermissionChecker.has_tier_access(t1, t2) and PermissionChecker.has_tier_access(t2, t3):
                        assert PermissionChecker.has_tier_access(t1, t3)

    def test_feature_lookup(self):
        assert get_feature_permission(Tier.BASIC, Feature.REPORTS, "view") is Permission.READ
        assert get_feature_permission("enterprise", "reports", "white_label") is Permission.ADMIN

    def test_unknown_keys_return_none(self):
        assert get_feature_permission(Tier.BASIC, "nonexistent_feature", "view") is None
        assert get_feature_permission(Tier.BASIC, Feature.REPORTS, "teleport") is None
        assert get_feature_permission("gold", Feature.REPORTS, "view") is None

    def test_explicit_none_distinct_from_absent(self):
        assert get_feature_permission(Tier.BASIC, Feature.AI_ANALYSIS, "view") is Permission.NONE
        assert get_feature_permission(Tier.BASIC, Feature.REPORTS, "white_label") is None

    def test_resource_lookup(self):
        grant = get_resource_permission(Tier.BASIC, ResourceType.DOCUMENTS, "create")
        assert isinstance(grant, ConditionalPermission)
        assert grant.usage_limit == 10
        assert get_resource_permission(Tier.BASIC, "widgets", "view") is None

    def test_tier_limits(self):
        assert get_tier_limits(Tier.BASIC).max_reports == 5
        assert get_tier_limits(Tier.PROFESSIONAL).max_reports == 25
        assert get_tier_limits("gold") is None

    def test_is_within_usage_limit(self):
        assert is_within_usage_limit(Tier.BASIC, LimitType.MAX_REPORTS, 4) is True
        assert is_within_usage_limit(Tier.BASIC, LimitType.MAX_REPORTS, 5) is False
        assert is_within_usage_limit(Tier.ENTERPRISE, LimitType.MAX_REPORTS, 10**9) is True
        assert is_within_usage_limit(Tier.BASIC, "max_unicorns", 0) is False
        assert is_within_usage_limit("gold", LimitType.MAX_REPORTS, 0) is False

    def test_supplementary_helpers(self):
        checker = PermissionChecker()
        assert checker.has_feature_permission(Tier.BASIC, Feature.REPORTS, "create") is True
        assert checker.has_feature_permission(Tier.BASIC, Feature.AI_ANALYSIS, "create") is False
        assert checker.has_resource_permission(Tier.PROFESSIONAL, ResourceType.DATA, "export") is True
        assert checker.requires_approval(Tier.BASIC, Feature.REPORTS, "create") is False
        assert checker.get_usage_limit(Tier.BASIC, Feature.REPORTS, "create") == (5, TimeRestriction.MONTHLY)
        assert checker.get_usage_limit(Tier.BASIC, Feature.REPORTS, "view") is None

    def test_matrix_reads_idempotent(self):
        first = get_feature_permission(Tier.PROFESSIONAL, Feature.REPORTS, "create")
        second = get_feature_permission(Tier.PROFESSIONAL, Feature.REPORTS, "create")
        assert first == second
        assert get_all_permissions(Tier.ENTERPRISE) is get_all_permissions(Tier.ENTERPRISE)


class TestInheritanceMerge:
    def test_enterprise_keeps_own_entries(self):
        merged = get_all_permissions(Tier.ENTERPRISE)
        assert merged.features[Feature.REPORTS]["create"] is Permission.WRITE
        assert merged.features[Feature.REPORTS]["white_label"] is Permission.ADMIN

    def test_merge_is_per_action(self):
        base = TierPermissions(
            features={Feature.REPORTS: {"view": Permission.READ, "legacy": Permission.READ}},
            resources={},
            limits=_limits(1),
        )
        upper = TierPermissions(
            features={Feature.REPORTS: {"view": Permission.WRITE}},
            resources={},
            limits=_limits(2),
            inheritance=(Tier.BASIC,),
        )
        merged = merge_tier_permissions({Tier.BASIC: base, Tier.PROFESSIONAL: upper}, Tier.PROFESSIONAL)
        assert merged.features[Feature.REPORTS] == {"view": Permission.WRITE, "legacy": Permission.READ}
        assert merged.limits.max_reports == 2

    def test_limits_not_inherited(self):
        assert get_all_permissions(Tier.PROFESSIONAL).limits == PERMISSION_MATRIX[Tier.PROFESSIONAL].limits

    def test_unknown_tier(self):
        assert get_all_permissions("gold") is None
