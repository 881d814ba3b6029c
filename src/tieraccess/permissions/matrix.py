"""Declarative permission matrix for all subscription tiers.

Every tier redeclares its complete feature and resource tables so a reviewer
can read exactly what a tier grants without following an inheritance chain.
``inheritance`` lists lower tiers whose tables are merged underneath (see
:meth:`PermissionChecker.get_all_permissions`); limits are never inherited.

The matrix is built once at import and validated by :func:`validate_matrix`.
"""

from __future__ import annotations

from typing import Mapping, Optional

from ..exceptions import ConfigurationError
from .constants import (
    TIER_ORDER,
    UNLIMITED,
    Feature,
    LimitType,
    Permission,
    ResourceType,
    Tier,
    TimeRestriction,
)
from .models import ConditionalPermission, TierLimits, TierPermissions

# Shorthand aliases
_F = Feature
_R = ResourceType
NONE = Permission.NONE
READ = Permission.READ
WRITE = Permission.WRITE
ADMIN = Permission.ADMIN


def _monthly(permission: Permission, limit: int) -> ConditionalPermission:
    return ConditionalPermission(
        permission=permission,
        usage_limit=limit,
        time_restriction=TimeRestriction.MONTHLY,
    )


def _crud(*, view: Permission, create, edit, delete, share, export) -> dict:
    return {
        "view": view,
        "create": create,
        "edit": edit,
        "delete": delete,
        "share": share,
        "export": export,
    }


# ── Basic ───────────────────────────────────────────────

_BASIC = TierPermissions(
    features={
        _F.QUESTIONNAIRE: _crud(
            view=READ,
            create=_monthly(WRITE, 3),
            edit=_monthly(WRITE, 5),
            delete=WRITE,
            share=NONE,
            export=NONE,
        ),
        _F.DASHBOARD: {
            "view": READ,
            "customize": NONE,
            "widgets": READ,
            "filters": ConditionalPermission(permission=READ, conditions={"max_filters": 3}),
            "export": NONE,
        },
        _F.REPORTS: {
            **_crud(
                view=READ,
                create=_monthly(WRITE, 5),
                edit=WRITE,
                delete=WRITE,
                share=NONE,
                export=_monthly(READ, 3),
            ),
            "schedule": NONE,
            "advanced_analytics": NONE,
        },
        _F.EVALUATIONS: {
            **_crud(
                view=READ,
                create=_monthly(WRITE, 2),
                edit=WRITE,
                delete=WRITE,
                share=NONE,
                export=NONE,
            ),
            "templates": READ,
            "custom_metrics": NONE,
        },
        _F.AI_ANALYSIS: {
            **_crud(view=NONE, create=NONE, edit=NONE, delete=NONE, share=NONE, export=NONE),
            "advanced": NONE,
        },
        _F.ROI_CALCULATOR: {
            **_crud(
                view=READ,
                create=_monthly(WRITE, 10),
                edit=WRITE,
                delete=WRITE,
                share=NONE,
                export=NONE,
            ),
            "scenarios": NONE,
        },
        _F.FINANCIAL_TRENDS: {
            **_crud(view=NONE, create=NONE, edit=NONE, delete=NONE, share=NONE, export=NONE),
            "forecasting": NONE,
        },
        _F.SCENARIO_MODELING: {
            **_crud(view=NONE, create=NONE, edit=NONE, delete=NONE, share=NONE, export=NONE),
            "advanced": NONE,
        },
        _F.EXIT_PLANNING: {
            **_crud(view=NONE, create=NONE, edit=NONE, delete=NONE, share=NONE, export=NONE),
            "strategies": NONE,
        },
        _F.STRATEGIC_OPTIONS: {
            **_crud(view=NONE, create=NONE, edit=NONE, delete=NONE, share=NONE, export=NONE),
            "analysis": NONE,
        },
        _F.ADMIN: {
            "view": NONE,
            "create": NONE,
            "edit": NONE,
            "delete": NONE,
            "user_management": NONE,
            "system_settings": NONE,
        },
        _F.SUPPORT: {"view": READ, "create": WRITE, "edit": NONE, "priority": NONE},
        _F.API: {"access": NONE, "create_keys": NONE, "manage": NONE},
        _F.INTEGRATIONS: {"view": NONE, "create": NONE, "edit": NONE, "delete": NONE},
        _F.COMPLIANCE: {"view": NONE, "create": NONE, "reports": NONE, "audit": NONE},
    },
    resources={
        _R.DOCUMENTS: {
            "view": READ,
            "create": _monthly(WRITE, 10),
            "edit": WRITE,
            "delete": WRITE,
            "share": NONE,
        },
        _R.TEMPLATES: {"view": READ, "create": NONE, "edit": NONE, "delete": NONE, "share": NONE},
        _R.DATA: {"view": READ, "export": NONE, "import": NONE, "bulk_operations": NONE},
    },
    limits=TierLimits(
        max_reports=5,
        max_evaluations=2,
        max_ai_analyses=0,
        max_scenarios=0,
        storage_limit=100,
        api_calls_per_month=0,
        concurrent_users=1,
        data_retention_days=30,
    ),
)


# ── Professional ────────────────────────────────────────

_PROFESSIONAL = TierPermissions(
    features={
        _F.QUESTIONNAIRE: {
            **_crud(
                view=READ,
                create=_monthly(WRITE, 15),
                edit=WRITE,
                delete=WRITE,
                share=WRITE,
                export=_monthly(WRITE, 10),
            ),
            "templates": WRITE,
            "collaboration": WRITE,
        },
        _F.DASHBOARD: {
            "view": READ,
            "customize": WRITE,
            "widgets": WRITE,
            "filters": WRITE,
            "export": WRITE,
            "share": WRITE,
            "alerts": WRITE,
        },
        _F.REPORTS: {
            **_crud(
                view=READ,
                create=_monthly(WRITE, 25),
                edit=WRITE,
                delete=WRITE,
                share=WRITE,
                export=WRITE,
            ),
            "schedule": _monthly(WRITE, 5),
            "advanced_analytics": READ,
            "templates": WRITE,
        },
        _F.EVALUATIONS: {
            **_crud(
                view=READ,
                create=_monthly(WRITE, 10),
                edit=WRITE,
                delete=WRITE,
                share=WRITE,
                export=WRITE,
            ),
            "templates": WRITE,
            "custom_metrics": WRITE,
            "benchmarking": READ,
        },
        _F.AI_ANALYSIS: {
            **_crud(
                view=READ,
                create=_monthly(WRITE, 20),
                edit=WRITE,
                delete=WRITE,
                share=WRITE,
                export=WRITE,
            ),
            "advanced": NONE,
            "insights": READ,
        },
        _F.ROI_CALCULATOR: {
            **_crud(view=READ, create=WRITE, edit=WRITE, delete=WRITE, share=WRITE, export=WRITE),
            "scenarios": _monthly(WRITE, 10),
            "forecasting": READ,
        },
        _F.FINANCIAL_TRENDS: {
            **_crud(
                view=READ,
                create=_monthly(WRITE, 15),
                edit=WRITE,
                delete=WRITE,
                share=WRITE,
                export=WRITE,
            ),
            "forecasting": READ,
            "analysis": READ,
        },
        _F.SCENARIO_MODELING: {
            **_crud(
                view=READ,
                create=_monthly(WRITE, 8),
                edit=WRITE,
                delete=WRITE,
                share=WRITE,
                export=WRITE,
            ),
            "advanced": NONE,
            "simulation": READ,
        },
        _F.EXIT_PLANNING: {
            **_crud(
                view=READ,
                create=_monthly(WRITE, 3),
                edit=WRITE,
                delete=WRITE,
                share=NONE,
                export=WRITE,
            ),
            "strategies": READ,
            "valuation": READ,
        },
        _F.STRATEGIC_OPTIONS: {
            **_crud(
                view=READ,
                create=_monthly(WRITE, 5),
                edit=WRITE,
                delete=WRITE,
                share=WRITE,
                export=WRITE,
            ),
            "analysis": READ,
            "recommendations": READ,
        },
        _F.ADMIN: {
            "view": NONE,
            "create": NONE,
            "edit": NONE,
            "delete": NONE,
            "user_management": NONE,
            "system_settings": NONE,
        },
        _F.SUPPORT: {"view": READ, "create": WRITE, "edit": WRITE, "priority": READ},
        _F.API: {
            "access": _monthly(READ, 1000),
            "create_keys": WRITE,
            "manage": WRITE,
        },
        _F.INTEGRATIONS: {
            "view": READ,
            "create": _monthly(WRITE, 5),
            "edit": WRITE,
            "delete": WRITE,
            "third_party": READ,
        },
        _F.COMPLIANCE: {"view": READ, "create": NONE, "reports": READ, "audit": NONE},
    },
    resources={
        _R.DOCUMENTS: {
            "view": READ,
            "create": WRITE,
            "edit": WRITE,
            "delete": WRITE,
            "share": WRITE,
            "collaborate": WRITE,
        },
        _R.TEMPLATES: {
            "view": READ,
            "create": _monthly(WRITE, 10),
            "edit": WRITE,
            "delete": WRITE,
            "share": WRITE,
        },
        _R.DATA: {
            "view": READ,
            "export": WRITE,
            "import": _monthly(WRITE, 100),
            "bulk_operations": READ,
        },
    },
    limits=TierLimits(
        max_reports=25,
        max_evaluations=10,
        max_ai_analyses=20,
        max_scenarios=8,
        storage_limit=1000,
        api_calls_per_month=10000,
        concurrent_users=3,
        data_retention_days=365,
    ),
    inheritance=(Tier.BASIC,),
)


# ── Enterprise ──────────────────────────────────────────


def _enterprise_crud(**extra: Permission) -> dict:
    table = _crud(view=READ, create=WRITE, edit=WRITE, delete=WRITE, share=ADMIN, export=ADMIN)
    table.update(extra)
    return table


def _all_admin(*actions: str) -> dict:
    return {action: ADMIN for action in actions}


_ENTERPRISE = TierPermissions(
    features={
        _F.QUESTIONNAIRE: {
            **_crud(view=READ, create=WRITE, edit=WRITE, delete=WRITE, share=WRITE, export=WRITE),
            **_all_admin("templates", "collaboration", "approval_workflows", "custom_fields"),
        },
        _F.DASHBOARD: {
            "view": READ,
            **_all_admin(
                "customize", "widgets", "filters", "export", "share", "alerts", "real_time", "multi_tenant"
            ),
        },
        _F.REPORTS: _enterprise_crud(
            **_all_admin("schedule", "advanced_analytics", "templates", "white_label", "automation")
        ),
        _F.EVALUATIONS: _enterprise_crud(
            **_all_admin(
                "templates", "custom_metrics", "benchmarking", "industry_standards", "compliance_tracking"
            )
        ),
        _F.AI_ANALYSIS: _enterprise_crud(**_all_admin("advanced", "insights", "custom_models", "ml_training")),
        _F.ROI_CALCULATOR: _enterprise_crud(
            **_all_admin("scenarios", "forecasting", "monte_carlo", "sensitivity_analysis")
        ),
        _F.FINANCIAL_TRENDS: _enterprise_crud(
            **_all_admin("forecasting", "analysis", "predictive_modeling", "market_integration")
        ),
        _F.SCENARIO_MODELING: _enterprise_crud(
            **_all_admin("advanced", "simulation", "stress_testing", "optimization")
        ),
        _F.EXIT_PLANNING: _enterprise_crud(
            **_all_admin("strategies", "valuation", "tax_optimization", "succession_planning")
        ),
        _F.STRATEGIC_OPTIONS: _enterprise_crud(
            **_all_admin("analysis", "recommendations", "decision_trees", "portfolio_analysis")
        ),
        _F.ADMIN: _all_admin(
            "view",
            "create",
            "edit",
            "delete",
            "user_management",
            "system_settings",
            "security_policies",
            "audit_logs",
            "backup_restore",
        ),
        _F.SUPPORT: _all_admin("view", "create", "edit", "priority", "escalation", "sla_management"),
        _F.API: _all_admin("access", "create_keys", "manage", "webhooks", "rate_limiting"),
        _F.INTEGRATIONS: _all_admin(
            "view", "create", "edit", "delete", "third_party", "custom_connectors", "sso"
        ),
        _F.COMPLIANCE: _all_admin("view", "create", "reports", "audit", "gdpr", "sox", "iso27001"),
    },
    resources={
        _R.DOCUMENTS: {
            "view": READ,
            **_all_admin(
                "create", "edit", "delete", "share", "collaborate", "version_control", "approval_workflows"
            ),
        },
        _R.TEMPLATES: {
            "view": READ,
            **_all_admin("create", "edit", "delete", "share", "marketplace", "custom_branding"),
        },
        _R.DATA: {
            "view": READ,
            **_all_admin("export", "import", "bulk_operations", "data_governance", "encryption", "backup"),
        },
    },
    limits=TierLimits(
        max_reports=UNLIMITED,
        max_evaluations=UNLIMITED,
        max_ai_analyses=UNLIMITED,
        max_scenarios=UNLIMITED,
        storage_limit=UNLIMITED,
        api_calls_per_month=UNLIMITED,
        concurrent_users=UNLIMITED,
        data_retention_days=UNLIMITED,
    ),
    inheritance=(Tier.BASIC, Tier.PROFESSIONAL),
)


PERMISSION_MATRIX: Mapping[Tier, TierPermissions] = {
    Tier.BASIC: _BASIC,
    Tier.PROFESSIONAL: _PROFESSIONAL,
    Tier.ENTERPRISE: _ENTERPRISE,
}


# ── Key registries ──────────────────────────────────────


def _collect_actions(matrix: Mapping[Tier, TierPermissions], table: str) -> dict:
    actions: dict = {}
    for tier_permissions in matrix.values():
        for key, action_table in getattr(tier_permissions, table).items():
            actions.setdefault(key, set()).update(action_table)
    return {key: frozenset(names) for key, names in actions.items()}


# Every action declared for a feature/resource in any tier.
FEATURE_ACTIONS: Mapping[Feature, frozenset[str]] = _collect_actions(PERMISSION_MATRIX, "features")
RESOURCE_ACTIONS: Mapping[ResourceType, frozenset[str]] = _collect_actions(PERMISSION_MATRIX, "resources")


def _limit_rank(value: int) -> float:
    return float("inf") if value == UNLIMITED else float(value)


def validate_matrix(matrix: Optional[Mapping[Tier, TierPermissions]] = None) -> None:
    """Check structural invariants of a permission matrix.

    Raises:
        ConfigurationError: if a tier is missing, inherits from a tier that is
            not strictly lower, or declares a limit lower than a lower tier's.
    """
    matrix = PERMISSION_MATRIX if matrix is None else matrix

    missing = [tier.value for tier in TIER_ORDER if tier not in matrix]
    if missing:
        raise ConfigurationError(f"Permission matrix missing tiers: {missing}", tiers=missing)

    for tier in TIER_ORDER:
        for inherited in matrix[tier].inheritance:
            if inherited.rank >= tier.rank:
                raise ConfigurationError(
                    f"Tier {tier.value} cannot inherit from {inherited.value}",
                    tier=tier.value,
                )

    for limit_type in LimitType:
        previous: Optional[Tier] = None
        for tier in TIER_ORDER:
            value = matrix[tier].limits.get(limit_type)
            if value is None or (value < 0 and value != UNLIMITED):
                raise ConfigurationError(
                    f"Invalid {limit_type.value} limit for {tier.value}: {value}",
                    tier=tier.value,
                )
            if previous is not None:
                prev_value = matrix[previous].limits.get(limit_type)
                if _limit_rank(value) < _limit_rank(prev_value):
                    raise ConfigurationError(
                        f"{limit_type.value} for {tier.value} ({value}) is lower than "
                        f"{previous.value} ({prev_value})",
                        tier=tier.value,
                        limit_type=limit_type.value,
                    )
            previous = tier


validate_matrix()


__all__ = [
    "FEATURE_ACTIONS",
    "PERMISSION_MATRIX",
    "RESOURCE_ACTIONS",
    "validate_matrix",
]
