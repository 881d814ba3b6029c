"""Tier access control engine.

Evaluates (tier, feature, action) requests against the permission matrix,
applies conditional-permission rules, tracks bucketed usage, and computes
upgrade recommendations.

Permission checks never raise: unknown keys and internal failures degrade
to a denial with a ``reason``. Only ``track_usage`` validates its input
loudly, since a malformed tracking call is a caller bug.

Usage::

    from tieraccess.permissions import TierAccessControl, UsageContext

    engine = TierAccessControl()
    result = engine.check_permission("basic", "reports", "create", UsageContext(user_id="u1"))
    if result.allowed:
        engine.track_usage(UsageContext(user_id="u1", feature="reports", action="create"))
"""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Mapping, Optional

from ..exceptions import UsageTrackingError
from ..interfaces import UsageStore
from .checker import PermissionChecker
from .conditions import ConditionRegistry
from .conditions import condition_registry as default_condition_registry
from .constants import (
    LIFETIME_BUCKET,
    UNLIMITED,
    ConditionType,
    Feature,
    LimitType,
    Permission,
    ResourceType,
    Tier,
    TimeRestriction,
)
from .models import (
    AccessCondition,
    AccessResult,
    ConditionalPermission,
    PermissionGrant,
    TierPermissions,
    UpgradeRecommendation,
    UsageContext,
    base_permission,
)
from .usage import InMemoryUsageStore, as_utc, bucket_ttl, usage_key, utc_now

if TYPE_CHECKING:
    from ..audit import AccessAuditLogger
    from ..config import AccessConfig

logger = logging.getLogger(__name__)

GrantLookup = Callable[[Tier, str, str], Optional[PermissionGrant]]


def _name(value: object) -> str:
    return str(getattr(value, "value", value))


def within_time_window(timestamp: datetime, restriction: TimeRestriction, now: datetime) -> bool:
    """Whether ``timestamp`` falls inside the window ending at ``now`` (UTC).

    daily: same calendar date; weekly: the last 7 days; monthly: since the
    same day of the previous month.
    """
    timestamp = as_utc(timestamp)
    now = as_utc(now)

    if restriction is TimeRestriction.DAILY:
        return timestamp.date() == now.date()
    if restriction is TimeRestriction.WEEKLY:
        return timestamp >= now - timedelta(days=7)
    if restriction is TimeRestriction.MONTHLY:
        year, month = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)
        day = min(now.day, calendar.monthrange(year, month)[1])
        return timestamp >= now.replace(year=year, month=month, day=day)
    return True


class TierAccessControl:
    """Stateful access control engine.

    Args:
        matrix: Tier -> TierPermissions mapping (defaults to PERMISSION_MATRIX).
        usage_store: Counter store (defaults to a process-local store).
        condition_registry: Custom predicate registry (defaults to the global one).
        clock: Returns the current aware UTC datetime.
        audit: Optional audit logger receiving every decision.
    """

    def __init__(
        self,
        matrix: Optional[Mapping[Tier, TierPermissions]] = None,
        usage_store: Optional[UsageStore] = None,
        condition_registry: Optional[ConditionRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
        audit: Optional["AccessAuditLogger"] = None,
    ) -> None:
        self._checker = PermissionChecker(matrix)
        self._usage = usage_store if usage_store is not None else InMemoryUsageStore()
        self._conditions = condition_registry if condition_registry is not None else default_condition_registry
        self._clock = clock or utc_now
        self._audit = audit

    @property
    def checker(self) -> PermissionChecker:
        return self._checker

    @property
    def usage_store(self) -> UsageStore:
        return self._usage

    def now(self) -> datetime:
        """Current time from the engine's clock."""
        return self._clock()

    # ── Tier comparison ─────────────────────────────────

    def has_tier_access(self, user_tier: Tier | str, required_tier: Tier | str) -> bool:
        return self._checker.has_tier_access(user_tier, required_tier)

    # ── Permission checks ───────────────────────────────

    def check_permission(
        self,
        user_tier: Tier | str,
        feature: Feature | str,
        action: str,
        context: Optional[UsageContext] = None,
    ) -> AccessResult:
        """Evaluate a feature action for a tier, including conditional rules."""
        subject = _name(feature)
        try:
            grant = self._checker.get_feature_permission(user_tier, feature, action)
            if grant is None:
                result = AccessResult(
                    allowed=False,
                    reason=f"Permission not defined for {subject}.{action}",
                    upgrade_required=self._minimum_tier(
                        self._checker.get_feature_permission, subject, action, above=user_tier
                    ),
                )
            else:
                result = self._evaluate(
                    grant, user_tier, subject, action, context, self._checker.get_feature_permission
                )
        except Exception as e:
            logger.exception("Permission check failed for %s.%s", subject, action)
            result = AccessResult(allowed=False, reason=f"Error checking permission: {e}", error=True)

        self._record(result, user_tier, subject, action, context)
        return result

    def check_resource_permission(
        self,
        user_tier: Tier | str,
        resource_type: ResourceType | str,
        action: str,
        context: Optional[UsageContext] = None,
    ) -> AccessResult:
        """Same evaluation as :meth:`check_permission` over the resource table."""
        subject = _name(resource_type)
        try:
            grant = self._checker.get_resource_permission(user_tier, resource_type, action)
            if grant is None:
                result = AccessResult(
                    allowed=False,
                    reason=f"Resource permission not defined for {subject}.{action}",
                    upgrade_required=self._minimum_tier(
                        self._checker.get_resource_permission, subject, action, above=user_tier
                    ),
                )
            else:
                result = self._evaluate(
                    grant, user_tier, subject, action, context, self._checker.get_resource_permission
                )
        except Exception as e:
            logger.exception("Resource permission check failed for %s.%s", subject, action)
            result = AccessResult(allowed=False, reason=f"Error checking resource permission: {e}", error=True)

        self._record(result, user_tier, subject, action, context)
        return result

    def check_tier_limits(
        self,
        user_tier: Tier | str,
        limit_type: LimitType | str,
        current_value: int,
    ) -> AccessResult:
        try:
            limits = self._checker.get_tier_limits(user_tier)
            if limits is None:
                return AccessResult(allowed=False, reason=f"No limits defined for tier: {_name(user_tier)}")

            limit = limits.get(limit_type)
            if limit is None:
                return AccessResult(allowed=False, reason=f"Unknown limit type: {_name(limit_type)}")
            if limit == UNLIMITED:
                return AccessResult(allowed=True, permission=Permission.ADMIN)

            if current_value < limit:
                return AccessResult(allowed=True, permission=Permission.WRITE)

            return AccessResult(
                allowed=False,
                reason=f"Limit exceeded: {current_value}/{limit} for {_name(limit_type)}",
                upgrade_required=self._next_tier_with_higher_limit(user_tier, limit_type, limit),
            )
        except Exception as e:
            logger.exception("Tier limit check failed for %s", _name(limit_type))
            return AccessResult(allowed=False, reason=f"Error checking tier limits: {e}", error=True)

    # ── Usage tracking ──────────────────────────────────

    def track_usage(self, context: UsageContext) -> Optional[int]:
        """Count one use of ``context.feature``/``context.action``.

        The quota shape comes from the basic tier's declaration; only
        actions declaring both a usage limit and a time window are counted.

        Returns:
            The new count, or ``None`` when the action is not metered.

        Raises:
            UsageTrackingError: if user_id, feature or action is empty.
        """
        return self._track(context, self._checker.get_feature_permission)

    def track_resource_usage(self, context: UsageContext) -> Optional[int]:
        """Resource-table counterpart of :meth:`track_usage`; ``context.feature``
        holds the resource type."""
        return self._track(context, self._checker.get_resource_permission)

    def get_current_usage(
        self,
        user_id: str,
        feature: Feature | ResourceType | str,
        action: str,
        time_restriction: Optional[TimeRestriction] = None,
    ) -> int:
        return self._usage.get(self._usage_key(user_id, _name(feature), action, time_restriction))

    def reset_usage(
        self,
        user_id: str,
        feature: Feature | ResourceType | str,
        action: str,
        time_restriction: Optional[TimeRestriction] = None,
    ) -> None:
        self._usage.delete(self._usage_key(user_id, _name(feature), action, time_restriction))

    # ── Queries ─────────────────────────────────────────

    def get_permissions_for_tier(self, user_tier: Tier | str) -> Optional[TierPermissions]:
        """Inheritance-merged tables for a tier, ``None`` if unknown."""
        return self._checker.get_all_permissions(user_tier)

    def get_available_features(self, user_tier: Tier | str) -> list[str]:
        permissions = self.get_permissions_for_tier(user_tier)
        if permissions is None:
            return []
        return [
            feature.value
            for feature, actions in permissions.features.items()
            if any(base_permission(grant).granted for grant in actions.values())
        ]

    def get_upgrade_recommendations(
        self,
        current_tier: Tier | str,
        feature: Feature | str,
        action: str,
    ) -> Optional[UpgradeRecommendation]:
        """Minimum tier granting ``feature.action`` and what upgrading unlocks.

        ``None`` when no tier grants it or ``current_tier`` already reaches it.
        """
        try:
            required = self._minimum_tier(self._checker.get_feature_permission, _name(feature), action)
            if required is None or self.has_tier_access(current_tier, required):
                return None
            return UpgradeRecommendation(tier=required, benefits=self._upgrade_benefits(current_tier, required))
        except Exception:
            logger.exception("Upgrade recommendation failed for %s.%s", _name(feature), action)
            return None

    # ── Internals ───────────────────────────────────────

    def _evaluate(
        self,
        grant: PermissionGrant,
        user_tier: Tier | str,
        subject: str,
        action: str,
        context: Optional[UsageContext],
        lookup: GrantLookup,
    ) -> AccessResult:
        if base_permission(grant) is Permission.NONE:
            return AccessResult(
                allowed=False,
                reason=f"Access denied: {subject}.{action} not available for {_name(user_tier)} tier",
                upgrade_required=self._minimum_tier(lookup, subject, action, above=user_tier),
            )
        if not isinstance(grant, ConditionalPermission):
            return AccessResult(allowed=True, permission=grant)

        conditions: list[AccessCondition] = []

        if grant.usage_limit is not None and context is not None:
            current = context.current_usage
            if current is None:
                current = self._usage.get(
                    self._usage_key(context.user_id, subject, action, grant.time_restriction)
                )
            if current >= grant.usage_limit:
                window = grant.time_restriction.value if grant.time_restriction else LIFETIME_BUCKET
                conditions.append(
                    AccessCondition(
                        type=ConditionType.USAGE_LIMIT,
                        value=grant.usage_limit,
                        message=f"Usage limit exceeded: {current}/{grant.usage_limit} per {window}",
                    )
                )

        if grant.requires_approval:
            conditions.append(
                AccessCondition(
                    type=ConditionType.APPROVAL_REQUIRED,
                    value=True,
                    message="This action requires approval",
                )
            )

        if grant.time_restriction is not None and context is not None and context.timestamp is not None:
            if not within_time_window(context.timestamp, grant.time_restriction, self._clock()):
                conditions.append(
                    AccessCondition(
                        type=ConditionType.TIME_RESTRICTION,
                        value=grant.time_restriction.value,
                        message=f"Action not allowed outside of {grant.time_restriction.value} window",
                    )
                )

        if grant.conditions:
            conditions.extend(self._conditions.evaluate(grant.conditions, context))

        blocking = [c for c in conditions if c.blocking]
        if blocking:
            return AccessResult(
                allowed=False,
                permission=grant.permission,
                conditions=blocking,
                reason="; ".join(c.message or c.type.value for c in blocking),
                upgrade_required=self._minimum_tier(lookup, subject, action, above=user_tier),
            )

        return AccessResult(
            allowed=True,
            permission=grant.permission,
            conditions=conditions or None,
        )

    def _minimum_tier(
        self,
        lookup: GrantLookup,
        subject: str,
        action: str,
        above: Tier | str | None = None,
    ) -> Optional[Tier]:
        """Lowest tier whose base grant for ``subject.action`` is not ``none``.

        With ``above``, only tiers ranked higher than it are considered.
        """
        floor = Tier.parse(above) if above is not None else None
        for tier in self._checker.tiers():
            if floor is not None and tier.rank <= floor.rank:
                continue
            if base_permission(lookup(tier, subject, action)).granted:
                return tier
        return None

    def _next_tier_with_higher_limit(
        self,
        user_tier: Tier | str,
        limit_type: LimitType | str,
        current_limit: int,
    ) -> Optional[Tier]:
        current = Tier.parse(user_tier)
        for tier in self._checker.tiers():
            if current is not None and tier.rank <= current.rank:
                continue
            limits = self._checker.get_tier_limits(tier)
            next_limit = limits.get(limit_type) if limits is not None else None
            if next_limit is None:
                continue
            if next_limit == UNLIMITED or next_limit > current_limit:
                return tier
        return None

    def _upgrade_benefits(self, from_tier: Tier | str, to_tier: Tier) -> list[str]:
        source = self.get_permissions_for_tier(from_tier)
        target = self.get_permissions_for_tier(to_tier)
        if source is None or target is None:
            return []

        benefits: list[str] = []
        for limit_type in LimitType:
            before = source.limits.get(limit_type)
            after = target.limits.get(limit_type)
            if after == UNLIMITED and before != UNLIMITED:
                benefits.append(f"Unlimited {limit_type.label}")
            elif before != UNLIMITED and after > before:
                benefits.append(f"Increased {limit_type.label}: {after} (from {before})")

        for feature, actions in target.features.items():
            previous = source.features.get(feature, {})
            gains_access = any(
                base_permission(grant).granted and not base_permission(previous.get(name)).granted
                for name, grant in actions.items()
            )
            if gains_access:
                benefits.append(f"Access to {feature.value.replace('_', ' ')} features")

        return benefits

    def _track(self, context: UsageContext, lookup: GrantLookup) -> Optional[int]:
        if not context.user_id or not context.feature or not context.action:
            raise UsageTrackingError("Invalid usage context: user_id, feature, and action are required")

        grant = lookup(Tier.BASIC, context.feature, context.action)
        if not isinstance(grant, ConditionalPermission):
            return None
        if grant.usage_limit is None or grant.time_restriction is None:
            return None

        key = self._usage_key(context.user_id, context.feature, context.action, grant.time_restriction)
        count = self._usage.increment(key, ttl_seconds=bucket_ttl(grant.time_restriction))
        logger.debug("Tracked usage %s -> %d", key, count)
        if self._audit is not None:
            self._audit.record_usage(context, count)
        return count

    def _usage_key(
        self,
        user_id: str,
        subject: str,
        action: str,
        time_restriction: Optional[TimeRestriction],
    ) -> str:
        return usage_key(user_id, subject, action, time_restriction, self._clock())

    def _record(
        self,
        result: AccessResult,
        user_tier: Tier | str,
        subject: str,
        action: str,
        context: Optional[UsageContext],
    ) -> None:
        if result.denied:
            logger.debug("Access denied to %s.%s for tier %s: %s", subject, action, _name(user_tier), result.reason)
        if self._audit is not None:
            self._audit.record_decision(
                result, user_tier=user_tier, feature=subject, action=action, context=context
            )


# ── Singleton factory ───────────────────────────────────

_engine: TierAccessControl | None = None


def get_access_control(config: Optional["AccessConfig"] = None) -> TierAccessControl:
    """Get or create the singleton engine.

    Args:
        config: Configuration used only on first call to select the usage
            store and audit settings.
    """
    global _engine
    if _engine is None:
        _engine = create_access_control(config)
    return _engine


def create_access_control(config: Optional["AccessConfig"] = None) -> TierAccessControl:
    """Build an engine wired to the configured usage store and audit logger."""
    from ..audit import AccessAuditLogger
    from .usage import create_usage_store

    audit = AccessAuditLogger(enabled=config.audit_enabled) if config is not None else None
    return TierAccessControl(usage_store=create_usage_store(config), audit=audit)


def reset_access_control() -> None:
    """Reset the singleton (for testing)."""
    global _engine
    _engine = None


# ── Convenience functions ───────────────────────────────


def has_tier_access(user_tier: Tier | str, required_tier: Tier | str) -> bool:
    return get_access_control().has_tier_access(user_tier, required_tier)


def check_permission(
    user_tier: Tier | str,
    feature: Feature | str,
    action: str,
    context: Optional[UsageContext] = None,
) -> AccessResult:
    return get_access_control().check_permission(user_tier, feature, action, context)


def check_tier_limits(user_tier: Tier | str, limit_type: LimitType | str, current_value: int) -> AccessResult:
    return get_access_control().check_tier_limits(user_tier, limit_type, current_value)


def track_usage(context: UsageContext) -> Optional[int]:
    return get_access_control().track_usage(context)


def get_available_features(user_tier: Tier | str) -> list[str]:
    return get_access_control().get_available_features(user_tier)


def get_upgrade_recommendations(
    current_tier: Tier | str, feature: Feature | str, action: str
) -> Optional[UpgradeRecommendation]:
    return get_access_control().get_upgrade_recommendations(current_tier, feature, action)


__all__ = [
    "TierAccessControl",
    "check_permission",
    "check_tier_limits",
    "create_access_control",
    "get_access_control",
    "get_available_features",
    "get_upgrade_recommendations",
    "has_tier_access",
    "reset_access_control",
    "track_usage",
    "within_time_window",
]
