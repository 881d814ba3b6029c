"""Tier protection guard — request evaluation and protocol renderings.

Provides:
- ``ProtectionConfig`` — what a route requires (tier, feature/action, custom check).
- ``RequestInfo`` — framework-neutral view of an incoming request.
- ``TierProtectionGuard`` — authentication, tier resolution, permission check,
  usage tracking and custom predicate, in that order.
- ``ProtectionDecision`` — outcome, rendered as redirect, JSON error, or headers.
- ``tier_gate`` / ``enforce_tier_limits`` / ``create_permission_response`` —
  helpers for UI gating and API handlers.
- ``AuthorizationContext`` with ``require_tier`` / ``require_permission`` —
  explicit guards for service methods.

Usage::

    guard = TierProtectionGuard(
        ProtectionConfig(feature="reports", action="create", track_usage=True),
        identity=session_identity,
        tiers=subscription_lookup,
    )
    decision = await guard.evaluate(RequestInfo(url=url, method="POST", ip=ip))
    if decision.blocked:
        return decision.to_json_response()
"""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union
from urllib.parse import urlencode

from ..config import EnforcementMode
from ..exceptions import (
    AccessDeniedError,
    ConfigurationError,
    TierAccessError,
    UnauthenticatedError,
    UnknownPermissionError,
)
from ..interfaces import IdentityProvider, TierResolver
from ..permissions.constants import ConditionType, Feature, LimitType, Tier
from ..permissions.engine import TierAccessControl, get_access_control
from ..permissions.matrix import FEATURE_ACTIONS
from ..permissions.models import AccessResult, UsageContext

logger = logging.getLogger(__name__)

CustomCheck = Callable[[Tier, str], Union[bool, Awaitable[bool]]]


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _engine(engine: Optional[TierAccessControl]) -> TierAccessControl:
    return engine if engine is not None else get_access_control()


def validate_feature_action(feature: Feature | str, action: str) -> Feature:
    """Return the Feature for a configured ``feature.action`` pair.

    Raises:
        UnknownPermissionError: if either name is not declared in the matrix.
    """
    key = Feature.parse(feature)
    if key is None:
        raise UnknownPermissionError(f"Unknown feature: {feature}", feature=str(feature))
    if action not in FEATURE_ACTIONS.get(key, frozenset()):
        raise UnknownPermissionError(
            f"Unknown action '{action}' for feature {key.value}",
            feature=key.value,
            action=action,
        )
    return key


# ── Configuration ────────────────────────────────────────────────


@dataclass
class ProtectionConfig:
    """Requirements of a protected route.

    Attributes:
        required_tier: Minimum tier, checked by rank.
        feature: Feature area checked with ``action``.
        action: Action name within ``feature``.
        require_auth: Deny requests without a verified user id.
        custom_check: Extra predicate ``(tier, user_id) -> bool`` (sync or async).
        track_usage: Count the use after an allowed feature check.
        usage_metadata: Merged into the check context metadata.
    """

    required_tier: Optional[Tier] = None
    feature: Optional[Feature] = None
    action: Optional[str] = None
    require_auth: bool = True
    custom_check: Optional[CustomCheck] = None
    track_usage: bool = False
    usage_metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.required_tier is not None:
            tier = Tier.parse(self.required_tier)
            if tier is None:
                raise ConfigurationError(f"Unknown tier: {self.required_tier}")
            self.required_tier = tier

        if (self.feature is None) != (self.action is None):
            raise ConfigurationError("feature and action must be configured together")
        if self.feature is not None:
            self.feature = validate_feature_action(self.feature, self.action)

        if self.track_usage and self.feature is None:
            raise ConfigurationError("track_usage requires feature and action")


@dataclass
class RequestInfo:
    """Transport-neutral request data used for auditing and conditions."""

    url: str = ""
    path: str = ""
    method: str = "GET"
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def endpoint(self) -> str:
        return self.url or self.path


# ── Decision & responses ─────────────────────────────────────────


class DenialKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    NO_SUBSCRIPTION = "no_subscription"
    INSUFFICIENT_TIER = "insufficient_tier"
    PERMISSION_DENIED = "permission_denied"
    USAGE_LIMIT = "usage_limit"
    CUSTOM_CHECK_FAILED = "custom_check_failed"
    INTERNAL_ERROR = "internal_error"


_JSON_STATUS = {
    DenialKind.UNAUTHENTICATED: 401,
    DenialKind.NO_SUBSCRIPTION: 402,
    DenialKind.INSUFFICIENT_TIER: 403,
    DenialKind.PERMISSION_DENIED: 403,
    DenialKind.USAGE_LIMIT: 429,
    DenialKind.CUSTOM_CHECK_FAILED: 403,
    DenialKind.INTERNAL_ERROR: 500,
}

_JSON_ERROR = {
    DenialKind.UNAUTHENTICATED: "Authentication required",
    DenialKind.NO_SUBSCRIPTION: "Subscription required",
    DenialKind.INSUFFICIENT_TIER: "Insufficient tier",
    DenialKind.PERMISSION_DENIED: "Permission denied",
    DenialKind.USAGE_LIMIT: "Usage limit exceeded",
    DenialKind.CUSTOM_CHECK_FAILED: "Custom access check failed",
    DenialKind.INTERNAL_ERROR: "Internal server error",
}


@dataclass
class ProtectionResponse:
    """Protocol-neutral HTTP response produced by a guard."""

    status: int
    body: Optional[dict[str, Any]] = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def location(self) -> Optional[str]:
        return self.headers.get("Location")


@dataclass
class ProtectionDecision:
    """Result of :meth:`TierProtectionGuard.evaluate`.

    ``denial`` stays set when a denial was let through in warn mode.
    ``error`` holds internal failure text for logs only; it is never rendered.
    ``base_url`` prefixes redirect targets unless ``to_redirect`` is given one.
    """

    allowed: bool = True
    denial: Optional[DenialKind] = None
    user_id: Optional[str] = None
    user_tier: Optional[Tier] = None
    required_tier: Optional[Tier] = None
    feature: Optional[str] = None
    action: Optional[str] = None
    result: Optional[AccessResult] = None
    error: Optional[str] = None
    base_url: str = field(default="", repr=False)

    @property
    def blocked(self) -> bool:
        return not self.allowed

    @property
    def reason(self) -> Optional[str]:
        return self.result.reason if self.result is not None else None

    @property
    def upgrade_required(self) -> Optional[Tier]:
        if self.result is not None and self.result.upgrade_required is not None:
            return self.result.upgrade_required
        if self.denial is DenialKind.INSUFFICIENT_TIER:
            return self.required_tier
        return None

    def headers(self) -> dict[str, str]:
        """Access annotations attached to allowed responses."""
        headers: dict[str, str] = {}
        if self.user_tier is not None:
            headers["X-User-Tier"] = self.user_tier.value
        if self.result is not None:
            headers["X-Permission-Level"] = self.result.permission.value
            if self.result.conditions:
                headers["X-Access-Conditions"] = json.dumps(
                    [c.model_dump(mode="json", exclude_none=True) for c in self.result.conditions]
                )
        return headers

    def to_json_response(self) -> ProtectionResponse:
        if self.allowed:
            return ProtectionResponse(status=200, headers=self.headers())

        kind = self.denial or DenialKind.INTERNAL_ERROR
        body: dict[str, Any] = {"error": _JSON_ERROR[kind]}
        if kind is DenialKind.INTERNAL_ERROR or kind is DenialKind.UNAUTHENTICATED:
            return ProtectionResponse(status=_JSON_STATUS[kind], body=body)

        if kind is DenialKind.NO_SUBSCRIPTION:
            body["upgradeUrl"] = "/subscription"
            return ProtectionResponse(status=_JSON_STATUS[kind], body=body)

        body["currentTier"] = self.user_tier.value if self.user_tier else None
        if kind is DenialKind.INSUFFICIENT_TIER and self.required_tier is not None:
            body["requiredTier"] = self.required_tier.value
            body["upgradeUrl"] = f"/upgrade?{urlencode({'required': self.required_tier.value})}"
        if self.feature:
            body["feature"] = self.feature
            body["action"] = self.action
        if self.result is not None and kind is not DenialKind.INSUFFICIENT_TIER:
            body["reason"] = self.result.reason
            if self.result.conditions:
                body["conditions"] = [c.model_dump(mode="json", exclude_none=True) for c in self.result.conditions]
        if self.upgrade_required is not None:
            body["upgradeRequired"] = self.upgrade_required.value

        return ProtectionResponse(
            status=_JSON_STATUS[kind],
            body={k: v for k, v in body.items() if v is not None},
        )

    def to_redirect(self, base_url: Optional[str] = None) -> Optional[ProtectionResponse]:
        """Browser redirect for a blocked page request, ``None`` when allowed."""
        if self.allowed:
            return None
        if base_url is None:
            base_url = self.base_url

        kind = self.denial or DenialKind.INTERNAL_ERROR
        if kind is DenialKind.UNAUTHENTICATED:
            target = "/sign-in"
        elif kind is DenialKind.NO_SUBSCRIPTION:
            target = "/subscription"
        elif kind is DenialKind.INSUFFICIENT_TIER and self.required_tier is not None:
            target = f"/upgrade?{urlencode({'required': self.required_tier.value})}"
        elif kind in (DenialKind.PERMISSION_DENIED, DenialKind.USAGE_LIMIT) and self.feature:
            params = {
                "feature": self.feature,
                "action": self.action,
                "reason": self.reason or "Access denied",
            }
            if self.upgrade_required is not None:
                params["upgrade"] = self.upgrade_required.value
            target = f"/access-denied?{urlencode(params)}"
        elif kind is DenialKind.INTERNAL_ERROR:
            target = "/error"
        else:
            target = "/access-denied"

        return ProtectionResponse(status=307, headers={"Location": base_url.rstrip("/") + target})


# ── Guard ────────────────────────────────────────────────────────


class TierProtectionGuard:
    """Evaluates a request against a :class:`ProtectionConfig`.

    Args:
        config: Route requirements.
        identity: Supplies the verified user id.
        tiers: Resolves the user's subscription tier.
        engine: Access control engine (defaults to the process singleton).
        enforcement: ``off`` skips checks, ``warn`` logs denials but allows,
            ``enforce`` blocks.
        redirect_base_url: Prefix for the redirect targets of decisions.
    """

    def __init__(
        self,
        config: ProtectionConfig,
        *,
        identity: IdentityProvider,
        tiers: TierResolver,
        engine: Optional[TierAccessControl] = None,
        enforcement: EnforcementMode = EnforcementMode.ENFORCE,
        redirect_base_url: str = "",
    ) -> None:
        self._config = config
        self._identity = identity
        self._tiers = tiers
        self._engine = engine
        self._mode = EnforcementMode(enforcement)
        self._redirect_base_url = redirect_base_url

    @property
    def config(self) -> ProtectionConfig:
        return self._config

    async def evaluate(self, request: RequestInfo) -> ProtectionDecision:
        if self._mode is EnforcementMode.OFF:
            return ProtectionDecision(
                feature=self._feature_name,
                action=self._config.action,
                base_url=self._redirect_base_url,
            )

        try:
            decision = await self._evaluate(request)
        except Exception as e:
            logger.exception("Tier protection failed for %s", request.endpoint)
            decision = ProtectionDecision(
                allowed=False,
                denial=DenialKind.INTERNAL_ERROR,
                feature=self._feature_name,
                action=self._config.action,
                error=str(e),
            )
        decision.base_url = self._redirect_base_url

        if decision.allowed:
            return decision

        if self._mode is EnforcementMode.WARN:
            logger.warning(
                "WARN_DENIED %s %s: %s (would block in enforce mode)",
                request.method,
                request.endpoint,
                decision.denial.value if decision.denial else "denied",
            )
            decision.allowed = True
            return decision

        logger.info(
            "DENIED %s %s for user=%s tier=%s: %s",
            request.method,
            request.endpoint,
            decision.user_id or "anonymous",
            decision.user_tier.value if decision.user_tier else None,
            decision.denial.value if decision.denial else "denied",
        )
        return decision

    async def _evaluate(self, request: RequestInfo) -> ProtectionDecision:
        config = self._config
        engine = _engine(self._engine)
        decision = ProtectionDecision(
            required_tier=config.required_tier,
            feature=self._feature_name,
            action=config.action,
        )

        user_id = await _resolve(self._identity.get_verified_user_id(request))
        decision.user_id = user_id or None
        if config.require_auth and not user_id:
            return _deny(decision, DenialKind.UNAUTHENTICATED)

        tier = Tier.parse(await _resolve(self._tiers.get_user_tier(user_id))) if user_id else None
        decision.user_tier = tier
        if tier is None:
            return _deny(decision, DenialKind.NO_SUBSCRIPTION)

        if config.required_tier is not None and not engine.has_tier_access(tier, config.required_tier):
            decision.result = AccessResult(
                allowed=False,
                reason=f"Requires {config.required_tier.value} tier or higher",
                upgrade_required=config.required_tier,
            )
            return _deny(decision, DenialKind.INSUFFICIENT_TIER)

        if config.feature is not None:
            context = UsageContext(
                user_id=user_id or "",
                feature=config.feature.value,
                action=config.action,
                timestamp=engine.now(),
                metadata={
                    "ip": request.ip,
                    "user_agent": request.user_agent,
                    "endpoint": request.endpoint,
                    "method": request.method,
                    **config.usage_metadata,
                },
            )
            result = engine.check_permission(tier, config.feature, config.action, context)
            if result.error:
                decision.error = result.reason
                return _deny(decision, DenialKind.INTERNAL_ERROR)

            decision.result = result
            if result.denied:
                kind = (
                    DenialKind.USAGE_LIMIT
                    if result.has_condition(ConditionType.USAGE_LIMIT)
                    else DenialKind.PERMISSION_DENIED
                )
                return _deny(decision, kind)

            if config.track_usage and user_id:
                try:
                    engine.track_usage(context)
                except TierAccessError as e:
                    logger.warning("Failed to track usage for %s.%s: %s", context.feature, context.action, e)

        if config.custom_check is not None:
            passed = await _resolve(config.custom_check(tier, user_id or ""))
            if not passed:
                return _deny(decision, DenialKind.CUSTOM_CHECK_FAILED)

        return decision

    @property
    def _feature_name(self) -> Optional[str]:
        return self._config.feature.value if self._config.feature is not None else None


def _deny(decision: ProtectionDecision, kind: DenialKind) -> ProtectionDecision:
    decision.allowed = False
    decision.denial = kind
    return decision


# ── Handler helpers ──────────────────────────────────────────────


@dataclass
class RenderDecision:
    """Whether a UI fragment renders, or a fallback / upgrade prompt instead."""

    render_children: bool
    show_upgrade_prompt: bool = False
    result: Optional[AccessResult] = None


def tier_gate(
    user_tier: Tier | str,
    required_tier: Tier | str | None = None,
    feature: Feature | str | None = None,
    action: Optional[str] = None,
    *,
    engine: Optional[TierAccessControl] = None,
) -> RenderDecision:
    """Decide conditional rendering for a tier-gated UI fragment."""
    engine = _engine(engine)

    if required_tier is not None and not engine.has_tier_access(user_tier, required_tier):
        required = Tier.parse(required_tier)
        result = AccessResult(
            allowed=False,
            reason=f"Requires {required.value if required else required_tier} tier or higher",
            upgrade_required=required,
        )
        return RenderDecision(render_children=False, show_upgrade_prompt=required is not None, result=result)

    if feature is not None and action is not None:
        result = engine.check_permission(user_tier, feature, action)
        if result.denied:
            return RenderDecision(
                render_children=False,
                show_upgrade_prompt=result.upgrade_required is not None,
                result=result,
            )
        return RenderDecision(render_children=True, result=result)

    return RenderDecision(render_children=True)


def enforce_tier_limits(
    user_tier: Tier | str,
    limit_type: LimitType | str,
    current_value: int,
    *,
    engine: Optional[TierAccessControl] = None,
) -> Optional[ProtectionResponse]:
    """``None`` while within the tier limit, else a 429 response (500 if the check failed)."""
    result = _engine(engine).check_tier_limits(user_tier, limit_type, current_value)
    if result.allowed:
        return None
    if result.error:
        return ProtectionResponse(status=500, body={"error": _JSON_ERROR[DenialKind.INTERNAL_ERROR]})

    body = {
        "error": "Tier limit exceeded",
        "limitType": str(getattr(limit_type, "value", limit_type)),
        "currentValue": current_value,
        "reason": result.reason,
        "upgradeRequired": result.upgrade_required.value if result.upgrade_required else None,
    }
    return ProtectionResponse(status=429, body={k: v for k, v in body.items() if v is not None})


def create_permission_response(
    data: Any,
    user_tier: Tier | str,
    feature: Feature | str | None = None,
    action: Optional[str] = None,
    *,
    engine: Optional[TierAccessControl] = None,
) -> ProtectionResponse:
    """Wrap handler data with the caller's tier and, optionally, an access check."""
    body: dict[str, Any] = {"data": data, "userTier": str(getattr(user_tier, "value", user_tier))}
    if feature is not None and action is not None:
        result = _engine(engine).check_permission(user_tier, feature, action)
        if result.error:
            result = AccessResult(allowed=False, reason="Access check failed")
        body["permissions"] = {
            "feature": str(getattr(feature, "value", feature)),
            "action": action,
            "access": result.to_dict(),
        }
    return ProtectionResponse(status=200, body=body)


# ── Explicit guards ──────────────────────────────────────────────


@dataclass(frozen=True)
class AuthorizationContext:
    """Caller identity passed explicitly to guarded service methods."""

    user_id: str
    tier: Tier | str
    engine: Optional[TierAccessControl] = None


def require_tier(ctx: Optional[AuthorizationContext], tier: Tier | str) -> None:
    """Raise unless the caller's tier reaches ``tier``.

    Raises:
        UnauthenticatedError: if no context is given.
        AccessDeniedError: if the caller's tier is too low.
    """
    if ctx is None or not ctx.tier:
        raise UnauthenticatedError("User context required")

    if not _engine(ctx.engine).has_tier_access(ctx.tier, tier):
        required = Tier.parse(tier)
        label = required.value if required else str(tier)
        result = AccessResult(allowed=False, reason=f"Requires {label} tier or higher", upgrade_required=required)
        raise AccessDeniedError(f"Requires {label} tier or higher", result=result)


def require_permission(
    ctx: Optional[AuthorizationContext],
    feature: Feature | str,
    action: str,
) -> AccessResult:
    """Raise unless the caller may perform ``feature.action``; returns the result otherwise.

    Raises:
        UnauthenticatedError: if no context or user id is given.
        AccessDeniedError: carrying the denying ``AccessResult``.
    """
    if ctx is None or not ctx.user_id or not ctx.tier:
        raise UnauthenticatedError("User context required")

    feature_name = str(getattr(feature, "value", feature))
    engine = _engine(ctx.engine)
    result = engine.check_permission(
        ctx.tier,
        feature,
        action,
        UsageContext(user_id=ctx.user_id, feature=feature_name, action=action, timestamp=engine.now()),
    )
    if result.denied:
        raise AccessDeniedError(f"Permission denied: {result.reason}", result=result)
    return result


__all__ = [
    "AuthorizationContext",
    "CustomCheck",
    "DenialKind",
    "ProtectionConfig",
    "ProtectionDecision",
    "ProtectionResponse",
    "RenderDecision",
    "RequestInfo",
    "TierProtectionGuard",
    "create_permission_response",
    "enforce_tier_limits",
    "require_permission",
    "require_tier",
    "tier_gate",
    "validate_feature_action",
]
