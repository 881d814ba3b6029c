"""gRPC interceptor for tier-based access control.

Provides:
- ``RpcRequirement`` — what an RPC requires (tier and/or feature action).
- ``TierPermissionInterceptor`` — server interceptor resolving the caller's
  tier and checking it against the RPC's requirement.
- ``_extract_rpc_name``, ``_should_skip`` — helper utilities.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

import grpc

from ..config import EnforcementMode
from ..exceptions import ConfigurationError, TierAccessError
from ..interfaces import TierResolver
from ..permissions.constants import ConditionType, Feature, Tier
from ..permissions.engine import TierAccessControl, get_access_control
from ..permissions.models import UsageContext
from .guard import _resolve, validate_feature_action

logger = logging.getLogger(__name__)

# Method prefixes that bypass tier checks
_SKIP_PREFIXES = (
    "grpc.health.v1",
    "grpc.reflection.v1",
)

DEFAULT_IDENTITY_KEY = "x-user-id"


# ── Helpers ──────────────────────────────────────────────────────


def _extract_rpc_name(full_method: str) -> str:
    """Extract RPC name from fully-qualified method string.

    ``/reports.ReportService/CreateReport`` → ``CreateReport``
    """
    return full_method.rsplit("/", 1)[-1] if "/" in full_method else full_method


def _should_skip(method: str) -> bool:
    """Check if this method should skip tier checks."""
    return any(prefix in method for prefix in _SKIP_PREFIXES)


@dataclass(frozen=True)
class RpcRequirement:
    """Access requirement of one RPC.

    Attributes:
        required_tier: Minimum tier by rank.
        feature: Feature checked with ``action`` through the engine.
        action: Action name within ``feature``.
        track_usage: Count the call after an allowed feature check.
    """

    required_tier: Optional[Tier] = None
    feature: Optional[Feature] = None
    action: Optional[str] = None
    track_usage: bool = False

    @classmethod
    def coerce(cls, value: Union[RpcRequirement, Tier, str, tuple]) -> RpcRequirement:
        """Build from a requirement, a tier, or a ``(feature, action)`` pair."""
        if isinstance(value, RpcRequirement):
            requirement = value
        elif isinstance(value, tuple):
            requirement = cls(feature=value[0], action=value[1])
        else:
            tier = Tier.parse(value)
            if tier is None:
                raise ConfigurationError(f"Unknown tier requirement: {value}")
            return cls(required_tier=tier)

        if requirement.feature is not None:
            feature = validate_feature_action(requirement.feature, requirement.action)
            requirement = cls(
                required_tier=Tier.parse(requirement.required_tier),
                feature=feature,
                action=requirement.action,
                track_usage=requirement.track_usage,
            )
        return requirement


def _metadata_identity(key: str) -> Callable[[Mapping[str, str]], Optional[str]]:
    def identity(metadata: Mapping[str, str]) -> Optional[str]:
        value = metadata.get(key, "").strip()
        return value or None

    return identity


# ── Interceptor ──────────────────────────────────────────────────


class TierPermissionInterceptor(grpc.aio.ServerInterceptor):
    """gRPC server interceptor enforcing subscription tiers per RPC.

    Sits before all handlers and:
    1. Logs caller identity (always, even when enforcement is off)
    2. Maps the RPC to its requirement via ``rpc_requirements``
    3. Resolves the caller's tier through the ``TierResolver``
    4. Checks tier rank and the feature action through the engine
    5. Aborts with ``UNAUTHENTICATED`` / ``PERMISSION_DENIED`` /
       ``RESOURCE_EXHAUSTED`` if not allowed, ``INTERNAL`` if the check failed

    Unmapped RPCs are **denied** (fail-closed).

    Args:
        rpc_requirements: RPC name → requirement, tier, or ``(feature, action)``.
        tiers: Resolves a user id to a tier (sync or async).
        engine: Access control engine (defaults to the process singleton).
        service_name: Human-readable service name for log messages.
        enforcement: off / warn / enforce (default: enforce).
        identity: Extracts the user id from invocation metadata
            (default: the ``x-user-id`` header).

    Usage::

        interceptor = TierPermissionInterceptor(
            {"CreateReport": ("reports", "create"), "RunSimulation": Tier.ENTERPRISE},
            tiers=subscription_lookup,
            service_name="Reports",
            enforcement=EnforcementMode.WARN,   # safe rollout
        )
    """

    def __init__(
        self,
        rpc_requirements: Mapping[str, Any],
        *,
        tiers: TierResolver,
        engine: Optional[TierAccessControl] = None,
        service_name: str = "Service",
        enforcement: EnforcementMode | str | None = None,
        identity: Optional[Callable[[Mapping[str, str]], Optional[str]]] = None,
    ) -> None:
        self._rpc_map = {name: RpcRequirement.coerce(value) for name, value in rpc_requirements.items()}
        self._tiers = tiers
        self._engine = engine
        self._service_name = service_name
        self._mode = EnforcementMode(enforcement) if enforcement is not None else EnforcementMode.ENFORCE
        self._identity = identity or _metadata_identity(DEFAULT_IDENTITY_KEY)

        if self._mode != EnforcementMode.OFF:
            logger.info(
                "%s tier interceptor mode: %s",
                self._service_name,
                self._mode.value,
            )

    async def intercept_service(
        self,
        continuation: Any,
        handler_call_details: grpc.HandlerCallDetails,
    ) -> grpc.RpcMethodHandler:
        """Intercept incoming gRPC calls for tier validation."""
        method = handler_call_details.method or ""

        # Skip health checks / reflection
        if _should_skip(method):
            return await continuation(handler_call_details)

        rpc_name = _extract_rpc_name(method)
        metadata = dict(handler_call_details.invocation_metadata or [])
        user_id = self._identity(metadata)

        logger.info(
            "%s RPC %s | caller=%s",
            self._service_name,
            rpc_name,
            user_id or "anonymous",
        )

        if self._mode == EnforcementMode.OFF:
            return await continuation(handler_call_details)

        deny_reason, deny_code = await self._check(rpc_name, method, user_id)

        if deny_reason:
            if self._mode == EnforcementMode.WARN:
                logger.warning(
                    "%s WARN_DENIED '%s': %s (would block in enforce mode)",
                    self._service_name,
                    rpc_name,
                    deny_reason,
                )
                return await continuation(handler_call_details)

            logger.warning(
                "%s DENIED '%s': %s",
                self._service_name,
                rpc_name,
                deny_reason,
            )

            _deny_msg = f"{self._service_name}: {rpc_name} denied: {deny_reason}"
            _deny_status = deny_code

            async def _denied(request, context):
                await context.abort(_deny_status, _deny_msg)

            return grpc.unary_unary_rpc_method_handler(_denied)

        logger.debug(
            "%s ALLOWED '%s' for user '%s'",
            self._service_name,
            rpc_name,
            user_id,
        )
        return await continuation(handler_call_details)

    async def _check(
        self,
        rpc_name: str,
        method: str,
        user_id: Optional[str],
    ) -> tuple[Optional[str], grpc.StatusCode]:
        """Return ``(deny_reason, status)``; ``deny_reason`` is None when allowed."""
        requirement = self._rpc_map.get(rpc_name)
        if requirement is None:
            return "RPC not mapped to tier requirement", grpc.StatusCode.PERMISSION_DENIED
        if not user_id:
            return "no user identity", grpc.StatusCode.UNAUTHENTICATED

        try:
            engine = self._engine if self._engine is not None else get_access_control()
            tier = Tier.parse(await _resolve(self._tiers.get_user_tier(user_id)))
            if tier is None:
                return f"no active subscription for user '{user_id}'", grpc.StatusCode.PERMISSION_DENIED

            if requirement.required_tier is not None and not engine.has_tier_access(tier, requirement.required_tier):
                return (
                    f"requires {requirement.required_tier.value} tier (user tier {tier.value})",
                    grpc.StatusCode.PERMISSION_DENIED,
                )

            if requirement.feature is not None:
                context = UsageContext(
                    user_id=user_id,
                    feature=requirement.feature.value,
                    action=requirement.action,
                    timestamp=engine.now(),
                    metadata={"endpoint": method, "method": "grpc"},
                )
                result = engine.check_permission(tier, requirement.feature, requirement.action, context)
                if result.error:
                    return "access check failed", grpc.StatusCode.INTERNAL
                if result.denied:
                    code = (
                        grpc.StatusCode.RESOURCE_EXHAUSTED
                        if result.has_condition(ConditionType.USAGE_LIMIT)
                        else grpc.StatusCode.PERMISSION_DENIED
                    )
                    return result.reason or "access denied", code

                if requirement.track_usage:
                    try:
                        engine.track_usage(context)
                    except TierAccessError as e:
                        logger.warning("Failed to track usage for %s: %s", rpc_name, e)
        except Exception:
            logger.exception("%s tier check failed for '%s'", self._service_name, rpc_name)
            return "access check failed", grpc.StatusCode.INTERNAL

        return None, grpc.StatusCode.OK


__all__ = [
    "DEFAULT_IDENTITY_KEY",
    "RpcRequirement",
    "TierPermissionInterceptor",
    "_extract_rpc_name",
    "_should_skip",
]
