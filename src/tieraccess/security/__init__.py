"""Protection layer for tier-gated routes, UI fragments, and gRPC services.

This package provides the boundary adapters services use for:
1. **Request guards** (framework-neutral HTTP/UI decisions)
2. **Explicit guards** for service methods (``require_tier`` / ``require_permission``)
3. **gRPC interceptors** (per-RPC tier enforcement)

Usage (in any service)::

    from tieraccess.security import get_tier_interceptors

    server = grpc.aio.server(
        interceptors=get_tier_interceptors(RPC_REQUIREMENTS, tiers=subscription_lookup),
    )

    # Or evaluate a request directly:
    from tieraccess.security import ProtectionConfig, TierProtectionGuard

    guard = TierProtectionGuard(ProtectionConfig(required_tier="professional"), identity=..., tiers=...)
    decision = await guard.evaluate(request_info)

Configuration (env vars, via ``load_config_from_env``)::

    SECURITY_ENFORCEMENT=enforce        # off | warn | enforce (default: enforce)
    TIERACCESS_REDIRECT_BASE_URL=...    # base URL for page redirects
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

import grpc

from ..config import AccessConfig, EnforcementMode
from ..interfaces import IdentityProvider, TierResolver
from ..permissions.engine import TierAccessControl
from .guard import (
    AuthorizationContext,
    DenialKind,
    ProtectionConfig,
    ProtectionDecision,
    ProtectionResponse,
    RenderDecision,
    RequestInfo,
    TierProtectionGuard,
    create_permission_response,
    enforce_tier_limits,
    require_permission,
    require_tier,
    tier_gate,
    validate_feature_action,
)
from .interceptors import (
    RpcRequirement,
    TierPermissionInterceptor,
    _extract_rpc_name,
    _should_skip,
)


def create_guard(
    protection: ProtectionConfig,
    *,
    identity: IdentityProvider,
    tiers: TierResolver,
    config: Optional[AccessConfig] = None,
    engine: Optional[TierAccessControl] = None,
) -> TierProtectionGuard:
    """Build a guard using the enforcement mode and redirect base URL from ``config``."""
    cfg = config or AccessConfig()
    return TierProtectionGuard(
        protection,
        identity=identity,
        tiers=tiers,
        engine=engine,
        enforcement=EnforcementMode(cfg.enforcement),
        redirect_base_url=cfg.redirect_base_url,
    )


def get_tier_interceptors(
    rpc_requirements: Mapping[str, Any],
    *,
    tiers: TierResolver,
    config: Optional[AccessConfig] = None,
    engine: Optional[TierAccessControl] = None,
    service_name: str = "Service",
) -> list[grpc.aio.ServerInterceptor]:
    """Get gRPC server interceptors for tier enforcement.

    Returns an empty list when enforcement is ``off``.

    Usage::

        server = grpc.aio.server(interceptors=get_tier_interceptors(RPC_MAP, tiers=lookup))
    """
    cfg = config or AccessConfig()
    mode = EnforcementMode(cfg.enforcement)
    if mode is EnforcementMode.OFF:
        return []

    return [
        TierPermissionInterceptor(
            rpc_requirements,
            tiers=tiers,
            engine=engine,
            service_name=service_name,
            enforcement=mode,
        )
    ]


__all__ = [
    # Guards
    "AuthorizationContext",
    "DenialKind",
    "ProtectionConfig",
    "ProtectionDecision",
    "ProtectionResponse",
    "RenderDecision",
    "RequestInfo",
    "TierProtectionGuard",
    "create_guard",
    "create_permission_response",
    "enforce_tier_limits",
    "require_permission",
    "require_tier",
    "tier_gate",
    "validate_feature_action",
    # Interceptors
    "RpcRequirement",
    "TierPermissionInterceptor",
    "_extract_rpc_name",
    "_should_skip",
    "get_tier_interceptors",
]
