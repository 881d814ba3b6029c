"""Unified exception hierarchy for tieraccess.

All errors inherit from TierAccessError. This module provides:
- Base exception hierarchy with stable error codes
- ErrorRegistry for protocol mapping
- gRPC and HTTP status mapping helpers

Permission checks never raise: configuration gaps and policy denials are
returned as ``AccessResult`` values. Exceptions are reserved for
misconfiguration, store failures, and programmer errors such as calling
``track_usage`` without a user id.

Usage:
    from tieraccess.exceptions import (
        TierAccessError,
        ConfigurationError,
        AccessDeniedError,
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, TypeVar, cast

if TYPE_CHECKING:
    from .permissions.models import AccessResult

__all__ = [
    # Base hierarchy
    "TierAccessError",
    "ConfigurationError",
    "UnknownPermissionError",
    "UnknownConditionError",
    "UsageTrackingError",
    "StorageError",
    "AccessDeniedError",
    "UnauthenticatedError",
    # Registry
    "ErrorRegistry",
    "error_registry",
    "register_error",
    # Protocol helpers
    "get_grpc_status_code",
    "get_http_status",
]

logger = logging.getLogger(__name__)


# ---- Exception Hierarchy ----------------------------------------------------


class TierAccessError(Exception):
    """Base exception for all tieraccess errors.

    Attributes:
        code: Stable error code string for protocol mapping (e.g. "PERMISSION_DENIED").
        message: Human-readable error description.
        details: Additional context as keyword arguments.
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(self, message: str | None = None, code: str | None = None, **kwargs: Any) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = kwargs
        super().__init__(self.message)


class ConfigurationError(TierAccessError):
    """Invalid or missing configuration (matrix, store, guard setup)."""

    code: str = "CONFIGURATION_ERROR"


class UnknownPermissionError(ConfigurationError):
    """A feature, resource type, or action name is not declared in the matrix."""

    code: str = "UNKNOWN_PERMISSION"


class UnknownConditionError(ConfigurationError):
    """A declared custom condition has no registered predicate."""

    code: str = "UNKNOWN_CONDITION"


class UsageTrackingError(TierAccessError, ValueError):
    """Invalid usage-tracking call (missing user id, feature, or action)."""

    code: str = "USAGE_TRACKING_ERROR"


class StorageError(TierAccessError):
    """Usage counter store failure."""

    code: str = "STORAGE_ERROR"


class AccessDeniedError(TierAccessError):
    """Raised by explicit guards when an access check denies.

    Carries the ``AccessResult`` that caused the denial.
    """

    code: str = "PERMISSION_DENIED"

    def __init__(self, message: str | None = None, result: AccessResult | None = None, **kwargs: Any) -> None:
        self.result = result
        super().__init__(message, **kwargs)


class UnauthenticatedError(TierAccessError):
    """No verified identity for the caller."""

    code: str = "UNAUTHENTICATED"


# ---- Error Registry for Protocol Mapping ------------------------------------

_E = TypeVar("_E", bound=type[TierAccessError])


class ErrorRegistry:
    """Registry for mapping internal errors to external protocol codes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[TierAccessError]] = {}

    def register(self, code: str, error_cls: type[TierAccessError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[TierAccessError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[TierAccessError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("QUOTA_BACKEND_ERROR")
        class QuotaBackendError(StorageError):
            code = "QUOTA_BACKEND_ERROR"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


# Register base errors
error_registry.register("INTERNAL_ERROR", TierAccessError)
error_registry.register("CONFIGURATION_ERROR", ConfigurationError)
error_registry.register("UNKNOWN_PERMISSION", UnknownPermissionError)
error_registry.register("UNKNOWN_CONDITION", UnknownConditionError)
error_registry.register("USAGE_TRACKING_ERROR", UsageTrackingError)
error_registry.register("STORAGE_ERROR", StorageError)
error_registry.register("PERMISSION_DENIED", AccessDeniedError)
error_registry.register("UNAUTHENTICATED", UnauthenticatedError)


# ---- Protocol Mapping -------------------------------------------------------


def get_grpc_status_code(error: TierAccessError) -> Any:
    """Map TierAccessError to gRPC status code.

    Returns grpc.StatusCode value for the given error type.
    """
    import grpc

    error_to_status = {
        "UNAUTHENTICATED": grpc.StatusCode.UNAUTHENTICATED,
        "PERMISSION_DENIED": grpc.StatusCode.PERMISSION_DENIED,
        "CONFIGURATION_ERROR": grpc.StatusCode.FAILED_PRECONDITION,
        "UNKNOWN_PERMISSION": grpc.StatusCode.FAILED_PRECONDITION,
        "UNKNOWN_CONDITION": grpc.StatusCode.FAILED_PRECONDITION,
        "USAGE_TRACKING_ERROR": grpc.StatusCode.INVALID_ARGUMENT,
        "STORAGE_ERROR": grpc.StatusCode.UNAVAILABLE,
    }
    return error_to_status.get(error.code, grpc.StatusCode.INTERNAL)


def get_http_status(error: TierAccessError) -> int:
    """Map TierAccessError to an HTTP status code."""
    error_to_status = {
        "UNAUTHENTICATED": 401,
        "PERMISSION_DENIED": 403,
        "USAGE_TRACKING_ERROR": 400,
        "STORAGE_ERROR": 503,
    }
    return error_to_status.get(error.code, 500)
