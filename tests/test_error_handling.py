"""Tests for the exception hierarchy and protocol mapping."""

from __future__ import annotations

import grpc
import pytest

from tieraccess.exceptions import (
    AccessDeniedError,
    ConfigurationError,
    StorageError,
    TierAccessError,
    UnauthenticatedError,
    UnknownConditionError,
    UnknownPermissionError,
    UsageTrackingError,
    error_registry,
    get_grpc_status_code,
    get_http_status,
    register_error,
)
from tieraccess.permissions import AccessResult


class TestErrorHierarchy:
    """Tests for TierAccessError subclasses."""

    def test_default_message_and_code(self) -> None:
        error = TierAccessError()
        assert error.message == "An internal error occurred"
        assert error.code == "INTERNAL_ERROR"
        assert str(error) == "An internal error occurred"

    def test_details_from_kwargs(self) -> None:
        error = ConfigurationError("bad matrix", tier="basic")
        assert error.details == {"tier": "basic"}
        assert error.code == "CONFIGURATION_ERROR"

    def test_code_override(self) -> None:
        assert StorageError("down", code="CUSTOM").code == "CUSTOM"

    def test_subclass_relationships(self) -> None:
        assert issubclass(UnknownPermissionError, ConfigurationError)
        assert issubclass(UnknownConditionError, ConfigurationError)
        assert issubclass(UsageTrackingError, ValueError)
        assert issubclass(AccessDeniedError, TierAccessError)

    def test_access_denied_carries_result(self) -> None:
        result = AccessResult(allowed=False, reason="nope")
        error = AccessDeniedError("Permission denied: nope", result=result)
        assert error.result is result
        assert error.code == "PERMISSION_DENIED"


class TestErrorRegistry:
    def test_base_errors_registered(self) -> None:
        assert error_registry.get("UNAUTHENTICATED") is UnauthenticatedError
        assert error_registry.get("USAGE_TRACKING_ERROR") is UsageTrackingError
        assert error_registry.get("MISSING") is None

    def test_register_error_decorator(self) -> None:
        @register_error("QUOTA_BACKEND_ERROR")
        class QuotaBackendError(StorageError):
            code = "QUOTA_BACKEND_ERROR"

        assert error_registry.get("QUOTA_BACKEND_ERROR") is QuotaBackendError
        assert "QUOTA_BACKEND_ERROR" in error_registry.all()


class TestProtocolMapping:
    @pytest.mark.parametrize(
        "error, status",
        [
            (UnauthenticatedError(), grpc.StatusCode.UNAUTHENTICATED),
            (AccessDeniedError(), grpc.StatusCode.PERMISSION_DENIED),
            (UnknownPermissionError(), grpc.StatusCode.FAILED_PRECONDITION),
            (UsageTrackingError(), grpc.StatusCode.INVALID_ARGUMENT),
            (StorageError(), grpc.StatusCode.UNAVAILABLE),
            (TierAccessError(), grpc.StatusCode.INTERNAL),
        ],
    )
    def test_grpc_status(self, error: TierAccessError, status: grpc.StatusCode) -> None:
        assert get_grpc_status_code(error) == status

    @pytest.mark.parametrize(
        "error, status",
        [
            (UnauthenticatedError(), 401),
            (AccessDeniedError(), 403),
            (UsageTrackingError(), 400),
            (StorageError(), 503),
            (ConfigurationError(), 500),
        ],
    )
    def test_http_status(self, error: TierAccessError, status: int) -> None:
        assert get_http_status(error) == status
