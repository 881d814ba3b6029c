"""Tests for the custom condition registry."""

from __future__ import annotations

import pytest

from tieraccess.exceptions import ConfigurationError, UnknownConditionError
from tieraccess.permissions import (
    ConditionOutcome,
    ConditionRegistry,
    ConditionType,
    UsageContext,
    condition_registry,
    register_condition,
)


class TestConditionRegistry:
    def test_builtins_registered(self):
        assert {"max_filters", "requires_setup"} <= condition_registry.names()

    def test_register_decorator(self):
        registry = ConditionRegistry()

        @register_condition("always_fail", registry=registry)
        def _always_fail(declared, context):
            return ConditionOutcome(satisfied=False, message="nope")

        assert registry.get("always_fail") is _always_fail
        assert condition_registry.get("always_fail") is None

    def test_reserved_name_rejected(self):
        with pytest.raises(ValueError, match="reserved"):
            ConditionRegistry().register("blocking", lambda declared, ctx: ConditionOutcome())

    def test_copy_is_independent(self):
        registry = condition_registry.copy()
        registry.register("extra", lambda declared, ctx: ConditionOutcome())
        assert "extra" in registry.names()
        assert "extra" not in condition_registry.names()


class TestEvaluate:
    def test_satisfied_returns_empty(self):
        ctx = UsageContext(metadata={"filter_count": 1})
        assert condition_registry.evaluate({"max_filters": 3}, ctx) == []

    def test_missing_metadata_is_satisfied(self):
        assert condition_registry.evaluate({"max_filters": 3}, None) == []

    def test_failed_condition(self):
        ctx = UsageContext(metadata={"filter_count": 4})
        [failed] = condition_registry.evaluate({"max_filters": 3}, ctx)
        assert failed.type is ConditionType.CUSTOM
        assert failed.message == "Too many filters: 4/3"
        assert failed.blocking is True

    def test_requires_setup(self):
        [failed] = condition_registry.evaluate({"requires_setup": True}, UsageContext())
        assert failed.message == "Setup must be completed before using this feature"

        ctx = UsageContext(metadata={"is_setup_complete": True})
        assert condition_registry.evaluate({"requires_setup": True}, ctx) == []

    def test_blocking_override(self):
        ctx = UsageContext(metadata={"filter_count": 10})
        [failed] = condition_registry.evaluate({"max_filters": 3, "blocking": False}, ctx)
        assert failed.blocking is False
        assert failed.value["blocking"] is False

    def test_predicate_default_non_blocking(self):
        registry = ConditionRegistry()
        registry.register("soft", lambda declared, ctx: ConditionOutcome(satisfied=False, blocking=False))
        [failed] = registry.evaluate({"soft": 1}, None)
        assert failed.blocking is False
        assert failed.message == "Condition 'soft' not satisfied"

    def test_unknown_condition_raises(self):
        with pytest.raises(UnknownConditionError) as exc_info:
            ConditionRegistry().evaluate({"mystery": 1}, None)
        assert exc_info.value.details["condition"] == "mystery"
        assert isinstance(exc_info.value, ConfigurationError)
