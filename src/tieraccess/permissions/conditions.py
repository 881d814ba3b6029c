"""Pluggable custom-condition predicates for conditional permissions.

A ``ConditionalPermission.conditions`` mapping names registered predicates
and the value each one is declared with::

    ConditionalPermission(permission=Permission.READ, conditions={"max_filters": 3})

New condition types are added with :func:`register_condition` without
touching the engine's evaluation loop::

    @register_condition("region_allowed")
    def _region_allowed(declared, context):
        region = (context.metadata if context else {}).get("region")
        if region in declared:
            return ConditionOutcome(satisfied=True)
        return ConditionOutcome(satisfied=False, message=f"Region {region} not allowed")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from ..exceptions import UnknownConditionError
from .constants import ConditionType
from .models import AccessCondition, UsageContext

logger = logging.getLogger(__name__)

# Keys in a conditions mapping that configure evaluation rather than name a predicate.
RESERVED_KEYS = frozenset({"blocking"})


@dataclass(frozen=True)
class ConditionOutcome:
    """Result of one custom predicate."""

    satisfied: bool = True
    message: str = ""
    blocking: bool = True


ConditionPredicate = Callable[[Any, Optional[UsageContext]], ConditionOutcome]


class ConditionRegistry:
    """Registry of custom condition predicates keyed by condition name."""

    def __init__(self) -> None:
        self._predicates: dict[str, ConditionPredicate] = {}

    def register(self, name: str, predicate: ConditionPredicate) -> None:
        if name in RESERVED_KEYS:
            raise ValueError(f"'{name}' is a reserved condition key")
        self._predicates[name] = predicate

    def get(self, name: str) -> ConditionPredicate | None:
        return self._predicates.get(name)

    def names(self) -> frozenset[str]:
        return frozenset(self._predicates)

    def copy(self) -> ConditionRegistry:
        registry = ConditionRegistry()
        registry._predicates = dict(self._predicates)
        return registry

    def evaluate(
        self,
        conditions: Mapping[str, Any],
        context: Optional[UsageContext],
    ) -> list[AccessCondition]:
        """Evaluate every declared condition, returning the unsatisfied ones.

        Raises:
            UnknownConditionError: if a declared condition has no predicate.
        """
        failed: list[AccessCondition] = []
        blocking_override = conditions.get("blocking")

        for name, declared in conditions.items():
            if name in RESERVED_KEYS:
                continue
            predicate = self._predicates.get(name)
            if predicate is None:
                raise UnknownConditionError(f"No predicate registered for condition '{name}'", condition=name)

            outcome = predicate(declared, context)
            if outcome.satisfied:
                continue

            blocking = outcome.blocking if blocking_override is None else bool(blocking_override)
            failed.append(
                AccessCondition(
                    type=ConditionType.CUSTOM,
                    value={"condition": name, "declared": declared, "blocking": blocking},
                    message=outcome.message or f"Condition '{name}' not satisfied",
                )
            )
            logger.debug("Custom condition %s failed (blocking=%s): %s", name, blocking, outcome.message)

        return failed


condition_registry = ConditionRegistry()


def register_condition(
    name: str,
    registry: ConditionRegistry | None = None,
) -> Callable[[ConditionPredicate], ConditionPredicate]:
    """Decorator to register a custom condition predicate.

    Usage:
        @register_condition("max_filters")
        def _max_filters(declared, context):
            ...
    """

    def decorator(predicate: ConditionPredicate) -> ConditionPredicate:
        (registry or condition_registry).register(name, predicate)
        return predicate

    return decorator


def _metadata(context: Optional[UsageContext]) -> Mapping[str, Any]:
    return context.metadata if context is not None else {}


# ── Built-in conditions ─────────────────────────────────


@register_condition("max_filters")
def _max_filters(declared: Any, context: Optional[UsageContext]) -> ConditionOutcome:
    filter_count = _metadata(context).get("filter_count")
    if filter_count is None:
        return ConditionOutcome(satisfied=True)
    if int(filter_count) > int(declared):
        return ConditionOutcome(
            satisfied=False,
            message=f"Too many filters: {filter_count}/{declared}",
        )
    return ConditionOutcome(satisfied=True)


@register_condition("requires_setup")
def _requires_setup(declared: Any, context: Optional[UsageContext]) -> ConditionOutcome:
    if declared and not _metadata(context).get("is_setup_complete"):
        return ConditionOutcome(
            satisfied=False,
            message="Setup must be completed before using this feature",
        )
    return ConditionOutcome(satisfied=True)


__all__ = [
    "RESERVED_KEYS",
    "ConditionOutcome",
    "ConditionPredicate",
    "ConditionRegistry",
    "condition_registry",
    "register_condition",
]
