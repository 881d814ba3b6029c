from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Optional, Protocol, Union, runtime_checkable

if TYPE_CHECKING:
    from .permissions.constants import Tier


class UsageStore(ABC):
    """Keyed counter store for usage quotas.

    ``increment`` must be atomic per key; reads may be slightly stale.
    """

    @abstractmethod
    def get(self, key: str) -> int:
        """Current count for ``key`` (0 when absent)."""
        raise NotImplementedError

    @abstractmethod
    def increment(self, key: str, ttl_seconds: Optional[int] = None) -> int:
        """Atomically add one to ``key`` and return the new count."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError


@runtime_checkable
class IdentityProvider(Protocol):
    """Supplies the verified user id of a request, or ``None``."""

    def get_verified_user_id(self, request: Any) -> Union[Optional[str], Awaitable[Optional[str]]]: ...


@runtime_checkable
class TierResolver(Protocol):
    """Resolves a user's subscription tier, ``None`` for no subscription."""

    def get_user_tier(self, user_id: str) -> Union[Optional[Tier], Awaitable[Optional[Tier]]]: ...


__all__ = ["IdentityProvider", "TierResolver", "UsageStore"]
