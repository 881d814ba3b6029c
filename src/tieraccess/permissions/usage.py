"""Bucketed usage counters.

Counter keys have the form ``"{user_id}:{subject}:{action}:{bucket}"`` where
the bucket is derived from the UTC date and the quota window:

=========  ==============================
daily      ``YYYY-MM-DD``
weekly     ``YYYY-MM-DD`` of the ISO week's Monday
monthly    ``YYYY-MM``
(none)     ``lifetime``
=========  ==============================

A new window therefore starts a fresh counter; stale buckets are never
read again and expire in Redis via TTL.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Optional

import redis

from ..exceptions import ConfigurationError, StorageError
from ..interfaces import UsageStore
from .constants import LIFETIME_BUCKET, TimeRestriction

if TYPE_CHECKING:
    from ..config import AccessConfig

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "tieraccess:usage"

# Bucket lifetime in Redis: one full window plus slack for clock skew.
_BUCKET_TTL_SECONDS = {
    TimeRestriction.DAILY: 2 * 24 * 3600,
    TimeRestriction.WEEKLY: 8 * 24 * 3600,
    TimeRestriction.MONTHLY: 32 * 24 * 3600,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Normalize to an aware UTC datetime (naive values are taken as UTC)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def usage_bucket(time_restriction: Optional[TimeRestriction], now: datetime) -> str:
    now = as_utc(now)
    if time_restriction is TimeRestriction.DAILY:
        return now.strftime("%Y-%m-%d")
    if time_restriction is TimeRestriction.WEEKLY:
        monday = now.date() - timedelta(days=now.weekday())
        return monday.isoformat()
    if time_restriction is TimeRestriction.MONTHLY:
        return now.strftime("%Y-%m")
    return LIFETIME_BUCKET


def usage_key(
    user_id: str,
    subject: str,
    action: str,
    time_restriction: Optional[TimeRestriction],
    now: datetime,
) -> str:
    """Counter key for a user's use of ``subject.action`` in the current window."""
    return f"{user_id}:{subject}:{action}:{usage_bucket(time_restriction, now)}"


def bucket_ttl(time_restriction: Optional[TimeRestriction]) -> Optional[int]:
    """Seconds a bucket should live, ``None`` for lifetime counters."""
    if time_restriction is None:
        return None
    return _BUCKET_TTL_SECONDS[time_restriction]


class InMemoryUsageStore(UsageStore):
    """Process-local counter store.

    TTLs are ignored: old buckets simply stop being addressed once the
    window rolls over.
    """

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> int:
        return self._counts.get(key, 0)

    def increment(self, key: str, ttl_seconds: Optional[int] = None) -> int:
        with self._lock:
            count = self._counts.get(key, 0) + 1
            self._counts[key] = count
            return count

    def delete(self, key: str) -> None:
        with self._lock:
            self._counts.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._counts.clear()

    def __len__(self) -> int:
        return len(self._counts)


class RedisUsageStore(UsageStore):
    """Redis-backed counter store shared across processes.

    ``INCR`` is atomic on the server; the bucket TTL is set on the first
    increment so finished windows are garbage-collected.

    Example::

        store = RedisUsageStore("redis://localhost:6379/0")
        store.increment("user-1:reports:create:2024-05", ttl_seconds=32 * 86400)
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        client: Optional[Any] = None,
        prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        if client is None and not redis_url:
            raise ConfigurationError("RedisUsageStore requires redis_url or client")
        self.redis_url = redis_url
        self.prefix = prefix
        self._redis = client

    def _get_redis(self) -> Any:
        """Connect lazily so the store can be built before Redis is reachable."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        return self._redis

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    def get(self, key: str) -> int:
        try:
            value = self._get_redis().get(self._key(key))
        except redis.RedisError as e:
            raise StorageError(f"Failed to read usage counter: {e}", key=key) from e
        return int(value) if value is not None else 0

    def increment(self, key: str, ttl_seconds: Optional[int] = None) -> int:
        full_key = self._key(key)
        try:
            r = self._get_redis()
            count = int(r.incr(full_key))
            if count == 1 and ttl_seconds:
                r.expire(full_key, ttl_seconds)
        except redis.RedisError as e:
            raise StorageError(f"Failed to increment usage counter: {e}", key=key) from e
        return count

    def delete(self, key: str) -> None:
        try:
            self._get_redis().delete(self._key(key))
        except redis.RedisError as e:
            raise StorageError(f"Failed to delete usage counter: {e}", key=key) from e


def create_usage_store(config: Optional["AccessConfig"] = None) -> UsageStore:
    """Build the usage store selected by configuration."""
    if config is None or config.usage_backend == "memory":
        return InMemoryUsageStore()

    if config.usage_backend == "redis":
        if not config.redis_url:
            raise ConfigurationError("usage_backend 'redis' requires REDIS_URL")
        logger.info("Using Redis usage store (prefix=%s)", config.usage_key_prefix)
        return RedisUsageStore(config.redis_url, prefix=config.usage_key_prefix)

    raise ConfigurationError(f"Unknown usage backend: {config.usage_backend}")


__all__ = [
    "DEFAULT_KEY_PREFIX",
    "InMemoryUsageStore",
    "RedisUsageStore",
    "as_utc",
    "bucket_ttl",
    "create_usage_store",
    "usage_bucket",
    "usage_key",
    "utc_now",
]
