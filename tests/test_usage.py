"""Tests for usage buckets and counter stores."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
import redis

from tieraccess.config import AccessConfig
from tieraccess.exceptions import ConfigurationError, StorageError
from tieraccess.permissions import (
    InMemoryUsageStore,
    RedisUsageStore,
    TimeRestriction,
    create_usage_store,
    usage_bucket,
    usage_key,
)
from tieraccess.permissions.usage import bucket_ttl


class TestBuckets:
    NOW = datetime(2025, 3, 13, 23, 30, tzinfo=timezone.utc)  # Thursday

    def test_daily(self):
        assert usage_bucket(TimeRestriction.DAILY, self.NOW) == "2025-03-13"

    def test_weekly_is_iso_monday(self):
        assert usage_bucket(TimeRestriction.WEEKLY, self.NOW) == "2025-03-10"
        assert usage_bucket(TimeRestriction.WEEKLY, datetime(2025, 3, 16, tzinfo=timezone.utc)) == "2025-03-10"
        assert usage_bucket(TimeRestriction.WEEKLY, datetime(2025, 3, 17, tzinfo=timezone.utc)) == "2025-03-17"

    def test_monthly(self):
        assert usage_bucket(TimeRestriction.MONTHLY, self.NOW) == "2025-03"

    def test_lifetime(self):
        assert usage_bucket(None, self.NOW) == "lifetime"

    def test_buckets_are_utc(self):
        local = self.NOW.astimezone(timezone(timedelta(hours=5)))
        assert local.day == 14
        assert usage_bucket(TimeRestriction.DAILY, local) == "2025-03-13"

    def test_key(self):
        key = usage_key("u-1", "reports", "create", TimeRestriction.MONTHLY, self.NOW)
        assert key == "u-1:reports:create:2025-03"

    def test_ttl(self):
        assert bucket_ttl(TimeRestriction.DAILY) == 2 * 86400
        assert bucket_ttl(TimeRestriction.WEEKLY) == 8 * 86400
        assert bucket_ttl(TimeRestriction.MONTHLY) == 32 * 86400
        assert bucket_ttl(None) is None


class TestInMemoryUsageStore:
    def test_get_missing(self):
        assert InMemoryUsageStore().get("nope") == 0

    def test_increment_and_delete(self):
        store = InMemoryUsageStore()
        assert store.increment("k") == 1
        assert store.increment("k", ttl_seconds=60) == 2
        assert store.get("k") == 2
        store.delete("k")
        assert store.get("k") == 0
        store.delete("k")

    def test_clear(self):
        store = InMemoryUsageStore()
        store.increment("a")
        store.increment("b")
        assert len(store) == 2
        store.clear()
        assert len(store) == 0


class TestRedisUsageStore:
    def _store(self) -> tuple[RedisUsageStore, MagicMock]:
        client = MagicMock()
        return RedisUsageStore(client=client), client

    def test_requires_url_or_client(self):
        with pytest.raises(ConfigurationError):
            RedisUsageStore()

    def test_first_increment_sets_ttl(self):
        store, client = self._store()
        client.incr.return_value = 1
        assert store.increment("u:reports:create:2025-03", ttl_seconds=100) == 1
        client.incr.assert_called_once_with("tieraccess:usage:u:reports:create:2025-03")
        client.expire.assert_called_once_with("tieraccess:usage:u:reports:create:2025-03", 100)

    def test_later_increment_keeps_ttl(self):
        store, client = self._store()
        client.incr.return_value = 3
        assert store.increment("k", ttl_seconds=100) == 3
        client.expire.assert_not_called()

    def test_get(self):
        store, client = self._store()
        client.get.return_value = "4"
        assert store.get("k") == 4
        client.get.return_value = None
        assert store.get("k") == 0

    def test_custom_prefix(self):
        client = MagicMock()
        RedisUsageStore(client=client, prefix="app").delete("k")
        client.delete.assert_called_once_with("app:k")

    def test_redis_error_wrapped(self):
        store, client = self._store()
        client.incr.side_effect = redis.ConnectionError("refused")
        with pytest.raises(StorageError, match="refused"):
            store.increment("k")

    def test_lazy_connection(self):
        with patch("tieraccess.permissions.usage.redis.from_url") as from_url:
            store = RedisUsageStore("redis://localhost:6379/0")
            from_url.assert_not_called()
            from_url.return_value.get.return_value = None
            assert store.get("k") == 0
            from_url.assert_called_once()
            assert from_url.call_args.kwargs["decode_responses"] is True


class TestCreateUsageStore:
    def test_default_memory(self):
        assert isinstance(create_usage_store(), InMemoryUsageStore)
        assert isinstance(create_usage_store(AccessConfig()), InMemoryUsageStore)

    def test_redis(self):
        config = AccessConfig(usage_backend="redis", redis_url="redis://cache:6379/1", usage_key_prefix="svc")
        store = create_usage_store(config)
        assert isinstance(store, RedisUsageStore)
        assert store.prefix == "svc"

    def test_redis_without_url(self):
        with pytest.raises(ConfigurationError, match="REDIS_URL"):
            create_usage_store(AccessConfig(usage_backend="redis"))
