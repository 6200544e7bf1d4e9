"""Tests for the session cache and its Redis/in-memory backends."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from personnel.service.sessions import SessionCache, TokenType
from personnel.storage.errors import CacheUnavailable
from personnel.storage.memory import MemoryCache
from personnel.storage.redis_cache import RedisCache, SyncRedisCache


class FakeAsyncRedis:
    """Just enough of redis.asyncio.Redis for RedisCache."""

    def __init__(self):
        self.data = {}
        self.expiry = {}
        self.delete_calls = []

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex

    async def get(self, key):
        return self.data.get(key)

    async def delete(self, *keys):
        self.delete_calls.append(keys)
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    async def scan_iter(self, match=None, count=None):
        prefix = match.rstrip("*")
        for key in list(self.data):
            if key.startswith(prefix):
                yield key

    async def ttl(self, key):
        if key not in self.data:
            return -2
        return self.expiry.get(key) or -1

    async def aclose(self):
        pass


class TestSessionCacheNamespaces:
    """Tests for key layout and liveness."""

    def test_keys_use_token_type_prefix(self):
        assert SessionCache.key(TokenType.ACCESS, "abc") == "access_token:abc"
        assert SessionCache.key(TokenType.REFRESH, "abc") == "refresh_token:abc"

    async def test_namespaces_are_independent(self, sessions):
        """Test that one token string can be live in one namespace only."""
        await sessions.register(TokenType.ACCESS, "tok", timedelta(minutes=1))

        assert await sessions.is_live(TokenType.ACCESS, "tok")
        assert not await sessions.is_live(TokenType.REFRESH, "tok")

    async def test_revoke_removes_entry(self, sessions):
        await sessions.register(TokenType.ACCESS, "tok", timedelta(minutes=1))

        assert await sessions.revoke(TokenType.ACCESS, "tok") == 1
        assert await sessions.revoke(TokenType.ACCESS, "tok") == 0
        assert not await sessions.is_live(TokenType.ACCESS, "tok")

    async def test_revoke_all_only_touches_its_namespace(self, sessions):
        for token in ("r1", "r2", "r3"):
            await sessions.register(TokenType.REFRESH, token, timedelta(days=1))
        await sessions.register(TokenType.ACCESS, "a1", timedelta(minutes=1))

        assert await sessions.revoke_all(TokenType.REFRESH) == 3
        assert await sessions.is_live(TokenType.ACCESS, "a1")

    async def test_entries_expire_with_ttl(self, sessions, clock):
        await sessions.register(TokenType.ACCESS, "tok", timedelta(seconds=30))
        clock.advance(29)
        assert await sessions.remaining_ttl(TokenType.ACCESS, "tok") == 1

        clock.advance(1)
        assert not await sessions.is_live(TokenType.ACCESS, "tok")
        assert await sessions.remaining_ttl(TokenType.ACCESS, "tok") is None

    async def test_marker_value_is_stored(self, sessions, memory_cache):
        await sessions.register(TokenType.ACCESS, "tok", timedelta(minutes=1), marker="42")

        assert await memory_cache.get("access_token:tok") == "42"


class TestMemoryCache:
    async def test_close_clears_entries(self):
        cache = MemoryCache()
        await cache.set("k", "v", 60)

        await cache.close()

        assert await cache.get("k") is None

    async def test_pattern_is_case_sensitive(self, memory_cache):
        await memory_cache.set("refresh_token:x", "1", 60)
        await memory_cache.set("REFRESH_TOKEN:y", "1", 60)

        assert await memory_cache.delete_matching("refresh_token:*") == 1
        assert await memory_cache.get("REFRESH_TOKEN:y") == "1"


class TestRedisCache:
    """Tests for the async Redis backend against a fake client."""

    @pytest.fixture
    def cache(self):
        cache = RedisCache("redis://localhost:6379/0")
        cache.client = FakeAsyncRedis()
        return cache

    async def test_set_uses_expiry(self, cache):
        await cache.set("access_token:t", "1", 900)

        assert cache.client.expiry["access_token:t"] == 900
        assert await cache.get("access_token:t") == "1"
        assert await cache.ttl("access_token:t") == 900

    async def test_missing_key_ttl_is_none(self, cache):
        assert await cache.ttl("access_token:missing") is None

    async def test_delete_without_keys_skips_client(self, cache):
        assert await cache.delete() == 0
        assert cache.client.delete_calls == []

    async def test_delete_matching_batches(self, cache, monkeypatch):
        monkeypatch.setattr("personnel.storage.redis_cache._DELETE_BATCH", 2)
        for i in range(5):
            await cache.set(f"refresh_token:{i}", "1", 60)
        await cache.set("access_token:keep", "1", 60)

        removed = await cache.delete_matching("refresh_token:*")

        assert removed == 5
        assert [len(call) for call in cache.client.delete_calls] == [2, 2, 1]
        assert await cache.get("access_token:keep") == "1"

    async def test_redis_error_becomes_cache_unavailable(self, cache):
        async def boom(*args, **kwargs):
            raise RedisConnectionError("connection refused")

        cache.client.get = boom

        with pytest.raises(CacheUnavailable):
            await cache.get("access_token:t")


class TestSyncRedisCache:
    """Tests for the synchronous Redis backend against a mocked client."""

    @pytest.fixture
    def cache(self):
        cache = SyncRedisCache("redis://localhost:6379/0")
        cache._sync_client = MagicMock()
        return cache

    async def test_set_and_get(self, cache):
        cache._sync_client.get.return_value = "7"

        await cache.set("access_token:t", "7", 0)
        value = await cache.get("access_token:t")

        cache._sync_client.set.assert_called_once_with("access_token:t", "7", ex=1)
        assert value == "7"

    async def test_ttl_sentinels_map_to_none(self, cache):
        cache._sync_client.ttl.side_effect = [-2, -1, 30]

        assert await cache.ttl("k") is None
        assert await cache.ttl("k") is None
        assert await cache.ttl("k") == 30

    async def test_delete_matching_scans_pattern(self, cache):
        cache._sync_client.scan_iter.return_value = iter(["refresh_token:a", "refresh_token:b"])
        cache._sync_client.delete.return_value = 2

        assert await cache.delete_matching("refresh_token:*") == 2
        cache._sync_client.scan_iter.assert_called_once_with(
            match="refresh_token:*", count=500
        )
        cache._sync_client.delete.assert_called_once_with("refresh_token:a", "refresh_token:b")

    @pytest.mark.parametrize("method, args", [("get", ("k",)), ("delete", ("k",)), ("ttl", ("k",))])
    async def test_errors_become_cache_unavailable(self, cache, method, args):
        getattr(cache._sync_client, method).side_effect = RedisConnectionError("down")

        with pytest.raises(CacheUnavailable):
            await getattr(cache, method)(*args)

    async def test_session_cache_over_failing_redis(self, cache):
        """Test that SessionCache surfaces CacheUnavailable rather than a miss."""
        cache._sync_client.get.side_effect = RedisConnectionError("down")

        with pytest.raises(CacheUnavailable):
            await SessionCache(cache).is_live(TokenType.ACCESS, "tok")
