"""Unit tests for verso.engine.cache — RedisCache, PermissionCache."""

from unittest.mock import MagicMock, patch

import redis

from verso.engine.cache import (
    NO_ACCESS,
    PermissionCache,
    RedisCache,
    create_permission_cache,
)


def _connected(mock_redis, **kwargs) -> RedisCache:
    cache = RedisCache(**kwargs)
    with patch("verso.engine.cache.redis.Redis.from_url", return_value=mock_redis):
        assert cache.connect() is True
    return cache


class TestRedisCacheCircuitBreaker:
    """Test circuit breaker behavior without real Redis."""

    def test_initial_state(self):
        cache = RedisCache(redis_url="redis://localhost:6379/0")
        assert cache.is_available is False
        assert cache.is_circuit_open is False

    def test_get_returns_none_when_unavailable(self):
        assert RedisCache().get("any_key") is None

    def test_set_returns_false_when_unavailable(self):
        assert RedisCache().set("key", "value") is False

    def test_delete_pattern_zero_when_unavailable(self):
        assert RedisCache().delete_pattern("perms:*") == 0

    def test_connect_failure(self):
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError("refused")
        cache = RedisCache()
        with patch("verso.engine.cache.redis.Redis.from_url", return_value=client):
            assert cache.connect() is False
        assert cache.is_available is False

    def test_circuit_opens_after_threshold(self, mock_redis):
        cache = _connected(mock_redis, failure_threshold=3, failure_window=30)
        mock_redis.get.side_effect = redis.TimeoutError("slow")

        for _ in range(3):
            assert cache.get("k") is None

        assert cache.is_circuit_open is True
        assert cache.is_available is False
        mock_redis.get.reset_mock()
        assert cache.get("k") is None
        mock_redis.get.assert_not_called()

    def test_circuit_recovers_after_window(self, mock_redis):
        cache = _connected(mock_redis, failure_threshold=1, failure_window=10)
        mock_redis.set.side_effect = redis.ConnectionError("down")
        assert cache.set("k", "v") is False
        assert cache.is_circuit_open is True

        mock_redis.set.side_effect = None
        with patch("verso.engine.cache.time.time", return_value=time_after_window(cache)), \
                patch("verso.engine.cache.redis.Redis.from_url", return_value=mock_redis):
            assert cache.set("k", "v") is True
        assert cache.is_circuit_open is False

    def test_close_resets(self, mock_redis):
        cache = _connected(mock_redis)
        cache.close()
        mock_redis.close.assert_called_once()
        assert cache.is_available is False


def time_after_window(cache: RedisCache) -> float:
    return cache._first_failure_time + cache._failure_window + 1


class TestRedisCacheOperations:
    def test_keys_are_prefixed(self, mock_redis):
        cache = _connected(mock_redis, prefix="test:", default_ttl=60)
        cache.set("perms:a:u", "read")
        mock_redis.set.assert_called_once_with("test:perms:a:u", "read", ex=60)
        cache.get("perms:a:u")
        mock_redis.get.assert_called_once_with("test:perms:a:u")

    def test_explicit_ttl(self, mock_redis):
        cache = _connected(mock_redis)
        cache.set("k", "v", ttl=5)
        mock_redis.set.assert_called_once_with("verso:k", "v", ex=5)

    def test_delete_pattern(self, mock_redis):
        mock_redis.scan_iter.return_value = iter(["verso:perms:a:1", "verso:perms:a:2"])
        mock_redis.delete.return_value = 2
        cache = _connected(mock_redis)
        assert cache.delete_pattern("perms:a:*") == 2
        mock_redis.scan_iter.assert_called_once_with(match="verso:perms:a:*", count=1000)
        mock_redis.delete.assert_called_once_with("verso:perms:a:1", "verso:perms:a:2")

    def test_delete_pattern_no_keys(self, mock_redis):
        cache = _connected(mock_redis)
        assert cache.delete_pattern("perms:none:*") == 0
        mock_redis.delete.assert_not_called()


class TestPermissionCache:
    def test_check_miss(self):
        backend = MagicMock()
        backend.get.return_value = None
        assert PermissionCache(backend).check("a", "u") is None
        backend.get.assert_called_once_with("perms:a:u")

    def test_store_permission(self):
        backend = MagicMock()
        PermissionCache(backend).store("a", "u", "write")
        backend.set.assert_called_once_with("perms:a:u", "write")

    def test_store_denial(self):
        backend = MagicMock()
        PermissionCache(backend).store("a", "u", None)
        backend.set.assert_called_once_with("perms:a:u", NO_ACCESS)

    def test_invalidate(self):
        backend = MagicMock()
        cache = PermissionCache(backend)
        cache.invalidate_artifact("a")
        backend.delete_pattern.assert_called_with("perms:a:*")
        cache.invalidate_all()
        backend.delete_pattern.assert_called_with("perms:*")

    def test_close(self):
        backend = MagicMock()
        PermissionCache(backend).close()
        backend.close.assert_called_once()

    def test_factory(self, mock_redis):
        with patch("verso.engine.cache.redis.Redis.from_url", return_value=mock_redis) as from_url:
            cache = create_permission_cache("redis://cache:6379/2", ttl=42)
        assert isinstance(cache, PermissionCache)
        assert from_url.call_args.args[0] == "redis://cache:6379/2"
        cache.store("a", "u", "admin")
        mock_redis.set.assert_called_once_with("verso:perms:a:u", "admin", ex=42)
