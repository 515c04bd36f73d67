"""
Verso Redis Cache — Collaborator permission cache.

Permission lookups sit on the write path of every mutating call, so they
can be cached in Redis. The cache is ephemeral and fully reconstructible
from the artifact_collaborators table; on any Redis failure the guard
falls back to the database (circuit breaker).

Key format: verso:perms:{artifact_id}:{user_id}
Value: "read" | "write" | "admin" | "-" (no access)
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import redis

logger = logging.getLogger("verso.engine.cache")

NO_ACCESS = "-"


class RedisCache:
    """
    Redis wrapper with a circuit breaker.

    After `failure_threshold` failures inside `failure_window` seconds the
    circuit opens and every call short-circuits to a miss until the window
    has passed.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "verso:",
        default_ttl: int = 300,
        failure_threshold: int = 5,
        failure_window: int = 30,
    ):
        self._redis_url = redis_url
        self._prefix = prefix
        self._default_ttl = default_ttl
        self._client: Optional[redis.Redis] = None
        self._available = False

        self._failure_count = 0
        self._failure_threshold = failure_threshold
        self._failure_window = failure_window
        self._first_failure_time = 0.0
        self._circuit_open = False

    def connect(self) -> bool:
        try:
            self._client = redis.Redis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
            )
            self._client.ping()
            self._available = True
            self._circuit_open = False
            self._failure_count = 0
            logger.info(f"Redis connected ({self._prefix})")
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis connection failed: {e}")
            self._available = False
            return False

    def _check_circuit(self) -> bool:
        if self._circuit_open:
            if time.time() - self._first_failure_time > self._failure_window:
                self._circuit_open = False
                self._failure_count = 0
                return self.connect()
            return False
        return self._available

    def _record_failure(self) -> None:
        now = time.time()
        if self._failure_count == 0:
            self._first_failure_time = now
        self._failure_count += 1

        if self._failure_count >= self._failure_threshold:
            elapsed = now - self._first_failure_time
            if elapsed <= self._failure_window:
                self._circuit_open = True
                logger.error(
                    f"Redis circuit breaker OPEN: {self._failure_count} failures in {elapsed:.1f}s"
                )

    def _make_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        """Returns None on miss or failure."""
        if not self._check_circuit():
            return None
        try:
            return self._client.get(self._make_key(key))
        except redis.RedisError as e:
            self._record_failure()
            logger.debug(f"Redis GET failed: {e}")
            return None

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        if not self._check_circuit():
            return False
        try:
            self._client.set(self._make_key(key), value, ex=ttl or self._default_ttl)
            return True
        except redis.RedisError as e:
            self._record_failure()
            logger.debug(f"Redis SET failed: {e}")
            return False

    def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern. Returns count deleted."""
        if not self._check_circuit():
            return 0
        try:
            keys = list(self._client.scan_iter(match=self._make_key(pattern), count=1000))
            if keys:
                return self._client.delete(*keys)
            return 0
        except redis.RedisError:
            self._record_failure()
            return 0

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except redis.RedisError as e:
                logger.debug(f"Redis close failed: {e}")
            self._client = None
        self._available = False
        self._circuit_open = False
        self._failure_count = 0

    @property
    def is_available(self) -> bool:
        return self._available and not self._circuit_open

    @property
    def is_circuit_open(self) -> bool:
        return self._circuit_open


class PermissionCache:
    """Per (artifact, user) collaborator permission cache."""

    def __init__(self, cache: RedisCache):
        self._cache = cache

    @staticmethod
    def _key(artifact_id: str, user_id: str) -> str:
        return f"perms:{artifact_id}:{user_id}"

    def check(self, artifact_id: str, user_id: str) -> Optional[str]:
        """
        Returns the cached permission, NO_ACCESS for a cached denial,
        or None on a miss.
        """
        return self._cache.get(self._key(artifact_id, user_id))

    def store(self, artifact_id: str, user_id: str, permission: Optional[str]) -> None:
        self._cache.set(self._key(artifact_id, user_id), permission or NO_ACCESS)

    def invalidate_artifact(self, artifact_id: str) -> int:
        return self._cache.delete_pattern(f"perms:{artifact_id}:*")

    def invalidate_all(self) -> int:
        return self._cache.delete_pattern("perms:*")

    def close(self) -> None:
        self._cache.close()


def create_permission_cache(redis_url: str, ttl: int = 300) -> PermissionCache:
    cache = RedisCache(redis_url=redis_url, prefix="verso:", default_ttl=ttl)
    cache.connect()
    return PermissionCache(cache)
