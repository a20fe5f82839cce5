"""Redis-backed sliding window tracker for failed sign-in attempts."""

from __future__ import annotations

import time
from typing import Final

from redis import Redis
from redis.exceptions import ResponseError


class RedisFailedAttemptTracker:
    """Distributed failure counter implemented with Redis sorted sets."""

    _LUA_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local counter_key = key .. ':seq'
    local window_ms = tonumber(ARGV[1])
    local now_ms = tonumber(ARGV[2])

    redis.call('ZREMRANGEBYSCORE', key, 0, now_ms - window_ms)
    local seq = redis.call('INCR', counter_key)
    redis.call('PEXPIRE', counter_key, window_ms)
    local member = tostring(now_ms) .. ':' .. tostring(seq)
    redis.call('ZADD', key, now_ms, member)
    redis.call('PEXPIRE', key, window_ms)
    return redis.call('ZCARD', key)
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_failures: int,
        window_seconds: int,
        key_prefix: str = "lockout"
    ) -> None:
        """Initialise the Redis client, window configuration, and Lua script cache."""
        self._client = client
        self._max_failures = max_failures
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._script = client.register_script(self._LUA_SCRIPT)

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    def is_locked_out(self, key: str) -> bool:
        """Return ``True`` when the key reached the failure threshold inside the window."""
        now_ms = int(time.time() * 1000)
        redis_key = self._key(key)
        current = self._client.zcount(redis_key, now_ms - self._window_ms, "+inf")
        return int(current) >= self._max_failures

    def register_failure(self, key: str) -> bool:
        """Record a failed attempt and return ``True`` if the key is now locked out."""
        now_ms = int(time.time() * 1000)
        redis_key = self._key(key)
        try:
            count = self._script(keys=[redis_key], args=[self._window_ms, now_ms])
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command" in message and "eval" in message:
                count = self._register_fallback(redis_key, now_ms)
            else:
                raise
        return int(count) >= self._max_failures

    def reset(self, key: str) -> None:
        redis_key = self._key(key)
        self._client.delete(redis_key, f"{redis_key}:seq")

    def _register_fallback(self, redis_key: str, now_ms: int) -> int:
        """Fallback pure-Python implementation used when Lua is unavailable."""
        self._client.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        seq = self._client.incr(f"{redis_key}:seq")
        self._client.pexpire(f"{redis_key}:seq", self._window_ms)
        self._client.zadd(redis_key, {f"{now_ms}:{seq}": now_ms})
        self._client.pexpire(redis_key, self._window_ms)
        return int(self._client.zcard(redis_key))
