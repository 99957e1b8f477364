"""
cache/store.py -- Redis-backed keyed cache shared by the auth layer.

Everything that must expire on its own lives here rather than in SQL: OTP
codes, brute-force lockout counters, per-session content tokens and the
token revocation blacklist. Values are JSON documents; every write carries
a TTL so nothing accumulates.

Usage:
    cache = KeyedCache.from_url("redis://localhost:6379/0")
    cache.set_json("otp:12:ab34", {"code": "123456"}, ttl=600)
    data = cache.get_json("otp:12:ab34")   # dict or None
    cache.delete("otp:12:ab34")
    cache.close()

Tests pass a fakeredis.FakeRedis instance to the constructor instead of
calling from_url().
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Any, Optional

import redis
from redis.exceptions import RedisError

logger = logging.getLogger("reviewdesk.cache")


class KeyedCache:
    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "KeyedCache":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    # ------------------------------------------------------------------
    # JSON values
    # ------------------------------------------------------------------

    def get_json(self, key: str) -> Optional[Any]:
        """Return the decoded value stored at key, or None if absent or corrupt."""
        raw = self._client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding undecodable cache value at %s", key)
            self._client.delete(key)
            return None

    def set_json(self, key: str, value: Any, ttl: int) -> None:
        """Store value at key for ttl seconds (minimum 1)."""
        self._client.set(key, json.dumps(value), ex=max(1, int(ttl)))

    def replace_json(self, key: str, value: Any) -> bool:
        """Overwrite an existing key while keeping its remaining TTL.

        Returns False when the key has already expired.
        """
        return bool(self._client.set(key, json.dumps(value), keepttl=True, xx=True))

    # ------------------------------------------------------------------
    # Plain strings
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[str]:
        return self._client.get(key)

    def set(self, key: str, value: str, ttl: int) -> None:
        self._client.set(key, value, ex=max(1, int(ttl)))

    # ------------------------------------------------------------------
    # Key management
    # ------------------------------------------------------------------

    def exists(self, key: str) -> bool:
        return bool(self._client.exists(key))

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(self._client.delete(*keys))

    def scan(self, pattern: str) -> Iterator[str]:
        """Iterate keys matching a glob pattern without blocking the server (SCAN, not KEYS)."""
        return self._client.scan_iter(match=pattern, count=200)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError:
            logger.exception("Redis ping failed")
            return False

    def close(self) -> None:
        self._client.close()
