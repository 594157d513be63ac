"""Best-effort caches.

Nothing stored here is authoritative: a miss, an eviction or a broken redis
connection must only cost a trip to the database.
"""
import logging
import threading
from typing import Any, Optional

import orjson
import redis
from cachetools import TTLCache

from quizproctor.core.config import CACHE_BACKEND, REDIS_URL, SESSION_CACHE_TTL, VARIANT_CACHE_TTL

logger = logging.getLogger(__name__)

redis_client = redis.Redis.from_url(REDIS_URL)


class LocalCache:
    """Process-local cache; values are serialized so callers never share objects."""

    def __init__(self, namespace: str, ttl: int, maxsize: int = 10000):
        self.namespace = namespace
        self._data = TTLCache(maxsize=maxsize, ttl=ttl)
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._data.get(key)
        return orjson.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        raw = orjson.dumps(value)
        with self._lock:
            self._data[key] = raw

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class RedisCache:
    def __init__(self, namespace: str, ttl: int, client: redis.Redis = redis_client):
        self.namespace = namespace
        self.ttl = ttl
        self.client = client

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(self._key(key))
        except redis.RedisError as e:
            logger.warning(f"Cache get failed for {self._key(key)}: {e}")
            return None
        if raw is None:
            return None
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning(f"Dropping undecodable cache entry {self._key(key)}")
            self.delete(key)
            return None

    def set(self, key: str, value: Any) -> None:
        try:
            self.client.set(self._key(key), orjson.dumps(value), ex=self.ttl)
        except redis.RedisError as e:
            logger.warning(f"Cache set failed for {self._key(key)}: {e}")

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except redis.RedisError as e:
            logger.warning(f"Cache delete failed for {self._key(key)}: {e}")


def build_cache(namespace: str, ttl: int, backend: str = CACHE_BACKEND):
    if backend == "redis":
        return RedisCache(namespace, ttl)
    return LocalCache(namespace, ttl)


session_cache = build_cache("proctoring:session", SESSION_CACHE_TTL)
variant_cache = build_cache("quiz:variant", VARIANT_CACHE_TTL)
