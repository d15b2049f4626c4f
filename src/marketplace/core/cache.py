import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from marketplace.core.config import CacheConfig
from marketplace.core.exceptions import CacheError

logger = logging.getLogger(__name__)


class Cache(ABC):
    """
    Key -> value store with per-entry expiry.

    Implementations raise CacheError when the backend is unavailable;
    read paths treat that as a miss.
    """

    def __init__(self, default_ttl_seconds: int = 3600, key_prefix: str = ""):
        self.default_ttl_seconds = default_ttl_seconds
        self.key_prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None when absent or expired"""
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store a value; ttl_seconds defaults to the cache's default TTL"""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class MemoryCache(Cache):
    """
    In-process cache. Expired entries are evicted lazily on the next read
    of their key; there is no background sweeper. Concurrent writers to the
    same key are last-write-wins.
    """

    def __init__(
        self,
        default_ttl_seconds: int = 3600,
        key_prefix: str = "",
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(default_ttl_seconds, key_prefix)
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        key = self._key(key)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None

            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[self._key(key)] = (value, self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(self._key(key), None)

    def entry_count(self) -> int:
        """Entries held, including expired ones not yet evicted"""
        return len(self._entries)


class RedisCache(Cache):
    """Cache shared between processes; values are stored as JSON with SETEX."""

    def __init__(self, client: "redis.Redis", default_ttl_seconds: int = 3600, key_prefix: str = ""):
        super().__init__(default_ttl_seconds, key_prefix)
        self.client = client

    @classmethod
    def from_config(cls, config: CacheConfig) -> "RedisCache":
        client = redis.Redis.from_url(
            config.url,
            decode_responses=True,
            socket_timeout=config.socket_timeout,
        )
        return cls(client, config.default_ttl_seconds, config.key_prefix)

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self.client.get(self._key(key))
        except redis.RedisError as e:
            raise CacheError(f"redis GET {key} failed: {e}") from e
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        try:
            self.client.setex(self._key(key), ttl, json.dumps(value))
        except redis.RedisError as e:
            raise CacheError(f"redis SETEX {key} failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except redis.RedisError as e:
            raise CacheError(f"redis DEL {key} failed: {e}") from e


def build_cache(config: CacheConfig) -> Cache:
    """Construct the configured cache backend once at startup"""
    if config.backend == "redis":
        logger.info(f"Using redis cache at {config.url}")
        return RedisCache.from_config(config)
    logger.info("Using in-process memory cache")
    return MemoryCache(config.default_ttl_seconds, config.key_prefix)
