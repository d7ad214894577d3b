from __future__ import annotations

import json
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from newsentiment.core.logger import get_logger
from newsentiment.core.models import DateRange

log = get_logger("cache")

DEFAULT_TTL = 900
MAX_MEMORY_ENTRIES = 1000


def cache_key(ticker: str, date_range: Optional[DateRange] = None, limit: int = 20) -> str:
    """``sentiment:<TICKER>:<from>:<to>:<limit>``; open ends are ``*``."""
    fragment = (date_range or DateRange()).cache_fragment()
    return f"sentiment:{ticker.strip().upper()}:{fragment}:{limit}"


class RedisCache:
    """JSON values in Redis under a key namespace.

    Redis errors are logged and read as a miss, so a cache outage only
    costs a fresh crawl.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379",
        namespace: str = "newsentiment",
        default_ttl: int = DEFAULT_TTL,
        client: Optional[Any] = None,
    ):
        self.url = url
        self.namespace = namespace
        self.default_ttl = default_ttl
        self._client = client or redis.Redis.from_url(
            url,
            decode_responses=False,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
        )
        self._hits = 0
        self._misses = 0
        self._errors = 0

    def _make_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as e:
            log.warning(f"Redis ping failed: {e}")
            return False

    def get(self, key: str) -> Optional[Any]:
        try:
            data = self._client.get(self._make_key(key))
        except redis.RedisError as e:
            self._errors += 1
            log.warning(f"Redis get failed for {key}: {e}")
            return None
        if data is None:
            self._misses += 1
            return None
        try:
            value = json.loads(data)
        except (ValueError, TypeError) as e:
            self._errors += 1
            log.warning(f"Discarding unreadable cache entry {key}: {e}")
            return None
        self._hits += 1
        return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        ttl = ttl_seconds or self.default_ttl
        try:
            payload = json.dumps(value, default=str)
            self._client.set(self._make_key(key), payload, ex=ttl)
            return True
        except (TypeError, ValueError) as e:
            log.warning(f"Value for {key} is not serializable: {e}")
        except redis.RedisError as e:
            self._errors += 1
            log.warning(f"Redis set failed for {key}: {e}")
        return False

    def delete(self, key: str) -> bool:
        try:
            return bool(self._client.delete(self._make_key(key)))
        except redis.RedisError as e:
            self._errors += 1
            log.warning(f"Redis delete failed for {key}: {e}")
            return False

    def get_stats(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        return {
            "backend": "redis",
            "url": self.url,
            "reachable": self.ping(),
            "hits": self._hits,
            "misses": self._misses,
            "errors": self._errors,
            "hitRate": round(self._hits / total * 100, 1) if total else 0.0,
        }

    def close(self) -> None:
        try:
            self._client.close()
        except redis.RedisError as e:
            log.debug(f"Redis close failed: {e}")


class MemoryCache:
    """In-process TTL cache with least-recently-used eviction."""

    def __init__(
        self,
        max_entries: int = MAX_MEMORY_ENTRIES,
        default_ttl: int = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        # key -> (expires_at, value)
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        ttl = ttl_seconds or self.default_ttl
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                log.debug(f"LRU evicted: {evicted}")
            self._entries[key] = (self._clock() + ttl, value)
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        return {
            "backend": "memory",
            "reachable": True,
            "entries": len(self._entries),
            "maxEntries": self.max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "hitRate": round(self._hits / total * 100, 1) if total else 0.0,
        }

    def close(self) -> None:
        self.clear()


def create_cache(settings):
    """Redis when ``REDIS_URL`` is set and answers, otherwise in-memory."""
    if settings.redis_url:
        cache = RedisCache(url=settings.redis_url, default_ttl=settings.cache_ttl_seconds)
        if cache.ping():
            log.info(f"Using Redis cache at {settings.redis_url}")
            return cache
        log.warning("Redis unreachable, falling back to in-memory cache")
        cache.close()
    return MemoryCache(default_ttl=settings.cache_ttl_seconds)
