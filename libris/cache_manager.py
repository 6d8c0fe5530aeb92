"""
Cache for the read paths (title lists, loan history, reports).

Redis is used when REDIS_URL is configured, so every process sees the same
entries; otherwise values live in an in-process dictionary. Entries carry a
TTL, but correctness relies on the explicit invalidation done by every
mutating operation. Each invalidation bumps a generation counter, and a value
computed before the latest invalidation is never stored.
"""

import logging
import pickle
import threading
import time
from functools import wraps
from typing import Any, Dict, Optional, Tuple

import redis

from libris.config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "libris_cache:"
# Kept outside KEY_PREFIX so clearing the cache never resets it
GENERATION_KEY = "libris_cache_generation"
MAX_LOCAL_ENTRIES = 1000


class CacheManager:
    """Shared redis cache, or a local dictionary when no redis is configured."""

    def __init__(self, redis_url: Optional[str] = None, default_ttl: Optional[int] = None) -> None:
        self.default_ttl = default_ttl or settings.cache_ttl
        self.redis_client: Optional[redis.Redis] = None
        self._local: Dict[str, Tuple[Any, float]] = {}
        self._generation = 0
        self._lock = threading.RLock()
        self._counters = {"hits": 0, "misses": 0, "redis_hits": 0, "local_hits": 0}

        url = redis_url if redis_url is not None else settings.redis_url
        if url:
            self._connect(url)

    def _connect(self, url: str) -> None:
        client = redis.from_url(url, socket_connect_timeout=1, socket_timeout=1, retry_on_timeout=True)
        try:
            client.ping()
        except redis.RedisError as e:
            logger.warning("Redis at %s is unreachable (%s); caching in memory only", url, e)
            return
        self.redis_client = client
        logger.info("Redis cache connected at %s", url)

    def _hit(self, source: str) -> None:
        self._counters["hits"] += 1
        self._counters[source] += 1

    # ------------------------- Redis level ------------------------- #
    def _redis_get(self, key: str) -> Optional[Any]:
        try:
            raw = self.redis_client.get(KEY_PREFIX + key)
        except redis.RedisError as e:
            logger.warning("Redis get failed for %s: %s", key, e)
            return None
        return pickle.loads(raw) if raw is not None else None

    def _redis_set(self, key: str, value: Any, ttl: int, generation: Optional[int]) -> bool:
        with self.redis_client.pipeline() as pipe:
            try:
                # WATCH makes the write fail if another process invalidates in between
                pipe.watch(GENERATION_KEY)
                if generation is not None and int(pipe.get(GENERATION_KEY) or 0) != generation:
                    return False
                pipe.multi()
                pipe.setex(KEY_PREFIX + key, ttl, pickle.dumps(value))
                pipe.execute()
                return True
            except redis.WatchError:
                return False

    # ------------------------- Public API ------------------------- #
    def generation(self) -> Optional[int]:
        """Counter bumped by every invalidation; None if it cannot be read."""
        if self.redis_client:
            try:
                return int(self.redis_client.get(GENERATION_KEY) or 0)
            except redis.RedisError as e:
                logger.warning("Redis generation read failed: %s", e)
                return None
        with self._lock:
            return self._generation

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss."""
        if self.redis_client:
            value = self._redis_get(key)
            if value is not None:
                self._hit("redis_hits")
                return value
        else:
            with self._lock:
                entry = self._local.get(key)
                if entry is not None:
                    value, expires_at = entry
                    if time.monotonic() < expires_at:
                        self._hit("local_hits")
                        return value
                    self._local.pop(key)

        self._counters["misses"] += 1
        return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None,
            generation: Optional[int] = None) -> bool:
        """Store ``value``. With ``generation``, only if no invalidation happened since it was read."""
        ttl = ttl_seconds or self.default_ttl
        if self.redis_client:
            try:
                return self._redis_set(key, value, ttl, generation)
            except redis.RedisError as e:
                logger.warning("Redis set failed for %s: %s", key, e)
                return False

        with self._lock:
            if generation is not None and generation != self._generation:
                return False
            self._local[key] = (value, time.monotonic() + ttl)
            if len(self._local) > MAX_LOCAL_ENTRIES:
                # Evict the tenth of the entries closest to expiry
                by_expiry = sorted(self._local, key=lambda k: self._local[k][1])
                for stale in by_expiry[:MAX_LOCAL_ENTRIES // 10]:
                    del self._local[stale]
            return True

    def delete(self, key: str) -> bool:
        if self.redis_client:
            try:
                return self.redis_client.delete(KEY_PREFIX + key) > 0
            except redis.RedisError as e:
                logger.warning("Redis delete failed for %s: %s", key, e)
                return False

        with self._lock:
            return self._local.pop(key, None) is not None

    def invalidate_pattern(self, pattern: str) -> int:
        """Drop every key matching a ``prefix*`` pattern. Returns how many went."""
        if self.redis_client:
            try:
                # Bump first: a reader that computed before this point can no longer store
                self.redis_client.incr(GENERATION_KEY)
                keys = self.redis_client.keys(KEY_PREFIX + pattern)
                return self.redis_client.delete(*keys) if keys else 0
            except redis.RedisError as e:
                logger.warning("Redis invalidation of %s failed: %s", pattern, e)
                return 0

        prefix = pattern.rstrip("*")
        with self._lock:
            self._generation += 1
            matching = [key for key in self._local if key.startswith(prefix)]
            for key in matching:
                del self._local[key]
        return len(matching)

    def clear(self) -> None:
        self.invalidate_pattern("*")

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = dict(self._counters)
        lookups = stats["hits"] + stats["misses"]
        stats["hit_ratio"] = stats["hits"] / lookups if lookups else 0.0
        stats["redis_available"] = self.redis_client is not None
        stats["local_entries"] = len(self._local)
        stats["generation"] = self.generation()
        return stats


def cached(key_func):
    """Cache a method's result on ``self.cache`` under the key ``key_func(self, *args)`` builds.

    A result is only stored if no invalidation ran while it was being computed.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            key = key_func(self, *args, **kwargs)
            hit = self.cache.get(key)
            if hit is not None:
                return hit
            generation = self.cache.generation()
            value = func(self, *args, **kwargs)
            if generation is not None:
                self.cache.set(key, value, generation=generation)
            return value
        return wrapper
    return decorator


# Read paths derived from the lending ledger or the catalog
LENDING_VIEWS = (
    "title_list*",
    "loan_history:*",
    "library_statistics:*",
    "overdue_statistics:*",
    "reader_statistics:*",
)


def invalidate_lending_views(cache: CacheManager) -> int:
    """Drop every cached view a borrow, return or catalog change can affect."""
    return sum(cache.invalidate_pattern(pattern) for pattern in LENDING_VIEWS)
