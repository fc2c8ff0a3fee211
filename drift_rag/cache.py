"""
Bounded cache shared across queries within one engine instance.

Oldest entries are evicted first once `max_size` is exceeded. Access is
guarded by a lock so concurrent queries (threads or tasks) can read and insert
safely.
"""

import hashlib
import logging
import threading
from collections import OrderedDict
from datetime import datetime
from typing import Any, Iterable, Optional

logger = logging.getLogger(__name__)


class BoundedCache:
    """
    Size-limited in-memory cache with optional TTL.

    Insertion order decides eviction: re-setting a key refreshes its value
    but it keeps its original slot.

    Usage:
        cache = BoundedCache(max_size=1000)
        cache.set(key, value)
        hit = cache.get(key)
    """

    def __init__(self, max_size: int = 1000, default_ttl: Optional[float] = None):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._cache: "OrderedDict[str, Any]" = OrderedDict()
        self._timestamps: dict = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def _is_expired(self, key: str) -> bool:
        timestamp, ttl = self._timestamps[key]
        if ttl is None:
            return False
        return (datetime.now().timestamp() - timestamp) > ttl

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            if key in self._cache:
                if not self._is_expired(key):
                    self.hits += 1
                    logger.debug(f"Cache hit: {key[:16]}...")
                    return self._cache[key]
                del self._cache[key]
                del self._timestamps[key]
            self.misses += 1
            return None

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            self._cache[key] = value
            self._timestamps[key] = (
                datetime.now().timestamp(),
                ttl if ttl is not None else self.default_ttl,
            )
            while len(self._cache) > self.max_size:
                oldest, _ = self._cache.popitem(last=False)
                del self._timestamps[oldest]
                self.evictions += 1
                logger.debug(f"Cache evicted: {oldest[:16]}...")

    def delete(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)
            self._timestamps.pop(key, None)

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._cache.clear()
            self._timestamps.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._cache and not self._is_expired(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._cache),
                "max_size": self.max_size,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
            }


def make_cache_key(query: str, node_ids: Iterable[str], *extra: str) -> str:
    """
    Deterministic key for a node set plus query.

    Node order does not matter; duplicates collapse.
    """
    parts = [query, ",".join(sorted(set(node_ids)))]
    parts.extend(extra)
    return hashlib.md5("::".join(parts).encode()).hexdigest()
