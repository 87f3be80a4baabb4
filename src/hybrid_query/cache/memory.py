"""
In-memory query result cache.

Suitable for tests and single-instance deployments. For multiple
replicas sharing one cache, use the Redis implementation instead.
"""

import fnmatch
import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from hybrid_query.models import CacheStats, QueryResult

logger = logging.getLogger(__name__)


class InMemoryQueryCache:
    """
    In-memory implementation of the QueryCache protocol.

    Entries are stored serialized, so callers can never mutate a cached
    result in place. Expired entries are dropped lazily on access; when
    max_entries is reached the least recently used entry is evicted.
    Data is lost on restart.
    """

    def __init__(
        self,
        max_entries: int = 10000,
        default_ttl: int = 3600,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            max_entries: Maximum number of cached results
            default_ttl: TTL in seconds when set() is called without one
            clock: Monotonic time source in seconds (tests advance it manually)
        """
        self._entries: "OrderedDict[str, Tuple[float, str]]" = OrderedDict()
        self._max_entries = max_entries
        self._default_ttl = default_ttl
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0

        logger.info(
            f"InMemoryQueryCache initialized (max_entries={max_entries}, default_ttl={default_ttl}s)"
        )

    async def get(self, key: str) -> Optional[QueryResult]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[0] <= self._clock():
                del self._entries[key]
                entry = None

            if entry is None:
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            payload = entry[1]

        return QueryResult.model_validate_json(payload)

    async def set(self, key: str, value: QueryResult, ttl: Optional[int] = None) -> None:
        payload = value.model_dump_json()
        expires_at = self._clock() + (ttl if ttl is not None else self._default_ttl)

        with self._lock:
            self._entries[key] = (expires_at, payload)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug(f"Evicted cache entry {evicted}")

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    async def clear(self, pattern: Optional[str] = None) -> int:
        with self._lock:
            if pattern is None:
                count = len(self._entries)
                self._entries.clear()
            else:
                doomed = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
                for key in doomed:
                    del self._entries[key]
                count = len(doomed)

        logger.info(f"Cleared {count} cache entries (pattern={pattern})")
        return count

    async def stats(self) -> CacheStats:
        with self._lock:
            now = self._clock()
            live = [payload for expires_at, payload in self._entries.values() if expires_at > now]
            lookups = self._hits + self._misses
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                hit_rate=self._hits / lookups if lookups else 0.0,
                total_keys=len(live),
                evictions=self._evictions,
                memory_usage=sum(len(payload) for payload in live),
            )

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()
