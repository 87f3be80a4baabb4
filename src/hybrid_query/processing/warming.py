"""
Cache warming.

Tracks which queries are asked often and re-runs the popular ones ahead
of time so they are served from cache. Also drops cached results that
depended on a data source when that source changes.
"""

import asyncio
import logging
import threading
import time
import uuid
from collections import OrderedDict
from typing import TYPE_CHECKING, Callable, List, Optional

from pydantic import BaseModel, Field

from hybrid_query.errors import QueryEngineError
from hybrid_query.models import Query
from hybrid_query.processing.fingerprint import cache_key

if TYPE_CHECKING:
    from hybrid_query.processing.processor import QueryProcessor

logger = logging.getLogger(__name__)


class QueryUsage(BaseModel):
    fingerprint: str
    query: Query
    count: int = 1
    last_accessed: float = Field(..., description="Clock seconds")
    avg_processing_ms: float = 0.0
    sources: List[str] = Field(default_factory=list)


class UsageTracker:
    """
    Per-fingerprint usage counters, bounded to max_tracked entries
    (least recently used are dropped first).
    """

    def __init__(self, max_tracked: int = 1000, clock: Optional[Callable[[], float]] = None):
        self._usage: "OrderedDict[str, QueryUsage]" = OrderedDict()
        self._max_tracked = max_tracked
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._usage)

    def get(self, fingerprint: str) -> Optional[QueryUsage]:
        return self._usage.get(fingerprint)

    def track(
        self, fingerprint: str, query: Query, processing_time_ms: float, sources: List[str]
    ) -> None:
        now = self._clock()
        with self._lock:
            usage = self._usage.get(fingerprint)
            if usage is None:
                self._usage[fingerprint] = QueryUsage(
                    fingerprint=fingerprint,
                    query=query,
                    last_accessed=now,
                    avg_processing_ms=processing_time_ms,
                    sources=list(dict.fromkeys(sources)),
                )
            else:
                usage.count += 1
                usage.last_accessed = now
                usage.avg_processing_ms += (processing_time_ms - usage.avg_processing_ms) / usage.count
                usage.sources = list(dict.fromkeys(usage.sources + list(sources)))
            self._usage.move_to_end(fingerprint)
            while len(self._usage) > self._max_tracked:
                self._usage.popitem(last=False)

    def popular(
        self, limit: int, min_count: int = 2, max_age_seconds: float = 86400.0
    ) -> List[QueryUsage]:
        """Frequently used, recently seen queries, most popular first."""
        now = self._clock()
        with self._lock:
            eligible = [
                usage
                for usage in self._usage.values()
                if usage.count >= min_count and now - usage.last_accessed < max_age_seconds
            ]
        eligible.sort(key=lambda u: (-u.count / (now - u.last_accessed + 1.0), u.fingerprint))
        return eligible[:limit]

    def forget_source(self, source_id: str) -> List[str]:
        """Stop tracking queries whose results came from source_id; returns their fingerprints."""
        with self._lock:
            affected = [fp for fp, usage in self._usage.items() if source_id in usage.sources]
            for fp in affected:
                del self._usage[fp]
        return affected


class CacheWarmer:
    """
    Re-runs popular queries through the processor with bounded concurrency.

    Example:
        >>> tracker = UsageTracker()
        >>> processor = QueryProcessor(engine, sources, cache, usage_tracker=tracker)
        >>> warmer = CacheWarmer(processor, tracker)
        >>> await warmer.warm()
    """

    def __init__(
        self,
        processor: "QueryProcessor",
        tracker: UsageTracker,
        max_queries: int = 20,
        concurrency: int = 3,
        popularity_threshold: int = 2,
        max_age_seconds: float = 86400.0,
    ):
        self.processor = processor
        self.tracker = tracker
        self.max_queries = max_queries
        self.popularity_threshold = popularity_threshold
        self.max_age_seconds = max_age_seconds
        self._semaphore = asyncio.Semaphore(concurrency)
        self._warming = False
        self.last_warmed = 0

    @property
    def is_warming(self) -> bool:
        return self._warming

    async def _warm_one(self, usage: QueryUsage) -> bool:
        async with self._semaphore:
            query = usage.query.model_copy(update={"id": str(uuid.uuid4())})
            try:
                await self.processor.process(query, bypass_cache=True)
                return True
            except QueryEngineError as e:
                logger.warning(f"Cache warming failed for {usage.fingerprint[:12]}: {e}")
                return False

    async def warm(self) -> int:
        """
        Refresh the cache for the most popular queries.

        Returns:
            Number of queries successfully re-run (0 if a run is already active)
        """
        if self._warming:
            return 0

        self._warming = True
        try:
            popular = self.tracker.popular(
                self.max_queries, self.popularity_threshold, self.max_age_seconds
            )
            logger.info(f"Warming cache for {len(popular)} popular queries")
            outcomes = await asyncio.gather(*(self._warm_one(usage) for usage in popular))
            self.last_warmed = sum(outcomes)
            logger.info(f"Cache warming completed ({self.last_warmed}/{len(popular)} refreshed)")
            return self.last_warmed
        finally:
            self._warming = False

    async def invalidate_source(self, source_id: str) -> int:
        """
        Drop cached results of every tracked query that used source_id.

        Returns:
            Number of cache entries removed
        """
        cache = self.processor.cache
        fingerprints = self.tracker.forget_source(source_id)
        if cache is None:
            return 0

        removed = 0
        for fp in fingerprints:
            if await cache.delete(cache_key(fp)):
                removed += 1
        logger.info(
            f"Invalidated {removed} cached results for source {source_id} "
            f"({len(fingerprints)} tracked queries)"
        )
        return removed
