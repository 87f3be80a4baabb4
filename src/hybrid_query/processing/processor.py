"""
Query processor.

Entry point used by the HTTP layer. For each query it:

1. Serves cached results without touching the admission gate
2. Admits the query (or rejects it immediately when at capacity)
3. Fans out to the vector search engine and the data source manager
   under one deadline, isolating each branch's failure
4. Merges, filters and scores the results
5. Stores non-empty results in the cache
"""

import asyncio
import logging
import time
from collections import OrderedDict
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

from pydantic import ValidationError as ModelValidationError

from hybrid_query.backends.filters import build_filter, normalize_filter
from hybrid_query.cache.protocol import QueryCache
from hybrid_query.config import ConfidenceConfig, QueryProcessorConfig
from hybrid_query.errors import (
    BackendError,
    CacheError,
    ConfigurationError,
    EmbeddingError,
    PartialFailure,
    QueryCancelledError,
    QueryTimeoutError,
    ValidationError,
)
from hybrid_query.models import (
    HealthStatus,
    HybridSearchOptions,
    Query,
    QueryResult,
    QueryStatus,
    SearchOptions,
    SearchResult,
)
from hybrid_query.processing.admission import AdmissionGate
from hybrid_query.processing.confidence import calculate_confidence
from hybrid_query.processing.fingerprint import cache_key, fingerprint
from hybrid_query.processing.merge import merge_results, to_search_results
from hybrid_query.processing.single_flight import SingleFlight
from hybrid_query.processing.tasks import QueryHandle
from hybrid_query.processing.warming import UsageTracker
from hybrid_query.search.engine import VectorSearchEngine
from hybrid_query.sources.protocol import DataSourceManager

logger = logging.getLogger(__name__)

VECTOR_BRANCH = "vector-search"
DATA_SOURCE_BRANCH = "data-sources"

Branch = Callable[[], Awaitable[List[SearchResult]]]


class QueryProcessor:
    """
    Concurrent, deadline-bounded query execution with caching.

    Collaborators are injected; the processor does not own or close them.

    Example:
        >>> processor = QueryProcessor(engine, data_sources, InMemoryQueryCache())
        >>> result = await processor.process(Query(text="How do I rotate API keys?"))
        >>> result.confidence
        0.82
    """

    def __init__(
        self,
        search_engine: Optional[VectorSearchEngine] = None,
        data_sources: Optional[DataSourceManager] = None,
        cache: Optional[QueryCache] = None,
        config: Optional[QueryProcessorConfig] = None,
        confidence: Optional[ConfidenceConfig] = None,
        usage_tracker: Optional[UsageTracker] = None,
    ):
        """
        Args:
            search_engine: Vector search branch
            data_sources: Auxiliary data source branch
            cache: Query result cache (caching disabled when None)
            config: Processor settings
            confidence: Confidence coefficients
            usage_tracker: Records query usage for cache warming

        Raises:
            ConfigurationError: If neither search branch is provided
        """
        if search_engine is None and data_sources is None:
            raise ConfigurationError("QueryProcessor needs a search engine or a data source manager")

        self.search_engine = search_engine
        self.data_sources = data_sources
        self.cache = cache
        self.config = config or QueryProcessorConfig()
        self.confidence = confidence or ConfidenceConfig()
        self.usage_tracker = usage_tracker

        self._gate = AdmissionGate(self.config.max_concurrent_queries)
        self._flights: SingleFlight[QueryResult] = SingleFlight()
        self._running: Dict[str, asyncio.Task] = {}
        self._started_at: Dict[str, datetime] = {}
        self._cancelled: Set[str] = set()
        self._handles: "OrderedDict[str, QueryHandle]" = OrderedDict()
        self._partial_failures: "OrderedDict[str, PartialFailure]" = OrderedDict()

        logger.info(
            f"QueryProcessor initialized (max_concurrent={self.config.max_concurrent_queries}, "
            f"timeout={self.config.default_timeout}s, parallel={self.config.enable_parallel_search}, "
            f"cache={'on' if self.cache is not None and self.config.cache_enabled else 'off'})"
        )

    @property
    def active_query_count(self) -> int:
        """Queries currently holding an admission slot."""
        return self._gate.in_flight

    @property
    def caching(self) -> bool:
        return self.cache is not None and self.config.cache_enabled

    @staticmethod
    def _coerce(query: Union[Query, str]) -> Query:
        if isinstance(query, Query):
            return query
        if isinstance(query, str):
            try:
                return Query(text=query)
            except ModelValidationError as e:
                raise ValidationError(f"Invalid query: {e}") from e
        raise ValidationError(f"Expected Query or str, got {type(query).__name__}")

    async def process(self, query: Union[Query, str], *, bypass_cache: bool = False) -> QueryResult:
        """
        Process a query end to end.

        Args:
            query: Query model or plain query text
            bypass_cache: Skip the cache lookup (the result is still stored);
                used by cache warming

        Returns:
            QueryResult; degraded_branches lists branches that failed

        Raises:
            ValidationError: Malformed query or filters
            CapacityExceededError: Admission gate full
            QueryTimeoutError: Deadline expired before any branch returned
            EmbeddingError: Every branch failed because embedding failed
            BackendError: Every branch failed
            QueryCancelledError: cancel() was called for this query
        """
        query = self._coerce(query)
        search_filter = build_filter(query.filters)
        normalize_filter(search_filter)

        if query.id in self._running:
            raise ValidationError(f"Query {query.id} is already being processed")

        task = asyncio.ensure_future(self._process(query, search_filter, bypass_cache))
        self._running[query.id] = task
        self._started_at[query.id] = datetime.now()
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if query.id in self._cancelled and current is not None and not current.cancelling():
                raise QueryCancelledError(f"Query {query.id} was cancelled") from None
            raise
        finally:
            self._running.pop(query.id, None)
            self._started_at.pop(query.id, None)
            self._cancelled.discard(query.id)

    async def _process(
        self, query: Query, search_filter: Optional[dict], bypass_cache: bool
    ) -> QueryResult:
        started = time.perf_counter()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.default_timeout
        query_fingerprint = fingerprint(query)
        key = cache_key(query_fingerprint)

        if self.caching and not bypass_cache:
            cached = await self._cache_get(key)
            if cached is not None:
                elapsed = (time.perf_counter() - started) * 1000
                result = cached.model_copy(
                    update={"id": query.id, "cached": True, "processing_time_ms": elapsed}
                )
                logger.info(f"Query {query.id} served from cache ({elapsed:.1f}ms)")
                self._track(query_fingerprint, query, result)
                return result

        async def compute() -> QueryResult:
            return await self._compute(query, search_filter, key, started, deadline)

        if self.config.single_flight and not bypass_cache:
            result, shared = await self._flights.do(key, compute)
            if shared:
                elapsed = (time.perf_counter() - started) * 1000
                result = result.model_copy(update={"id": query.id, "processing_time_ms": elapsed})
                logger.debug(f"Query {query.id} coalesced with an identical in-flight query")
        else:
            result = await compute()

        if not bypass_cache:
            self._track(query_fingerprint, query, result)
        return result

    async def _compute(
        self,
        query: Query,
        search_filter: Optional[dict],
        key: str,
        started: float,
        deadline: float,
    ) -> QueryResult:
        with self._gate.slot():
            branch_results, errors = await self._fan_out(query, search_filter, deadline)

            merged = merge_results(
                branch_results,
                self.config.min_confidence_threshold,
                self.config.max_results_per_source,
                self.config.max_results,
            )
            degraded = list(errors)
            result = QueryResult(
                id=query.id,
                results=merged,
                confidence=calculate_confidence(merged, len(degraded), self.confidence),
                processing_time_ms=(time.perf_counter() - started) * 1000,
                cached=False,
                degraded_branches=degraded,
            )

            if errors:
                self._record_partial_failure(query.id, errors)

            if self.caching and merged:
                await self._cache_set(key, result)

        logger.info(
            f"Query {query.id} completed: {len(merged)} results, "
            f"confidence={result.confidence:.3f}, {result.processing_time_ms:.1f}ms"
            + (f", degraded={degraded}" if degraded else "")
        )
        return result

    def _branches(self, query: Query, search_filter: Optional[dict]) -> List[Tuple[str, Branch]]:
        branches: List[Tuple[str, Branch]] = []
        top_k = self.config.max_results_per_source

        if self.search_engine is not None:
            engine = self.search_engine

            async def vector_branch() -> List[SearchResult]:
                if self.config.keyword_weight == 0:
                    ranked = await engine.semantic_search(
                        query.text, SearchOptions(top_k=top_k, filter=search_filter)
                    )
                else:
                    ranked = await engine.hybrid_search(
                        query.text,
                        HybridSearchOptions(
                            top_k=top_k,
                            filter=search_filter,
                            vector_weight=self.config.vector_weight,
                            keyword_weight=self.config.keyword_weight,
                        ),
                    )
                return to_search_results(
                    ranked, self.config.vector_source_id, self.config.vector_source_name
                )

            branches.append((VECTOR_BRANCH, vector_branch))

        if self.data_sources is not None:
            sources = self.data_sources

            async def data_source_branch() -> List[SearchResult]:
                return list(
                    await sources.search(query, SearchOptions(top_k=top_k, filter=search_filter))
                )

            branches.append((DATA_SOURCE_BRANCH, data_source_branch))

        return branches

    async def _fan_out(
        self, query: Query, search_filter: Optional[dict], deadline: float
    ) -> Tuple[List[List[SearchResult]], Dict[str, Exception]]:
        """
        Run every branch under the deadline.

        Returns:
            (results of successful branches in declared order, errors by branch name)
        """
        loop = asyncio.get_running_loop()
        branches = self._branches(query, search_filter)
        outcomes: Dict[str, List[SearchResult]] = {}
        errors: Dict[str, Exception] = {}

        if self.config.enable_parallel_search:
            tasks = {name: asyncio.ensure_future(branch()) for name, branch in branches}
            try:
                await asyncio.wait(tasks.values(), timeout=max(0.0, deadline - loop.time()))
            finally:
                pending = [task for task in tasks.values() if not task.done()]
                for task in pending:
                    task.cancel()
                if pending:
                    await asyncio.gather(*pending, return_exceptions=True)

            for name, task in tasks.items():
                if task.cancelled():
                    errors[name] = QueryTimeoutError(
                        f"Branch {name} exceeded the query deadline", self.config.default_timeout
                    )
                elif task.exception() is not None:
                    errors[name] = task.exception()
                else:
                    outcomes[name] = task.result()
        else:
            for name, branch in branches:
                remaining = deadline - loop.time()
                try:
                    if remaining <= 0:
                        raise TimeoutError
                    async with asyncio.timeout(remaining):
                        outcomes[name] = await branch()
                except TimeoutError:
                    errors[name] = QueryTimeoutError(
                        f"Branch {name} exceeded the query deadline", self.config.default_timeout
                    )
                except Exception as e:
                    errors[name] = e

        for name, error in errors.items():
            logger.warning(f"Query {query.id}: branch {name} failed ({type(error).__name__}): {error}")

        if not outcomes:
            self._raise_total_failure(query, errors)

        return [outcomes[name] for name, _ in branches if name in outcomes], errors

    def _raise_total_failure(self, query: Query, errors: Dict[str, Exception]) -> None:
        failures = list(errors.values())

        if any(isinstance(e, QueryTimeoutError) for e in failures):
            raise QueryTimeoutError(
                f"Query {query.id} timed out after {self.config.default_timeout}s "
                f"with no branch returning",
                self.config.default_timeout,
            )

        for error in failures:
            if isinstance(error, ValidationError):
                raise error

        if failures and all(isinstance(e, EmbeddingError) for e in failures):
            raise failures[0]

        logger.error(f"Query {query.id}: all branches failed: {', '.join(errors)}")
        raise BackendError(
            f"All search branches failed: {', '.join(errors)}",
            provider=", ".join(errors),
            errors=errors,
        ) from (failures[0] if failures else None)

    def _record_partial_failure(self, query_id: str, errors: Dict[str, Exception]) -> None:
        self._partial_failures[query_id] = PartialFailure(
            f"Branches failed: {', '.join(errors)}", errors=dict(errors)
        )
        while len(self._partial_failures) > self.config.max_tracked_handles:
            self._partial_failures.popitem(last=False)

    def get_partial_failure(self, query_id: str) -> Optional[PartialFailure]:
        """Branch errors behind a degraded result, if the query was degraded."""
        return self._partial_failures.get(query_id)

    async def _cache_get(self, key: str) -> Optional[QueryResult]:
        try:
            async with asyncio.timeout(self.config.default_timeout):
                return await self.cache.get(key)
        except (CacheError, TimeoutError) as e:
            logger.warning(f"Cache lookup failed, treating as miss: {e}")
            return None

    async def _cache_set(self, key: str, result: QueryResult) -> None:
        try:
            async with asyncio.timeout(self.config.default_timeout):
                await self.cache.set(key, result, ttl=self.config.cache_ttl)
            logger.debug(f"Cached result under {key[:18]} (ttl={self.config.cache_ttl}s)")
        except (CacheError, TimeoutError) as e:
            logger.warning(f"Cache store failed, result not cached: {e}")

    def _track(self, query_fingerprint: str, query: Query, result: QueryResult) -> None:
        if self.usage_tracker is not None:
            self.usage_tracker.track(
                query_fingerprint, query, result.processing_time_ms, result.source_ids
            )

    def cancel(self, query_id: str) -> bool:
        """
        Cancel a query started with process() or submit().

        In-flight branch calls are cancelled, not just abandoned. The
        process() call raises QueryCancelledError.

        Returns:
            True if a running or pending query was cancelled
        """
        task = self._running.get(query_id)
        if task is not None and not task.done():
            self._cancelled.add(query_id)
            task.cancel()
            logger.info(f"Cancelled query {query_id}")
            return True

        handle = self._handles.get(query_id)
        if handle is not None:
            return handle.cancel()
        return False

    def submit(self, query: Union[Query, str]) -> QueryHandle:
        """
        Start processing in the background and return a handle.

        Raises:
            ValidationError: Malformed query, or the id is already in use
        """
        query = self._coerce(query)
        existing = self._handles.get(query.id)
        if (existing is not None and not existing.done()) or query.id in self._running:
            raise ValidationError(f"Query {query.id} is already being processed")

        handle = QueryHandle(query.id)

        async def run() -> QueryResult:
            handle.mark_running()
            return await self.process(query)

        handle.attach(asyncio.ensure_future(run()))
        self._handles[query.id] = handle
        self._handles.move_to_end(query.id)
        self._trim_handles()

        logger.debug(f"Submitted query {query.id}")
        return handle

    def _trim_handles(self) -> None:
        excess = len(self._handles) - self.config.max_tracked_handles
        if excess <= 0:
            return
        for query_id in [qid for qid, h in self._handles.items() if h.done()][:excess]:
            del self._handles[query_id]

    def get_status(self, query_id: str) -> Optional[QueryStatus]:
        """Status of a submitted or currently running query, None if unknown."""
        handle = self._handles.get(query_id)
        if handle is not None:
            return handle.status
        if query_id in self._running:
            return QueryStatus(
                query_id=query_id,
                state="running",
                submitted_at=self._started_at.get(query_id, datetime.now()),
            )
        return None

    async def health_check(self) -> HealthStatus:
        """Health of the processor and its search engine and cache."""
        details: Dict[str, object] = {
            "active_queries": self.active_query_count,
            "max_concurrent_queries": self.config.max_concurrent_queries,
            "rejected_queries": self._gate.rejected,
        }
        healthy = True

        if self.search_engine is not None:
            engine_health = await self.search_engine.health_check()
            details["search_engine"] = engine_health.details
            healthy = healthy and engine_health.healthy

        if self.cache is not None:
            cache_healthy = await self.cache.health_check()
            details["cache_healthy"] = cache_healthy
            if cache_healthy:
                try:
                    details["cache"] = (await self.cache.stats()).model_dump()
                except CacheError as e:
                    logger.warning(f"Cache stats unavailable: {e}")
            healthy = healthy and cache_healthy

        return HealthStatus(healthy=healthy, details=details)

    async def close(self) -> None:
        """Cancel every outstanding query."""
        tasks = [task for task in self._running.values() if not task.done()]
        for handle in self._handles.values():
            handle.cancel()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"QueryProcessor closed ({len(tasks)} queries cancelled)")
