"""
Vector search engine.

Combines an embedding client with one vector index backend to provide
semantic search (vector similarity plus metadata and recency factors),
keyword search over the indexed text, and weighted hybrid search.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from hybrid_query.backends.protocol import VectorIndexBackend
from hybrid_query.config import RankingConfig, VectorIndexConfig
from hybrid_query.embeddings.protocol import TextEmbedding
from hybrid_query.errors import (
    BackendError,
    ConfigurationError,
    EmbeddingError,
    EmbeddingUnavailableError,
    QueryEngineError,
    ValidationError,
)
from hybrid_query.models import (
    HealthStatus,
    HybridSearchOptions,
    RankedResult,
    RankingFactors,
    SearchOptions,
)
from hybrid_query.search.ranking import (
    extract_keywords,
    keyword_score,
    metadata_bonus,
    normalize_scores,
    recency_bonus,
    rerank_for_diversity,
)

logger = logging.getLogger(__name__)


class VectorSearchEngine:
    """
    Semantic, keyword and hybrid search over one vector index.

    Embedding failures raise EmbeddingError and backend failures raise
    BackendError; neither is swallowed, the caller decides how to degrade.

    Example:
        >>> engine = VectorSearchEngine(backend, embedder)
        >>> await engine.initialize(VectorIndexConfig(dimension=768))
        >>> results = await engine.hybrid_search("refund policy", HybridSearchOptions(top_k=5))
    """

    def __init__(
        self,
        backend: VectorIndexBackend,
        embedder: Optional[TextEmbedding] = None,
        ranking: Optional[RankingConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            backend: Vector index backend (initialized here or already)
            embedder: Embedding client; searches fail with
                EmbeddingUnavailableError while it is None
            ranking: Ranking factor configuration
            clock: Returns "now" for the recency factor (tests pin it)
        """
        self.backend = backend
        self.embedder = embedder
        self.ranking = ranking or RankingConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._counters = {"semantic": 0, "keyword": 0, "hybrid": 0, "errors": 0}
        self._total_latency_ms = 0.0

    async def initialize(self, config: VectorIndexConfig) -> None:
        """
        Initialize the backend and check the embedder produces vectors of
        the index dimension.

        Raises:
            ConfigurationError: On missing provider fields or dimension mismatch
        """
        if self.embedder is not None and self.embedder.dimension != config.dimension:
            raise ConfigurationError(
                f"Embedder {self.embedder.model_name} produces {self.embedder.dimension}-dim "
                f"vectors, index {config.index_name} expects {config.dimension}"
            )
        await self.backend.initialize(config)
        logger.info(
            f"VectorSearchEngine initialized (provider={self.backend.provider}, "
            f"index={config.index_name})"
        )

    async def embed(self, query_text: str) -> List[float]:
        """Embed a query, translating client failures into EmbeddingError."""
        if self.embedder is None:
            raise EmbeddingUnavailableError("No embedding client configured")
        if not query_text or not query_text.strip():
            raise ValidationError("Query text cannot be empty")

        try:
            return await self.embedder.embed_query(query_text)
        except EmbeddingError:
            raise
        except Exception as e:
            logger.error(f"Embedding failed ({self.embedder.model_name}): {e}")
            raise EmbeddingError(f"Embedding failed: {e}") from e

    async def _backend_search(self, vector: List[float], options: SearchOptions) -> List[RankedResult]:
        try:
            return await self.backend.search(vector, options)
        except QueryEngineError:
            raise
        except Exception as e:
            logger.error(f"Backend {self.backend.provider} search failed: {e}")
            raise BackendError(
                f"Search failed on {self.backend.provider} backend: {e}",
                provider=self.backend.provider,
            ) from e

    def _augment(self, keywords: List[str], hits: List[RankedResult]) -> List[RankedResult]:
        now = self._clock()
        augmented = []
        for hit in hits:
            semantic = hit.vector_score
            meta = metadata_bonus(
                keywords, hit.metadata, self.ranking.metadata_fields, self.ranking.metadata_max_bonus
            )
            recency = recency_bonus(
                hit.metadata,
                now,
                self.ranking.recency_half_life_days,
                self.ranking.recency_max_bonus,
            )
            augmented.append(
                hit.model_copy(
                    update={
                        "ranking_factors": RankingFactors(
                            semantic=semantic, metadata=meta, recency=recency
                        ),
                        "final_score": min(1.0, semantic + meta + recency),
                    }
                )
            )

        augmented.sort(key=lambda r: (-r.final_score, r.id))
        return augmented

    async def _semantic(
        self, query_text: str, vector: List[float], options: SearchOptions
    ) -> List[RankedResult]:
        hits = await self._backend_search(vector, options)
        return self._augment(extract_keywords(query_text), hits)

    async def _keyword(
        self, query_text: str, vector: List[float], options: HybridSearchOptions
    ) -> List[RankedResult]:
        keywords = extract_keywords(query_text)
        if not keywords:
            return []

        candidates = await self._backend_search(
            vector,
            SearchOptions(
                top_k=options.top_k * self.ranking.keyword_candidate_multiplier,
                include_metadata=True,
                filter=options.filter,
                threshold=options.threshold,
            ),
        )

        scored = []
        for candidate in candidates:
            score = keyword_score(
                query_text, keywords, candidate.metadata, self.ranking.text_fields, options.keyword_boost
            )
            if score <= 0:
                continue
            scored.append(
                candidate.model_copy(
                    update={
                        "keyword_score": score,
                        "final_score": score,
                        "ranking_factors": RankingFactors(
                            semantic=candidate.vector_score, keyword=score
                        ),
                        "metadata": candidate.metadata if options.include_metadata else {},
                    }
                )
            )

        scored.sort(key=lambda r: (-r.final_score, r.id))
        return scored[: options.top_k]

    def _record(self, kind: str, started: float) -> None:
        self._counters[kind] += 1
        self._total_latency_ms += (time.perf_counter() - started) * 1000

    async def semantic_search(
        self, query_text: str, options: Optional[SearchOptions] = None
    ) -> List[RankedResult]:
        """
        Embed the query, search the backend and apply ranking factors.

        Returns:
            Results ordered by final_score descending, ties by ascending id
        """
        options = options or SearchOptions()
        started = time.perf_counter()
        try:
            vector = await self.embed(query_text)
            results = await self._semantic(query_text, vector, options)
        except QueryEngineError:
            self._counters["errors"] += 1
            raise

        self._record("semantic", started)
        logger.debug(f"Semantic search returned {len(results)} results")
        return results

    async def keyword_search(
        self, query_text: str, options: Optional[HybridSearchOptions] = None
    ) -> List[RankedResult]:
        """
        Lexical search over the indexed text of the nearest candidates.

        The candidate pool is the query's top_k * keyword_candidate_multiplier
        nearest vectors; each is scored by keyword overlap and exact phrase
        match. Candidates without any keyword match are dropped.
        """
        options = options or HybridSearchOptions()
        started = time.perf_counter()
        try:
            vector = await self.embed(query_text)
            results = await self._keyword(query_text, vector, options)
        except QueryEngineError:
            self._counters["errors"] += 1
            raise

        self._record("keyword", started)
        return results

    async def hybrid_search(
        self, query_text: str, options: Optional[HybridSearchOptions] = None
    ) -> List[RankedResult]:
        """
        Weighted combination of semantic and keyword search.

        Weights are normalized to sum to 1. Each branch's scores are
        normalized within its own set, results are merged by id (a result
        missing from one branch scores 0 there), then re-sorted and cut to
        top_k. A branch with zero weight is not run, so weights (1, 0)
        reproduce semantic_search exactly.

        Raises:
            ValidationError: If both weights are zero
        """
        options = options or HybridSearchOptions()
        total_weight = options.vector_weight + options.keyword_weight
        if total_weight <= 0:
            raise ValidationError("vector_weight and keyword_weight cannot both be zero")
        vector_weight = options.vector_weight / total_weight
        keyword_weight = options.keyword_weight / total_weight

        started = time.perf_counter()
        try:
            vector = await self.embed(query_text)

            if keyword_weight == 0:
                semantic, keyword = await self._semantic(query_text, vector, options), []
            elif vector_weight == 0:
                semantic, keyword = [], await self._keyword(query_text, vector, options)
            else:
                outcomes = await asyncio.gather(
                    self._semantic(query_text, vector, options),
                    self._keyword(query_text, vector, options),
                    return_exceptions=True,
                )
                for outcome in outcomes:
                    if isinstance(outcome, BaseException):
                        raise outcome
                semantic, keyword = outcomes
        except QueryEngineError:
            self._counters["errors"] += 1
            raise

        if keyword_weight == 0:
            results = semantic
        else:
            results = self._combine(semantic, keyword, vector_weight, keyword_weight)

        if options.rerank:
            results = rerank_for_diversity(results, options.top_k)

        self._record("hybrid", started)
        logger.debug(
            f"Hybrid search: {len(semantic)} semantic + {len(keyword)} keyword -> "
            f"{min(len(results), options.top_k)} results"
        )
        return results[: options.top_k]

    @staticmethod
    def _combine(
        semantic: List[RankedResult],
        keyword: List[RankedResult],
        vector_weight: float,
        keyword_weight: float,
    ) -> List[RankedResult]:
        semantic_scores = dict(
            zip([r.id for r in semantic], normalize_scores([r.final_score for r in semantic]))
        )
        keyword_scores = dict(
            zip([r.id for r in keyword], normalize_scores([r.keyword_score or 0.0 for r in keyword]))
        )

        by_id: Dict[str, RankedResult] = {r.id: r for r in keyword}
        by_id.update({r.id: r for r in semantic})

        combined = []
        for result_id, base in by_id.items():
            vector_part = semantic_scores.get(result_id, 0.0)
            keyword_part = keyword_scores.get(result_id, 0.0)
            factors = base.ranking_factors.model_copy(update={"keyword": keyword_part})
            combined.append(
                base.model_copy(
                    update={
                        "keyword_score": keyword_part,
                        "ranking_factors": factors,
                        "final_score": min(
                            1.0, vector_weight * vector_part + keyword_weight * keyword_part
                        ),
                    }
                )
            )

        combined.sort(key=lambda r: (-r.final_score, r.id))
        return combined

    async def get_stats(self) -> Dict[str, Any]:
        """Backend index stats plus engine counters."""
        index_stats = await self.backend.stats()
        searches = self._counters["semantic"] + self._counters["keyword"] + self._counters["hybrid"]
        return {
            "index": index_stats.model_dump(),
            "provider": self.backend.provider,
            "semantic_searches": self._counters["semantic"],
            "keyword_searches": self._counters["keyword"],
            "hybrid_searches": self._counters["hybrid"],
            "errors": self._counters["errors"],
            "average_latency_ms": self._total_latency_ms / searches if searches else 0.0,
        }

    async def health_check(self) -> HealthStatus:
        backend_health = await self.backend.health_check()
        embedder_ready = self.embedder is not None
        return HealthStatus(
            healthy=backend_health.healthy and embedder_ready,
            details={
                "backend": backend_health.details,
                "backend_healthy": backend_health.healthy,
                "embedder": self.embedder.model_name if embedder_ready else None,
            },
        )

    async def close(self) -> None:
        await self.backend.close()
