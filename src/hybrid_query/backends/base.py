"""
Helpers shared by all vector index backends.
"""

import logging
import math
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Sequence, TypeVar

from hybrid_query.config import VectorIndexConfig
from hybrid_query.errors import BackendError, ConfigurationError, ValidationError
from hybrid_query.models import HealthStatus, RankedResult, RankingFactors, VectorRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


def validate_records(records: Sequence[VectorRecord], dimension: int) -> List[VectorRecord]:
    """
    Check every record against the index dimension before anything is written.

    An id repeated within the batch keeps its last record, at the position
    of its first occurrence.

    Returns:
        The batch with one record per id

    Raises:
        ValidationError: Listing the ids whose vector length is wrong or whose
            vector holds NaN or infinite values
    """
    bad_ids = [record.id for record in records if len(record.vector) != dimension]
    if bad_ids:
        raise ValidationError(
            f"Vector dimension mismatch (expected {dimension}) for ids: {', '.join(bad_ids)}"
        )

    non_finite = [
        record.id for record in records if not all(math.isfinite(v) for v in record.vector)
    ]
    if non_finite:
        raise ValidationError(f"Vectors contain NaN or infinite values for ids: {', '.join(non_finite)}")

    by_id: Dict[str, VectorRecord] = {}
    for record in records:
        by_id[record.id] = record
    if len(by_id) < len(records):
        logger.debug(f"Collapsed {len(records) - len(by_id)} repeated ids in upsert batch")
    return list(by_id.values())


def validate_query_vector(vector: Sequence[float], dimension: int) -> None:
    if len(vector) != dimension:
        raise ValidationError(
            f"Query vector has dimension {len(vector)}, index expects {dimension}"
        )


def to_similarity(score: float, metric: str) -> float:
    """
    Normalize a provider-native score into [0, 1] similarity.

    Distance metrics map through 1 / (1 + distance); similarity metrics
    pass through, clamped to [0, 1].
    """
    if metric == "l2":
        return 1.0 / (1.0 + max(0.0, float(score)))
    return min(1.0, max(0.0, float(score)))


def make_result(record_id: str, similarity: float, metadata: dict) -> RankedResult:
    return RankedResult(
        id=record_id,
        vector_score=similarity,
        final_score=similarity,
        ranking_factors=RankingFactors(semantic=similarity),
        metadata=metadata,
    )


def rank_results(
    results: List[RankedResult], top_k: int, threshold: Optional[float] = None
) -> List[RankedResult]:
    """Drop results under threshold, order by score desc then id asc, cut to top_k."""
    if threshold is not None:
        results = [r for r in results if r.vector_score >= threshold]
    results.sort(key=lambda r: (-r.vector_score, r.id))
    return results[:top_k]


def batched(items: Sequence[T], size: int) -> Iterator[List[T]]:
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def require(config: VectorIndexConfig, provider: str, *fields: str) -> None:
    """Fail fast when a provider-specific config field is missing."""
    missing = [name for name in fields if not getattr(config, name)]
    if missing:
        raise ConfigurationError(
            f"{provider} backend requires configuration field(s): {', '.join(missing)}"
        )


class BackendLifecycle:
    """
    Mixin tracking initialization state, last update time and async context use.
    """

    provider_name = "unknown"

    def __init__(self):
        self._config: Optional[VectorIndexConfig] = None
        self._last_updated: Optional[datetime] = None

    @property
    def provider(self) -> str:
        return self.provider_name

    @property
    def config(self) -> VectorIndexConfig:
        if self._config is None:
            raise BackendError(
                f"{self.provider_name} backend used before initialize()",
                provider=self.provider_name,
            )
        return self._config

    def _touch(self) -> None:
        self._last_updated = datetime.now()

    async def health_check(self) -> HealthStatus:
        try:
            stats = await self.stats()
            return HealthStatus(
                healthy=True,
                details={
                    "provider": self.provider_name,
                    "index_name": self.config.index_name,
                    "dimension": stats.dimension,
                    "total_vectors": stats.total_vectors,
                    "index_type": stats.index_type,
                    "last_check": datetime.now().isoformat(),
                },
            )
        except Exception as e:
            logger.error(f"Health check failed for {self.provider_name} backend: {e}")
            return HealthStatus(
                healthy=False,
                details={
                    "provider": self.provider_name,
                    "error": str(e),
                    "last_check": datetime.now().isoformat(),
                },
            )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
