"""
In-process flat vector index.

Brute-force exact search over a numpy matrix. Suitable for tests, small
corpora and single-instance deployments. Data is lost on restart.
"""

import logging
from typing import Any, Dict, List

import numpy as np

from hybrid_query.backends.base import (
    BackendLifecycle,
    make_result,
    rank_results,
    validate_query_vector,
    validate_records,
)
from hybrid_query.backends.filters import matches_filter, normalize_filter
from hybrid_query.config import VectorIndexConfig
from hybrid_query.models import IndexStats, RankedResult, SearchOptions, VectorRecord

logger = logging.getLogger(__name__)


class FlatIndexBackend(BackendLifecycle):
    """
    In-memory implementation of the VectorIndexBackend protocol.

    Vectors are kept as rows of a float32 matrix; ids and metadata are kept
    alongside by row position.
    """

    provider_name = "flat"

    def __init__(self):
        super().__init__()
        self._matrix = np.zeros((0, 0), dtype=np.float32)
        self._ids: List[str] = []
        self._rows: Dict[str, int] = {}
        self._metadata: Dict[str, Dict[str, Any]] = {}

    async def initialize(self, config: VectorIndexConfig) -> None:
        if self._config is not None:
            return

        self._config = config
        self._matrix = np.zeros((0, config.dimension), dtype=np.float32)
        self._touch()

        logger.info(
            f"FlatIndexBackend initialized (index={config.index_name}, "
            f"dimension={config.dimension}, metric={config.metric})"
        )

    async def upsert(self, records: List[VectorRecord]) -> None:
        """Insert or replace records. The whole batch is validated first."""
        if not records:
            return

        records = validate_records(records, self.config.dimension)

        new_rows = []
        for record in records:
            vector = np.asarray(record.vector, dtype=np.float32)
            if record.id in self._rows:
                self._matrix[self._rows[record.id]] = vector
            else:
                # rows of this batch land after the current matrix, in append order
                self._rows[record.id] = len(self._ids)
                new_rows.append(vector)
                self._ids.append(record.id)
            self._metadata[record.id] = dict(record.metadata)

        if new_rows:
            self._matrix = np.vstack([self._matrix, np.stack(new_rows)])

        self._touch()
        logger.debug(f"Upserted {len(records)} vectors (total: {len(self._ids)})")

    def _similarities(self, query: np.ndarray) -> np.ndarray:
        metric = self.config.metric

        if metric == "l2":
            distances = np.linalg.norm(self._matrix - query, axis=1)
            return 1.0 / (1.0 + distances)

        scores = self._matrix @ query
        if metric == "cosine":
            norms = np.linalg.norm(self._matrix, axis=1) * np.linalg.norm(query)
            scores = np.divide(scores, norms, out=np.zeros_like(scores), where=norms > 0)

        return np.clip(scores, 0.0, 1.0)

    async def search(self, vector: List[float], options: SearchOptions) -> List[RankedResult]:
        validate_query_vector(vector, self.config.dimension)
        normalize_filter(options.filter)

        if not self._ids:
            return []

        query = np.asarray(vector, dtype=np.float32)
        similarities = self._similarities(query)

        results = []
        for row, record_id in enumerate(self._ids):
            metadata = self._metadata[record_id]
            if not matches_filter(metadata, options.filter):
                continue
            results.append(
                make_result(
                    record_id,
                    float(similarities[row]),
                    dict(metadata) if options.include_metadata else {},
                )
            )

        ranked = rank_results(results, options.top_k, options.threshold)
        logger.debug(
            f"{len(ranked)} results found (candidates={len(results)}, threshold={options.threshold})"
        )
        return ranked

    async def delete(self, ids: List[str]) -> None:
        doomed = [self._rows[record_id] for record_id in ids if record_id in self._rows]
        if not doomed:
            return

        self._matrix = np.delete(self._matrix, doomed, axis=0)
        removed = set(ids)
        self._ids = [record_id for record_id in self._ids if record_id not in removed]
        self._rows = {record_id: row for row, record_id in enumerate(self._ids)}
        for record_id in removed:
            self._metadata.pop(record_id, None)

        self._touch()
        logger.info(f"Deleted {len(doomed)} vectors (total: {len(self._ids)})")

    async def stats(self) -> IndexStats:
        return IndexStats(
            total_vectors=len(self._ids),
            dimension=self.config.dimension,
            index_type="flat",
            memory_usage=int(self._matrix.nbytes),
            last_updated=self._last_updated,
        )

    async def close(self) -> None:
        count = len(self._ids)
        self._matrix = np.zeros((0, self.config.dimension if self._config else 0), dtype=np.float32)
        self._ids = []
        self._rows = {}
        self._metadata = {}
        self._config = None
        logger.info(f"FlatIndexBackend closed ({count} vectors released)")
