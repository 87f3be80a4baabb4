import logging
import uuid
from typing import Any, Dict, List, Optional

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchAny,
    MatchText,
    MatchValue,
    PointIdsList,
    PointStruct,
    Range,
    VectorParams,
)

from hybrid_query.backends.base import (
    BackendLifecycle,
    batched,
    make_result,
    rank_results,
    require,
    to_similarity,
    validate_query_vector,
    validate_records,
)
from hybrid_query.backends.filters import normalize_filter
from hybrid_query.config import VectorIndexConfig
from hybrid_query.errors import BackendError, ConfigurationError
from hybrid_query.models import IndexStats, RankedResult, SearchOptions, VectorRecord

logger = logging.getLogger(__name__)

# Qdrant point ids must be UUIDs or integers; record ids are mapped through
# uuid5 under this namespace. Changing it orphans every stored point.
POINT_ID_NAMESPACE = uuid.UUID("9b2f6a51-3c7e-4d0a-b8e4-57c1d2a9f604")
RECORD_ID_KEY = "_record_id"

_DISTANCES = {
    "cosine": Distance.COSINE,
    "l2": Distance.EUCLID,
    "dot": Distance.DOT,
}


def point_id(record_id: str) -> str:
    return str(uuid.uuid5(POINT_ID_NAMESPACE, record_id))


def _match_condition(field: str, value: Any) -> FieldCondition:
    if isinstance(value, float) and not value.is_integer():
        return FieldCondition(key=field, range=Range(gte=value, lte=value))
    return FieldCondition(key=field, match=MatchValue(value=value))


def _in_condition(field: str, values: List[Any]):
    """MatchAny takes only all-str or all-int lists; anything else becomes a should of matches."""
    if all(isinstance(v, str) for v in values) or all(
        isinstance(v, int) and not isinstance(v, bool) for v in values
    ):
        return FieldCondition(key=field, match=MatchAny(any=values))
    return Filter(should=[_match_condition(field, value) for value in values])


def to_qdrant_filter(filter: Optional[Dict[str, Any]]) -> Optional[Filter]:
    """Translate a metadata filter dict into a Qdrant Filter."""
    must = []
    must_not = []

    for field, conditions in normalize_filter(filter).items():
        range_args = {}
        for operator, value in conditions.items():
            if operator == "$eq":
                must.append(_match_condition(field, value))
            elif operator == "$ne":
                must_not.append(_match_condition(field, value))
            elif operator == "$in":
                must.append(_in_condition(field, list(value)))
            elif operator == "$contains":
                must.append(FieldCondition(key=field, match=MatchText(text=str(value))))
            else:
                range_args[operator.lstrip("$")] = value
        if range_args:
            must.append(FieldCondition(key=field, range=Range(**range_args)))

    if not must and not must_not:
        return None
    return Filter(must=must or None, must_not=must_not or None)


class QdrantIndexBackend(BackendLifecycle):
    """
    Remote collection store backed by Qdrant.

    Each index maps to one collection. The collection is created on
    initialize() when missing, and an existing collection with a different
    vector size is rejected.
    """

    provider_name = "remote-collection"

    def __init__(self, client: Optional[AsyncQdrantClient] = None):
        """
        Args:
            client: Pre-built client (e.g. AsyncQdrantClient(location=":memory:"));
                when None, one is created from the config's connection string
        """
        super().__init__()
        self.client = client

    @property
    def collection_name(self) -> str:
        return self.config.index_name

    async def initialize(self, config: VectorIndexConfig) -> None:
        if self._config is not None:
            return

        require(config, "Qdrant", "connection_string", "index_name")

        if self.client is None:
            self.client = AsyncQdrantClient(
                url=config.connection_string,
                api_key=config.api_key,
                timeout=int(config.timeout),
            )

        try:
            if not await self.client.collection_exists(config.index_name):
                await self.client.create_collection(
                    collection_name=config.index_name,
                    vectors_config=VectorParams(
                        size=config.dimension, distance=_DISTANCES[config.metric]
                    ),
                )
                logger.info(f"Created Qdrant collection {config.index_name}")
            else:
                info = await self.client.get_collection(config.index_name)
                vectors = info.config.params.vectors
                size = vectors.size if isinstance(vectors, VectorParams) else None
                if size is not None and size != config.dimension:
                    raise ConfigurationError(
                        f"Qdrant collection {config.index_name} has dimension {size}, "
                        f"configured dimension is {config.dimension}"
                    )
        except ConfigurationError:
            raise
        except Exception as e:
            raise BackendError(
                f"Failed to connect to Qdrant at {config.connection_string}: {e}",
                provider=self.provider_name,
            ) from e

        self._config = config
        self._touch()
        logger.info(
            f"QdrantIndexBackend initialized (collection={config.index_name}, "
            f"dimension={config.dimension}, metric={config.metric})"
        )

    async def upsert(self, records: List[VectorRecord]) -> None:
        """Upsert in batches; a failed batch is reported by record id."""
        if not records:
            return

        records = validate_records(records, self.config.dimension)

        failed_ids: List[str] = []
        last_error: Optional[Exception] = None
        for batch in batched(records, self.config.batch_size):
            points = [
                PointStruct(
                    id=point_id(record.id),
                    vector=record.vector,
                    payload={**record.metadata, RECORD_ID_KEY: record.id},
                )
                for record in batch
            ]
            try:
                await self.client.upsert(
                    collection_name=self.collection_name, points=points, wait=True
                )
            except Exception as e:
                logger.error(f"Qdrant upsert failed for batch of {len(batch)}: {e}")
                failed_ids.extend(record.id for record in batch)
                last_error = e

        if failed_ids:
            raise BackendError(
                f"Failed to upsert {len(failed_ids)} of {len(records)} vectors: {last_error}",
                provider=self.provider_name,
                failed_ids=failed_ids,
            ) from last_error

        self._touch()
        logger.debug(f"Upserted {len(records)} vectors into {self.collection_name}")

    async def search(self, vector: List[float], options: SearchOptions) -> List[RankedResult]:
        validate_query_vector(vector, self.config.dimension)
        qdrant_filter = to_qdrant_filter(options.filter)

        try:
            response = await self.client.query_points(
                collection_name=self.collection_name,
                query=vector,
                limit=options.top_k,
                query_filter=qdrant_filter,
                with_payload=True,
            )
        except Exception as e:
            raise BackendError(
                f"Qdrant search failed on {self.collection_name}: {e}",
                provider=self.provider_name,
            ) from e

        results = []
        for hit in response.points:
            payload = dict(hit.payload or {})
            record_id = payload.pop(RECORD_ID_KEY, str(hit.id))
            similarity = to_similarity(hit.score, self.config.metric)
            results.append(
                make_result(record_id, similarity, payload if options.include_metadata else {})
            )

        logger.debug(f"{len(results)} hits from {self.collection_name}")
        return rank_results(results, options.top_k, options.threshold)

    async def delete(self, ids: List[str]) -> None:
        if not ids:
            return

        try:
            await self.client.delete(
                collection_name=self.collection_name,
                points_selector=PointIdsList(points=[point_id(record_id) for record_id in ids]),
                wait=True,
            )
        except Exception as e:
            raise BackendError(
                f"Failed to delete {len(ids)} vectors from {self.collection_name}: {e}",
                provider=self.provider_name,
            ) from e

        self._touch()
        logger.info(f"Deleted {len(ids)} vectors from {self.collection_name}")

    async def stats(self) -> IndexStats:
        try:
            info = await self.client.get_collection(self.collection_name)
        except Exception as e:
            raise BackendError(
                f"Failed to read Qdrant collection {self.collection_name}: {e}",
                provider=self.provider_name,
            ) from e

        return IndexStats(
            total_vectors=info.points_count or 0,
            dimension=self.config.dimension,
            index_type="qdrant",
            last_updated=self._last_updated,
        )

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
        logger.info("QdrantIndexBackend closed")
