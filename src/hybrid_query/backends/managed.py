"""
Managed index service backend.

Talks to a hosted vector index over its REST data plane (Pinecone-style
endpoints: /describe_index_stats, /vectors/upsert, /query, /vectors/delete)
with an async httpx client, so cancelling a query aborts the request on
the wire.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from hybrid_query.backends.base import (
    BackendLifecycle,
    batched,
    make_result,
    rank_results,
    to_similarity,
    validate_query_vector,
    validate_records,
)
from hybrid_query.backends.filters import normalize_filter
from hybrid_query.config import VectorIndexConfig
from hybrid_query.errors import BackendError, ConfigurationError, ValidationError
from hybrid_query.models import IndexStats, RankedResult, SearchOptions, VectorRecord

logger = logging.getLogger(__name__)


def to_managed_filter(filter: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """The service understands operator dicts natively except $contains."""
    normalized = normalize_filter(filter)
    for field, conditions in normalized.items():
        if "$contains" in conditions:
            raise ValidationError(
                f"Managed index does not support '$contains' filters (field '{field}')"
            )
    return normalized or None


class ManagedIndexBackend(BackendLifecycle):
    """Managed index service implementation of the VectorIndexBackend protocol."""

    provider_name = "managed"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        super().__init__()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @staticmethod
    def host_for(config: VectorIndexConfig) -> str:
        if config.connection_string:
            return config.connection_string.rstrip("/")
        return f"https://{config.index_name}.svc.{config.environment}.pinecone.io"

    async def initialize(self, config: VectorIndexConfig) -> None:
        if self._config is not None:
            return

        missing = [name for name in ("api_key", "index_name") if not getattr(config, name)]
        if not config.environment and not config.connection_string:
            missing.append("environment (or connection_string)")
        if missing:
            raise ConfigurationError(
                f"Managed index backend requires configuration field(s): {', '.join(missing)}"
            )

        self._client = httpx.AsyncClient(
            base_url=self.host_for(config),
            headers={"Api-Key": config.api_key, "Content-Type": "application/json"},
            timeout=config.timeout,
            transport=self._transport,
        )
        self._config = config

        try:
            described = await self._post("/describe_index_stats", {})
        except BackendError:
            self._config = None
            await self._client.aclose()
            self._client = None
            raise

        remote_dimension = described.get("dimension")
        if remote_dimension and remote_dimension != config.dimension:
            self._config = None
            await self._client.aclose()
            self._client = None
            raise ConfigurationError(
                f"Managed index {config.index_name} has dimension {remote_dimension}, "
                f"configured dimension is {config.dimension}"
            )

        self._touch()
        logger.info(
            f"ManagedIndexBackend initialized (index={config.index_name}, "
            f"host={self.host_for(config)})"
        )

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self._client is None:
            raise BackendError("Managed index client not initialized", provider=self.provider_name)

        if self.config.namespace and path != "/describe_index_stats":
            payload = {**payload, "namespace": self.config.namespace}

        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Managed index request {path} failed ({type(e).__name__}): {e}")
            raise BackendError(
                f"Managed index request {path} failed: {type(e).__name__}",
                provider=self.provider_name,
            ) from e

        try:
            return response.json()
        except ValueError as e:
            raise BackendError(
                f"Managed index returned invalid JSON for {path}", provider=self.provider_name
            ) from e

    async def upsert(self, records: List[VectorRecord]) -> None:
        if not records:
            return

        records = validate_records(records, self.config.dimension)

        failed_ids: List[str] = []
        last_error: Optional[Exception] = None
        for batch in batched(records, self.config.batch_size):
            vectors = [
                {"id": record.id, "values": record.vector, "metadata": record.metadata}
                for record in batch
            ]
            try:
                await self._post("/vectors/upsert", {"vectors": vectors})
            except BackendError as e:
                failed_ids.extend(record.id for record in batch)
                last_error = e

        if failed_ids:
            raise BackendError(
                f"Failed to upsert {len(failed_ids)} of {len(records)} vectors",
                provider=self.provider_name,
                failed_ids=failed_ids,
            ) from last_error

        self._touch()
        logger.debug(f"Upserted {len(records)} vectors into {self.config.index_name}")

    async def search(self, vector: List[float], options: SearchOptions) -> List[RankedResult]:
        validate_query_vector(vector, self.config.dimension)

        payload: Dict[str, Any] = {
            "vector": vector,
            "topK": options.top_k,
            "includeMetadata": options.include_metadata,
        }
        managed_filter = to_managed_filter(options.filter)
        if managed_filter:
            payload["filter"] = managed_filter

        data = await self._post("/query", payload)

        results = []
        for match in data.get("matches") or []:
            similarity = to_similarity(match.get("score") or 0.0, self.config.metric)
            metadata = match.get("metadata") or {}
            results.append(
                make_result(
                    str(match["id"]), similarity, metadata if options.include_metadata else {}
                )
            )

        return rank_results(results, options.top_k, options.threshold)

    async def delete(self, ids: List[str]) -> None:
        if not ids:
            return
        await self._post("/vectors/delete", {"ids": list(ids)})
        self._touch()
        logger.info(f"Deleted {len(ids)} vectors from {self.config.index_name}")

    async def stats(self) -> IndexStats:
        data = await self._post("/describe_index_stats", {})
        return IndexStats(
            total_vectors=int(data.get("totalVectorCount") or 0),
            dimension=self.config.dimension,
            index_type="managed",
            last_updated=self._last_updated,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("ManagedIndexBackend closed")
