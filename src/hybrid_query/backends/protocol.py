"""
Vector index backend protocol.

Every provider (in-process flat index, remote collection store, managed
index service) implements this one capability set. Scores returned from
search() are already normalized into [0, 1] similarity space, so ranking
code never needs to know which provider produced them.
"""

from typing import List, Protocol

from typing_extensions import runtime_checkable

from hybrid_query.config import VectorIndexConfig
from hybrid_query.models import HealthStatus, IndexStats, RankedResult, SearchOptions, VectorRecord


@runtime_checkable
class VectorIndexBackend(Protocol):
    """
    Protocol for vector index backends.

    Implementations must:

    1. Validate provider-specific configuration in initialize(), not on first use
    2. Reject vectors whose length differs from the configured dimension
    3. Return search hits ordered by descending similarity, ties by ascending id
    4. Translate provider errors into BackendError
    """

    @property
    def provider(self) -> str:
        """Provider identifier ("flat", "remote-collection", "managed")."""
        ...

    async def initialize(self, config: VectorIndexConfig) -> None:
        """
        Validate configuration and connect.

        Args:
            config: Index configuration

        Raises:
            ConfigurationError: If a required provider field is missing
            BackendError: If the provider cannot be reached
        """
        ...

    async def upsert(self, records: List[VectorRecord]) -> None:
        """
        Insert or replace records by id.

        Args:
            records: Records to write

        Raises:
            ValidationError: If any vector has the wrong dimension (nothing is written)
            BackendError: If the write fails; failed_ids names the records
                that were not written when the provider can tell
        """
        ...

    async def search(self, vector: List[float], options: SearchOptions) -> List[RankedResult]:
        """
        Find the nearest records to a query vector.

        Args:
            vector: Query vector (length must equal the index dimension)
            options: top_k, optional similarity threshold and metadata filter

        Returns:
            At most top_k results, highest similarity first
        """
        ...

    async def delete(self, ids: List[str]) -> None:
        """Delete records by id. Unknown ids are ignored."""
        ...

    async def stats(self) -> IndexStats:
        """Return vector count, dimension, index type and last update time."""
        ...

    async def health_check(self) -> HealthStatus:
        """Report backend health. Never raises."""
        ...

    async def close(self) -> None:
        """Release network clients and other resources."""
        ...
