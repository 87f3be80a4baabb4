"""
Data source manager protocol.

The connector layer (files, databases, external APIs) lives outside the
query engine; the processor only needs to search it and ask about the
health of individual sources.
"""

from typing import List, Protocol

from typing_extensions import runtime_checkable

from hybrid_query.models import HealthStatus, Query, SearchOptions, SearchResult


@runtime_checkable
class DataSourceManager(Protocol):
    """
    Protocol for the auxiliary data source search branch.

    search() must be cancellable: when the query deadline expires the
    processor cancels the awaiting task, and implementations should let
    CancelledError propagate so outstanding network calls are aborted.
    """

    async def search(self, query: Query, options: SearchOptions) -> List[SearchResult]:
        """
        Search every registered data source.

        Args:
            query: The validated query
            options: top_k, compiled metadata filter and threshold

        Returns:
            Source-attributed results with relevance scores in [0, 1]
        """
        ...

    async def check_health(self, source_id: str) -> HealthStatus:
        """Health of a single data source."""
        ...
