"""
Query result cache protocol.

Keys are query fingerprints (see processing.fingerprint); values are
QueryResult objects. Implementations must be safe for concurrent use.
"""

from typing import Optional, Protocol

from typing_extensions import runtime_checkable

from hybrid_query.models import CacheStats, QueryResult


@runtime_checkable
class QueryCache(Protocol):
    """
    Protocol for query result caches.

    Implementations raise CacheError on storage failures; the query
    processor treats those as a miss or a skipped store, never as a
    failed query.
    """

    async def get(self, key: str) -> Optional[QueryResult]:
        """
        Look up a cached result.

        Returns:
            The stored QueryResult, or None when missing or expired
        """
        ...

    async def set(self, key: str, value: QueryResult, ttl: Optional[int] = None) -> None:
        """
        Store a result.

        Args:
            key: Cache key
            value: Result to store
            ttl: Time to live in seconds (None = cache default)
        """
        ...

    async def delete(self, key: str) -> bool:
        """Remove one entry. Returns True if it existed."""
        ...

    async def clear(self, pattern: Optional[str] = None) -> int:
        """
        Remove entries whose key matches a glob pattern (all entries when None).

        Returns:
            Number of entries removed
        """
        ...

    async def stats(self) -> CacheStats:
        """Hit/miss counters, key count, evictions and memory usage."""
        ...

    async def health_check(self) -> bool:
        ...

    async def close(self) -> None:
        ...
