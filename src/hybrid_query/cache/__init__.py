"""
Query result caches.

- QueryCache: protocol consumed by the query processor
- InMemoryQueryCache: single-process TTL + LRU cache
- RedisQueryCache: shared cache for multi-replica deployments
"""

from hybrid_query.cache.memory import InMemoryQueryCache
from hybrid_query.cache.protocol import QueryCache
from hybrid_query.config import CacheConfig

__all__ = [
    "QueryCache",
    "InMemoryQueryCache",
    "create_cache",
]

try:
    from hybrid_query.cache.redis import RedisQueryCache  # noqa: F401

    __all__.append("RedisQueryCache")
except ImportError:
    pass


def create_cache(config: CacheConfig) -> QueryCache:
    """Build the cache selected by config.backend."""
    if config.backend == "redis":
        from hybrid_query.cache.redis import RedisQueryCache

        return RedisQueryCache(
            host=config.host,
            port=config.port,
            db=config.db,
            key_prefix=config.key_prefix,
            default_ttl=config.default_ttl,
        )
    return InMemoryQueryCache(max_entries=config.max_entries, default_ttl=config.default_ttl)
