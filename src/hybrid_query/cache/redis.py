"""
Redis query result cache.

Shared across replicas and survives restarts. Uses the asyncio client so
cache I/O honours the query's cancellation like every other call.
"""

import logging
from typing import Optional

import redis.asyncio as aioredis
from pydantic import ValidationError as ModelValidationError
from redis.exceptions import RedisError

from hybrid_query.errors import CacheError
from hybrid_query.models import CacheStats, QueryResult

logger = logging.getLogger(__name__)


class RedisQueryCache:
    """
    Redis implementation of the QueryCache protocol.

    Results are stored as JSON strings with SETEX, so Redis enforces the TTL.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        key_prefix: str = "hybrid_query:",
        default_ttl: int = 3600,
        client: Optional[aioredis.Redis] = None,
    ):
        """
        Args:
            host: Redis host
            port: Redis port
            db: Redis database number
            key_prefix: Prefix for every key written by this cache
            default_ttl: TTL in seconds when set() is called without one
            client: Pre-built asyncio Redis client
        """
        self.client = client or aioredis.Redis(host=host, port=port, db=db, decode_responses=True)
        self._key_prefix = key_prefix
        self._default_ttl = default_ttl
        self._hits = 0
        self._misses = 0

        logger.info(f"RedisQueryCache initialized (host={host}:{port}, prefix={key_prefix})")

    def _get_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def get(self, key: str) -> Optional[QueryResult]:
        try:
            payload = await self.client.get(self._get_key(key))
        except RedisError as e:
            logger.warning(f"Redis get failed for {key}: {e}")
            raise CacheError(f"Redis get failed: {e}") from e

        if payload is None:
            self._misses += 1
            return None

        try:
            result = QueryResult.model_validate_json(payload)
        except ModelValidationError as e:
            logger.warning(f"Dropping undecodable cache entry {key}: {e}")
            self._misses += 1
            await self.delete(key)
            return None

        self._hits += 1
        return result

    async def set(self, key: str, value: QueryResult, ttl: Optional[int] = None) -> None:
        try:
            await self.client.setex(
                self._get_key(key),
                ttl if ttl is not None else self._default_ttl,
                value.model_dump_json(),
            )
        except RedisError as e:
            logger.warning(f"Redis set failed for {key}: {e}")
            raise CacheError(f"Redis set failed: {e}") from e

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self.client.delete(self._get_key(key)))
        except RedisError as e:
            raise CacheError(f"Redis delete failed: {e}") from e

    async def clear(self, pattern: Optional[str] = None) -> int:
        match = self._get_key(pattern or "*")
        deleted = 0
        try:
            batch = []
            async for redis_key in self.client.scan_iter(match=match, count=500):
                batch.append(redis_key)
                if len(batch) >= 500:
                    deleted += await self.client.delete(*batch)
                    batch = []
            if batch:
                deleted += await self.client.delete(*batch)
        except RedisError as e:
            logger.error(f"Redis clear failed for pattern {match}: {e}")
            raise CacheError(f"Redis clear failed: {e}") from e

        logger.info(f"Invalidated {deleted} cache entries (pattern={match})")
        return deleted

    async def stats(self) -> CacheStats:
        try:
            memory = await self.client.info("memory")
            server_stats = await self.client.info("stats")
            total_keys = await self.client.dbsize()
        except RedisError as e:
            raise CacheError(f"Redis stats failed: {e}") from e

        lookups = self._hits + self._misses
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            hit_rate=self._hits / lookups if lookups else 0.0,
            total_keys=int(total_keys),
            evictions=int(server_stats.get("evicted_keys", 0)),
            memory_usage=int(memory.get("used_memory", 0)),
        )

    async def health_check(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("RedisQueryCache closed")
