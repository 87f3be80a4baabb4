"""Integration tests for the Redis query cache."""

import asyncio

import pytest

from hybrid_query.models import QueryResult, SearchResult


def make_result(query_id: str = "q1") -> QueryResult:
    return QueryResult(
        id=query_id,
        results=[
            SearchResult(
                content_id="kb-1",
                source_id="wiki",
                source_name="Team Wiki",
                relevance_score=0.9,
            )
        ],
        confidence=0.8,
        processing_time_ms=3.0,
    )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_redis_set_get_and_expire(skip_if_no_redis):
    pytest.importorskip("redis")

    from hybrid_query.cache import RedisQueryCache

    # Use separate DB for testing
    cache = RedisQueryCache(db=15, key_prefix="hybrid_query_test:")

    try:
        await cache.set("query:abc", make_result(), ttl=1)
        assert await cache.get("query:abc") == make_result()

        await asyncio.sleep(1.5)
        assert await cache.get("query:abc") is None

        stats = await cache.stats()
        assert stats.hits == 1
        assert stats.misses == 1
    finally:
        await cache.clear()
        await cache.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_redis_clear_pattern_and_corrupt_entry(skip_if_no_redis):
    pytest.importorskip("redis")

    from hybrid_query.cache import RedisQueryCache

    cache = RedisQueryCache(db=15, key_prefix="hybrid_query_test:")

    try:
        await cache.set("query:1", make_result("1"))
        await cache.set("query:2", make_result("2"))
        await cache.set("usage:1", make_result("3"))
        await cache.client.set("hybrid_query_test:query:bad", "{not json")

        assert await cache.get("query:bad") is None
        assert await cache.clear("query:*") == 2
        assert await cache.get("usage:1") is not None
        assert await cache.health_check() is True
    finally:
        await cache.clear()
        await cache.close()
