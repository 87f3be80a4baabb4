"""
Unit tests for the in-memory query result cache.

Tests TTL expiry, LRU eviction, pattern invalidation and statistics.
"""

import pytest

from hybrid_query.cache import InMemoryQueryCache, QueryCache, create_cache
from hybrid_query.config import CacheConfig
from hybrid_query.models import QueryResult, SearchResult


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    """Create a fresh cache driven by a fake clock."""
    return InMemoryQueryCache(max_entries=3, default_ttl=60, clock=clock)


def make_result(query_id: str = "q1") -> QueryResult:
    return QueryResult(
        id=query_id,
        results=[
            SearchResult(
                content_id="doc-1",
                source_id="wiki",
                source_name="Team Wiki",
                title="VPN setup",
                excerpt="Install the client",
                relevance_score=0.9,
            )
        ],
        confidence=0.8,
        processing_time_ms=12.5,
    )


def test_is_protocol(cache):
    assert isinstance(cache, QueryCache)


def test_create_cache_defaults_to_memory():
    assert isinstance(create_cache(CacheConfig()), InMemoryQueryCache)


@pytest.mark.asyncio
async def test_set_and_get(cache):
    await cache.set("query:abc", make_result())

    cached = await cache.get("query:abc")

    assert cached == make_result()
    assert await cache.get("query:missing") is None


@pytest.mark.asyncio
async def test_entries_expire_after_ttl(cache, clock):
    await cache.set("short", make_result(), ttl=10)
    await cache.set("default", make_result())

    clock.advance(10)

    assert await cache.get("short") is None
    assert await cache.get("default") is not None

    clock.advance(50)

    assert await cache.get("default") is None


@pytest.mark.asyncio
async def test_lru_eviction(cache):
    """Reading an entry protects it from eviction."""
    for key in ("a", "b", "c"):
        await cache.set(key, make_result(key))

    await cache.get("a")
    await cache.set("d", make_result("d"))

    assert await cache.get("b") is None
    assert await cache.get("a") is not None
    assert (await cache.stats()).evictions == 1


@pytest.mark.asyncio
async def test_cached_copy_is_isolated(cache):
    result = make_result()
    await cache.set("k", result)

    result.results[0].title = "changed by caller"
    first = await cache.get("k")
    first.results.clear()
    second = await cache.get("k")

    assert first is not second
    assert second.results[0].title == "VPN setup"


@pytest.mark.asyncio
async def test_delete(cache):
    await cache.set("k", make_result())

    assert await cache.delete("k") is True
    assert await cache.delete("k") is False


@pytest.mark.asyncio
async def test_clear_with_pattern(cache):
    await cache.set("query:1", make_result("1"))
    await cache.set("query:2", make_result("2"))
    await cache.set("usage:1", make_result("3"))

    removed = await cache.clear("query:*")

    assert removed == 2
    assert await cache.get("usage:1") is not None
    assert await cache.clear() == 1


@pytest.mark.asyncio
async def test_stats(cache, clock):
    await cache.set("a", make_result(), ttl=5)
    await cache.set("b", make_result())
    await cache.get("a")
    await cache.get("missing")
    clock.advance(5)

    stats = await cache.stats()

    assert stats.hits == 1
    assert stats.misses == 1
    assert stats.hit_rate == 0.5
    assert stats.total_keys == 1
    assert stats.memory_usage == len(make_result().model_dump_json())


@pytest.mark.asyncio
async def test_health_and_close(cache):
    await cache.set("a", make_result())

    assert await cache.health_check() is True
    await cache.close()
    assert await cache.get("a") is None
