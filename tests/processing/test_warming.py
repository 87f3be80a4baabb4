"""Tests for usage tracking, cache warming and source invalidation."""

import pytest

from hybrid_query.cache import InMemoryQueryCache
from hybrid_query.models import Query
from hybrid_query.processing import CacheWarmer, QueryProcessor, UsageTracker, fingerprint


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_tracker_counts_and_averages():
    tracker = UsageTracker(clock=FakeClock())
    query = Query(text="vpn setup")
    fp = fingerprint(query)

    tracker.track(fp, query, 10.0, ["wiki"])
    tracker.track(fp, query, 20.0, ["wiki", "crm"])

    usage = tracker.get(fp)
    assert usage.count == 2
    assert usage.avg_processing_ms == pytest.approx(15.0)
    assert usage.sources == ["wiki", "crm"]


def test_popular_requires_min_count_and_recent_use():
    clock = FakeClock()
    tracker = UsageTracker(clock=clock)
    for text, count in (("vpn setup", 3), ("refund policy", 2), ("parking", 1)):
        query = Query(text=text)
        for _ in range(count):
            tracker.track(fingerprint(query), query, 5.0, ["wiki"])

    popular = tracker.popular(limit=10, min_count=2)

    assert [u.query.text for u in popular] == ["vpn setup", "refund policy"]

    clock.now += 86400
    assert tracker.popular(limit=10, min_count=2) == []


def test_tracker_is_bounded():
    tracker = UsageTracker(max_tracked=2, clock=FakeClock())
    for text in ("one", "two", "three"):
        query = Query(text=text)
        tracker.track(fingerprint(query), query, 1.0, [])

    assert len(tracker) == 2
    assert tracker.get(fingerprint(Query(text="one"))) is None


def test_forget_source():
    tracker = UsageTracker(clock=FakeClock())
    wiki_query, crm_query = Query(text="vpn"), Query(text="invoice")
    tracker.track(fingerprint(wiki_query), wiki_query, 1.0, ["wiki"])
    tracker.track(fingerprint(crm_query), crm_query, 1.0, ["crm"])

    assert tracker.forget_source("wiki") == [fingerprint(wiki_query)]
    assert len(tracker) == 1


@pytest.mark.asyncio
async def test_warm_refreshes_popular_queries(stub_sources, wiki_results):
    sources = stub_sources(results=wiki_results)
    tracker = UsageTracker()
    processor = QueryProcessor(
        data_sources=sources, cache=InMemoryQueryCache(), usage_tracker=tracker
    )
    await processor.process("reset password")
    await processor.process("reset password")
    await processor.process("rarely asked")

    warmer = CacheWarmer(processor, tracker)
    refreshed = await warmer.warm()

    assert refreshed == 1
    assert warmer.last_warmed == 1
    assert warmer.is_warming is False
    # two computed queries plus one warm run; the repeat was a cache hit
    assert sources.calls == 3
    assert tracker.get(fingerprint(Query(text="reset password"))).count == 2


@pytest.mark.asyncio
async def test_warm_failures_are_counted_not_raised(stub_sources, wiki_results):
    sources = stub_sources(results=wiki_results)
    tracker = UsageTracker()
    processor = QueryProcessor(
        data_sources=sources, cache=InMemoryQueryCache(), usage_tracker=tracker
    )
    await processor.process("reset password")
    await processor.process("reset password")

    sources.error = RuntimeError("wiki offline")

    assert await CacheWarmer(processor, tracker).warm() == 0


@pytest.mark.asyncio
async def test_invalidate_source_drops_cached_results(stub_sources, wiki_results):
    sources = stub_sources(results=wiki_results)
    tracker = UsageTracker()
    processor = QueryProcessor(
        data_sources=sources, cache=InMemoryQueryCache(), usage_tracker=tracker
    )
    await processor.process("reset password")

    removed = await CacheWarmer(processor, tracker).invalidate_source("wiki")
    result = await processor.process("reset password")

    assert removed == 1
    assert result.cached is False
    assert sources.calls == 2
