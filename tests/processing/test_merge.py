"""Tests for merging fan-out branch results."""

from hybrid_query.models import RankedResult, SearchResult
from hybrid_query.processing import merge_results, to_search_results


def result(source_id: str, content_id: str, score: float) -> SearchResult:
    return SearchResult(
        content_id=content_id,
        source_id=source_id,
        source_name=source_id.title(),
        relevance_score=score,
    )


def test_to_search_results_uses_metadata_attribution():
    hits = [
        RankedResult(
            id="vec-1",
            vector_score=0.9,
            final_score=0.95,
            metadata={"source_id": "confluence", "title": "VPN guide", "text": "x" * 300},
        ),
        RankedResult(id="vec-2", vector_score=0.5, final_score=0.5),
    ]

    converted = to_search_results(hits, "vector-index", "Vector Index")

    assert converted[0].source_id == "confluence"
    assert converted[0].content_id == "vec-1"
    assert converted[0].title == "VPN guide"
    assert len(converted[0].excerpt) == 200
    assert converted[0].relevance_score == 0.95
    assert converted[1].source_id == "vector-index"
    assert converted[1].source_name == "Vector Index"
    assert converted[1].title == "Untitled"


def test_merge_rounds_filters_sorts_and_dedupes():
    vector_branch = [result("vector-index", "a", 0.9), result("wiki", "kb-1", 0.81234)]
    source_branch = [
        result("wiki", "kb-1", 0.7),
        result("wiki", "kb-2", 0.8123),
        result("crm", "c-9", 0.05),
    ]

    merged = merge_results([vector_branch, source_branch], 0.1, 50, 100)

    assert [(r.source_id, r.content_id) for r in merged] == [
        ("vector-index", "a"),
        ("wiki", "kb-1"),
        ("wiki", "kb-2"),
    ]
    # kb-1 kept its best score
    assert merged[1].relevance_score == 0.812
    assert merged[2].relevance_score == 0.812


def test_merge_ties_follow_branch_order():
    first = [result("wiki", "x", 0.5)]
    second = [result("crm", "y", 0.5)]

    assert [r.content_id for r in merge_results([first, second], 0.1, 50, 100)] == ["x", "y"]
    assert [r.content_id for r in merge_results([second, first], 0.1, 50, 100)] == ["y", "x"]


def test_merge_caps_per_source_and_total():
    branch = [result("wiki", f"kb-{i}", 0.9 - i * 0.01) for i in range(5)]
    branch.append(result("crm", "c-1", 0.5))

    per_source = merge_results([branch], 0.1, 2, 100)
    total = merge_results([branch], 0.1, 50, 3)

    assert [r.content_id for r in per_source] == ["kb-0", "kb-1", "c-1"]
    assert [r.content_id for r in total] == ["kb-0", "kb-1", "kb-2"]


def test_merge_empty():
    assert merge_results([[], []], 0.1, 50, 100) == []
