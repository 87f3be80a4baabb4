"""
Unit tests for the in-process flat index backend.

Tests ordering, score normalization, dimension validation, filters and lifecycle.
"""

import pytest

from hybrid_query.backends import FlatIndexBackend, VectorIndexBackend
from hybrid_query.config import VectorIndexConfig
from hybrid_query.errors import BackendError, ValidationError
from hybrid_query.models import SearchOptions, VectorRecord


@pytest.fixture
def config():
    return VectorIndexConfig(provider="flat", dimension=3, index_name="test")


@pytest.fixture
def records():
    return [
        VectorRecord(id="a", vector=[1.0, 0.0, 0.0], metadata={"category": "auth", "year": 2023}),
        VectorRecord(id="b", vector=[0.0, 1.0, 0.0], metadata={"category": "billing", "year": 2024}),
        VectorRecord(
            id="c",
            vector=[0.9, 0.1, 0.0],
            metadata={"category": "auth", "year": 2024, "tags": ["sso", "login"]},
        ),
    ]


async def open_index(config, records=None) -> FlatIndexBackend:
    backend = FlatIndexBackend()
    await backend.initialize(config)
    if records:
        await backend.upsert(records)
    return backend


def test_is_protocol():
    """FlatIndexBackend implements VectorIndexBackend."""
    assert isinstance(FlatIndexBackend(), VectorIndexBackend)


@pytest.mark.asyncio
async def test_concrete_scenario_orders_closest_first(config):
    """a=[1,0,0] ranks above b=[0,1,0] for query [1,0,0.01]."""
    backend = await open_index(
        config,
        [
            VectorRecord(id="a", vector=[1.0, 0.0, 0.0]),
            VectorRecord(id="b", vector=[0.0, 1.0, 0.0]),
        ],
    )

    results = await backend.search([1.0, 0.0, 0.01], SearchOptions(top_k=2))

    assert [r.id for r in results] == ["a", "b"]
    assert results[0].vector_score == pytest.approx(1.0, abs=1e-3)
    assert results[1].vector_score == pytest.approx(0.0, abs=1e-3)


@pytest.mark.asyncio
async def test_search_is_deterministic_with_id_tiebreak(config):
    """Equal scores are ordered by ascending id, identically on every call."""
    backend = await open_index(
        config,
        [
            VectorRecord(id="zeta", vector=[0.0, 1.0, 0.0]),
            VectorRecord(id="alpha", vector=[0.0, 1.0, 0.0]),
            VectorRecord(id="mid", vector=[0.0, 1.0, 0.0]),
        ],
    )

    first = await backend.search([0.0, 1.0, 0.0], SearchOptions(top_k=3))
    second = await backend.search([0.0, 1.0, 0.0], SearchOptions(top_k=3))

    assert [r.id for r in first] == ["alpha", "mid", "zeta"]
    assert [r.id for r in second] == [r.id for r in first]


@pytest.mark.asyncio
async def test_top_k_and_threshold(config, records):
    """At most top_k results; results below threshold are excluded."""
    backend = await open_index(config, records)

    limited = await backend.search([1.0, 0.0, 0.0], SearchOptions(top_k=1))
    thresholded = await backend.search([1.0, 0.0, 0.0], SearchOptions(top_k=10, threshold=0.5))

    assert [r.id for r in limited] == ["a"]
    assert [r.id for r in thresholded] == ["a", "c"]


@pytest.mark.asyncio
async def test_results_carry_semantic_factor(config, records):
    backend = await open_index(config, records)

    results = await backend.search([1.0, 0.0, 0.0], SearchOptions(top_k=1))

    assert results[0].ranking_factors.semantic == results[0].vector_score
    assert results[0].final_score == results[0].vector_score
    assert results[0].metadata["category"] == "auth"


@pytest.mark.asyncio
async def test_include_metadata_false(config, records):
    backend = await open_index(config, records)

    results = await backend.search([1.0, 0.0, 0.0], SearchOptions(top_k=1, include_metadata=False))

    assert results[0].metadata == {}


@pytest.mark.asyncio
async def test_dimension_mismatch_rejected_without_corruption(config, records):
    """A wrong-length vector fails the whole batch and leaves the index unchanged."""
    backend = await open_index(config, records)

    with pytest.raises(ValidationError, match="dimension"):
        await backend.upsert(
            [
                VectorRecord(id="d", vector=[0.5, 0.5, 0.0]),
                VectorRecord(id="e", vector=[1.0, 0.0]),
            ]
        )

    stats = await backend.stats()
    assert stats.total_vectors == 3
    results = await backend.search([0.5, 0.5, 0.0], SearchOptions(top_k=10))
    assert "d" not in [r.id for r in results]


@pytest.mark.asyncio
async def test_non_finite_rejected(config):
    backend = await open_index(config)

    with pytest.raises(ValidationError, match="NaN"):
        await backend.upsert([VectorRecord(id="x", vector=[float("nan"), 0.0, 0.0])])

    assert (await backend.stats()).total_vectors == 0


@pytest.mark.asyncio
async def test_repeated_id_in_batch_keeps_last_record(config):
    backend = await open_index(config)

    await backend.upsert(
        [
            VectorRecord(id="x", vector=[1.0, 0.0, 0.0], metadata={"v": 1}),
            VectorRecord(id="y", vector=[0.0, 0.0, 1.0]),
            VectorRecord(id="x", vector=[0.0, 1.0, 0.0], metadata={"v": 2}),
        ]
    )

    results = await backend.search([0.0, 1.0, 0.0], SearchOptions(top_k=1))

    assert (await backend.stats()).total_vectors == 2
    assert results[0].id == "x"
    assert results[0].vector_score == pytest.approx(1.0)
    assert results[0].metadata == {"v": 2}


@pytest.mark.asyncio
async def test_query_vector_dimension_checked(config, records):
    backend = await open_index(config, records)

    with pytest.raises(ValidationError):
        await backend.search([1.0, 0.0], SearchOptions())


@pytest.mark.asyncio
async def test_upsert_is_idempotent_by_id(config, records):
    """Re-upserting an id replaces vector and metadata."""
    backend = await open_index(config, records)

    await backend.upsert([VectorRecord(id="b", vector=[1.0, 0.0, 0.0], metadata={"v": 2})])

    stats = await backend.stats()
    results = await backend.search([1.0, 0.0, 0.0], SearchOptions(top_k=2))

    assert stats.total_vectors == 3
    assert [r.id for r in results] == ["a", "b"]
    assert results[1].metadata == {"v": 2}


@pytest.mark.asyncio
async def test_reupsert_each_record_of_a_batch(config, records):
    """Every id of a multi-record batch maps to its own row, including the last one."""
    backend = await open_index(config, records)

    await backend.upsert([VectorRecord(id="c", vector=[0.0, 0.0, 1.0], metadata={"v": 2})])
    await backend.upsert([VectorRecord(id="b", vector=[0.0, 1.0, 0.0], metadata={"v": 3})])

    for query, expected in [([1.0, 0.0, 0.0], "a"), ([0.0, 1.0, 0.0], "b"), ([0.0, 0.0, 1.0], "c")]:
        results = await backend.search(query, SearchOptions(top_k=1))
        assert results[0].id == expected
        assert results[0].vector_score == pytest.approx(1.0)

    assert (await backend.stats()).total_vectors == 3


@pytest.mark.asyncio
async def test_delete_after_update_removes_the_right_row(config, records):
    backend = await open_index(config, records)
    await backend.upsert([VectorRecord(id="c", vector=[0.0, 0.0, 1.0])])

    await backend.delete(["b"])

    top = await backend.search([0.0, 0.0, 1.0], SearchOptions(top_k=1))
    remaining = await backend.search([1.0, 0.0, 0.0], SearchOptions(top_k=10))

    assert top[0].id == "c"
    assert top[0].vector_score == pytest.approx(1.0)
    assert sorted(r.id for r in remaining) == ["a", "c"]

    # rows stay consistent for writes after a delete
    await backend.upsert([VectorRecord(id="d", vector=[0.0, 1.0, 0.0])])
    await backend.upsert([VectorRecord(id="c", vector=[0.0, 1.0, 1.0])])
    by_d = await backend.search([0.0, 1.0, 0.0], SearchOptions(top_k=1))
    assert by_d[0].id == "d"
    assert by_d[0].vector_score == pytest.approx(1.0)
    assert (await backend.stats()).total_vectors == 3


@pytest.mark.asyncio
async def test_filters(config, records):
    backend = await open_index(config, records)
    query = [1.0, 0.0, 0.0]

    by_category = await backend.search(query, SearchOptions(filter={"category": "auth"}))
    by_range = await backend.search(query, SearchOptions(filter={"year": {"$gte": 2024}}))
    by_in = await backend.search(query, SearchOptions(filter={"category": {"$in": ["billing"]}}))
    by_tag = await backend.search(query, SearchOptions(filter={"tags": {"$contains": "SSO"}}))
    excluded = await backend.search(query, SearchOptions(filter={"category": {"$ne": "auth"}}))

    assert [r.id for r in by_category] == ["a", "c"]
    assert [r.id for r in by_range] == ["c", "b"]
    assert [r.id for r in by_in] == ["b"]
    assert [r.id for r in by_tag] == ["c"]
    assert [r.id for r in excluded] == ["b"]


@pytest.mark.asyncio
async def test_unknown_filter_operator_rejected(config, records):
    backend = await open_index(config, records)

    with pytest.raises(ValidationError, match="\\$regex"):
        await backend.search([1.0, 0.0, 0.0], SearchOptions(filter={"category": {"$regex": "a.*"}}))


@pytest.mark.asyncio
async def test_delete(config, records):
    backend = await open_index(config, records)

    await backend.delete(["a", "missing"])

    results = await backend.search([1.0, 0.0, 0.0], SearchOptions(top_k=10))
    assert [r.id for r in results] == ["c", "b"]
    assert (await backend.stats()).total_vectors == 2


@pytest.mark.asyncio
async def test_l2_metric_maps_distance_to_similarity():
    """Distance d becomes 1 / (1 + d)."""
    backend = await open_index(
        VectorIndexConfig(dimension=2, metric="l2"),
        [VectorRecord(id="near", vector=[0.0, 0.0]), VectorRecord(id="far", vector=[3.0, 4.0])],
    )

    results = await backend.search([0.0, 0.0], SearchOptions(top_k=2))

    assert results[0].vector_score == pytest.approx(1.0)
    assert results[1].vector_score == pytest.approx(1.0 / 6.0)


@pytest.mark.asyncio
async def test_stats(config, records):
    backend = await open_index(config, records)

    stats = await backend.stats()

    assert stats.total_vectors == 3
    assert stats.dimension == 3
    assert stats.index_type == "flat"
    assert stats.memory_usage == 3 * 3 * 4
    assert stats.last_updated is not None


@pytest.mark.asyncio
async def test_use_before_initialize_fails():
    backend = FlatIndexBackend()

    with pytest.raises(BackendError):
        await backend.search([1.0], SearchOptions())


@pytest.mark.asyncio
async def test_health_check(config, records):
    """Healthy once initialized; an uninitialized backend reports unhealthy instead of raising."""
    backend = await open_index(config, records)
    uninitialized = FlatIndexBackend()

    healthy = await backend.health_check()
    unhealthy = await uninitialized.health_check()

    assert healthy.healthy is True
    assert healthy.details["total_vectors"] == 3
    assert unhealthy.healthy is False
    assert "error" in unhealthy.details


@pytest.mark.asyncio
async def test_async_context_manager_closes(config, records):
    backend = await open_index(config, records)

    async with backend:
        pass

    with pytest.raises(BackendError):
        await backend.stats()
