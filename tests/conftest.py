"""Shared fixtures."""

import asyncio
from typing import Dict, List, Optional

import pytest

from hybrid_query.models import HealthStatus, SearchResult


class StaticEmbedding:
    """Deterministic embedder: known texts map to fixed vectors, others to a default."""

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        default: Optional[List[float]] = None,
        dimension: int = 3,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.vectors = vectors or {}
        self.default = default or [1.0] + [0.0] * (dimension - 1)
        self._dimension = dimension
        self.error = error
        self.delay = delay
        self.calls: List[str] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return "static-test"

    async def embed_query(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.vectors.get(text, self.default))

    async def embed_document(self, text: str) -> List[float]:
        return await self.embed_query(text)

    async def embed_queries(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        return [await self.embed_query(text) for text in texts]

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        return [await self.embed_document(text) for text in texts]


class StubDataSources:
    """DataSourceManager double with configurable latency and failure."""

    def __init__(
        self,
        results: Optional[List[SearchResult]] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.results = results or []
        self.delay = delay
        self.error = error
        self.calls = 0
        self.cancelled = False
        self.last_options = None

    async def search(self, query, options) -> List[SearchResult]:
        self.calls += 1
        self.last_options = options
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return list(self.results)

    async def check_health(self, source_id: str) -> HealthStatus:
        return HealthStatus(healthy=True, details={"source_id": source_id})


@pytest.fixture
def static_embedding():
    """Factory for deterministic embedders."""
    return StaticEmbedding


@pytest.fixture
def stub_sources():
    """Factory for data source manager doubles."""
    return StubDataSources


@pytest.fixture
def wiki_results():
    """Results returned by the auxiliary data source."""
    return [
        SearchResult(
            content_id="kb-1",
            source_id="wiki",
            source_name="Team Wiki",
            title="Resetting a forgotten password",
            excerpt="Open the login page, choose 'Forgot password' and follow the emailed link "
            "to set a new password for your account.",
            relevance_score=0.8123,
        ),
        SearchResult(
            content_id="kb-2",
            source_id="wiki",
            source_name="Team Wiki",
            title="Password policy",
            excerpt="Passwords must be at least 12 characters long and rotated every 90 days "
            "for all administrator accounts.",
            relevance_score=0.55,
        ),
    ]
