import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

FilterOperator = Literal["eq", "ne", "gt", "lt", "gte", "lte", "in", "contains"]
QueryState = Literal["pending", "running", "done", "failed", "cancelled"]


class VectorRecord(BaseModel):
    """A vector stored in an index, owned by the ingestion pipeline."""

    id: str = Field(..., min_length=1, description="Unique per index")
    vector: List[float]
    metadata: Dict[str, Any] = Field(default_factory=dict)


class QueryFilter(BaseModel):
    field: str = Field(..., min_length=1, max_length=100)
    operator: FilterOperator
    value: Any

    @field_validator("value")
    @classmethod
    def _value_present(cls, value):
        if value is None:
            raise ValueError("filter value is required")
        return value


class Query(BaseModel):
    """Model for a natural-language query submitted by the HTTP layer"""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    text: str = Field(..., min_length=1, max_length=10000)
    context: Optional[Dict[str, Any]] = None
    filters: Optional[List[QueryFilter]] = None
    user_id: Optional[str] = Field(default=None, min_length=1, max_length=100)
    timestamp: datetime = Field(default_factory=datetime.now)

    @field_validator("text")
    @classmethod
    def _strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("query text cannot be empty")
        return value


class SearchOptions(BaseModel):
    top_k: int = Field(default=10, gt=0)
    threshold: Optional[float] = None
    include_metadata: bool = True
    filter: Optional[Dict[str, Any]] = None


class HybridSearchOptions(SearchOptions):
    vector_weight: float = Field(default=0.7, ge=0.0)
    keyword_weight: float = Field(default=0.3, ge=0.0)
    keyword_boost: Dict[str, float] = Field(default_factory=dict)
    rerank: bool = False


class RankingFactors(BaseModel):
    semantic: float = 0.0
    metadata: float = 0.0
    recency: float = 0.0
    keyword: Optional[float] = None


class RankedResult(BaseModel):
    """
    A single hit from a vector index, with explainable scoring.

    vector_score is the backend similarity normalized to [0, 1];
    final_score is what callers should sort by.
    """

    id: str
    vector_score: float = Field(..., ge=0.0, le=1.0)
    keyword_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    ranking_factors: RankingFactors = Field(default_factory=RankingFactors)
    final_score: float = Field(..., ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SearchResult(BaseModel):
    """A merged, source-attributed result returned to the caller"""

    content_id: str
    source_id: str
    source_name: str
    title: str = "Untitled"
    excerpt: str = ""
    relevance_score: float = Field(..., ge=0.0, le=1.0)
    embedding: Optional[List[float]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class QueryResult(BaseModel):
    id: str
    results: List[SearchResult] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)
    processing_time_ms: float = Field(..., ge=0.0)
    cached: bool = False
    degraded_branches: List[str] = Field(
        default_factory=list, description="Fan-out branches that failed or timed out"
    )

    @property
    def is_partial(self) -> bool:
        return bool(self.degraded_branches)

    @property
    def source_ids(self) -> List[str]:
        seen: List[str] = []
        for result in self.results:
            if result.source_id not in seen:
                seen.append(result.source_id)
        return seen


class IndexStats(BaseModel):
    total_vectors: int
    dimension: int
    index_type: str
    memory_usage: Optional[int] = None
    last_updated: Optional[datetime] = None


class HealthStatus(BaseModel):
    healthy: bool
    details: Dict[str, Any] = Field(default_factory=dict)


class CacheStats(BaseModel):
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    total_keys: int = 0
    evictions: int = 0
    memory_usage: int = 0


class QueryStatus(BaseModel):
    query_id: str
    state: QueryState
    submitted_at: datetime
    finished_at: Optional[datetime] = None
    error: Optional[str] = None
