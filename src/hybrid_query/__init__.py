"""
hybrid-query: concurrent hybrid vector search and query processing.

Core components:
- backends: One protocol over flat, Qdrant and managed vector indexes
- embeddings: Text embedding clients
- search: Semantic, keyword and hybrid search with explainable ranking
- cache: Query result caches (in-memory, Redis)
- processing: QueryProcessor (admission control, deadline, fan-out, merge)
- models: Core data models (Query, QueryResult, RankedResult, etc.)
"""

__version__ = "0.1.0"

from hybrid_query.config import (
    CacheConfig,
    ConfidenceConfig,
    QueryProcessorConfig,
    RankingConfig,
    Settings,
    VectorIndexConfig,
)
from hybrid_query.errors import (
    BackendError,
    CacheError,
    CapacityExceededError,
    ConfigurationError,
    EmbeddingError,
    EmbeddingUnavailableError,
    PartialFailure,
    QueryCancelledError,
    QueryEngineError,
    QueryTimeoutError,
    ValidationError,
)
from hybrid_query.models import (
    HybridSearchOptions,
    Query,
    QueryFilter,
    QueryResult,
    RankedResult,
    SearchOptions,
    SearchResult,
    VectorRecord,
)
from hybrid_query.processing import QueryProcessor
from hybrid_query.search import VectorSearchEngine

__all__ = [
    "__version__",
    # Models
    "VectorRecord",
    "Query",
    "QueryFilter",
    "SearchOptions",
    "HybridSearchOptions",
    "RankedResult",
    "SearchResult",
    "QueryResult",
    # Configuration
    "Settings",
    "VectorIndexConfig",
    "RankingConfig",
    "QueryProcessorConfig",
    "ConfidenceConfig",
    "CacheConfig",
    # Errors
    "QueryEngineError",
    "ValidationError",
    "ConfigurationError",
    "CapacityExceededError",
    "QueryTimeoutError",
    "QueryCancelledError",
    "EmbeddingError",
    "EmbeddingUnavailableError",
    "BackendError",
    "PartialFailure",
    "CacheError",
    # Services
    "VectorSearchEngine",
    "QueryProcessor",
]
