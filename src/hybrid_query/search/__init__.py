"""Semantic, keyword and hybrid search over a vector index."""

from hybrid_query.search.engine import VectorSearchEngine
from hybrid_query.search.ranking import extract_keywords, keyword_score, rerank_for_diversity

__all__ = [
    "VectorSearchEngine",
    "extract_keywords",
    "keyword_score",
    "rerank_for_diversity",
]
