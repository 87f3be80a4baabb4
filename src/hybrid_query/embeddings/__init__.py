"""
Text embedding clients.

- TextEmbedding: protocol consumed by the search engine
- OpenAIEmbedding: OpenAI API embeddings
- E5Embedding: local E5 models with automatic prefix handling
- CachedEmbedding: LRU wrapper around any of the above
"""

from hybrid_query.embeddings.cached import CachedEmbedding
from hybrid_query.embeddings.protocol import TextEmbedding

__all__ = [
    "TextEmbedding",
    "CachedEmbedding",
]

# Optional clients (import only if dependencies available)
try:
    from hybrid_query.embeddings.e5_embedding import E5Embedding  # noqa: F401

    __all__.append("E5Embedding")
except ImportError:
    pass

try:
    from hybrid_query.embeddings.openai_embedding import OpenAIEmbedding  # noqa: F401

    __all__.append("OpenAIEmbedding")
except ImportError:
    pass
