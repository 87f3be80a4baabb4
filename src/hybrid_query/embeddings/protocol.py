"""
Embedding client protocol.

The search engine only needs text -> fixed-dimension vector; anything
that implements TextEmbedding can be plugged in.
"""

from typing import List, Protocol

from typing_extensions import runtime_checkable


@runtime_checkable
class TextEmbedding(Protocol):
    """
    Protocol for text embedding providers.

    All implementations must:

    1. Return deterministic vectors for the same input
    2. Produce vectors of exactly `dimension` elements, matching the index
    3. Raise on failure rather than return an empty vector

    Example:
        >>> embedder = OpenAIEmbedding(dimensions=768)
        >>> vector = await embedder.embed_query("reset my password")
        >>> len(vector) == embedder.dimension
        True
    """

    @property
    def dimension(self) -> int:
        """
        Vector dimension produced by this embedder.

        Must equal VectorIndexConfig.dimension of the index being searched.
        """
        ...

    @property
    def model_name(self) -> str:
        """Identifier of the embedding model (e.g. "text-embedding-3-small")."""
        ...

    async def embed_query(self, text: str) -> List[float]:
        """
        Generate embedding for a search query.

        Args:
            text: Query text to embed

        Returns:
            Embedding vector

        Raises:
            ValueError: If text is empty
        """
        ...

    async def embed_document(self, text: str) -> List[float]:
        """
        Generate embedding for indexed content.

        Models that distinguish queries from passages (E5) apply their
        passage preprocessing here.
        """
        ...

    async def embed_queries(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        """Batch form of embed_query(); output order matches input order."""
        ...

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        """Batch form of embed_document(); output order matches input order."""
        ...
