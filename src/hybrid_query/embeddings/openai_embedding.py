"""OpenAI embedding client for the query engine."""

import logging
import os
from typing import List, Optional

logger = logging.getLogger(__name__)

_DEFAULT_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbedding:
    """
    Embedding client using OpenAI's embedding API (or a compatible endpoint).

    Uses the async client, so a cancelled query aborts the HTTP request
    instead of leaving it running in a worker thread.

    Example:
        >>> embedder = OpenAIEmbedding(model="text-embedding-3-small", dimensions=768)
        >>> vector = await embedder.embed_query("quarterly revenue by region")
        >>> len(vector)
        768
    """

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        client=None,
    ):
        """
        Args:
            model: OpenAI model name
            api_key: API key (None = use OPENAI_API_KEY env var)
            base_url: Custom endpoint for OpenAI-compatible APIs
            dimensions: Output dimension; required for models not listed in
                _DEFAULT_DIMENSIONS
            timeout: Request timeout in seconds
            max_retries: Retry attempts handled by the SDK
            client: Pre-built AsyncOpenAI client
        """
        if client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise ImportError(
                    "openai is required for OpenAIEmbedding. "
                    "Install with: pip install hybrid-query[embeddings-openai]"
                ) from e

            client = AsyncOpenAI(
                api_key=api_key or os.getenv("OPENAI_API_KEY"),
                base_url=base_url,
                timeout=timeout,
                max_retries=max_retries,
            )

        self._client = client
        self._model = model
        self._dimensions = dimensions

        if dimensions is not None:
            self._dimension = dimensions
        elif model in _DEFAULT_DIMENSIONS:
            self._dimension = _DEFAULT_DIMENSIONS[model]
        else:
            raise ValueError(f"Unknown model {model}: pass dimensions explicitly")

        logger.info(f"OpenAI embedder initialized: {model} ({self._dimension} dimensions)")

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model

    async def _create(self, texts: List[str]) -> List[List[float]]:
        kwargs = {"model": self._model, "input": texts}
        if self._dimensions is not None:
            kwargs["dimensions"] = self._dimensions

        response = await self._client.embeddings.create(**kwargs)
        return [item.embedding for item in sorted(response.data, key=lambda item: item.index)]

    async def embed_query(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        vectors = await self._create([text])
        return vectors[0]

    async def embed_document(self, text: str) -> List[float]:
        # OpenAI models make no query/passage distinction
        return await self.embed_query(text)

    async def embed_queries(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        if not texts:
            return []
        if any(not text or not text.strip() for text in texts):
            raise ValueError("Cannot embed empty texts in batch")

        vectors: List[List[float]] = []
        for start in range(0, len(texts), batch_size):
            vectors.extend(await self._create(texts[start : start + batch_size]))
        return vectors

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        return await self.embed_queries(texts, batch_size=batch_size)
