"""E5 embedding client (local sentence-transformers model)."""

import asyncio
import logging
from typing import List, Optional

logger = logging.getLogger(__name__)


class E5Embedding:
    """
    E5 model family embedding client.

    E5 models expect "query: " before search queries and "passage: "
    before indexed text; the prefixes are added here. Encoding is CPU or
    GPU bound, so it runs in a worker thread to keep the event loop free
    for the other fan-out branches.

    Supported E5 models:
    - intfloat/e5-base-v2 (768 dims) - Default
    - intfloat/e5-large-v2 (1024 dims)
    - intfloat/e5-small-v2 (384 dims)
    """

    def __init__(
        self,
        model_name: str = "intfloat/e5-base-v2",
        device: Optional[str] = None,
        normalize_embeddings: bool = True,
        cache_folder: Optional[str] = None,
        model=None,
    ):
        """
        Args:
            model_name: HuggingFace model identifier
            device: "cuda", "cpu", or None for auto
            normalize_embeddings: L2 normalize vectors (needed for cosine indexes)
            cache_folder: Model cache directory (None = default ~/.cache)
            model: Pre-loaded SentenceTransformer-compatible model
        """
        if model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as e:
                raise ImportError(
                    "sentence-transformers is required for E5Embedding. "
                    "Install with: pip install hybrid-query[embeddings-transformers]"
                ) from e

            logger.info(f"Loading E5 model: {model_name}")
            model = SentenceTransformer(model_name, device=device, cache_folder=cache_folder)

        self._model = model
        self._model_name = model_name
        self._normalize = normalize_embeddings
        self._dimension = model.get_sentence_embedding_dimension()
        logger.info(f"Model loaded: {model_name} ({self._dimension} dimensions)")

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model_name

    async def _encode(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        embeddings = await asyncio.to_thread(
            self._model.encode,
            texts,
            normalize_embeddings=self._normalize,
            show_progress_bar=False,
            batch_size=batch_size,
        )
        return embeddings.tolist()

    @staticmethod
    def _check(texts: List[str]) -> None:
        if any(not text or not text.strip() for text in texts):
            raise ValueError("Cannot embed empty text")

    async def embed_query(self, text: str) -> List[float]:
        self._check([text])
        vectors = await self._encode([f"query: {text}"])
        return vectors[0]

    async def embed_document(self, text: str) -> List[float]:
        self._check([text])
        vectors = await self._encode([f"passage: {text}"])
        return vectors[0]

    async def embed_queries(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        if not texts:
            return []
        self._check(texts)
        return await self._encode([f"query: {text}" for text in texts], batch_size)

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        if not texts:
            return []
        self._check(texts)
        return await self._encode([f"passage: {text}" for text in texts], batch_size)
