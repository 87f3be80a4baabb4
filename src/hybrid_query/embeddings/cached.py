"""
LRU caching wrapper around any TextEmbedding.

Repeated queries (and cache warming) would otherwise pay for the same
embedding call again and again.
"""

import hashlib
import logging
import threading
from collections import OrderedDict
from typing import List, Tuple

from hybrid_query.embeddings.protocol import TextEmbedding

logger = logging.getLogger(__name__)


class CachedEmbedding:
    """
    TextEmbedding that memoizes another TextEmbedding.

    Keys are (kind, sha256(text)) so query and passage embeddings of the
    same text never collide. Batch methods are passed through uncached.
    """

    def __init__(self, inner: TextEmbedding, max_entries: int = 1000):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._inner = inner
        self._max_entries = max_entries
        self._entries: "OrderedDict[Tuple[str, str], List[float]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @property
    def dimension(self) -> int:
        return self._inner.dimension

    @property
    def model_name(self) -> str:
        return self._inner.model_name

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @staticmethod
    def _key(kind: str, text: str) -> Tuple[str, str]:
        return kind, hashlib.sha256(text.encode("utf-8")).hexdigest()

    def _lookup(self, key: Tuple[str, str]):
        with self._lock:
            vector = self._entries.get(key)
            if vector is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return list(vector)

    def _store(self, key: Tuple[str, str], vector: List[float]) -> None:
        with self._lock:
            self._entries[key] = list(vector)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    async def embed_query(self, text: str) -> List[float]:
        key = self._key("query", text)
        cached = self._lookup(key)
        if cached is not None:
            logger.debug("Embedding cache hit (query)")
            return cached

        vector = await self._inner.embed_query(text)
        self._store(key, vector)
        return vector

    async def embed_document(self, text: str) -> List[float]:
        key = self._key("document", text)
        cached = self._lookup(key)
        if cached is not None:
            return cached

        vector = await self._inner.embed_document(text)
        self._store(key, vector)
        return vector

    async def embed_queries(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        return await self._inner.embed_queries(texts, batch_size=batch_size)

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        return await self._inner.embed_documents(texts, batch_size=batch_size)
