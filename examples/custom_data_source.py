"""
Custom Data Source Example

Demonstrates how to plug an auxiliary data source into the query
processor using the DataSourceManager protocol, next to an in-process
flat vector index.
"""

import asyncio
from typing import List

from hybrid_query import QueryProcessor, VectorSearchEngine
from hybrid_query.backends import FlatIndexBackend
from hybrid_query.cache import InMemoryQueryCache
from hybrid_query.config import VectorIndexConfig
from hybrid_query.models import HealthStatus, Query, SearchOptions, SearchResult, VectorRecord


class KeywordEmbedding:
    """
    Toy embedder: one dimension per topic word.

    In production, use OpenAIEmbedding or E5Embedding.
    """

    TOPICS = ["password", "vpn", "invoice"]

    @property
    def dimension(self) -> int:
        return len(self.TOPICS)

    @property
    def model_name(self) -> str:
        return "keyword-toy"

    async def embed_query(self, text: str) -> List[float]:
        words = text.lower().split()
        vector = [1.0 if topic in words else 0.0 for topic in self.TOPICS]
        return vector if any(vector) else [0.1] * self.dimension

    async def embed_document(self, text: str) -> List[float]:
        return await self.embed_query(text)

    async def embed_queries(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        return [await self.embed_query(text) for text in texts]

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        return [await self.embed_document(text) for text in texts]


class HelpdeskTickets:
    """
    Searches resolved helpdesk tickets.

    Implements DataSourceManager protocol via duck typing.
    """

    def __init__(self):
        self.tickets = {
            "T-101": "VPN drops every hour on the office network",
            "T-102": "Password reset email never arrives",
        }

    async def search(self, query: Query, options: SearchOptions) -> List[SearchResult]:
        words = set(query.text.lower().split())
        results = []
        for ticket_id, text in self.tickets.items():
            overlap = len(words & set(text.lower().split()))
            if overlap:
                results.append(
                    SearchResult(
                        content_id=ticket_id,
                        source_id="helpdesk",
                        source_name="Helpdesk",
                        title=f"Ticket {ticket_id}",
                        excerpt=text,
                        relevance_score=min(1.0, overlap / len(words)),
                    )
                )
        return results[: options.top_k]

    async def check_health(self, source_id: str) -> HealthStatus:
        return HealthStatus(healthy=True, details={"source_id": source_id})


async def main():
    print("=== Custom Data Source Example ===\n")

    embedder = KeywordEmbedding()
    engine = VectorSearchEngine(FlatIndexBackend(), embedder)
    await engine.initialize(VectorIndexConfig(provider="flat", dimension=embedder.dimension))

    await engine.backend.upsert(
        [
            VectorRecord(
                id="kb-1",
                vector=await embedder.embed_document("password"),
                metadata={"title": "Resetting your password", "text": "Use the self-service portal."},
            ),
            VectorRecord(
                id="kb-2",
                vector=await embedder.embed_document("vpn"),
                metadata={"title": "VPN setup", "text": "Install the client and sign in."},
            ),
        ]
    )

    processor = QueryProcessor(engine, HelpdeskTickets(), InMemoryQueryCache())

    for text in ["password reset", "password reset"]:
        result = await processor.process(Query(text=text))
        print(f"Query '{text}' (cached={result.cached}, confidence={result.confidence})")
        for i, item in enumerate(result.results, 1):
            print(f"  {i}. [{item.source_name}] {item.title} ({item.relevance_score})")
        print()

    print("=== Example Complete ===")


if __name__ == "__main__":
    asyncio.run(main())
