from __future__ import annotations

"""In-memory vector index for local testing and small datasets."""

import math
from dataclasses import dataclass, field
from typing import Any, Sequence

from src.rag.embeddings import validate_vector
from src.rag.errors import InvalidEmbedding
from src.rag.types import Document, VectorHit


@dataclass
class InMemoryVectorIndex:
    """Simple in-memory vector index with cosine similarity search."""
    dimension: int
    collection: str = "yoda_documents"
    documents: dict[str, Document] = field(default_factory=dict)
    vectors: dict[str, list[float]] = field(default_factory=dict)
    initialized: bool = False

    async def initialize(self) -> None:
        """Mark the collection ready; existing contents are kept."""
        self.initialized = True

    async def insert(self, document: Document) -> None:
        """Store a document with its embedding, replacing any prior version."""
        if document.embedding is None:
            raise InvalidEmbedding(f"Document {document.doc_id} has no embedding")
        vector = validate_vector(document.embedding, self.dimension)
        self.documents[document.doc_id] = document.without_embedding()
        self.vectors[document.doc_id] = vector

    async def query_by_vector(self, vector: Sequence[float], limit: int) -> list[VectorHit]:
        """Return nearest documents by cosine similarity, best-first."""
        query_vector = validate_vector(vector, self.dimension)
        if limit <= 0 or not self.documents:
            return []
        scored = [
            (doc_id, self._cosine_similarity(query_vector, stored))
            for doc_id, stored in self.vectors.items()
        ]
        scored.sort(key=lambda item: item[1], reverse=True)
        return [
            VectorHit(document=self.documents[doc_id], rank=rank, score=score)
            for rank, (doc_id, score) in enumerate(scored[:limit])
        ]

    async def list_all(self) -> list[Document]:
        """Return every stored document."""
        return list(self.documents.values())

    def _cosine_similarity(self, a: list[float], b: list[float]) -> float:
        """Compute cosine similarity between two vectors."""
        dot = sum(x * y for x, y in zip(a, b))
        norm_a = math.sqrt(sum(x * x for x in a))
        norm_b = math.sqrt(sum(y * y for y in b))
        if norm_a == 0.0 or norm_b == 0.0:
            return 0.0
        return dot / (norm_a * norm_b)

    def stats(self) -> dict[str, Any]:
        """Return basic stats for the index."""
        return {
            "backend": "memory",
            "document_count": len(self.documents),
            "embedding_dimension": self.dimension,
            "collection": self.collection,
        }

    def health(self) -> dict[str, Any]:
        """Return health information for the index."""
        return {
            "backend": "memory",
            "ok": True,
            "collection": self.collection,
        }
