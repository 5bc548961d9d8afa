from __future__ import annotations

"""Core data types for documents, retrieval hits and query results."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class DocumentType(str, Enum):
    """Closed set of document categories."""
    FAQ = "FAQ"
    SOP = "SOP"
    HELP_DOC = "HelpDoc"

    @classmethod
    def parse(cls, value: Any) -> "DocumentType":
        """Coerce a stored value to a DocumentType, defaulting to FAQ."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if str(value).strip().lower() == member.value.lower():
                return member
        return cls.FAQ


@dataclass(frozen=True)
class Document:
    """Immutable retrievable unit (usually a chunk of a source file)."""
    doc_id: str
    content: str
    title: str = ""
    doc_type: DocumentType = DocumentType.FAQ
    tags: tuple[str, ...] = ()
    embedding: tuple[float, ...] | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        # Accept lists from callers while keeping the dataclass hashable.
        if not isinstance(self.tags, tuple):
            object.__setattr__(self, "tags", tuple(self.tags))
        if self.embedding is not None and not isinstance(self.embedding, tuple):
            object.__setattr__(self, "embedding", tuple(self.embedding))
        if not isinstance(self.doc_type, DocumentType):
            object.__setattr__(self, "doc_type", DocumentType.parse(self.doc_type))

    def without_embedding(self) -> "Document":
        """Return a copy with the embedding dropped."""
        if self.embedding is None:
            return self
        return replace(self, embedding=None)

    def with_embedding(self, vector: list[float]) -> "Document":
        """Return a copy carrying the provided embedding."""
        return replace(self, embedding=tuple(vector))

    def to_payload(self) -> dict[str, Any]:
        """Serialize for API responses (embedding omitted)."""
        return {
            "id": self.doc_id,
            "title": self.title,
            "content": self.content,
            "type": self.doc_type.value,
            "tags": list(self.tags),
        }


@dataclass(frozen=True)
class SearchResult:
    """Search result with a relevance score for a single ranking pass."""
    document: Document
    score: float


@dataclass(frozen=True)
class VectorHit:
    """Nearest-neighbor hit returned by a vector index, best-first."""
    document: Document
    rank: int
    score: float | None = None


@dataclass(frozen=True)
class ProcessedQuery:
    """End-to-end result of answering a query."""
    query: str
    rewritten_query: str
    answer: str
    confidence: float
    sources: list[Document]

    def to_payload(self) -> dict[str, Any]:
        """Serialize into the API `data` object."""
        return {
            "query": self.query,
            "rewrittenQuery": self.rewritten_query,
            "answer": self.answer,
            "confidence": self.confidence,
            "sources": [document.to_payload() for document in self.sources],
        }
