from __future__ import annotations

"""Vector index contract shared by the in-memory and Milvus backends."""

from typing import Any, Protocol, Sequence

from src.rag.types import Document, DocumentType, VectorHit


class VectorIndex(Protocol):
    """Async nearest-neighbor store consumed by the hybrid retriever."""
    dimension: int

    async def initialize(self) -> None:
        """Attach to the collection, creating it empty when missing."""
        ...

    async def insert(self, document: Document) -> None:
        """Store content, metadata and embedding for a document."""
        ...

    async def query_by_vector(self, vector: Sequence[float], limit: int) -> list[VectorHit]:
        """Return up to ``limit`` nearest documents, best-first."""
        ...

    async def list_all(self) -> list[Document]:
        """Enumerate every stored document (without embeddings)."""
        ...

    def stats(self) -> dict[str, Any]:
        ...

    def health(self) -> dict[str, Any]:
        ...


def parse_tags(value: Any) -> tuple[str, ...]:
    """Read tags stored as a JSON list or a legacy comma-joined string."""
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value if str(item))
    return ()


def document_metadata(document: Document) -> dict[str, Any]:
    """Build the metadata record persisted alongside a document."""
    return {
        "title": document.title,
        "type": document.doc_type.value,
        "tags": list(document.tags),
    }


def document_from_record(doc_id: Any, content: Any, metadata: dict[str, Any]) -> Document:
    """Rebuild a Document from a stored record, dropping the embedding."""
    return Document(
        doc_id=str(doc_id or ""),
        content=str(content or ""),
        title=str(metadata.get("title") or ""),
        doc_type=DocumentType.parse(metadata.get("type") or DocumentType.FAQ.value),
        tags=parse_tags(metadata.get("tags")),
    )
