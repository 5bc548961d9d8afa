from __future__ import annotations

"""Document ingestion: extract text, chunk, embed and insert."""

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from src.loaders.chunking import chunk_text
from src.loaders.html import load_html_bytes
from src.loaders.pdf import load_pdf_bytes
from src.loaders.text import load_text_bytes
from src.loaders.xlsx import load_xlsx_bytes
from src.rag.embeddings import EmbeddingProvider
from src.rag.hybrid import HybridRetriever
from src.rag.types import Document, DocumentType
from src.vectorstore.base import VectorIndex

logger = logging.getLogger(__name__)


class UnsupportedFileType(ValueError):
    """Raised when an uploaded file has no matching loader."""
    pass


_LOADERS: dict[str, Callable[[bytes], str]] = {
    "txt": load_text_bytes,
    "text": load_text_bytes,
    "md": load_text_bytes,
    "pdf": load_pdf_bytes,
    "html": load_html_bytes,
    "htm": load_html_bytes,
    "xlsx": load_xlsx_bytes,
}


def file_type_for(filename: str) -> str:
    """Return the lower-case extension used to pick a loader."""
    return Path(filename).suffix.lower().lstrip(".")


def extract_text(filename: str, data: bytes) -> str:
    """Extract raw text from file bytes based on the extension."""
    file_type = file_type_for(filename)
    loader = _LOADERS.get(file_type)
    if loader is None:
        raise UnsupportedFileType(f"Unsupported file type: {file_type or 'unknown'}")
    return loader(data)


@dataclass
class DocumentIngestor:
    """Chunk text into Documents and store them with embeddings."""
    index: VectorIndex
    embedder: EmbeddingProvider
    retriever: HybridRetriever | None = None
    chunk_size: int = 1000
    chunk_overlap: int = 200
    min_chunk_length: int = 100
    refresh_after_ingest: bool = True

    async def ingest_text(
        self,
        text: str,
        title: str = "",
        doc_type: DocumentType = DocumentType.FAQ,
        tags: Iterable[str] = (),
    ) -> list[Document]:
        """Chunk, embed and insert text; return the stored chunks."""
        chunks = chunk_text(
            text,
            max_chars=self.chunk_size,
            overlap=self.chunk_overlap,
            min_length=self.min_chunk_length,
        )
        tag_tuple = tuple(tags)
        documents: list[Document] = []
        try:
            for chunk in chunks:
                vector = await self.embedder.embed(chunk)
                document = Document(
                    doc_id=str(uuid.uuid4()),
                    content=chunk,
                    title=title,
                    doc_type=doc_type,
                    tags=tag_tuple,
                ).with_embedding(vector)
                await self.index.insert(document)
                documents.append(document.without_embedding())
        except Exception:
            logger.error(
                "ingest_partial_failure",
                extra={"written_chunks": len(documents), "total_chunks": len(chunks), "title": title},
            )
            # Chunks already inserted stay in the store; keep the lexical cache in step.
            if documents and self.retriever is not None and self.refresh_after_ingest:
                await self.retriever.refresh()
            raise
        logger.info(
            "ingest_complete",
            extra={"chunks": len(documents), "title": title, "text_length": len(text)},
        )
        if documents and self.retriever is not None and self.refresh_after_ingest:
            await self.retriever.refresh()
        return documents

    async def ingest_file(
        self,
        filename: str,
        data: bytes,
        title: str | None = None,
        doc_type: DocumentType = DocumentType.FAQ,
        tags: Iterable[str] = (),
    ) -> list[Document]:
        """Extract text from an uploaded file and ingest it."""
        text = extract_text(filename, data)
        return await self.ingest_text(
            text,
            title=title if title is not None else Path(filename).stem,
            doc_type=doc_type,
            tags=tags,
        )
