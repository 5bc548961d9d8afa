from __future__ import annotations

"""Milvus-backed vector index."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from pymilvus import (
    Collection,
    CollectionSchema,
    DataType,
    FieldSchema,
    MilvusException,
    connections,
    utility,
)

from src.rag.embeddings import validate_vector
from src.rag.errors import InvalidEmbedding, StoreUnavailable
from src.rag.types import Document, VectorHit
from src.vectorstore.base import document_from_record, document_metadata

logger = logging.getLogger(__name__)

_OUTPUT_FIELDS = ["doc_id", "content", "metadata"]


@dataclass
class MilvusConfig:
    """Configuration for Milvus connection and indexing."""
    uri: str
    token: str | None
    collection: str
    consistency: str
    index_type: str
    metric_type: str
    nlist: int
    nprobe: int
    hnsw_m: int = 16
    hnsw_ef_construction: int = 200
    hnsw_ef: int = 64
    max_content_length: int = 65535
    list_batch_size: int = 1000


@dataclass
class MilvusVectorIndex:
    """Vector index over a Milvus collection with JSON metadata."""
    config: MilvusConfig
    dimension: int
    alias: str = "default"
    collection: Any = field(default=None, init=False, repr=False)

    async def initialize(self) -> None:
        """Connect and attach to the collection, creating it when missing."""
        if self.dimension <= 0:
            raise InvalidEmbedding(
                "Embedding dimension must be set before initializing MilvusVectorIndex"
            )
        try:
            await asyncio.to_thread(self._connect_and_ensure)
        except MilvusException as exc:
            raise StoreUnavailable(f"Milvus unavailable: {exc}") from exc

    def _connect_and_ensure(self) -> None:
        connections.connect(alias=self.alias, uri=self.config.uri, token=self.config.token)
        self.ensure_collection()

    def ensure_collection(self) -> None:
        """Create collection schema and indexes when missing."""
        if utility.has_collection(self.config.collection, using=self.alias):
            self.collection = Collection(
                self.config.collection,
                consistency_level=self.config.consistency,
                using=self.alias,
            )
            existing_dim = self._existing_embedding_dim()
            if existing_dim is not None and existing_dim != self.dimension:
                raise InvalidEmbedding(
                    "Milvus collection embedding dimension mismatch: "
                    f"{existing_dim} (collection) vs {self.dimension} (embedder). "
                    "Update EMBEDDING_DIMENSION or use a new MILVUS_COLLECTION."
                )
            logger.info("milvus_collection_attached", extra={"collection": self.config.collection})
            return

        fields = [
            FieldSchema(name="doc_id", dtype=DataType.VARCHAR, is_primary=True, max_length=256),
            FieldSchema(
                name="content",
                dtype=DataType.VARCHAR,
                max_length=self.config.max_content_length,
            ),
            FieldSchema(name="metadata", dtype=DataType.JSON),
            FieldSchema(name="embedding", dtype=DataType.FLOAT_VECTOR, dim=self.dimension),
        ]
        schema = CollectionSchema(
            fields=fields,
            description="Collection for financial assistant documents",
        )
        self.collection = Collection(
            self.config.collection,
            schema,
            consistency_level=self.config.consistency,
            using=self.alias,
        )
        self._create_index()
        logger.info("milvus_collection_created", extra={"collection": self.config.collection})

    def _index_params(self) -> dict[str, Any]:
        if self.config.index_type.upper() == "HNSW":
            return {
                "index_type": "HNSW",
                "metric_type": self.config.metric_type,
                "params": {
                    "M": self.config.hnsw_m,
                    "efConstruction": self.config.hnsw_ef_construction,
                },
            }
        return {
            "index_type": self.config.index_type,
            "metric_type": self.config.metric_type,
            "params": {"nlist": self.config.nlist},
        }

    def _search_params(self) -> dict[str, Any]:
        if self.config.index_type.upper() == "HNSW":
            return {"metric_type": self.config.metric_type, "params": {"ef": self.config.hnsw_ef}}
        return {"metric_type": self.config.metric_type, "params": {"nprobe": self.config.nprobe}}

    def _create_index(self) -> None:
        """Create the dense vector index on a new collection."""
        self.collection.create_index(field_name="embedding", index_params=self._index_params())

    def _existing_embedding_dim(self) -> int | None:
        """Read embedding dimension from existing collection schema."""
        for schema_field in self.collection.schema.fields:
            if schema_field.name != "embedding":
                continue
            params = getattr(schema_field, "params", None) or {}
            dim = params.get("dim") if isinstance(params, dict) else None
            if dim is None:
                return None
            try:
                return int(dim)
            except (TypeError, ValueError):
                return None
        return None

    def _require_collection(self) -> Any:
        if self.collection is None:
            raise StoreUnavailable("Milvus collection is not initialized")
        return self.collection

    async def insert(self, document: Document) -> None:
        """Upsert a document with its embedding and metadata."""
        if document.embedding is None:
            raise InvalidEmbedding(f"Document {document.doc_id} has no embedding")
        vector = validate_vector(document.embedding, self.dimension)
        row = {
            "doc_id": document.doc_id,
            "content": document.content[: self.config.max_content_length],
            "metadata": document_metadata(document),
            "embedding": vector,
        }
        collection = self._require_collection()

        def _write() -> None:
            collection.upsert([row])
            collection.flush()

        try:
            await asyncio.to_thread(_write)
        except MilvusException as exc:
            raise StoreUnavailable(f"Milvus insert failed: {exc}") from exc

    async def query_by_vector(self, vector: Sequence[float], limit: int) -> list[VectorHit]:
        """Search the dense index and return hits with native scores."""
        query_vector = validate_vector(vector, self.dimension)
        if limit <= 0:
            return []
        collection = self._require_collection()

        def _search() -> Any:
            collection.load()
            return collection.search(
                data=[query_vector],
                anns_field="embedding",
                param=self._search_params(),
                limit=limit,
                output_fields=_OUTPUT_FIELDS,
            )

        try:
            results = await asyncio.to_thread(_search)
        except MilvusException as exc:
            raise StoreUnavailable(f"Milvus search failed: {exc}") from exc

        hits: list[VectorHit] = []
        for rank, hit in enumerate(results[0]):
            entity = hit.entity
            document = document_from_record(
                entity.get("doc_id"),
                entity.get("content"),
                self._deserialize_metadata(entity.get("metadata")),
            )
            hits.append(VectorHit(document=document, rank=rank, score=self._similarity(hit)))
        return hits

    def _similarity(self, hit: Any) -> float:
        """Convert a Milvus distance into a larger-is-better score."""
        score = float(hit.score)
        if self.config.metric_type.upper() == "L2":
            return -score
        return score

    async def list_all(self) -> list[Document]:
        """Page through the whole collection without embeddings."""
        collection = self._require_collection()

        def _scan() -> list[dict[str, Any]]:
            collection.load()
            iterator = collection.query_iterator(
                batch_size=self.config.list_batch_size,
                expr='doc_id != ""',
                output_fields=_OUTPUT_FIELDS,
            )
            rows: list[dict[str, Any]] = []
            try:
                while True:
                    batch = iterator.next()
                    if not batch:
                        break
                    rows.extend(batch)
            finally:
                iterator.close()
            return rows

        try:
            rows = await asyncio.to_thread(_scan)
        except MilvusException as exc:
            raise StoreUnavailable(f"Milvus enumeration failed: {exc}") from exc
        return [
            document_from_record(
                row.get("doc_id"),
                row.get("content"),
                self._deserialize_metadata(row.get("metadata")),
            )
            for row in rows
        ]

    def _deserialize_metadata(self, value: Any) -> dict[str, Any]:
        """Deserialize metadata from storage."""
        if value is None:
            return {}
        if isinstance(value, dict):
            return value
        if isinstance(value, str):
            try:
                data = json.loads(value)
            except json.JSONDecodeError:
                return {}
            return data if isinstance(data, dict) else {}
        return {}

    def stats(self) -> dict[str, Any]:
        """Return collection stats."""
        count = 0
        if self.collection is not None:
            try:
                count = int(self.collection.num_entities)
            except MilvusException:
                count = 0
        return {
            "backend": "milvus",
            "document_count": count,
            "embedding_dimension": self.dimension,
            "collection": self.config.collection,
        }

    def health(self) -> dict[str, Any]:
        """Return collection health info."""
        if self.collection is None:
            return {"backend": "milvus", "ok": False, "detail": "not_initialized"}
        try:
            _ = self.collection.num_entities
        except MilvusException as exc:
            return {"backend": "milvus", "ok": False, "detail": str(exc)}
        return {"backend": "milvus", "ok": True, "collection": self.config.collection}
