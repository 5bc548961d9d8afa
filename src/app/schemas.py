from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class QueryRequest(BaseModel):
    query: Any = None
    userId: str | None = None


class SourceDocument(BaseModel):
    id: str
    title: str
    content: str
    type: str
    tags: list[str] = Field(default_factory=list)


class ProcessedQueryData(BaseModel):
    query: str
    rewrittenQuery: str
    answer: str
    confidence: float = Field(ge=0.0, le=1.0)
    sources: list[SourceDocument]


class QueryResponse(BaseModel):
    success: bool = True
    data: ProcessedQueryData
    message: str


class ProcessDocumentData(BaseModel):
    chunks: int
    documents: list[SourceDocument]


class ProcessDocumentResponse(BaseModel):
    success: bool = True
    data: ProcessDocumentData
    message: str


class RefreshResponse(BaseModel):
    success: bool = True
    documents: int
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    message: str


class StatsResponse(BaseModel):
    backend: str
    document_count: int
    embedding_dimension: int
    collection: str | None = None
    cached_documents: int
    initialized: bool
