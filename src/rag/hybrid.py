from __future__ import annotations

"""Hybrid retriever: dense vector search fused with BM25 lexical scoring."""

import asyncio
import logging
import time
from dataclasses import dataclass, field

from src.app.metrics import BRANCH_RESULTS, SEARCH_COUNT, SEARCH_LATENCY
from src.rag.bm25 import BM25Params, average_document_length, bm25_score
from src.rag.embeddings import EmbeddingProvider
from src.rag.errors import InitializationError, SearchFailed
from src.rag.fusion import DEFAULT_RRF_K, dense_hits_to_results, reciprocal_rank_fusion
from src.rag.types import Document, SearchResult
from src.vectorstore.base import VectorIndex

logger = logging.getLogger(__name__)


@dataclass
class HybridRetriever:
    """Fuse nearest-neighbor results with lexical scores over a cached corpus.

    The document cache is a point-in-time snapshot taken by ``initialize``.
    It is only replaced by ``initialize`` or an explicit ``refresh`` and is
    shared read-only by concurrent searches.
    """
    index: VectorIndex
    embedder: EmbeddingProvider
    rrf_k: int = DEFAULT_RRF_K
    candidate_multiplier: int = 2
    bm25_params: BM25Params = field(default_factory=BM25Params)
    use_corpus_avgdl: bool = False
    include_zero_lexical: bool = True
    _documents: tuple[Document, ...] = field(default=(), init=False, repr=False)
    _avg_doc_length: float | None = field(default=None, init=False, repr=False)
    _initialized: bool = field(default=False, init=False, repr=False)
    _init_lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def documents(self) -> tuple[Document, ...]:
        """Current lexical cache snapshot."""
        return self._documents

    async def initialize(self) -> None:
        """Attach to the vector index and load the lexical cache once."""
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            try:
                await self.index.initialize()
                await self._load_cache()
            except Exception as exc:
                logger.error(
                    "retriever_initialize_failed",
                    extra={"error": type(exc).__name__, "detail": str(exc)},
                )
                raise InitializationError(f"Failed to initialize vector store: {exc}") from exc
            self._initialized = True
        logger.info("retriever_initialized", extra={"documents": len(self._documents)})

    async def refresh(self) -> int:
        """Reload the lexical cache from the vector index."""
        if not self._initialized:
            await self.initialize()
            return len(self._documents)
        async with self._init_lock:
            try:
                await self._load_cache()
            except Exception as exc:
                raise InitializationError(f"Failed to refresh document cache: {exc}") from exc
        logger.info("retriever_cache_refreshed", extra={"documents": len(self._documents)})
        return len(self._documents)

    async def _load_cache(self) -> None:
        documents = tuple(doc.without_embedding() for doc in await self.index.list_all())
        self._avg_doc_length = average_document_length(doc.content for doc in documents)
        self._documents = documents

    async def search(self, query: str, limit: int = 5) -> list[Document]:
        """Return the top ``limit`` documents after fusion."""
        results = await self.search_with_scores(query, limit=limit)
        return [result.document for result in results]

    async def search_with_scores(self, query: str, limit: int = 5) -> list[SearchResult]:
        """Return fused results with their RRF scores."""
        if limit <= 0:
            return []
        await self.initialize()
        candidates = limit * self.candidate_multiplier
        start = time.monotonic()
        try:
            dense, sparse = await asyncio.gather(
                self._dense_branch(query, candidates),
                self._sparse_branch(query, candidates),
            )
        except SearchFailed as exc:
            SEARCH_COUNT.labels("error").inc()
            logger.error(
                "search_failed",
                extra={
                    "branch": exc.branch,
                    "error": type(exc.__cause__).__name__ if exc.__cause__ else None,
                    "query_length": len(query),
                },
            )
            raise
        fused = reciprocal_rank_fusion(dense, sparse, k=self.rrf_k)[:limit]
        SEARCH_COUNT.labels("ok").inc()
        SEARCH_LATENCY.observe(time.monotonic() - start)
        BRANCH_RESULTS.labels("dense").observe(len(dense))
        BRANCH_RESULTS.labels("sparse").observe(len(sparse))
        logger.info(
            "retrieval_complete",
            extra={
                "dense": len(dense),
                "sparse": len(sparse),
                "results": len(fused),
                "query_length": len(query),
            },
        )
        return [
            SearchResult(document=result.document.without_embedding(), score=result.score)
            for result in fused
        ]

    async def _dense_branch(self, query: str, candidates: int) -> list[SearchResult]:
        try:
            vector = await self.embedder.embed(query)
            hits = await self.index.query_by_vector(vector, candidates)
        except Exception as exc:
            raise SearchFailed(str(exc), branch="dense") from exc
        return dense_hits_to_results(hits)

    async def _sparse_branch(self, query: str, candidates: int) -> list[SearchResult]:
        documents = self._documents
        if not documents:
            return []
        try:
            return await asyncio.to_thread(self._rank_lexical, query, documents, candidates)
        except Exception as exc:
            raise SearchFailed(str(exc), branch="sparse") from exc

    def _rank_lexical(
        self, query: str, documents: tuple[Document, ...], candidates: int
    ) -> list[SearchResult]:
        """Score every cached document, best-first; runs off the event loop."""
        avg_length = self._avg_doc_length if self.use_corpus_avgdl else None
        scored = [
            SearchResult(
                document=document,
                score=bm25_score(query, document.content, self.bm25_params, avg_length),
            )
            for document in documents
        ]
        if not self.include_zero_lexical:
            scored = [result for result in scored if result.score > 0.0]
        scored.sort(key=lambda item: item.score, reverse=True)
        return scored[:candidates]
