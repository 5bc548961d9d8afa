from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from src.app.metrics import QUERY_COUNT
from src.rag.confidence import ConfidenceScorer, FixedConfidence, clamp
from src.rag.errors import GenerationFailed, InvalidQuery, QueryRewriteError
from src.rag.hybrid import HybridRetriever
from src.rag.llm import AnswerGenerator
from src.rag.rewriter import NoopRewriter, QueryRewriter
from src.rag.types import ProcessedQuery

logger = logging.getLogger(__name__)


def validate_query(query: Any) -> str:
    """Return the query unchanged, or raise InvalidQuery for blank/non-string input."""
    if not isinstance(query, str) or not query.strip():
        raise InvalidQuery("Query must be a non-empty string")
    return query


@dataclass
class QueryPipeline:
    """Retrieve, generate and score an answer for a single query."""
    retriever: HybridRetriever
    generator: AnswerGenerator
    confidence_scorer: ConfidenceScorer = field(default_factory=FixedConfidence)
    rewriter: QueryRewriter = field(default_factory=NoopRewriter)
    max_sources: int = 5

    async def rewrite(self, query: str) -> str:
        try:
            rewritten = await self.rewriter.rewrite(query)
        except QueryRewriteError as exc:
            logger.warning("query_rewrite_failed", extra={"detail": str(exc)})
            return query
        if not rewritten or not rewritten.strip():
            return query
        return rewritten.strip()

    async def process_query(self, query: Any) -> ProcessedQuery:
        query = validate_query(query)
        retrieval_query = await self.rewrite(query)
        logger.info(
            "query_received",
            extra={
                "query_length": len(query),
                "rewrite_applied": retrieval_query != query,
            },
        )

        try:
            documents = await self.retriever.search(retrieval_query, limit=self.max_sources)
        except Exception:
            QUERY_COUNT.labels("retrieval_error").inc()
            raise

        try:
            answer = await self.generator.generate(query, documents)
        except GenerationFailed:
            QUERY_COUNT.labels("generation_error").inc()
            raise
        except Exception as exc:
            QUERY_COUNT.labels("generation_error").inc()
            raise GenerationFailed(f"Answer generation failed: {exc}") from exc
        if not isinstance(answer, str) or not answer.strip():
            QUERY_COUNT.labels("generation_error").inc()
            raise GenerationFailed("Answer generator returned an empty answer")

        confidence = clamp(self.confidence_scorer.score(answer, documents))
        QUERY_COUNT.labels("ok").inc()
        logger.info(
            "query_completed",
            extra={
                "sources": len(documents),
                "answer_length": len(answer),
                "confidence": confidence,
            },
        )
        return ProcessedQuery(
            query=query,
            rewritten_query=retrieval_query,
            answer=answer.strip(),
            confidence=confidence,
            sources=documents,
        )
