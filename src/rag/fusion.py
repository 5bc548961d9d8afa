from __future__ import annotations

"""Reciprocal rank fusion over the dense and sparse ranked lists."""

from typing import Sequence

from src.rag.types import Document, SearchResult, VectorHit

DEFAULT_RRF_K = 60


def rrf_contribution(rank: int, k: int = DEFAULT_RRF_K) -> float:
    """Return the RRF contribution of a 0-based rank."""
    return 1.0 / (rank + k)


def dense_hits_to_results(hits: Sequence[VectorHit]) -> list[SearchResult]:
    """Attach a score to each dense hit.

    Native similarities are used as-is; otherwise the score is derived from
    position as ``1 - rank / total``.
    """
    total = len(hits)
    results: list[SearchResult] = []
    for position, hit in enumerate(hits):
        if hit.score is not None:
            score = float(hit.score)
        else:
            score = 1.0 - position / total
        results.append(SearchResult(document=hit.document.without_embedding(), score=score))
    return results


def reciprocal_rank_fusion(
    dense: Sequence[SearchResult],
    sparse: Sequence[SearchResult],
    k: int = DEFAULT_RRF_K,
) -> list[SearchResult]:
    """Fuse two ranked lists by summing ``1 / (rank + k)`` per document ID.

    Dense entries are inserted first and the final sort is stable, so among
    equal fused scores earlier-inserted documents keep their lead.
    """
    scores: dict[str, float] = {}
    documents: dict[str, Document] = {}
    for ranked in (dense, sparse):
        for rank, result in enumerate(ranked):
            doc_id = result.document.doc_id
            if doc_id not in scores:
                scores[doc_id] = 0.0
                documents[doc_id] = result.document
            scores[doc_id] += rrf_contribution(rank, k)
    fused = [
        SearchResult(document=documents[doc_id], score=score)
        for doc_id, score in scores.items()
    ]
    fused.sort(key=lambda item: item.score, reverse=True)
    return fused
