from __future__ import annotations

"""BM25-style lexical scoring used by the sparse retrieval branch."""

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class BM25Params:
    """Tuning parameters for the lexical scorer."""
    k1: float = 1.5
    b: float = 0.75


DEFAULT_PARAMS = BM25Params()


def tokenize(text: str) -> list[str]:
    """Lower-case and split on whitespace runs (no stemming or stop words)."""
    return text.lower().split()


def average_document_length(texts: Iterable[str]) -> float | None:
    """Return the mean token count across texts, or None when empty."""
    total = 0
    count = 0
    for text in texts:
        total += len(tokenize(text))
        count += 1
    if count == 0 or total == 0:
        return None
    return total / count


def bm25_score(
    query: str,
    document: str,
    params: BM25Params = DEFAULT_PARAMS,
    avg_doc_length: float | None = None,
) -> float:
    """Score a document against a query.

    IDF is fixed at 1.0 because per-call scoring has no corpus statistics.
    When ``avg_doc_length`` is None the document's own length is used, which
    leaves the length-normalization term neutral.
    """
    query_terms = tokenize(query)
    doc_terms = tokenize(document)
    if not query_terms or not doc_terms:
        return 0.0

    doc_length = len(doc_terms)
    avg_length = avg_doc_length if avg_doc_length and avg_doc_length > 0 else doc_length

    term_freq: dict[str, int] = {}
    for term in doc_terms:
        term_freq[term] = term_freq.get(term, 0) + 1

    idf = 1.0
    length_norm = 1 - params.b + params.b * doc_length / avg_length
    score = 0.0
    for term in query_terms:
        tf = term_freq.get(term, 0)
        if tf == 0:
            continue
        numerator = tf * (params.k1 + 1)
        denominator = tf + params.k1 * length_norm
        score += idf * numerator / denominator
    return score
