from __future__ import annotations

"""Confidence scoring strategies for generated answers."""

import math
import re
from dataclasses import dataclass
from typing import Protocol, Sequence

from src.rag.types import Document

UNCERTAINTY_PHRASES = (
    "don't have enough information",
    "do not have enough information",
    "not sure",
    "might be",
    "could be",
    "possibly",
    "i think",
    "uncertain",
    "unclear",
)

_WHITESPACE_RE = re.compile(r"\s+")


class ConfidenceScorer(Protocol):
    """Protocol for answer confidence scorers."""

    def score(self, answer: str, documents: Sequence[Document]) -> float:
        """Return a confidence value in [0, 1]."""
        raise NotImplementedError


def _tokens(text: str) -> list[str]:
    return [token for token in _WHITESPACE_RE.split(text.lower()) if token]


def _ngram_counts(tokens: list[str], n: int) -> dict[tuple[str, ...], int]:
    counts: dict[tuple[str, ...], int] = {}
    for idx in range(len(tokens) - n + 1):
        gram = tuple(tokens[idx : idx + n])
        counts[gram] = counts.get(gram, 0) + 1
    return counts


def bleu_score(response: str, reference: str, max_n: int = 4) -> float:
    """BLEU-style score: mean clipped n-gram precision times brevity penalty."""
    response_tokens = _tokens(response)
    reference_tokens = _tokens(reference)
    top_n = min(max_n, len(response_tokens), len(reference_tokens))
    if top_n == 0:
        return 0.0
    total_precision = 0.0
    for n in range(1, top_n + 1):
        response_counts = _ngram_counts(response_tokens, n)
        reference_counts = _ngram_counts(reference_tokens, n)
        matches = sum(
            min(count, reference_counts.get(gram, 0)) for gram, count in response_counts.items()
        )
        total = sum(response_counts.values())
        total_precision += matches / (total or 1)
    average_precision = total_precision / top_n
    brevity_penalty = math.exp(min(0.0, 1 - len(reference_tokens) / len(response_tokens)))
    return brevity_penalty * average_precision


def rouge1_score(response: str, reference: str) -> float:
    """ROUGE-1 F1 over unique tokens."""
    response_set = set(_tokens(response))
    reference_set = set(_tokens(reference))
    if not response_set or not reference_set:
        return 0.0
    overlap = len(response_set & reference_set)
    recall = overlap / len(reference_set)
    precision = overlap / len(response_set)
    if precision + recall == 0:
        return 0.0
    return 2 * precision * recall / (precision + recall)


def has_uncertainty(answer: str) -> bool:
    lowered = answer.lower()
    return any(phrase in lowered for phrase in UNCERTAINTY_PHRASES)


def clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class FixedConfidence:
    """Return the same confidence for every answer."""
    value: float = 0.5

    def score(self, answer: str, documents: Sequence[Document]) -> float:
        return clamp(self.value)


@dataclass(frozen=True)
class HeuristicConfidence:
    """Combine source count, answer length, hedging and overlap with sources."""
    base: float = 0.3
    source_weight: float = 0.15
    length_bonus: float = 0.15
    length_penalty: float = 0.1
    min_length: int = 50
    max_length: int = 1000
    uncertainty_penalty: float = 0.2
    bleu_weight: float = 0.25
    rouge_weight: float = 0.25

    def score(self, answer: str, documents: Sequence[Document]) -> float:
        score = self.base
        score += min(len(documents) / 5, self.source_weight)
        if self.min_length < len(answer) < self.max_length:
            score += self.length_bonus
        else:
            score -= self.length_penalty
        if has_uncertainty(answer):
            score -= self.uncertainty_penalty
        if documents:
            reference = " ".join(document.content for document in documents)
            score += bleu_score(answer, reference) * self.bleu_weight
            score += rouge1_score(answer, reference) * self.rouge_weight
        return clamp(score)


def build_confidence_scorer(mode: str, fixed_value: float = 0.5) -> ConfidenceScorer:
    """Factory for confidence scorers based on configuration."""
    if mode.strip().lower() == "heuristic":
        return HeuristicConfidence()
    return FixedConfidence(value=fixed_value)
