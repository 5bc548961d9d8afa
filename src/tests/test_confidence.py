from __future__ import annotations

from src.rag.confidence import (
    FixedConfidence,
    HeuristicConfidence,
    bleu_score,
    build_confidence_scorer,
    has_uncertainty,
    rouge1_score,
)
from src.rag.types import Document


def test_fixed_confidence_is_constant_and_clamped() -> None:
    assert FixedConfidence().score("anything", []) == 0.5
    assert FixedConfidence(value=1.7).score("anything", []) == 1.0
    assert FixedConfidence(value=-3).score("anything", []) == 0.0


def test_factory_selects_strategy() -> None:
    assert isinstance(build_confidence_scorer("heuristic"), HeuristicConfidence)
    scorer = build_confidence_scorer("fixed", 0.8)
    assert isinstance(scorer, FixedConfidence)
    assert scorer.value == 0.8


def test_overlap_metrics_reward_copied_text() -> None:
    reference = "the minimum fd tenure is seven days"
    assert bleu_score(reference, reference) == 1.0
    assert rouge1_score(reference, reference) == 1.0
    assert bleu_score("completely unrelated words", reference) == 0.0
    assert rouge1_score("", reference) == 0.0


def test_uncertain_answers_score_lower() -> None:
    documents = [Document(doc_id="a", content="FD tenure ranges from 7 days to 10 years.")]
    scorer = HeuristicConfidence()
    grounded = "FD tenure ranges from 7 days to 10 years according to the product terms."
    hedged = "I think FD tenure might be anywhere, I am not sure about the exact terms here."

    assert has_uncertainty(hedged)
    assert scorer.score(grounded, documents) > scorer.score(hedged, documents)


def test_heuristic_confidence_stays_in_unit_interval() -> None:
    documents = [Document(doc_id=str(i), content="bond coupon paid semi-annually") for i in range(9)]
    scorer = HeuristicConfidence()
    for answer in ["", "x", "bond coupon paid semi-annually " * 10, "possibly " * 400]:
        value = scorer.score(answer, documents)
        assert 0.0 <= value <= 1.0
