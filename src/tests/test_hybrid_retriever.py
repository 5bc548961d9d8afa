from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass

import pytest

from src.rag.embeddings import HashEmbedder
from src.rag.errors import InitializationError, SearchFailed, StoreUnavailable
from src.rag.hybrid import HybridRetriever
from src.rag.types import Document, DocumentType, VectorHit
from src.vectorstore.inmemory import InMemoryVectorIndex

pytestmark = pytest.mark.anyio

FINANCE_DOCS = [
    ("fd-tenure", "The minimum tenure for a Fixed Deposit (FD) is 7 days and maximum is 10 years."),
    ("fd-interest", "Interest on deposits is paid monthly, quarterly or at maturity."),
    ("unlisted-buy", "Unlisted shares can be bought through a broker before an IPO."),
    ("unlisted-lockin", "Pre-IPO shares carry a six month lock-in after listing."),
    ("bonds-listed", "Listed bonds trade on NSE and BSE during market hours."),
    ("bonds-coupon", "A bond coupon is paid semi-annually to holders of record."),
    ("kyc", "KYC requires PAN, Aadhaar and a cancelled cheque."),
    ("payout", "Redemption proceeds are credited to your bank account in two working days."),
    ("nominee", "You can add up to three nominees to your account."),
    ("taxes", "TDS is deducted on interest above the exemption limit."),
]


@dataclass
class CountingIndex(InMemoryVectorIndex):
    """In-memory index that counts initialization and enumeration calls."""
    init_calls: int = 0
    list_calls: int = 0

    async def initialize(self) -> None:
        self.init_calls += 1
        await asyncio.sleep(0)
        await super().initialize()

    async def list_all(self) -> list[Document]:
        self.list_calls += 1
        await asyncio.sleep(0)
        return await super().list_all()


class SortedHitsIndex(InMemoryVectorIndex):
    """Index whose dense ranking is simply doc_id order."""

    async def query_by_vector(self, vector, limit: int) -> list[VectorHit]:
        ordered = sorted(self.documents.values(), key=lambda document: document.doc_id)
        return [
            VectorHit(document=document, rank=rank) for rank, document in enumerate(ordered[:limit])
        ]


class UnavailableIndex(InMemoryVectorIndex):
    async def initialize(self) -> None:
        raise StoreUnavailable("connection refused")


class FailingEmbedder(HashEmbedder):
    async def embed(self, text: str) -> list[float]:
        raise RuntimeError("embedding service down")


async def _seed(index: InMemoryVectorIndex, embedder: HashEmbedder, rows) -> None:
    for doc_id, content in rows:
        vector = await embedder.embed(content)
        await index.insert(
            Document(
                doc_id=doc_id,
                content=content,
                title=doc_id,
                doc_type=DocumentType.FAQ,
                tags=("faqs",),
                embedding=tuple(vector),
            )
        )


def _retriever(index: InMemoryVectorIndex, embedder: HashEmbedder | None = None) -> HybridRetriever:
    return HybridRetriever(index=index, embedder=embedder or HashEmbedder())


async def test_limit_returns_unique_documents() -> None:
    embedder = HashEmbedder()
    index = InMemoryVectorIndex(dimension=embedder.dimension)
    rows = [(f"doc-{i}", f"fixed deposit rate sheet number {i}") for i in range(12)]
    await _seed(index, embedder, rows)
    retriever = _retriever(index, embedder)

    results = await retriever.search("fixed deposit rate", limit=5)

    ids = [document.doc_id for document in results]
    assert len(ids) == 5
    assert len(set(ids)) == 5


async def test_empty_store_returns_no_results() -> None:
    embedder = HashEmbedder()
    retriever = _retriever(InMemoryVectorIndex(dimension=embedder.dimension), embedder)

    assert await retriever.search("anything at all", limit=5) == []
    assert retriever.initialized


async def test_non_positive_limit_returns_empty() -> None:
    embedder = HashEmbedder()
    index = InMemoryVectorIndex(dimension=embedder.dimension)
    await _seed(index, embedder, FINANCE_DOCS)
    retriever = _retriever(index, embedder)

    assert await retriever.search("fd tenure", limit=0) == []


async def test_tenure_question_ranks_tenure_document_highly() -> None:
    embedder = HashEmbedder()
    index = InMemoryVectorIndex(dimension=embedder.dimension)
    await _seed(index, embedder, FINANCE_DOCS)
    retriever = _retriever(index, embedder)

    results = await retriever.search("What is the minimum tenure for FD?", limit=5)

    top_ids = [document.doc_id for document in results[:3]]
    assert "fd-tenure" in top_ids


async def test_fused_scores_are_descending() -> None:
    embedder = HashEmbedder()
    index = InMemoryVectorIndex(dimension=embedder.dimension)
    await _seed(index, embedder, FINANCE_DOCS)
    retriever = _retriever(index, embedder)

    results = await retriever.search_with_scores("listed bonds coupon", limit=5)

    scores = [result.score for result in results]
    assert scores == sorted(scores, reverse=True)
    assert all(score > 0 for score in scores)


async def test_duplicate_content_under_two_ids_both_returned() -> None:
    embedder = HashEmbedder()
    index = InMemoryVectorIndex(dimension=embedder.dimension)
    text = "Unlisted shares settle through the depository in T plus one days."
    await _seed(index, embedder, [("dup-a", text), ("dup-b", text), ("other", "KYC needs PAN.")])
    retriever = _retriever(index, embedder)

    results = await retriever.search("unlisted shares settle", limit=5)

    ids = {document.doc_id for document in results}
    assert {"dup-a", "dup-b"} <= ids


async def test_results_carry_metadata_without_embeddings() -> None:
    embedder = HashEmbedder()
    index = InMemoryVectorIndex(dimension=embedder.dimension)
    await _seed(index, embedder, FINANCE_DOCS)
    retriever = _retriever(index, embedder)

    results = await retriever.search("KYC documents", limit=3)

    assert results
    for document in results:
        assert document.embedding is None
        assert document.tags == ("faqs",)
        assert document.doc_type is DocumentType.FAQ


async def test_concurrent_first_searches_initialize_once() -> None:
    embedder = HashEmbedder()
    index = CountingIndex(dimension=embedder.dimension)
    await _seed(index, embedder, FINANCE_DOCS)
    retriever = _retriever(index, embedder)

    await asyncio.gather(*(retriever.search("bond coupon", limit=3) for _ in range(5)))

    assert index.init_calls == 1
    assert index.list_calls == 1
    assert len(retriever.documents) == len(FINANCE_DOCS)


async def test_dense_branch_failure_names_branch() -> None:
    embedder = HashEmbedder()
    index = InMemoryVectorIndex(dimension=embedder.dimension)
    await _seed(index, embedder, FINANCE_DOCS)
    retriever = _retriever(index, FailingEmbedder())

    with pytest.raises(SearchFailed) as excinfo:
        await retriever.search("fd tenure", limit=5)

    assert excinfo.value.branch == "dense"
    assert isinstance(excinfo.value.__cause__, RuntimeError)


async def test_initialization_failure_is_reported_and_retried() -> None:
    retriever = _retriever(UnavailableIndex(dimension=256))

    with pytest.raises(InitializationError):
        await retriever.search("fd tenure", limit=5)
    assert not retriever.initialized

    with pytest.raises(InitializationError):
        await retriever.initialize()


async def test_refresh_picks_up_documents_inserted_after_init() -> None:
    embedder = HashEmbedder()
    index = InMemoryVectorIndex(dimension=embedder.dimension)
    await _seed(index, embedder, FINANCE_DOCS[:3])
    retriever = _retriever(index, embedder)
    await retriever.initialize()
    assert len(retriever.documents) == 3

    await _seed(index, embedder, [("late", "Sovereign gold bonds mature in eight years.")])
    assert len(retriever.documents) == 3

    count = await retriever.refresh()

    assert count == 4
    results = await retriever.search("sovereign gold bonds", limit=1)
    assert results[0].doc_id == "late"


async def test_corpus_average_length_option() -> None:
    embedder = HashEmbedder()
    index = InMemoryVectorIndex(dimension=embedder.dimension)
    await _seed(index, embedder, FINANCE_DOCS)
    retriever = HybridRetriever(index=index, embedder=embedder, use_corpus_avgdl=True)

    results = await retriever.search("lock-in after listing", limit=2)

    assert results[0].doc_id == "unlisted-lockin"


async def test_zero_lexical_scores_still_contribute_rank() -> None:
    embedder = HashEmbedder()
    index = SortedHitsIndex(dimension=embedder.dimension)
    await _seed(index, embedder, [("B", "bravo text"), ("A", "alpha text")])
    retriever = _retriever(index, embedder)

    results = await retriever.search_with_scores("zzz", limit=2)

    scores = {result.document.doc_id: result.score for result in results}
    assert [result.document.doc_id for result in results] == ["A", "B"]
    assert abs(scores["A"] - (1 / 60 + 1 / 61)) < 1e-12
    assert abs(scores["B"] - (1 / 61 + 1 / 60)) < 1e-12


async def test_zero_lexical_scores_can_be_excluded() -> None:
    embedder = HashEmbedder()
    index = SortedHitsIndex(dimension=embedder.dimension)
    await _seed(index, embedder, [("B", "bravo text"), ("A", "alpha text")])
    retriever = HybridRetriever(index=index, embedder=embedder, include_zero_lexical=False)

    results = await retriever.search_with_scores("zzz", limit=2)

    assert abs(results[0].score - 1 / 60) < 1e-12
    assert abs(results[1].score - 1 / 61) < 1e-12


async def test_minimum_fd_tenure_faq_ranks_in_top_three() -> None:
    embedder = HashEmbedder()
    index = InMemoryVectorIndex(dimension=embedder.dimension)
    rows = [("fd", "minimum tenure for Fixed Deposits is 12 months")] + [
        (f"other-{i}", text)
        for i, text in enumerate(
            [
                "Unlisted shares can be bought through a broker before an IPO.",
                "Listed bonds trade on NSE and BSE during market hours.",
                "A bond coupon is paid semi-annually to holders of record.",
                "KYC requires PAN, Aadhaar and a cancelled cheque.",
                "Redemption proceeds reach your bank account in two working days.",
                "You can add up to three nominees to your account.",
                "Pre-IPO shares carry a six month lock-in after listing.",
                "Demat accounts hold securities in electronic form.",
                "Customer support is available on weekdays.",
            ]
        )
    ]
    await _seed(index, embedder, rows)
    retriever = _retriever(index, embedder)

    results = await retriever.search("What is the minimum FD tenure?", limit=5)

    assert "fd" in [document.doc_id for document in results[:3]]
    assert results[0].doc_type is DocumentType.FAQ


async def test_lexical_scoring_runs_off_the_event_loop_thread(monkeypatch) -> None:
    import src.rag.hybrid as hybrid_module

    threads: set[int] = set()
    original = hybrid_module.bm25_score

    def recording_score(*args, **kwargs):
        threads.add(threading.get_ident())
        return original(*args, **kwargs)

    monkeypatch.setattr(hybrid_module, "bm25_score", recording_score)
    embedder = HashEmbedder()
    index = InMemoryVectorIndex(dimension=embedder.dimension)
    await _seed(index, embedder, FINANCE_DOCS[:3])

    await _retriever(index, embedder).search("fd tenure", limit=2)

    assert threads
    assert threading.get_ident() not in threads
