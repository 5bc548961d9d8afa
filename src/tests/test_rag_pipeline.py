from __future__ import annotations

from typing import Sequence

import pytest

from src.rag.answerer import DEFAULT_REFUSAL, ExtractiveAnswerer
from src.rag.embeddings import HashEmbedder
from src.rag.errors import GenerationFailed, InvalidQuery, QueryRewriteError, SearchFailed
from src.rag.hybrid import HybridRetriever
from src.rag.pipeline import QueryPipeline, validate_query
from src.rag.rewriter import QueryRewriter
from src.rag.types import Document
from src.vectorstore.inmemory import InMemoryVectorIndex

pytestmark = pytest.mark.anyio


class ExplodingIndex(InMemoryVectorIndex):
    """Index that fails if anything touches it."""

    async def initialize(self) -> None:
        raise AssertionError("index should not be touched")


class FailingGenerator:
    async def generate(self, query: str, documents: Sequence[Document]) -> str:
        raise RuntimeError("upstream timeout")


class BlankGenerator:
    async def generate(self, query: str, documents: Sequence[Document]) -> str:
        return "   "


class BrokenRewriter(QueryRewriter):
    async def rewrite(self, query: str) -> str:
        raise QueryRewriteError("rewriter offline")


class PrefixRewriter(QueryRewriter):
    async def rewrite(self, query: str) -> str:
        return f"fixed deposit {query}"


class FailingEmbedder(HashEmbedder):
    async def embed(self, text: str) -> list[float]:
        raise RuntimeError("embedding service down")


async def build_pipeline(generator=None, rewriter=None, embedder=None) -> QueryPipeline:
    hash_embedder = HashEmbedder()
    index = InMemoryVectorIndex(dimension=hash_embedder.dimension)
    rows = [
        ("fd-tenure", "The minimum tenure for a Fixed Deposit (FD) is 7 days."),
        ("bonds", "Listed bonds trade on NSE and BSE during market hours."),
    ]
    for doc_id, content in rows:
        vector = await hash_embedder.embed(content)
        await index.insert(Document(doc_id=doc_id, content=content, embedding=vector))
    retriever = HybridRetriever(index=index, embedder=embedder or hash_embedder)
    kwargs = {"retriever": retriever, "generator": generator or ExtractiveAnswerer()}
    if rewriter is not None:
        kwargs["rewriter"] = rewriter
    return QueryPipeline(**kwargs)


async def test_grounded_answer_with_sources() -> None:
    pipeline = await build_pipeline()

    result = await pipeline.process_query("What is the minimum tenure for FD?")

    assert result.answer.startswith("Based on the provided context:")
    assert "7 days" in result.answer
    assert result.sources[0].doc_id == "fd-tenure"
    assert result.rewritten_query == result.query
    assert result.confidence == 0.5
    assert result.to_payload()["rewrittenQuery"] == result.query


@pytest.mark.parametrize("query", ["", "   ", None, 42])
async def test_invalid_query_fails_before_any_io(query) -> None:
    pipeline = QueryPipeline(
        retriever=HybridRetriever(index=ExplodingIndex(dimension=8), embedder=HashEmbedder(8)),
        generator=FailingGenerator(),
    )

    with pytest.raises(InvalidQuery):
        await pipeline.process_query(query)


async def test_validate_query_returns_input_unchanged() -> None:
    assert validate_query("  FD rates ") == "  FD rates "


async def test_generator_failure_becomes_generation_failed() -> None:
    pipeline = await build_pipeline(generator=FailingGenerator())

    with pytest.raises(GenerationFailed) as excinfo:
        await pipeline.process_query("FD tenure")

    assert excinfo.value.stage == "generation"
    assert isinstance(excinfo.value.__cause__, RuntimeError)


async def test_blank_answer_is_generation_failure() -> None:
    pipeline = await build_pipeline(generator=BlankGenerator())

    with pytest.raises(GenerationFailed):
        await pipeline.process_query("FD tenure")


async def test_retrieval_failure_propagates_with_stage() -> None:
    pipeline = await build_pipeline(embedder=FailingEmbedder())

    with pytest.raises(SearchFailed) as excinfo:
        await pipeline.process_query("FD tenure")

    assert excinfo.value.stage == "retrieval"


async def test_rewriter_failure_falls_back_to_original_query() -> None:
    pipeline = await build_pipeline(rewriter=BrokenRewriter())

    result = await pipeline.process_query("bonds trading hours")

    assert result.rewritten_query == "bonds trading hours"
    assert result.sources


async def test_rewritten_query_drives_retrieval() -> None:
    pipeline = await build_pipeline(rewriter=PrefixRewriter())

    result = await pipeline.process_query("minimum tenure")

    assert result.query == "minimum tenure"
    assert result.rewritten_query == "fixed deposit minimum tenure"
    assert result.sources[0].doc_id == "fd-tenure"


async def test_extractive_answerer_refuses_without_documents() -> None:
    answer = await ExtractiveAnswerer().generate("anything", [])
    assert answer == DEFAULT_REFUSAL
