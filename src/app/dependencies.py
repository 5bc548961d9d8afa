from __future__ import annotations

from functools import lru_cache

from src.app.settings import settings
from src.rag.answerer import ExtractiveAnswerer
from src.rag.bm25 import BM25Params
from src.rag.confidence import build_confidence_scorer
from src.rag.embeddings import EmbeddingProvider, HashEmbedder, OpenAIEmbedder
from src.rag.errors import EmbeddingConfigError
from src.rag.hybrid import HybridRetriever
from src.rag.ingest import DocumentIngestor
from src.rag.llm import AnswerGenerator, build_llm_answerer
from src.rag.pipeline import QueryPipeline
from src.rag.rewriter import build_rewriter
from src.vectorstore.base import VectorIndex
from src.vectorstore.inmemory import InMemoryVectorIndex


@lru_cache
def get_pipeline() -> QueryPipeline:
    embedder = build_embedder()
    index = build_vector_index(embedder)
    retriever = HybridRetriever(
        index=index,
        embedder=embedder,
        rrf_k=settings.rrf_k,
        bm25_params=BM25Params(k1=settings.bm25_k1, b=settings.bm25_b),
        use_corpus_avgdl=settings.bm25_corpus_avgdl,
        include_zero_lexical=settings.lexical_include_zero,
    )
    return QueryPipeline(
        retriever=retriever,
        generator=build_generator(),
        confidence_scorer=build_confidence_scorer(
            settings.confidence_mode, settings.confidence_fixed_value
        ),
        rewriter=build_rewriter(),
        max_sources=settings.max_sources,
    )


@lru_cache
def get_ingestor() -> DocumentIngestor:
    retriever = get_pipeline().retriever
    return DocumentIngestor(
        index=retriever.index,
        embedder=retriever.embedder,
        retriever=retriever,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        min_chunk_length=settings.chunk_min_length,
    )


def reset_pipeline_cache() -> None:
    get_ingestor.cache_clear()
    get_pipeline.cache_clear()


def build_embedder() -> EmbeddingProvider:
    provider = settings.embedding_provider.lower().strip()
    if provider == "hash":
        return HashEmbedder(dimension=settings.embedding_dimension)
    if provider == "openai":
        return OpenAIEmbedder(
            api_key=settings.openai_api_key or "",
            model=settings.openai_embedding_model,
            dimension=settings.embedding_dimension,
        )
    raise EmbeddingConfigError(f"Unsupported embedding provider: {provider}")


def build_vector_index(embedder: EmbeddingProvider) -> VectorIndex:
    backend = settings.vectorstore_backend.lower().strip()
    if backend == "milvus":
        from src.vectorstore.milvus import MilvusConfig, MilvusVectorIndex

        config = MilvusConfig(
            uri=settings.milvus_uri,
            token=settings.milvus_token,
            collection=settings.milvus_collection,
            consistency=settings.milvus_consistency,
            index_type=settings.milvus_index_type,
            metric_type=settings.milvus_metric_type,
            nlist=settings.milvus_nlist,
            nprobe=settings.milvus_nprobe,
        )
        return MilvusVectorIndex(config=config, dimension=embedder.dimension)
    return InMemoryVectorIndex(dimension=embedder.dimension, collection=settings.milvus_collection)


def build_generator() -> AnswerGenerator:
    if settings.answerer_mode.strip().lower() != "llm":
        return ExtractiveAnswerer()
    return build_llm_answerer(
        settings.llm_provider,
        api_key_openai=settings.openai_api_key,
        openai_base_url=settings.openai_base_url,
        openai_model=settings.openai_chat_model,
        ollama_base_url=settings.ollama_base_url,
        ollama_model=settings.ollama_model,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout=settings.llm_timeout,
        context_max_chars=settings.llm_context_max_chars,
    )
