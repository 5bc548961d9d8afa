from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    log_level: str = os.getenv("RAG_LOG_LEVEL", "INFO")
    max_sources: int = int(os.getenv("RAG_MAX_SOURCES", "5"))
    vectorstore_backend: str = os.getenv("RAG_VECTORSTORE", "memory")
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "hash")
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "256"))
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_embedding_model: str = os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-large")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    openai_chat_model: str | None = os.getenv("OPENAI_CHAT_MODEL", "gpt-4o")
    milvus_uri: str = os.getenv("MILVUS_URI", "http://localhost:19530")
    milvus_token: str | None = os.getenv("MILVUS_TOKEN")
    milvus_collection: str = os.getenv("MILVUS_COLLECTION", "yoda_documents")
    milvus_consistency: str = os.getenv("MILVUS_CONSISTENCY", "Strong")
    milvus_index_type: str = os.getenv("MILVUS_INDEX_TYPE", "IVF_FLAT")
    milvus_metric_type: str = os.getenv("MILVUS_METRIC_TYPE", "COSINE")
    milvus_nlist: int = int(os.getenv("MILVUS_NLIST", "1024"))
    milvus_nprobe: int = int(os.getenv("MILVUS_NPROBE", "10"))
    rrf_k: int = int(os.getenv("RAG_RRF_K", "60"))
    bm25_k1: float = float(os.getenv("RAG_BM25_K1", "1.5"))
    bm25_b: float = float(os.getenv("RAG_BM25_B", "0.75"))
    bm25_corpus_avgdl: bool = _env_flag("RAG_BM25_CORPUS_AVGDL", "false")
    lexical_include_zero: bool = _env_flag("RAG_LEXICAL_INCLUDE_ZERO", "true")
    chunk_size: int = int(os.getenv("RAG_CHUNK_SIZE", "1000"))
    chunk_overlap: int = int(os.getenv("RAG_CHUNK_OVERLAP", "200"))
    chunk_min_length: int = int(os.getenv("RAG_CHUNK_MIN_LENGTH", "100"))
    file_max_bytes: int = int(os.getenv("RAG_FILE_MAX_BYTES", "20971520"))
    metrics_enabled: bool = _env_flag("RAG_METRICS_ENABLED", "true")
    answerer_mode_raw: str = os.getenv("RAG_ANSWERER", "extractive")
    confidence_mode: str = os.getenv("RAG_CONFIDENCE_MODE", "fixed")
    confidence_fixed_value: float = float(os.getenv("RAG_CONFIDENCE_FIXED", "0.5"))
    llm_provider: str = os.getenv("RAG_LLM_PROVIDER", "openai")
    llm_context_max_chars: int = int(os.getenv("RAG_LLM_CONTEXT_MAX_CHARS", "4000"))
    llm_temperature: float = float(os.getenv("RAG_LLM_TEMPERATURE", "0.1"))
    llm_max_tokens: int = int(os.getenv("RAG_LLM_MAX_TOKENS", "500"))
    llm_timeout: float = float(os.getenv("RAG_LLM_TIMEOUT", "60"))
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    ollama_model: str = os.getenv("OLLAMA_MODEL", "llama3.1")
    query_rewriter_enabled: bool = _env_flag("RAG_QUERY_REWRITE", "false")
    query_rewriter_provider: str = os.getenv("RAG_QUERY_REWRITE_PROVIDER", "openai")
    query_rewriter_model: str | None = os.getenv("RAG_QUERY_REWRITE_MODEL")
    query_rewriter_max_tokens: int = int(os.getenv("RAG_QUERY_REWRITE_MAX_TOKENS", "64"))
    query_rewriter_timeout: float = float(os.getenv("RAG_QUERY_REWRITE_TIMEOUT", "10"))

    @property
    def answerer_mode(self) -> str:
        return os.getenv("RAG_ANSWERER", self.answerer_mode_raw)


settings = Settings()
