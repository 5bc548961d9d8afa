from __future__ import annotations

"""Error taxonomy for retrieval, generation and query handling."""


class RAGError(RuntimeError):
    """Base class for errors raised by the RAG core."""
    stage: str = "internal"


class InvalidQuery(RAGError):
    """Raised when a query is empty or not a string."""
    stage = "validation"


class InvalidEmbedding(RAGError):
    """Raised when an embedding is missing, empty, non-finite or mis-sized."""
    stage = "embedding"


class EmbeddingConfigError(RAGError):
    """Raised when embedding configuration is invalid."""
    stage = "configuration"


class EmbeddingUnavailable(RAGError):
    """Raised when the embedding service cannot produce a vector."""
    stage = "embedding"


class StoreUnavailable(RAGError):
    """Raised when the backing vector store cannot be reached."""
    stage = "retrieval"


class InitializationError(RAGError):
    """Raised when the retriever cannot attach to or load the vector store."""
    stage = "retrieval"


class SearchFailed(RAGError):
    """Raised when either retrieval branch fails during a search."""
    stage = "retrieval"

    def __init__(self, message: str, branch: str) -> None:
        super().__init__(f"{branch} branch failed: {message}")
        self.branch = branch


class GenerationFailed(RAGError):
    """Raised when the answer generator fails or returns unusable output."""
    stage = "generation"


class QueryRewriteError(RAGError):
    """Raised when query rewriting fails."""
    stage = "rewrite"


class ChatCompletionError(RAGError):
    """Raised when a chat completion backend is misconfigured or unreachable."""
    stage = "llm"
