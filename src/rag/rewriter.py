from __future__ import annotations

"""Query rewriting before retrieval."""

from dataclasses import dataclass

from src.app.settings import settings
from src.rag.chat import ChatClient, build_chat_client
from src.rag.errors import ChatCompletionError, QueryRewriteError

_REWRITE_PROMPT = (
    "Rewrite the following user query to be more specific and self-contained. "
    "Add any missing context that would help with document retrieval. "
    "Keep the rewritten query concise and focused. "
    "Return only the rewritten query text."
)


class QueryRewriter:
    """Base class for query rewriters."""
    async def rewrite(self, query: str) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class NoopRewriter(QueryRewriter):
    async def rewrite(self, query: str) -> str:
        return query


@dataclass(frozen=True)
class LLMQueryRewriter(QueryRewriter):
    """Ask a chat model for a self-contained version of the query.

    A blank reply keeps the original query. Transport or protocol failures
    surface as QueryRewriteError so the pipeline can fall back.
    """
    chat: ChatClient

    async def rewrite(self, query: str) -> str:
        if not query.strip():
            return query
        try:
            rewritten = await self.chat.complete(
                [
                    {"role": "system", "content": _REWRITE_PROMPT},
                    {"role": "user", "content": query},
                ]
            )
        except ChatCompletionError as exc:
            raise QueryRewriteError(str(exc)) from exc
        return rewritten or query


def build_rewriter() -> QueryRewriter:
    """Factory for query rewriters based on settings."""
    if not settings.query_rewriter_enabled:
        return NoopRewriter()
    provider = settings.query_rewriter_provider
    model = settings.query_rewriter_model
    try:
        chat = build_chat_client(
            provider,
            openai_api_key=settings.openai_api_key,
            openai_base_url=settings.openai_base_url,
            openai_model=model or settings.openai_chat_model,
            ollama_base_url=settings.ollama_base_url,
            ollama_model=model or settings.ollama_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.query_rewriter_max_tokens,
            timeout=settings.query_rewriter_timeout,
        )
    except ChatCompletionError as exc:
        raise QueryRewriteError(str(exc)) from exc
    return LLMQueryRewriter(chat=chat)
