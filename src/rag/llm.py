from __future__ import annotations

"""LLM answer generation grounded in retrieved documents."""

from dataclasses import dataclass
from typing import Protocol, Sequence

from src.rag.chat import ChatClient, build_chat_client
from src.rag.errors import ChatCompletionError, GenerationFailed
from src.rag.types import Document

_SYSTEM_PROMPT = (
    "You are a financial services assistant specializing in Fixed Deposits, "
    "Unlisted Shares and Listed Bonds. "
    "Use ONLY the information provided in the context to answer the question. "
    "If the context doesn't contain enough information to answer confidently, say so. "
    "If numbers or specific details are mentioned in the context, use them exactly as stated."
)


class AnswerGenerator(Protocol):
    """Protocol for answer generators."""

    async def generate(self, query: str, documents: Sequence[Document]) -> str:
        """Return answer text grounded in the provided documents."""
        raise NotImplementedError


def base_system_prompt() -> str:
    return _SYSTEM_PROMPT


def build_context_block(documents: Sequence[Document], max_chars: int) -> str:
    """Join type-tagged document contents in rank order, capped at ``max_chars``."""
    context = "\n\n".join(
        f"[{document.doc_type.value}] {document.content.strip()}" for document in documents
    )
    if max_chars > 0 and len(context) > max_chars:
        return context[:max_chars]
    return context


def build_user_prompt(query: str, documents: Sequence[Document], max_chars: int) -> str:
    context_block = build_context_block(documents, max_chars)
    return (
        "Context:\n"
        "---------------------\n"
        f"{context_block}\n"
        "---------------------\n\n"
        f"Current Question: {query}\n\n"
        "Answer:"
    )


@dataclass(frozen=True)
class LLMAnswerer:
    """Answer from the context block with one chat completion call."""
    chat: ChatClient
    context_max_chars: int = 4000
    system_prompt: str = _SYSTEM_PROMPT

    async def generate(self, query: str, documents: Sequence[Document]) -> str:
        messages = [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": build_user_prompt(query, documents, self.context_max_chars)},
        ]
        try:
            answer = await self.chat.complete(messages)
        except ChatCompletionError as exc:
            raise GenerationFailed(f"LLM call failed: {exc}") from exc
        if not answer:
            raise GenerationFailed(f"LLM {self.chat.model} returned an empty answer")
        return answer


def build_llm_answerer(
    provider: str,
    *,
    api_key_openai: str | None,
    openai_base_url: str,
    openai_model: str | None,
    ollama_base_url: str,
    ollama_model: str,
    temperature: float,
    max_tokens: int,
    timeout: float,
    context_max_chars: int,
    system_prompt: str | None = None,
) -> LLMAnswerer:
    """Factory for LLM answerers based on provider."""
    try:
        chat = build_chat_client(
            provider,
            openai_api_key=api_key_openai,
            openai_base_url=openai_base_url,
            openai_model=openai_model,
            ollama_base_url=ollama_base_url,
            ollama_model=ollama_model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    except ChatCompletionError as exc:
        raise GenerationFailed(str(exc)) from exc
    return LLMAnswerer(
        chat=chat,
        context_max_chars=context_max_chars,
        system_prompt=system_prompt or _SYSTEM_PROMPT,
    )
