from __future__ import annotations

"""Single-turn chat completion clients shared by answering and rewriting."""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from src.rag.errors import ChatCompletionError

logger = logging.getLogger(__name__)

Message = dict[str, str]


class ChatClient(Protocol):
    """Anything that turns a message list into one reply string."""
    model: str

    async def complete(self, messages: list[Message]) -> str:
        """Return the assistant reply, possibly empty."""
        raise NotImplementedError


async def _post_json(
    url: str,
    payload: dict[str, Any],
    timeout: float,
    transport: httpx.AsyncBaseTransport | None,
    headers: dict[str, str] | None = None,
) -> dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise ChatCompletionError(f"{url}: {exc}") from exc
    if not isinstance(data, dict):
        raise ChatCompletionError(f"{url}: response body is not an object")
    return data


def _require_text(content: Any, source: str) -> str:
    if not isinstance(content, str):
        raise ChatCompletionError(f"{source} response has no message content")
    return content.strip()


@dataclass(frozen=True)
class OpenAIChatClient:
    """Client for OpenAI-compatible ``/chat/completions`` endpoints."""
    api_key: str
    base_url: str
    model: str
    temperature: float
    max_tokens: int
    timeout: float
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    async def complete(self, messages: list[Message]) -> str:
        data = await _post_json(
            f"{self.base_url}/chat/completions",
            {
                "model": self.model,
                "messages": messages,
                "temperature": self.temperature,
                "max_tokens": self.max_tokens,
            },
            self.timeout,
            self.transport,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        choices = data.get("choices") or []
        if not choices:
            raise ChatCompletionError("OpenAI response has no choices")
        message = choices[0].get("message") or {}
        return _require_text(message.get("content"), "OpenAI")


@dataclass(frozen=True)
class OllamaChatClient:
    """Client for the Ollama ``/api/chat`` endpoint with streaming disabled."""
    base_url: str
    model: str
    temperature: float
    max_tokens: int
    timeout: float
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    async def complete(self, messages: list[Message]) -> str:
        data = await _post_json(
            f"{self.base_url}/api/chat",
            {
                "model": self.model,
                "messages": messages,
                "stream": False,
                "options": {
                    "temperature": self.temperature,
                    "num_predict": self.max_tokens,
                },
            },
            self.timeout,
            self.transport,
        )
        message = data.get("message") or {}
        return _require_text(message.get("content"), "Ollama")


def build_chat_client(
    provider: str,
    *,
    openai_api_key: str | None,
    openai_base_url: str,
    openai_model: str | None,
    ollama_base_url: str,
    ollama_model: str,
    temperature: float,
    max_tokens: int,
    timeout: float,
) -> OpenAIChatClient | OllamaChatClient:
    """Pick a chat backend; anything other than ``openai`` means Ollama."""
    normalized = provider.strip().lower()
    if normalized == "openai":
        if not openai_api_key:
            raise ChatCompletionError("OPENAI_API_KEY is required for the OpenAI provider")
        if not openai_model:
            raise ChatCompletionError("OPENAI_CHAT_MODEL is required for the OpenAI provider")
        client: OpenAIChatClient | OllamaChatClient = OpenAIChatClient(
            api_key=openai_api_key,
            base_url=openai_base_url.rstrip("/"),
            model=openai_model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    else:
        client = OllamaChatClient(
            base_url=ollama_base_url.rstrip("/"),
            model=ollama_model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
    logger.info(
        "chat_client_selected",
        extra={"provider": "openai" if normalized == "openai" else "ollama", "model": client.model},
    )
    return client
