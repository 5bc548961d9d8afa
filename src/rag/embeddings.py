from __future__ import annotations

"""Embedding providers and vector validation."""

import hashlib
import math
import re
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

from openai import AsyncOpenAI, OpenAIError

from src.rag.errors import EmbeddingConfigError, EmbeddingUnavailable, InvalidEmbedding

_WORD_RE = re.compile(r"[a-z0-9]+")

# Native output sizes; the v3 models also accept a smaller ``dimensions``.
_OPENAI_NATIVE_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}
_OPENAI_SHORTENABLE = {"text-embedding-3-small", "text-embedding-3-large"}


class EmbeddingProvider(Protocol):
    """Turns text into a fixed-size vector."""
    dimension: int

    async def embed(self, text: str) -> list[float]:
        raise NotImplementedError


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_vector(vector: Sequence[float] | None, dimension: int) -> list[float]:
    """Return ``vector`` as a list of floats or raise InvalidEmbedding.

    Rejects missing or empty vectors, a length other than ``dimension``,
    booleans and other non-numbers, NaN and infinities.
    """
    if not vector:
        raise InvalidEmbedding("Embedding vector is missing or empty")
    size = len(vector)
    if size != dimension:
        raise InvalidEmbedding(f"Embedding has {size} values, index expects {dimension}")
    if not all(_is_number(value) for value in vector):
        raise InvalidEmbedding("Embedding contains a non-numeric value")
    values = [float(value) for value in vector]
    if not all(math.isfinite(value) for value in values):
        raise InvalidEmbedding("Embedding contains NaN or infinity")
    return values


@dataclass
class HashEmbedder:
    """Offline signed feature-hashing embedder.

    Each lower-cased alphanumeric word adds +1 or -1 to one bucket, both
    picked from a blake2b digest of the word. The result is L2-normalized, so
    texts sharing words land close together under cosine similarity.
    """
    dimension: int = 256

    def _bucket(self, word: str) -> tuple[int, float]:
        digest = int.from_bytes(hashlib.blake2b(word.encode("utf-8"), digest_size=8).digest(), "big")
        sign = -1.0 if digest >> 63 else 1.0
        return digest % self.dimension, sign

    async def embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for word in _WORD_RE.findall(text.lower()):
            index, sign = self._bucket(word)
            vector[index] += sign
        norm = math.sqrt(sum(value * value for value in vector))
        if norm:
            vector = [value / norm for value in vector]
        return validate_vector(vector, self.dimension)


def resolve_openai_dimension(model: str) -> int | None:
    """Return the native dimension of a known OpenAI embedding model."""
    return _OPENAI_NATIVE_DIMENSIONS.get(model)


@dataclass
class OpenAIEmbedder:
    """Embedding provider using the OpenAI embeddings API.

    ``dimension <= 0`` means the model's native size. A smaller size is
    requested through the ``dimensions`` parameter on the v3 models.
    """
    api_key: str
    model: str
    dimension: int
    timeout: float = 30.0
    client: Any = field(init=False, repr=False)
    _request_dimensions: int | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.api_key:
            raise EmbeddingConfigError("OPENAI_API_KEY is required for OpenAI embeddings")
        if not self.model:
            raise EmbeddingConfigError("OPENAI_EMBEDDING_MODEL is required for OpenAI embeddings")
        native = resolve_openai_dimension(self.model)
        if self.dimension <= 0:
            if native is None:
                raise EmbeddingConfigError(
                    f"EMBEDDING_DIMENSION must be set for unknown model {self.model}"
                )
            self.dimension = native
        elif native is not None and self.dimension != native:
            if self.model not in _OPENAI_SHORTENABLE or self.dimension > native:
                raise EmbeddingConfigError(
                    f"{self.model} produces {native}-dimensional vectors, "
                    f"EMBEDDING_DIMENSION is {self.dimension}"
                )
            self._request_dimensions = self.dimension
        self.client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout)

    async def embed(self, text: str) -> list[float]:
        options: dict[str, Any] = {"model": self.model, "input": text}
        if self._request_dimensions is not None:
            options["dimensions"] = self._request_dimensions
        try:
            response = await self.client.embeddings.create(**options)
        except OpenAIError as exc:
            raise EmbeddingUnavailable(f"OpenAI embeddings request failed: {exc}") from exc
        if not response.data:
            raise InvalidEmbedding("OpenAI embedding response contained no vectors")
        return validate_vector(response.data[0].embedding, self.dimension)
