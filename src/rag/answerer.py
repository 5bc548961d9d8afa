from __future__ import annotations

"""Offline extractive answerer used when no LLM is configured."""

from dataclasses import dataclass
from typing import Sequence

from src.rag.types import Document

DEFAULT_REFUSAL = "I don't have enough information to answer that based on the available documents."


@dataclass
class ExtractiveAnswerer:
    """Return a short extract from the highest ranked document."""
    max_chars: int = 480

    async def generate(self, query: str, documents: Sequence[Document]) -> str:
        """Generate an extractive answer from the top document."""
        for document in documents:
            text = document.content.strip()
            if text:
                return f"Based on the provided context: {self._truncate(text)}"
        return DEFAULT_REFUSAL

    def _truncate(self, text: str) -> str:
        """Trim text to the max character budget without cutting words."""
        if len(text) <= self.max_chars:
            return text
        return text[: self.max_chars].rsplit(" ", 1)[0] + "..."
