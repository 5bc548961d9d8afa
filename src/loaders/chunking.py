from __future__ import annotations

"""Text normalization and overlapping character chunking."""

import re

_WHITESPACE_RE = re.compile(r"\s+")
_SEPARATORS = ("\n\n", "\n", ". ", " ")


def normalize_text(text: str) -> str:
    """Normalize whitespace and line endings in text."""
    return _WHITESPACE_RE.sub(" ", text.replace("\r\n", "\n")).strip()


def _find_break(text: str, start: int, end: int) -> int:
    """Move ``end`` back to the strongest separator in the window's second half."""
    floor = start + (end - start) // 2
    for separator in _SEPARATORS:
        idx = text.rfind(separator, floor, end)
        if idx != -1:
            return idx + len(separator)
    return end


def chunk_text(
    text: str,
    max_chars: int = 1000,
    overlap: int = 200,
    min_length: int = 0,
) -> list[str]:
    """Split text into overlapping chunks, preferring paragraph and word breaks.

    Chunks shorter than ``min_length`` after normalization are dropped.
    """
    cleaned = text.replace("\r\n", "\n").strip()
    if not cleaned:
        return []
    if max_chars <= 0:
        single = normalize_text(cleaned)
        return [single] if len(single) >= min_length else []
    if overlap >= max_chars:
        overlap = max(0, max_chars // 4)

    chunks: list[str] = []
    start = 0
    length = len(cleaned)
    while start < length:
        end = min(length, start + max_chars)
        if end < length:
            end = _find_break(cleaned, start, end)
        chunk = normalize_text(cleaned[start:end])
        if chunk and len(chunk) >= min_length:
            chunks.append(chunk)
        if end >= length:
            break
        next_start = max(end - overlap, start + 1)
        # Start overlaps on a word boundary.
        space = cleaned.find(" ", next_start, end)
        if next_start > 0 and not cleaned[next_start - 1].isspace() and space != -1:
            next_start = space + 1
        start = next_start
    return chunks
