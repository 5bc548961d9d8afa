from __future__ import annotations

"""PDF text extraction and cleanup."""

import re

import fitz


class PDFLoaderError(RuntimeError):
    """Raised when PDF loading fails."""
    pass


_WHITESPACE_RE = re.compile(r"[ \t\f\v]+")


def _clean_pdf_text(text: str) -> str:
    """Rejoin hyphenated line breaks and collapse runs of spaces."""
    if not text:
        return ""
    cleaned = text.replace("\r\n", "\n")
    cleaned = re.sub(r"(\w)-\n(\w)", r"\1\2", cleaned)
    cleaned = _WHITESPACE_RE.sub(" ", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


def load_pdf_bytes(data: bytes) -> str:
    """Extract text from PDF bytes, page by page."""
    try:
        reader = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:
        raise PDFLoaderError(f"Unable to open PDF: {exc}") from exc
    try:
        text_parts = [page.get_text() or "" for page in reader]
    finally:
        reader.close()
    return _clean_pdf_text("\n\n".join(text_parts))
