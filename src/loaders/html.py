from __future__ import annotations

"""HTML loader that keeps visible body text."""

from html.parser import HTMLParser

_SKIP_TAGS = {"script", "style", "noscript", "template", "head"}
_BLOCK_TAGS = {
    "p", "div", "section", "article", "li", "ul", "ol", "tr", "table",
    "h1", "h2", "h3", "h4", "h5", "h6", "br", "hr", "header", "footer",
}


class HTMLLoaderError(RuntimeError):
    """Raised when HTML loading fails."""
    pass


class _TextExtractor(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs) -> None:
        if tag in _SKIP_TAGS:
            self._skip_depth += 1
        elif tag in _BLOCK_TAGS:
            self.parts.append("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag in _SKIP_TAGS and self._skip_depth:
            self._skip_depth -= 1
        elif tag in _BLOCK_TAGS:
            self.parts.append("\n")

    def handle_data(self, data: str) -> None:
        if not self._skip_depth:
            self.parts.append(data)


def load_html_bytes(data: bytes) -> str:
    """Extract visible text from HTML, dropping script and style content."""
    parser = _TextExtractor()
    try:
        parser.feed(data.decode("utf-8", errors="ignore"))
        parser.close()
    except AssertionError as exc:
        raise HTMLLoaderError(f"Unable to parse HTML: {exc}") from exc
    lines = [" ".join(line.split()) for line in "".join(parser.parts).splitlines()]
    return "\n".join(line for line in lines if line)
