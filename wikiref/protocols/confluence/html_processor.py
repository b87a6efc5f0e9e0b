"""Confluence storage-format cleanup and text/markdown conversion."""

import re
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Comment

from wikiref.config import MAX_CONTENT_CHARS, SANITIZE_FORMAT
from wikiref.core.errors import ErrorKind
from wikiref.core.logging import get_logger

_log = get_logger("confluence.html")

EXCLUDED_TAGS = [
    "script", "style", "noscript", "iframe", "svg", "meta", "link",
    "object", "embed", "form", "button", "input",
    # Confluence macro plumbing that carries no page text
    "ac:parameter", "ac:placeholder", "ri:attachment", "ri:user",
]

BLOCK_TAGS = [
    "p", "div", "li", "tr", "table", "ul", "ol", "pre", "blockquote",
    "h1", "h2", "h3", "h4", "h5", "h6", "ac:structured-macro", "ac:task",
]

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
TRUNCATION_NOTE = "\n\n[Content truncated due to length...]"


def clean_html(html: str) -> BeautifulSoup:
    """Parse and strip comments, scripts, hidden and non-content elements."""
    soup = BeautifulSoup(html, "html.parser")

    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        comment.extract()

    for tag in EXCLUDED_TAGS:
        for element in soup.find_all(tag):
            element.decompose()

    for element in soup.find_all(style=re.compile(r"display:\s*none", re.I)):
        element.decompose()

    return soup


def normalize_text(text: str) -> str:
    text = CONTROL_CHARS.sub("", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\xa0", " ")
    lines = [re.sub(r"[ \t\f\v]+", " ", line).strip() for line in text.split("\n")]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def truncate(text: str, max_chars: int) -> str:
    if max_chars > 0 and len(text) > max_chars:
        return text[:max_chars].rstrip() + TRUNCATION_NOTE
    return text


def html_to_text(html: str, max_chars: int = MAX_CONTENT_CHARS) -> str:
    """Convert storage-format XHTML to plain text.

    Entities are decoded by the parser; block elements become line breaks.

    Args:
        html: Raw page body
        max_chars: Bound on the returned text, 0 for unbounded

    Returns:
        Normalized plain text, truncated with a note when too long
    """
    if not html:
        return ""

    soup = clean_html(html)
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for tag in BLOCK_TAGS:
        for element in soup.find_all(tag):
            element.insert_after("\n")

    return truncate(normalize_text(soup.get_text()), max_chars)


def html_to_markdown(html: str, base_url: str = "", max_chars: int = MAX_CONTENT_CHARS) -> str:
    """Convert storage-format XHTML to markdown, resolving relative links against base_url."""
    if not html:
        return ""

    from markdownify import MarkdownConverter

    cleaned_html = str(clean_html(html))

    class _Converter(MarkdownConverter):
        def convert_a(self, el, text, *args, **kwargs):
            href = el.get("href", "")
            if href and base_url and not href.startswith(("http://", "https://", "mailto:", "#")):
                href = urljoin(base_url + "/", href.lstrip("/"))
            if not text.strip():
                return ""
            return f"[{text}]({href})" if href else text

        def convert_img(self, el, text, *args, **kwargs):
            return ""

    markdown = _Converter(heading_style="ATX", bullets="-").convert(cleaned_html)
    markdown = CONTROL_CHARS.sub("", markdown)
    markdown = re.sub(r"\n{3,}", "\n\n", markdown)
    markdown = re.sub(r" {2,}", " ", markdown)
    return truncate(markdown.strip(), max_chars)


class HtmlSanitizer:
    """Sanitizer used by the resolver. Never raises: on failure the input is returned."""

    def __init__(
        self,
        output_format: str = SANITIZE_FORMAT,
        max_chars: int = MAX_CONTENT_CHARS,
        base_url: Optional[str] = None,
    ):
        if output_format not in ("text", "markdown"):
            raise ValueError(f"Unknown output format: {output_format}")
        self.output_format = output_format
        self.max_chars = max_chars
        self.base_url = base_url or ""
        self.degraded = 0

    def sanitize(self, raw: str) -> str:
        if not raw:
            return ""
        try:
            if self.output_format == "markdown":
                return html_to_markdown(raw, self.base_url, self.max_chars)
            return html_to_text(raw, self.max_chars)
        except Exception as e:
            self.degraded += 1
            _log.warning(
                "Sanitize degraded",
                kind=ErrorKind.SANITIZE_DEGRADED.value,
                chars=len(raw),
                error=str(e)[:200],
            )
            return raw
