from .client import (
    ConfluenceContentSource,
    error_from_response,
    extract_error_message,
    parse_retry_after,
)
from .html_processor import HtmlSanitizer, clean_html, html_to_markdown, html_to_text

__all__ = [
    "ConfluenceContentSource",
    "error_from_response",
    "extract_error_message",
    "parse_retry_after",
    "HtmlSanitizer",
    "clean_html",
    "html_to_markdown",
    "html_to_text",
]
