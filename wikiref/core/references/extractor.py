"""Link extraction and substitution for Confluence references."""

import re
from functools import lru_cache
from typing import Mapping, Optional
from urllib.parse import urlparse

from wikiref.config import CONTENT_MARKER_END, CONTENT_MARKER_START
from wikiref.core.errors import ErrorKind
from wikiref.core.logging import get_logger

_log = get_logger("refs.extractor")

TRAILING_PUNCT = re.compile(r"[.,;:!?)\]}>]+$")

PAGE_ID_PATTERN = re.compile(r"/pages/(\d+)(?:[/?#]|$)")
QUERY_PAGE_ID_PATTERN = re.compile(r"[?&]pageId=(\d+)(?:[&#]|$)")

# Any Confluence-looking URL, used when no base URL is known
CANDIDATE_PATTERN = re.compile(
    r"https?://(?:[^\s/]+\.atlassian\.net/wiki/[^\s]*"
    r"|[^\s/]+/[^\s]*(?:/pages/\d+|viewpage\.action\?[^\s]*pageId=\d+)[^\s]*)",
    re.IGNORECASE,
)

# Characters that may follow a link in running text
_LINK_END = r"(?![^\s.,;:!?)\]}>])"


@lru_cache(maxsize=32)
def _link_pattern(base_url: str) -> Optional[re.Pattern]:
    """Compile the URL pattern scoped to the host (and path) of ``base_url``."""
    parsed = urlparse(base_url.strip())
    host = parsed.netloc
    if not host:
        return None
    path = parsed.path.rstrip("/")
    if parsed.hostname and parsed.hostname.lower().endswith(".atlassian.net") and not path:
        path = "/wiki"
    # A page link always continues past the site root
    return re.compile(
        r"https?://" + re.escape(host) + re.escape(path) + r"[/?#][^\s]*",
        re.IGNORECASE,
    )


@lru_cache(maxsize=8)
def _marker_pattern(marker_start: str, marker_end: str) -> re.Pattern:
    # A span closes at the first end marker not followed by a word character,
    # so addresses like user@example.com inside content do not end it early.
    end = re.escape(marker_end)
    if marker_end[-1:].isalnum() or marker_end[-1:] == "_":
        return re.compile(re.escape(marker_start) + r".*?" + end, re.DOTALL)
    return re.compile(re.escape(marker_start) + r".*?" + end + r"(?!\w)", re.DOTALL)


def split_marked(
    text: str,
    marker_start: str = CONTENT_MARKER_START,
    marker_end: str = CONTENT_MARKER_END,
) -> list[tuple[str, bool]]:
    """Split text into ``(segment, inside_marker)`` pairs, in order."""
    segments: list[tuple[str, bool]] = []
    pos = 0
    for match in _marker_pattern(marker_start, marker_end).finditer(text):
        if match.start() > pos:
            segments.append((text[pos:match.start()], False))
        segments.append((match.group(0), True))
        pos = match.end()
    if pos < len(text):
        segments.append((text[pos:], False))
    return segments


def extract_links(
    text: str,
    base_url: str,
    marker_start: str = CONTENT_MARKER_START,
    marker_end: str = CONTENT_MARKER_END,
) -> list[str]:
    """Extract distinct links to pages under ``base_url``, in first-seen order.

    Trailing punctuation is trimmed. Text already wrapped in a content
    marker is ignored, so running the pipeline over its own output finds
    nothing new.

    Args:
        text: Free-form input text
        base_url: Confluence site URL the links must belong to

    Returns:
        Ordered list of unique links, empty when nothing matches
    """
    if not text or not base_url:
        _log.debug("Extraction skipped", kind=ErrorKind.EXTRACTION_NOOP.value)
        return []

    pattern = _link_pattern(base_url)
    if pattern is None:
        _log.debug("Extraction skipped", kind=ErrorKind.EXTRACTION_NOOP.value, base_url=base_url)
        return []

    links: list[str] = []
    seen: set[str] = set()
    for segment, inside in split_marked(text, marker_start, marker_end):
        if inside:
            continue
        for match in pattern.finditer(segment):
            link = TRAILING_PUNCT.sub("", match.group(0))
            if link and link not in seen:
                seen.add(link)
                links.append(link)

    if not links:
        _log.debug("No links found", kind=ErrorKind.EXTRACTION_NOOP.value, chars=len(text))
    return links


def extract_page_id(link: str) -> Optional[str]:
    """Numeric page id from a Cloud ``/pages/<id>`` or Server ``pageId=<id>`` link."""
    match = PAGE_ID_PATTERN.search(link) or QUERY_PAGE_ID_PATTERN.search(link)
    return match.group(1) if match else None


def count_links(
    text: str,
    base_url: str,
    marker_start: str = CONTENT_MARKER_START,
    marker_end: str = CONTENT_MARKER_END,
) -> int:
    """Number of link occurrences under ``base_url`` outside content markers, repeats included."""
    pattern = _link_pattern(base_url) if text and base_url else None
    if pattern is None:
        return 0
    return sum(
        len(pattern.findall(segment))
        for segment, inside in split_marked(text, marker_start, marker_end)
        if not inside
    )


def count_candidate_links(text: str) -> int:
    if not text:
        return 0
    return len(CANDIDATE_PATTERN.findall(text))


def wrap_content(
    link: str,
    content: str,
    marker_start: str = CONTENT_MARKER_START,
    marker_end: str = CONTENT_MARKER_END,
) -> str:
    """Wrap sanitized page content in the content marker.

    Empty content leaves the link itself as the replacement. End markers
    inside the content that would close the span early are dropped.
    """
    content = content.strip()
    if not content:
        return link
    end = re.escape(marker_end)
    if not (marker_end[-1:].isalnum() or marker_end[-1:] == "_"):
        end += r"(?!\w)"
    content = re.sub(end, "", content).strip()
    if not content:
        return link
    return f"{marker_start}{content}{marker_end}"


def substitute_links(
    text: str,
    replacements: Mapping[str, str],
    marker_start: str = CONTENT_MARKER_START,
    marker_end: str = CONTENT_MARKER_END,
) -> str:
    """Replace every occurrence of every mapped link in a single pass.

    Longer links win over links that are their prefix. Existing marker
    spans, and the replacement text itself, are never rescanned.
    """
    if not text or not replacements:
        return text

    keys = sorted(replacements, key=len, reverse=True)
    pattern = re.compile("(?:" + "|".join(re.escape(k) for k in keys) + ")" + _LINK_END)

    parts = []
    for segment, inside in split_marked(text, marker_start, marker_end):
        if inside:
            parts.append(segment)
        else:
            parts.append(pattern.sub(lambda m: replacements[m.group(0)], segment))
    return "".join(parts)
