import os
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from wikiref.core.errors import ValidationError
from wikiref.core.logging import get_logger

_log = get_logger("core.config")

load_dotenv()


def _get_int_env(name: str, default: int) -> int:
    """Get integer value from environment variable.

    Args:
        name: Environment variable name
        default: Default value if not set or invalid

    Returns:
        Integer value from env or default
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        _log.warning("Invalid int env", env=name, value=raw)
        return default


def _get_float_env(name: str, default: float) -> float:
    """Get float value from environment variable.

    Args:
        name: Environment variable name
        default: Default value if not set or invalid

    Returns:
        Float value from env or default
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        _log.warning("Invalid float env", env=name, value=raw)
        return default


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# Confluence connection
# =============================================================================
CONFLUENCE_BASE_URL = os.getenv("CONFLUENCE_BASE_URL", "")
CONFLUENCE_EMAIL = os.getenv("CONFLUENCE_EMAIL", "")
CONFLUENCE_API_TOKEN = os.getenv("CONFLUENCE_API_TOKEN", "")
CONFLUENCE_ENABLED = _get_bool_env("CONFLUENCE_ENABLED", True)
CONFLUENCE_MAX_RETRIES = _get_int_env("CONFLUENCE_MAX_RETRIES", 3)
CONFLUENCE_RETRY_BASE_DELAY = _get_float_env("CONFLUENCE_RETRY_BASE_DELAY", 0.5)
CONFLUENCE_USER_AGENT = os.getenv("CONFLUENCE_USER_AGENT", "wikiref/0.3")

# =============================================================================
# Cache
# =============================================================================
CACHE_TTL_SECONDS = _get_float_env("WIKIREF_CACHE_TTL", 30 * 60)
CACHE_MAX_ENTRIES = _get_int_env("WIKIREF_CACHE_MAX_ENTRIES", 200)
CACHE_MAX_BYTES = int(_get_float_env("WIKIREF_CACHE_MAX_MB", 50) * 1024 * 1024)
CACHE_ENTRY_RATIO = _get_float_env("WIKIREF_CACHE_ENTRY_RATIO", 0.1)
CACHE_SIZE_MULTIPLIER = _get_float_env("WIKIREF_SIZE_MULTIPLIER", 2.0)
CACHE_SIZE_OVERHEAD = _get_int_env("WIKIREF_SIZE_OVERHEAD", 64)

# =============================================================================
# Resolution
# =============================================================================
MAX_CONCURRENT_FETCHES = _get_int_env("WIKIREF_MAX_CONCURRENT", 3)
MAX_CONTENT_CHARS = _get_int_env("WIKIREF_MAX_CONTENT_CHARS", 50_000)
SANITIZE_FORMAT = os.getenv("WIKIREF_SANITIZE_FORMAT", "text").lower()
CONTENT_MARKER_START = os.getenv("WIKIREF_MARKER_START", "@conf-cnt ")
CONTENT_MARKER_END = os.getenv("WIKIREF_MARKER_END", "@")

# =============================================================================
# Debounce
# =============================================================================
DEBOUNCE_FAST = _get_float_env("WIKIREF_DEBOUNCE_FAST", 0.2)
DEBOUNCE_SLOW = _get_float_env("WIKIREF_DEBOUNCE_SLOW", 1.0)
DEBOUNCE_SHORT_TEXT = _get_int_env("WIKIREF_DEBOUNCE_SHORT_TEXT", 100)
DEBOUNCE_LONG_TEXT = _get_int_env("WIKIREF_DEBOUNCE_LONG_TEXT", 1000)
DEBOUNCE_LINK_THRESHOLD = _get_int_env("WIKIREF_DEBOUNCE_LINK_THRESHOLD", 3)
DEBOUNCE_LINK_MULTIPLIER = _get_float_env("WIKIREF_DEBOUNCE_LINK_MULTIPLIER", 1.5)
DEBOUNCE_COMPLEXITY_THRESHOLD = _get_float_env("WIKIREF_DEBOUNCE_COMPLEXITY_THRESHOLD", 0.7)
DEBOUNCE_COMPLEXITY_MULTIPLIER = _get_float_env("WIKIREF_DEBOUNCE_COMPLEXITY_MULTIPLIER", 1.3)

# =============================================================================
# Maintenance
# =============================================================================
SWEEP_INTERVAL_SECONDS = _get_float_env("WIKIREF_SWEEP_INTERVAL", 10 * 60)


_API_SUFFIX = "/wiki/rest/api"


@dataclass(frozen=True)
class ConfluenceConfig:
    """Connection settings for a Confluence site."""

    base_url: str
    email: str = ""
    token: str = field(default="", repr=False)
    enabled: bool = True

    @classmethod
    def from_env(cls) -> "ConfluenceConfig":
        return cls(
            base_url=CONFLUENCE_BASE_URL,
            email=CONFLUENCE_EMAIL,
            token=CONFLUENCE_API_TOKEN,
            enabled=CONFLUENCE_ENABLED,
        )

    @property
    def sanitized_base_url(self) -> str:
        """Base URL without trailing slashes or a trailing /wiki/rest/api."""
        url = self.base_url.strip().rstrip("/")
        if url.endswith(_API_SUFFIX):
            url = url[: -len(_API_SUFFIX)]
        return url

    @property
    def api_base_url(self) -> str:
        """REST root: /wiki/rest/api on Cloud, /rest/api on Server/DC."""
        base = self.sanitized_base_url
        parsed = urlparse(base)
        host = parsed.hostname or ""
        if host.endswith(".atlassian.net"):
            segments = [s for s in parsed.path.split("/") if s]
            return f"{base}/rest/api" if "wiki" in segments else f"{base}/wiki/rest/api"
        return f"{base}/rest/api"

    @property
    def is_complete(self) -> bool:
        return bool(self.enabled and self.sanitized_base_url and self.email and self.token)


@dataclass
class PipelineSettings:
    """Tunables for one ReferencePipeline instance."""

    cache_ttl: float = CACHE_TTL_SECONDS
    max_entries: int = CACHE_MAX_ENTRIES
    max_bytes: int = CACHE_MAX_BYTES
    entry_ceiling_ratio: float = CACHE_ENTRY_RATIO
    size_multiplier: float = CACHE_SIZE_MULTIPLIER
    size_overhead: int = CACHE_SIZE_OVERHEAD

    max_concurrent: int = MAX_CONCURRENT_FETCHES
    max_content_chars: int = MAX_CONTENT_CHARS
    sanitize_format: str = SANITIZE_FORMAT
    marker_start: str = CONTENT_MARKER_START
    marker_end: str = CONTENT_MARKER_END

    debounce_fast: float = DEBOUNCE_FAST
    debounce_slow: float = DEBOUNCE_SLOW
    short_text_threshold: int = DEBOUNCE_SHORT_TEXT
    long_text_threshold: int = DEBOUNCE_LONG_TEXT
    link_count_threshold: int = DEBOUNCE_LINK_THRESHOLD
    link_multiplier: float = DEBOUNCE_LINK_MULTIPLIER
    complexity_threshold: float = DEBOUNCE_COMPLEXITY_THRESHOLD
    complexity_multiplier: float = DEBOUNCE_COMPLEXITY_MULTIPLIER

    sweep_interval: float = SWEEP_INTERVAL_SECONDS

    @classmethod
    def from_env(cls, **overrides) -> "PipelineSettings":
        """Settings from the environment, with keyword overrides."""
        return cls(**overrides)

    def __post_init__(self) -> None:
        if self.max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if self.max_bytes < 1:
            raise ValueError("max_bytes must be >= 1")
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        if self.debounce_fast > self.debounce_slow:
            raise ValueError("debounce_fast must not exceed debounce_slow")
        if self.short_text_threshold >= self.long_text_threshold:
            raise ValueError("short_text_threshold must be below long_text_threshold")
        if self.sanitize_format not in ("text", "markdown"):
            raise ValueError(f"Unknown sanitize_format: {self.sanitize_format}")
        if not 0 < self.entry_ceiling_ratio <= 1:
            raise ValueError("entry_ceiling_ratio must be in (0, 1]")
        if not self.marker_start or not self.marker_end:
            raise ValueError("marker_start and marker_end must not be empty")


@dataclass(frozen=True)
class ResolveConfig:
    """Per-call options for ReferencePipeline.resolve_text."""

    base_url: str
    debounce: bool = True
    batching: bool = True
    caching: bool = True

    @classmethod
    def from_confluence(cls, config: ConfluenceConfig, **options: bool) -> "ResolveConfig":
        return cls(base_url=config.sanitized_base_url, **options)


def load_confluence_config(required: bool = True) -> Optional[ConfluenceConfig]:
    """Read the Confluence connection from the environment.

    Returns None when the configuration is incomplete and ``required`` is False.
    """
    config = ConfluenceConfig.from_env()
    if not config.is_complete:
        if required:
            raise ValidationError(
                "Confluence is not configured: set CONFLUENCE_BASE_URL, "
                "CONFLUENCE_EMAIL and CONFLUENCE_API_TOKEN",
                field="confluence",
            )
        _log.debug("Confluence config incomplete", base_url=config.sanitized_base_url)
        return None
    return config
