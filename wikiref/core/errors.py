"""
Error kinds and typed exceptions for reference resolution.

ErrorKind classifies every outcome the pipeline logs about, including the
non-error policy outcomes (empty extraction, degraded sanitizing, oversized
cache entries). The WikiRefError hierarchy is what collaborators raise;
the resolver converts those into tagged outcomes before anything reaches
the cache or the in-flight registry.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

import httpx


class ErrorKind(str, Enum):
    """Classified outcome kinds used in logs, results and negative cache entries."""

    EXTRACTION_NOOP = "extraction_noop"
    FETCH_AUTH = "fetch_auth"
    FETCH_RATE_LIMIT = "fetch_rate_limit"
    FETCH_NOT_FOUND = "fetch_not_found"
    FETCH_NETWORK = "fetch_network"
    FETCH_SERVER = "fetch_server"
    FETCH_MALFORMED_LINK = "fetch_malformed_link"
    SANITIZE_DEGRADED = "sanitize_degraded"
    CACHE_OVERSIZED = "cache_oversized"


FETCH_KINDS = {
    ErrorKind.FETCH_AUTH,
    ErrorKind.FETCH_RATE_LIMIT,
    ErrorKind.FETCH_NOT_FOUND,
    ErrorKind.FETCH_NETWORK,
    ErrorKind.FETCH_SERVER,
    ErrorKind.FETCH_MALFORMED_LINK,
}

# Kinds the content source may retry on its own
RETRYABLE_KINDS = {
    ErrorKind.FETCH_RATE_LIMIT,
    ErrorKind.FETCH_NETWORK,
    ErrorKind.FETCH_SERVER,
}


class WikiRefError(Exception, ABC):
    """Abstract base for all typed application errors."""

    @abstractmethod
    def _abstract_guard(self) -> None: ...

    @property
    @abstractmethod
    def is_retryable(self) -> bool: ...

    @property
    @abstractmethod
    def http_status(self) -> int: ...

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        request_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper().replace("ERROR", "").strip("_") or type(self).__name__
        self.timestamp = time.time()
        self.request_id = request_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "is_retryable": self.is_retryable,
            "http_status": self.http_status,
            "timestamp": self.timestamp,
            "request_id": self.request_id,
        }


class ValidationError(WikiRefError):
    """Structurally invalid call: missing configuration, wrong argument types."""

    is_retryable: bool = False
    http_status: int = 400

    def _abstract_guard(self) -> None: ...

    def __init__(
        self, message: str, *, code: str = "VALIDATION", field: str | None = None, **kw: Any
    ) -> None:
        super().__init__(message, code=code, **kw)
        self.field = field


class FetchError(WikiRefError):
    """Base for Content Source failures. Subclasses pin the kind."""

    kind: ErrorKind = ErrorKind.FETCH_SERVER
    is_retryable: bool = False
    http_status: int = 502

    def _abstract_guard(self) -> None: ...

    def __init__(
        self,
        message: str,
        *,
        page_id: str | None = None,
        status_code: int | None = None,
        code: str = "",
        **kw: Any,
    ) -> None:
        super().__init__(message, code=code or self.kind.value.upper(), **kw)
        self.page_id = page_id
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kind"] = self.kind.value
        data["page_id"] = self.page_id
        data["status_code"] = self.status_code
        return data


class FetchAuthError(FetchError):
    kind = ErrorKind.FETCH_AUTH
    is_retryable = False
    http_status = 401


class FetchRateLimitError(FetchError):
    kind = ErrorKind.FETCH_RATE_LIMIT
    is_retryable = True
    http_status = 429

    def __init__(self, message: str, *, retry_after: Optional[float] = None, **kw: Any) -> None:
        super().__init__(message, **kw)
        self.retry_after = retry_after


class FetchNotFoundError(FetchError):
    kind = ErrorKind.FETCH_NOT_FOUND
    is_retryable = False
    http_status = 404


class FetchNetworkError(FetchError):
    kind = ErrorKind.FETCH_NETWORK
    is_retryable = True
    http_status = 503


class FetchServerError(FetchError):
    kind = ErrorKind.FETCH_SERVER
    is_retryable = True
    http_status = 502


class MalformedLinkError(FetchError):
    kind = ErrorKind.FETCH_MALFORMED_LINK
    is_retryable = False
    http_status = 400


class DebounceCancelled(Exception):
    """Raised to a caller whose debounce ticket was superseded or cancelled."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Debounced call cancelled: {key}")
        self.key = key


def classify_exception(error: BaseException) -> ErrorKind:
    """Map an arbitrary exception raised by a content source to an ErrorKind."""
    if isinstance(error, FetchError):
        return error.kind
    if isinstance(error, httpx.HTTPStatusError):
        return classify_status(error.response.status_code)
    if isinstance(error, (httpx.TransportError, asyncio.TimeoutError, TimeoutError, OSError)):
        return ErrorKind.FETCH_NETWORK
    return ErrorKind.FETCH_SERVER


def classify_status(status_code: int) -> ErrorKind:
    """Map an HTTP status code to a fetch ErrorKind."""
    if status_code in (401, 403):
        return ErrorKind.FETCH_AUTH
    if status_code == 404:
        return ErrorKind.FETCH_NOT_FOUND
    if status_code == 429:
        return ErrorKind.FETCH_RATE_LIMIT
    if status_code == 408:
        return ErrorKind.FETCH_NETWORK
    return ErrorKind.FETCH_SERVER


_KIND_TO_ERROR: dict[ErrorKind, type[FetchError]] = {
    ErrorKind.FETCH_AUTH: FetchAuthError,
    ErrorKind.FETCH_RATE_LIMIT: FetchRateLimitError,
    ErrorKind.FETCH_NOT_FOUND: FetchNotFoundError,
    ErrorKind.FETCH_NETWORK: FetchNetworkError,
    ErrorKind.FETCH_SERVER: FetchServerError,
    ErrorKind.FETCH_MALFORMED_LINK: MalformedLinkError,
}


def error_for_kind(kind: ErrorKind) -> type[FetchError]:
    """Return the FetchError subclass raised for a fetch kind."""
    try:
        return _KIND_TO_ERROR[kind]
    except KeyError:
        raise ValueError(f"Not a fetch error kind: {kind}") from None
