"""Confluence REST API content source."""

from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from wikiref.config import (
    CONFLUENCE_MAX_RETRIES,
    CONFLUENCE_RETRY_BASE_DELAY,
    CONFLUENCE_USER_AGENT,
    ConfluenceConfig,
)
from wikiref.core.errors import (
    ErrorKind,
    FetchAuthError,
    FetchError,
    FetchNetworkError,
    FetchNotFoundError,
    FetchRateLimitError,
    FetchServerError,
    MalformedLinkError,
    ValidationError,
    classify_status,
)
from wikiref.core.logging import get_logger
from wikiref.core.resilience import CircuitBreaker
from wikiref.core.utils.http_pool import close_client, get_client
from wikiref.core.utils.retry import DEFAULT_RATE_LIMIT_WAIT, RetryConfig, retry_async
from wikiref.core.utils.timeouts import TIMEOUTS

_log = get_logger("confluence.client")

# Failures that say something about the health of the site
_BREAKER_KINDS = {ErrorKind.FETCH_NETWORK, ErrorKind.FETCH_SERVER}


def parse_retry_after(value: Optional[str]) -> float:
    """Seconds from a Retry-After header; 60 when absent or not an integer."""
    if value:
        try:
            return float(int(value.strip()))
        except ValueError:
            pass
    return DEFAULT_RATE_LIMIT_WAIT


def extract_error_message(response: httpx.Response) -> str:
    body = response.text or ""
    if body:
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            for key in ("message", "error", "errorMessage"):
                if data.get(key):
                    return str(data[key])
        elif len(body) <= 200:
            return body
    return f"HTTP {response.status_code} {response.reason_phrase}".strip()


def error_from_response(response: httpx.Response, page_id: Optional[str] = None) -> FetchError:
    """Build the typed FetchError for a non-200 response."""
    status = response.status_code
    message = extract_error_message(response)
    kind = classify_status(status)
    if kind == ErrorKind.FETCH_RATE_LIMIT:
        return FetchRateLimitError(
            message,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
            page_id=page_id,
            status_code=status,
        )
    if kind == ErrorKind.FETCH_AUTH:
        return FetchAuthError(message, page_id=page_id, status_code=status)
    if kind == ErrorKind.FETCH_NOT_FOUND:
        return FetchNotFoundError(message, page_id=page_id, status_code=status)
    if kind == ErrorKind.FETCH_NETWORK:
        return FetchNetworkError(message, page_id=page_id, status_code=status)
    return FetchServerError(message, page_id=page_id, status_code=status)


class ConfluenceContentSource:
    """Fetches page bodies in storage format from ``{api_base}/content/{id}``.

    Retries transient failures with exponential backoff (honouring
    Retry-After on 429) and fails fast while the circuit breaker is open.
    """

    def __init__(
        self,
        config: ConfluenceConfig,
        client: Optional[httpx.AsyncClient] = None,
        retry_config: Optional[RetryConfig] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        if not config.sanitized_base_url:
            raise ValidationError("Confluence base URL is required", field="base_url")
        self.config = config
        self._client = client
        self._owns_client = client is None
        self._service = f"confluence:{urlparse(config.sanitized_base_url).netloc}"
        self._retry = retry_config or RetryConfig(
            max_retries=CONFLUENCE_MAX_RETRIES,
            base_delay=CONFLUENCE_RETRY_BASE_DELAY,
        )
        self._breaker = breaker or CircuitBreaker(
            "confluence", cooldown_sec=TIMEOUTS.BREAKER_COOLDOWN
        )
        self.requests = 0

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = await get_client(
                self._service,
                base_url=self.config.api_base_url,
                headers={"Accept": "application/json", "User-Agent": CONFLUENCE_USER_AGENT},
                timeout=TIMEOUTS.HTTP_CONFLUENCE,
                auth=httpx.BasicAuth(self.config.email, self.config.token),
            )
        return self._client

    async def _get_json(self, path: str, params: Optional[dict] = None, page_id: Optional[str] = None) -> Any:
        client = await self._get_client()
        self.requests += 1
        try:
            response = await client.get(path, params=params)
        except httpx.TransportError as e:
            raise FetchNetworkError(f"{type(e).__name__}: {e}", page_id=page_id) from e

        _log.debug("Confluence response", path=path, status=response.status_code)
        if response.status_code != 200:
            raise error_from_response(response, page_id)
        try:
            return response.json()
        except ValueError as e:
            raise FetchServerError("Invalid JSON from Confluence", page_id=page_id) from e

    async def _call(self, path: str, params: Optional[dict] = None, page_id: Optional[str] = None) -> Any:
        if not self._breaker.allow_request():
            raise FetchServerError(
                f"Confluence circuit open, retry in {self._breaker.retry_in():.0f}s", page_id=page_id
            )
        try:
            data = await retry_async(self._get_json, path, params, page_id, config=self._retry)
        except FetchError as e:
            if e.kind in _BREAKER_KINDS:
                self._breaker.record_failure()
            raise
        self._breaker.record_success()
        return data

    async def fetch_page(self, page_id: str) -> str:
        """Return the storage-format body of a page.

        Raises:
            MalformedLinkError: page_id is not numeric
            FetchError: classified failure after retries
        """
        if not page_id or not str(page_id).isdigit():
            raise MalformedLinkError(f"Invalid page id: {page_id!r}", page_id=page_id)

        data = await self._call(f"content/{page_id}", {"expand": "body.storage"}, page_id)
        storage = ((data or {}).get("body") or {}).get("storage") or {}
        value = storage.get("value")
        if value is None:
            raise FetchNotFoundError("Page content is empty or not accessible", page_id=page_id)

        _log.info("Page fetched", page_id=page_id, chars=len(value))
        return value

    async def test_connection(self) -> bool:
        """Check connectivity and credentials against the space listing."""
        try:
            await self._call("space", {"limit": 1})
        except FetchError as e:
            _log.warning("Connection test failed", kind=e.kind.value, error=e.message[:200])
            return False
        _log.info("Connection test passed", url=self.config.sanitized_base_url)
        return True

    def stats(self) -> dict:
        return {"requests": self.requests, "breaker": self._breaker.stats()}

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await close_client(self._service)
        self._client = None
