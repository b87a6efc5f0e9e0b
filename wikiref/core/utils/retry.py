import asyncio
import random
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from wikiref.core.errors import ErrorKind, FetchError, FetchRateLimitError, classify_exception
from wikiref.core.logging import get_logger

_log = get_logger("core.retry")

T = TypeVar("T")

# Retry-After default when a 429 carries no usable header
DEFAULT_RATE_LIMIT_WAIT = 60.0


@dataclass
class RetryConfig:

    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 60.0
    jitter: float = 0.0
    retryable_check: Callable[[Exception], bool] | None = None


DEFAULT_RETRY_CONFIG = RetryConfig()


def is_retryable_error(error: Exception, config: RetryConfig | None = None) -> bool:

    config = config or DEFAULT_RETRY_CONFIG
    if config.retryable_check is not None:
        return config.retryable_check(error)
    if isinstance(error, FetchError):
        return error.is_retryable
    return classify_exception(error) in (ErrorKind.FETCH_NETWORK, ErrorKind.FETCH_SERVER)


def calculate_backoff(
    attempt: int,
    error: Exception | None = None,
    config: RetryConfig | None = None,
) -> float:
    """Delay before the next attempt: base_delay doubled per attempt.

    A rate-limit error's retry_after wins over the exponential delay.
    Both are capped at max_delay.
    """
    config = config or DEFAULT_RETRY_CONFIG

    if isinstance(error, FetchRateLimitError):
        wait = error.retry_after if error.retry_after is not None else DEFAULT_RATE_LIMIT_WAIT
        return min(max(wait, 0.0), config.max_delay)

    delay = config.base_delay * (2 ** (attempt - 1))
    if config.jitter:
        delay *= 1 + random.uniform(0, config.jitter)
    return min(delay, config.max_delay)


async def retry_async(
    func: Callable[..., Any],
    *args,
    config: RetryConfig | None = None,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    **kwargs,
) -> Any:
    """Await ``func`` up to ``config.max_retries`` times on retryable errors."""
    config = config or DEFAULT_RETRY_CONFIG
    attempts = max(config.max_retries, 1)

    for attempt in range(1, attempts + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_retryable_error(e, config) or attempt == attempts:
                raise

            delay = calculate_backoff(attempt, e, config)

            _log.warning(
                "Retry scheduled",
                attempt=attempt,
                max_retries=attempts,
                kind=classify_exception(e).value,
                delay=round(delay, 2),
                error=str(e)[:100],
            )

            if on_retry:
                on_retry(attempt, e, delay)

            await asyncio.sleep(delay)

    raise RuntimeError("retry_async exhausted without result")
