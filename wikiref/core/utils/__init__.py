from .clock import SYSTEM_CLOCK, Clock, SystemClock
from .http_pool import ClientPool, close_all, close_client, get_client
from .retry import RetryConfig, calculate_backoff, is_retryable_error, retry_async
from .timeouts import SERVICE_TIMEOUTS, TIMEOUTS, Timeouts

__all__ = [
    "Clock",
    "SystemClock",
    "SYSTEM_CLOCK",
    "ClientPool",
    "get_client",
    "close_client",
    "close_all",
    "RetryConfig",
    "calculate_backoff",
    "is_retryable_error",
    "retry_async",
    "Timeouts",
    "TIMEOUTS",
    "SERVICE_TIMEOUTS",
]
