"""
Backoff and transient-error classification for source adapter calls.
"""
import asyncio
import random
from typing import Tuple, Type


# Exceptions that are always worth another attempt
DEFAULT_RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)

RETRYABLE_STATUS_CODES: Tuple[int, ...] = (429, 500, 502, 503, 504)


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True
) -> float:
    """
    Delay before the next attempt.

    Args:
        attempt: Attempt that just failed (1-indexed)
        base_delay: Delay after the first failure, in seconds
        max_delay: Cap before jitter
        exponential_base: Growth factor per attempt
        jitter: Add up to 25% randomness so tenants don't retry in lockstep

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (exponential_base ** (attempt - 1)), max_delay)

    if jitter:
        delay += delay * random.uniform(0, 0.25)

    return delay


def is_retryable_error(
    error: Exception,
    retryable_exceptions: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE_EXCEPTIONS,
) -> bool:
    """
    Check if an error is transient.

    Adapter errors expose an HTTP ``status`` attribute; auth failures
    (401/403) and bad requests are never retried.
    """
    if isinstance(error, retryable_exceptions):
        return True

    status = getattr(error, "status", None)
    if status is not None:
        return status in RETRYABLE_STATUS_CODES

    error_str = str(error).lower()
    if "rate limit" in error_str or "too many requests" in error_str:
        return True
    if "timeout" in error_str or "timed out" in error_str:
        return True
    if "connection" in error_str and ("refused" in error_str or "reset" in error_str):
        return True

    return False
