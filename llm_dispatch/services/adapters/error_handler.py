"""Timeout, retry and backoff utilities for adapter calls."""

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from llm_dispatch.logging.config import log_exception, log_performance
from llm_dispatch.models.errors import (
    AdapterError,
    AuthError,
    ErrorCodes,
    ModelNotFoundError,
    RateLimitError,
    RequestTimeoutError,
)


logger = logging.getLogger(__name__)

T = TypeVar('T')

# Upstream statuses that signal a transient overload
RETRYABLE_STATUS_CODES = frozenset({503, 529})

RETRYABLE_MESSAGE_MARKERS = ("rate limit", "timeout", "timed out", "503", "529")

RetryObserver = Callable[[BaseException, int, float], Any]


class ExponentialBackoff:
    """Exponential backoff utility for retrying operations.

    Attempts are numbered from 1: the delay after attempt 1 is
    ``initial_delay``, doubling (by ``multiplier``) for each later attempt
    and capped at ``max_delay``.
    """

    def __init__(
        self,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        multiplier: float = 2.0,
        jitter: bool = False
    ):
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter = jitter

    def get_delay(self, attempt: int) -> float:
        """Get delay in seconds after the given (1-based) attempt."""
        delay = self.initial_delay * (self.multiplier ** max(attempt - 1, 0))
        delay = min(delay, self.max_delay)

        if self.jitter:
            # Add jitter to prevent thundering herd
            delay *= (0.5 + random.random() * 0.5)

        return delay


def is_retryable_error(error: BaseException) -> bool:
    """Classify an error as transient.

    Rate limits, timeouts and 503/529 overloads are retryable; anything
    else (authentication failures, open circuits, bad requests) is not.
    """
    if isinstance(error, AdapterError):
        return error.retryable or error.status_code in RETRYABLE_STATUS_CODES

    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return True

    message = str(error).lower()
    return any(marker in message for marker in RETRYABLE_MESSAGE_MARKERS)


def parse_retry_after(headers: Optional[Any]) -> Optional[int]:
    """Read a ``retry-after`` header (seconds) as milliseconds."""
    if not headers:
        return None
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return int(float(value) * 1000)
    except (TypeError, ValueError):
        return None


def error_for_status(
    status_code: Optional[int],
    message: str,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    retry_after_ms: Optional[int] = None
) -> AdapterError:
    """Map an upstream HTTP status onto the error taxonomy."""
    if status_code == 429:
        return RateLimitError(message, retry_after_ms=retry_after_ms, provider=provider)
    if status_code in (401, 403):
        return AuthError(message, provider=provider)
    if status_code == 404 and model:
        return ModelNotFoundError(model, provider=provider)
    if status_code == 408:
        return RequestTimeoutError(message, provider=provider)
    if status_code in RETRYABLE_STATUS_CODES:
        return AdapterError(
            message,
            code=ErrorCodes.SERVICE_UNAVAILABLE,
            retryable=True,
            status_code=status_code,
            provider=provider
        )
    return AdapterError(message, status_code=status_code, provider=provider)


class RetryPolicy:
    """Per-call timeout and retry budget."""

    def __init__(
        self,
        timeout_ms: int,
        max_attempts: int = 3,
        classify_retryable: Callable[[BaseException], bool] = is_retryable_error,
        backoff: Optional[ExponentialBackoff] = None,
        provider: Optional[str] = None
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.timeout_ms = timeout_ms
        self.max_attempts = max_attempts
        self.classify_retryable = classify_retryable
        self.backoff = backoff or ExponentialBackoff()
        self.provider = provider


async def with_timeout(
    operation: Callable[[], Awaitable[T]],
    timeout_ms: int,
    provider: Optional[str] = None
) -> T:
    """Run ``operation`` bounded by ``timeout_ms``.

    The awaiting task is cancelled when the timer wins, so a late upstream
    response is discarded.

    Raises:
        RequestTimeoutError: If the timer fires first.
    """
    try:
        return await asyncio.wait_for(operation(), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        raise RequestTimeoutError(
            f"Operation timed out after {timeout_ms}ms",
            provider=provider
        ) from None


async def retry_with_timeout(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    on_retry: Optional[RetryObserver] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
) -> T:
    """Run ``operation`` with a per-attempt timeout and classified retries.

    Attempts run strictly one after another. A retryable failure with
    budget left waits ``policy.backoff.get_delay(attempt)`` before the next
    attempt; a non-retryable failure, or any failure on the last attempt,
    propagates unchanged.
    """
    attempt = 1
    while True:
        try:
            return await with_timeout(operation, policy.timeout_ms, policy.provider)
        except Exception as error:
            if attempt >= policy.max_attempts or not policy.classify_retryable(error):
                if attempt > 1:
                    logger.debug(f"Giving up after {attempt} attempts: {type(error).__name__}")
                raise

            delay = policy.backoff.get_delay(attempt)
            if on_retry is not None:
                try:
                    on_retry(error, attempt, delay * 1000)
                except Exception as observer_error:
                    logger.warning(f"Retry observer failed: {observer_error}")

            await sleep(delay)
            attempt += 1


class ErrorContext:
    """Context manager for error handling and logging."""

    def __init__(
        self,
        operation: str,
        provider: str,
        context: Optional[Dict[str, Any]] = None
    ):
        self.operation = operation
        self.provider = provider
        self.context = context or {}
        self.start_time: Optional[float] = None
        self.duration_ms: float = 0.0

    async def __aenter__(self):
        self.start_time = time.perf_counter()
        logger.debug(f"Starting {self.operation} for provider {self.provider}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.duration_ms = (time.perf_counter() - self.start_time) * 1000

        extra = {"provider": self.provider, **self.context}
        if exc_type is None:
            log_performance(logger, self.operation, self.duration_ms / 1000, extra=extra)
        else:
            log_exception(
                logger,
                f"Failed {self.operation} for provider {self.provider} after {self.duration_ms:.0f}ms: {exc_val}",
                exc_info=exc_val,
                extra=extra,
            )

        return False  # Don't suppress exceptions
