"""Tests for the timeout/retry wrapper and error classification."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from llm_dispatch.models.errors import (
    AdapterError,
    AuthError,
    CircuitOpenError,
    ErrorCodes,
    ModelNotFoundError,
    RateLimitError,
    RequestTimeoutError,
)
from llm_dispatch.services.adapters.error_handler import (
    ErrorContext,
    ExponentialBackoff,
    RetryPolicy,
    error_for_status,
    is_retryable_error,
    parse_retry_after,
    retry_with_timeout,
    with_timeout,
)


class TestExponentialBackoff:
    """Tests for ExponentialBackoff.get_delay."""

    def test_first_attempt_uses_initial_delay(self):
        assert ExponentialBackoff().get_delay(1) == 1.0

    def test_delay_doubles_per_attempt(self):
        backoff = ExponentialBackoff(initial_delay=1.0)
        assert [backoff.get_delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_delay_is_capped(self):
        backoff = ExponentialBackoff(initial_delay=1.0, max_delay=30.0)
        assert backoff.get_delay(6) == 30.0
        assert backoff.get_delay(20) == 30.0

    def test_jitter_stays_within_half_to_full_delay(self):
        backoff = ExponentialBackoff(initial_delay=4.0, jitter=True)
        for _ in range(50):
            assert 2.0 <= backoff.get_delay(1) <= 4.0


class TestIsRetryableError:
    """Tests for is_retryable_error classification."""

    @pytest.mark.parametrize("error", [
        RateLimitError("slow down"),
        RequestTimeoutError(),
        AdapterError("unavailable", status_code=503),
        AdapterError("overloaded", status_code=529),
        asyncio.TimeoutError(),
        ValueError("Rate limit exceeded for model"),
        RuntimeError("upstream returned 529"),
        RuntimeError("connect timeout"),
    ])
    def test_transient_errors_are_retryable(self, error):
        assert is_retryable_error(error) is True

    @pytest.mark.parametrize("error", [
        AuthError("bad key"),
        ModelNotFoundError("gpt-0"),
        AdapterError("bad request", status_code=400),
        CircuitOpenError(),
        ValueError("malformed"),
    ])
    def test_other_errors_are_not_retryable(self, error):
        assert is_retryable_error(error) is False

    def test_adapter_error_flag_wins_over_message(self):
        """An auth failure mentioning a timeout is still not retried."""
        assert is_retryable_error(AuthError("token timeout expired")) is False


class TestErrorForStatus:
    """Tests for mapping HTTP statuses onto the taxonomy."""

    def test_429_maps_to_rate_limit_with_retry_after(self):
        error = error_for_status(429, "too many", provider="openai", retry_after_ms=2000)
        assert isinstance(error, RateLimitError)
        assert error.retry_after_ms == 2000
        assert error.details["provider"] == "openai"

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_statuses(self, status):
        assert isinstance(error_for_status(status, "denied"), AuthError)

    def test_404_with_model_maps_to_model_not_found(self):
        error = error_for_status(404, "missing", model="gpt-0")
        assert isinstance(error, ModelNotFoundError)
        assert error.details["model"] == "gpt-0"

    @pytest.mark.parametrize("status", [503, 529])
    def test_overload_statuses_are_retryable(self, status):
        error = error_for_status(status, "busy")
        assert error.retryable is True
        assert error.code == ErrorCodes.SERVICE_UNAVAILABLE

    def test_other_statuses_are_plain_adapter_errors(self):
        error = error_for_status(400, "bad")
        assert type(error) is AdapterError
        assert error.retryable is False

    def test_parse_retry_after(self):
        assert parse_retry_after({"retry-after": "2"}) == 2000
        assert parse_retry_after({"retry-after": "soon"}) is None
        assert parse_retry_after({}) is None
        assert parse_retry_after(None) is None


class TestWithTimeout:
    """Tests for with_timeout."""

    @pytest.mark.asyncio
    async def test_returns_result_in_time(self):
        operation = AsyncMock(return_value="done")
        assert await with_timeout(operation, 1000) == "done"

    @pytest.mark.asyncio
    async def test_timer_win_raises_request_timeout(self):
        async def slow():
            await asyncio.sleep(5)

        with pytest.raises(RequestTimeoutError) as exc_info:
            await with_timeout(slow, 10, provider="anthropic")

        assert exc_info.value.retryable is True
        assert exc_info.value.details["provider"] == "anthropic"

    @pytest.mark.asyncio
    async def test_operation_errors_propagate_unchanged(self):
        operation = AsyncMock(side_effect=AuthError("nope"))
        with pytest.raises(AuthError):
            await with_timeout(operation, 1000)


class TestRetryWithTimeout:
    """Tests for retry_with_timeout."""

    @pytest.mark.asyncio
    async def test_retryable_failures_are_retried_with_backoff(self, recording_sleep):
        operation = AsyncMock(side_effect=[RateLimitError("a"), RateLimitError("b"), "ok"])
        policy = RetryPolicy(timeout_ms=1000, max_attempts=3)

        result = await retry_with_timeout(operation, policy, sleep=recording_sleep)

        assert result == "ok"
        assert operation.await_count == 3
        assert recording_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_on_retry_receives_error_attempt_and_delay(self, recording_sleep):
        first = RequestTimeoutError()
        operation = AsyncMock(side_effect=[first, "ok"])
        on_retry = MagicMock()

        await retry_with_timeout(operation, RetryPolicy(1000, 3), on_retry=on_retry, sleep=recording_sleep)

        on_retry.assert_called_once_with(first, 1, 1000.0)

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates_immediately(self, recording_sleep):
        operation = AsyncMock(side_effect=AuthError("bad key"))

        with pytest.raises(AuthError):
            await retry_with_timeout(operation, RetryPolicy(1000, 3), sleep=recording_sleep)

        assert operation.await_count == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_single_attempt_never_retries(self, recording_sleep):
        operation = AsyncMock(side_effect=RateLimitError("slow"))

        with pytest.raises(RateLimitError):
            await retry_with_timeout(operation, RetryPolicy(1000, 1), sleep=recording_sleep)

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_exhausted_budget_raises_last_error(self, recording_sleep):
        errors = [RateLimitError("1"), RateLimitError("2"), RateLimitError("3")]
        operation = AsyncMock(side_effect=errors)

        with pytest.raises(RateLimitError) as exc_info:
            await retry_with_timeout(operation, RetryPolicy(1000, 3), sleep=recording_sleep)

        assert exc_info.value is errors[-1]
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_timeout_on_final_attempt_surfaces_as_timeout(self, recording_sleep):
        calls = 0

        async def hang():
            nonlocal calls
            calls += 1
            await asyncio.sleep(5)

        with pytest.raises(RequestTimeoutError):
            await retry_with_timeout(hang, RetryPolicy(timeout_ms=10, max_attempts=2), sleep=recording_sleep)

        assert calls == 2
        assert recording_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_failing_observer_does_not_change_control_flow(self, recording_sleep):
        operation = AsyncMock(side_effect=[RateLimitError("a"), "ok"])
        on_retry = MagicMock(side_effect=RuntimeError("observer broke"))

        result = await retry_with_timeout(operation, RetryPolicy(1000, 3), on_retry=on_retry, sleep=recording_sleep)

        assert result == "ok"
        on_retry.assert_called_once()

    @pytest.mark.asyncio
    async def test_custom_classifier(self, recording_sleep):
        operation = AsyncMock(side_effect=[KeyError("flaky"), "ok"])
        policy = RetryPolicy(1000, 2, classify_retryable=lambda error: isinstance(error, KeyError))

        assert await retry_with_timeout(operation, policy, sleep=recording_sleep) == "ok"

    def test_policy_requires_at_least_one_attempt(self):
        with pytest.raises(ValueError):
            RetryPolicy(timeout_ms=1000, max_attempts=0)


class TestErrorContext:
    """Tests for the ErrorContext async context manager."""

    @pytest.mark.asyncio
    async def test_does_not_suppress_exceptions(self):
        with pytest.raises(ValueError):
            async with ErrorContext("complete", "openai"):
                raise ValueError("boom")

    @pytest.mark.asyncio
    async def test_records_duration(self):
        async with ErrorContext("complete", "openai") as context:
            await asyncio.sleep(0)
        assert context.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_success_logs_performance(self, capture_logs):
        caplog = capture_logs("llm_dispatch.services.adapters.error_handler")

        async with ErrorContext("complete", "openai", {"adapter_id": "primary"}):
            pass

        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.operation == "complete"
        assert record.performance is True
        assert record.duration_ms >= 0
        assert record.provider == "openai"
        assert record.adapter_id == "primary"

    @pytest.mark.asyncio
    async def test_failure_logs_exception(self, capture_logs):
        caplog = capture_logs("llm_dispatch.services.adapters.error_handler")

        with pytest.raises(RateLimitError):
            async with ErrorContext("complete", "anthropic", {"adapter_id": "primary"}):
                raise RateLimitError("busy")

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.exception_type == "RateLimitError"
        assert record.exception_message == "busy"
        assert record.adapter_id == "primary"
        assert record.exc_info[0] is RateLimitError
