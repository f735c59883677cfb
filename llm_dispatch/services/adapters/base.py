"""Base completion adapter implementation with common functionality."""

import asyncio
import logging
import math
import uuid
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from llm_dispatch.config.models import AdapterConfig
from llm_dispatch.logging.utils import create_event_logger
from llm_dispatch.models.context import Message, MessageRole, ToolCall
from llm_dispatch.models.errors import ConfigurationError, ValidationError
from llm_dispatch.models.interfaces import ICompletionAdapter
from llm_dispatch.models.requests import CompletionRequest
from llm_dispatch.models.responses import (
    CompletionResponse,
    FinishReason,
    StreamChunk,
    StreamChunkType,
    TokenUsage,
)
from .error_handler import (
    ErrorContext,
    ExponentialBackoff,
    RetryPolicy,
    is_retryable_error,
    retry_with_timeout,
    with_timeout,
)


logger = logging.getLogger(__name__)

# Base delay between retries of a single adapter call
RETRY_BASE_DELAY = 1.0

# Rough heuristic shared by every provider
CHARS_PER_TOKEN = 4

HEALTH_CHECK_REQUEST = CompletionRequest(
    messages=[Message(role=MessageRole.USER, content="ping")],
    max_tokens=5,
)


class BaseCompletionAdapter(ICompletionAdapter, ABC):
    """Base implementation for completion adapters.

    Subclasses implement ``_do_complete`` (one upstream call, vendor errors
    mapped onto the error taxonomy) and ``stream``. ``complete`` wraps the
    former in the per-attempt timeout and retry policy of the adapter
    config.
    """

    # Model name -> (input, output) USD per million tokens
    PRICING: Dict[str, Tuple[float, float]] = {}
    DEFAULT_PRICING: Tuple[float, float] = (0.0, 0.0)

    REQUIRES_API_KEY = True

    def __init__(
        self,
        config: AdapterConfig,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """Initialize the adapter with its configuration."""
        self.config = config
        self._sleep = sleep
        self._events = create_event_logger("adapter")
        self._validate_config()

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def provider(self) -> str:
        return self.config.provider.value

    @property
    def model(self) -> str:
        return self.config.model

    def _validate_config(self) -> None:
        """Validate adapter configuration. Override in subclasses."""
        if self.REQUIRES_API_KEY and self.config.api_key is None:
            raise ConfigurationError(
                f"API key is required for adapter {self.id}. "
                f"Set {self.provider.upper()}_API_KEY environment variable.",
                config_key=f"{self.provider.upper()}_API_KEY"
            )

    def _api_key(self) -> Optional[str]:
        return self.config.api_key.get_secret_value() if self.config.api_key else None

    def _retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            timeout_ms=self.config.timeout_ms,
            max_attempts=self.config.max_retries,
            classify_retryable=self.is_retryable_error,
            backoff=ExponentialBackoff(initial_delay=RETRY_BASE_DELAY),
            provider=self.provider,
        )

    def is_retryable_error(self, error: BaseException) -> bool:
        """Classify an error raised by this adapter. Override for vendor quirks."""
        return is_retryable_error(error)

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Generate a completion with timeout and retries."""
        self._validate_request(request)
        self._log_request(request)

        async with ErrorContext("complete", self.provider, {"adapter_id": self.id}):
            response = await retry_with_timeout(
                lambda: self._do_complete(request),
                self._retry_policy(),
                on_retry=self._on_retry,
                sleep=self._sleep,
            )

        self._log_response(response)
        return response

    @abstractmethod
    async def _do_complete(self, request: CompletionRequest) -> CompletionResponse:
        """Perform one upstream completion call."""
        pass

    @abstractmethod
    def stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        pass

    def count_tokens(self, text: str) -> int:
        """Approximate token count, ~4 characters per token."""
        return math.ceil(len(text) / CHARS_PER_TOKEN)

    def estimate_cost(self, usage: TokenUsage) -> float:
        """Estimate USD cost from the per-million-token pricing table."""
        input_price, output_price = self.PRICING.get(self.model, self.DEFAULT_PRICING)
        return (
            usage.input_tokens * input_price / 1_000_000
            + usage.output_tokens * output_price / 1_000_000
        )

    async def health_check(self) -> bool:
        """Send a minimal completion and report whether it succeeded."""
        try:
            await with_timeout(
                lambda: self._do_complete(HEALTH_CHECK_REQUEST),
                self.config.timeout_ms,
                self.provider,
            )
            return True
        except Exception as e:
            logger.warning(f"Health check failed for adapter {self.id}: {e}")
            return False

    def _on_retry(self, error: BaseException, attempt: int, delay_ms: float) -> None:
        self._events.retry_scheduled(self.id, attempt, delay_ms, error)

    def _resolve_model(self, request: CompletionRequest) -> str:
        return request.model or self.config.model

    def _validate_request(self, request: CompletionRequest) -> None:
        """Validate request content beyond what the model enforces."""
        if not request.messages:
            raise ValidationError("Messages list cannot be empty", field="messages")

        for i, message in enumerate(request.messages):
            if message.role == MessageRole.TOOL and not message.tool_call_id:
                raise ValidationError(
                    f"Message {i} has role 'tool' but no tool_call_id",
                    field=f"messages[{i}].tool_call_id"
                )

    def _create_response(
        self,
        content: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        latency_ms: float,
        finish_reason: FinishReason = FinishReason.STOP,
        tool_calls: Optional[List[ToolCall]] = None,
        request_id: Optional[str] = None
    ) -> CompletionResponse:
        """Create a canonical completion response."""
        return CompletionResponse(
            content=content,
            usage=TokenUsage.from_counts(input_tokens, output_tokens),
            model=model,
            latency_ms=latency_ms,
            finish_reason=finish_reason,
            tool_calls=tool_calls or None,
            request_id=request_id or f"req_{uuid.uuid4().hex}",
            adapter_id=self.id,
        )

    def _content_chunk(self, content: str) -> StreamChunk:
        return StreamChunk(type=StreamChunkType.CONTENT, content=content, adapter_id=self.id)

    def _done_chunk(self, input_tokens: int, output_tokens: int) -> StreamChunk:
        return StreamChunk(
            type=StreamChunkType.DONE,
            usage=TokenUsage.from_counts(input_tokens, output_tokens),
            adapter_id=self.id,
        )

    def _error_chunk(self, error: BaseException) -> StreamChunk:
        """Turn a streaming failure into the terminal error chunk."""
        logger.warning(f"Stream from adapter {self.id} failed: {error}")
        return StreamChunk(
            type=StreamChunkType.ERROR,
            error=str(error) or type(error).__name__,
            adapter_id=self.id,
        )

    def _log_request(self, request: CompletionRequest, stream: bool = False) -> None:
        """Log request details for monitoring."""
        logger.info(
            f"Completion request to {self.id}",
            extra={
                "adapter_id": self.id,
                "provider": self.provider,
                "model": self._resolve_model(request),
                "message_count": len(request.messages),
                "estimated_tokens": self.count_tokens(request.prompt_text()),
                "stream": stream,
            }
        )

    def _log_response(self, response: CompletionResponse) -> None:
        """Log response details for monitoring."""
        logger.info(
            f"Completion response from {self.id}",
            extra={
                "adapter_id": self.id,
                "provider": self.provider,
                "model": response.model,
                "tokens_used": response.usage.total_tokens,
                "latency_ms": response.latency_ms,
                "finish_reason": response.finish_reason.value,
            }
        )
