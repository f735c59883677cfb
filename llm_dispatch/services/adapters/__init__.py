"""Completion adapters, resilience primitives and the adapter registry."""

from .base import BaseCompletionAdapter
from .anthropic_adapter import AnthropicAdapter
from .openai_adapter import OpenAIAdapter
from .google_adapter import GoogleAdapter
from .factory import AdapterFactory, create_adapter
from .circuit_breaker import Admission, CircuitBreaker, CircuitState
from .fallback_manager import FallbackChain, FallbackConfig, create_fallback_chain
from .registry import AdapterRegistry
from .error_handler import (
    ExponentialBackoff,
    RetryPolicy,
    is_retryable_error,
    with_timeout,
    retry_with_timeout,
    ErrorContext,
)

__all__ = [
    "BaseCompletionAdapter",
    "AnthropicAdapter",
    "OpenAIAdapter",
    "GoogleAdapter",
    "AdapterFactory",
    "create_adapter",
    "Admission",
    "CircuitBreaker",
    "CircuitState",
    "FallbackChain",
    "FallbackConfig",
    "create_fallback_chain",
    "AdapterRegistry",
    "ExponentialBackoff",
    "RetryPolicy",
    "is_retryable_error",
    "with_timeout",
    "retry_with_timeout",
    "ErrorContext",
]
