"""Models package for the completion dispatch layer."""

# Request models
from .requests import (
    CompletionRequest,
    ResponseFormat,
)

# Response models
from .responses import (
    TokenUsage,
    FinishReason,
    CompletionResponse,
    StreamChunkType,
    StreamChunk,
    AdapterStatus,
    HealthStatus,
)

# Error models
from .errors import (
    ErrorResponse,
    ErrorCodes,
    DispatchError,
    ValidationError,
    ConfigurationError,
    AdapterNotFoundError,
    AdapterError,
    RateLimitError,
    AuthError,
    RequestTimeoutError,
    ModelNotFoundError,
    CircuitOpenError,
    AllAdaptersFailedError,
)

# Messages and tools
from .context import (
    MessageRole,
    Message,
    ToolDefinition,
    ToolCall,
)

# Abstract interfaces
from .interfaces import ICompletionAdapter

__all__ = [
    # Request models
    "CompletionRequest",
    "ResponseFormat",

    # Response models
    "TokenUsage",
    "FinishReason",
    "CompletionResponse",
    "StreamChunkType",
    "StreamChunk",
    "AdapterStatus",
    "HealthStatus",

    # Error models
    "ErrorResponse",
    "ErrorCodes",
    "DispatchError",
    "ValidationError",
    "ConfigurationError",
    "AdapterNotFoundError",
    "AdapterError",
    "RateLimitError",
    "AuthError",
    "RequestTimeoutError",
    "ModelNotFoundError",
    "CircuitOpenError",
    "AllAdaptersFailedError",

    # Messages and tools
    "MessageRole",
    "Message",
    "ToolDefinition",
    "ToolCall",

    # Abstract interfaces
    "ICompletionAdapter",
]
