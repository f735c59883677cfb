"""Response and streaming models for the completion dispatch layer."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from .context import ToolCall


class TokenUsage(BaseModel):
    """Token usage information."""

    input_tokens: int = Field(0, ge=0, description="Number of tokens in the prompt")
    output_tokens: int = Field(0, ge=0, description="Number of tokens in the completion")
    total_tokens: int = Field(0, ge=0, description="Total number of tokens used")

    @classmethod
    def from_counts(cls, input_tokens: int, output_tokens: int) -> "TokenUsage":
        """Build usage with the total derived from its parts."""
        return cls(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens
        )


class FinishReason(str, Enum):
    """Why generation finished."""
    STOP = "stop"
    LENGTH = "length"
    TOOL_USE = "tool_use"
    ERROR = "error"


class CompletionResponse(BaseModel):
    """Canonical completion result produced by every adapter."""

    content: str = Field(..., description="The generated content")
    usage: TokenUsage = Field(..., description="Token usage information")
    model: str = Field(..., description="Model used for generation")
    latency_ms: float = Field(..., ge=0, description="Upstream latency in milliseconds")
    finish_reason: FinishReason = Field(FinishReason.STOP, description="Reason why generation finished")
    tool_calls: Optional[List[ToolCall]] = Field(default=None, description="Tool calls requested by the model")
    request_id: str = Field(..., description="Upstream or locally assigned request id")
    adapter_id: Optional[str] = Field(default=None, description="Adapter that produced the response")

    model_config = ConfigDict(
        protected_namespaces=(),
        json_schema_extra={
            "example": {
                "content": "1. PDF export button\n2. Report template rendering",
                "usage": {"input_tokens": 20, "output_tokens": 100, "total_tokens": 120},
                "model": "claude-sonnet-4-5-20250929",
                "latency_ms": 1432.5,
                "finish_reason": "stop",
                "request_id": "msg_01XYZ",
                "adapter_id": "anthropic-claude-4-sonnet"
            }
        }
    )


class StreamChunkType(str, Enum):
    """Kinds of streaming events."""
    CONTENT = "content"
    TOOL_CALL = "tool_call"
    DONE = "done"
    ERROR = "error"
    # Emitted by a fallback chain when it abandons an adapter that already produced output
    FALLBACK = "fallback"


class StreamChunk(BaseModel):
    """One streaming event. An ``error`` chunk always ends the stream."""

    type: StreamChunkType = Field(..., description="Event kind")
    content: Optional[str] = Field(default=None, description="Text delta for content chunks")
    tool_call: Optional[Dict[str, Any]] = Field(default=None, description="Partial tool call")
    error: Optional[str] = Field(default=None, description="Error message for error/fallback chunks")
    usage: Optional[TokenUsage] = Field(default=None, description="Final usage on done chunks")
    adapter_id: Optional[str] = Field(default=None, description="Adapter the chunk refers to")

    @property
    def is_error(self) -> bool:
        return self.type == StreamChunkType.ERROR


class AdapterStatus(BaseModel):
    """Snapshot of one fallback chain entry."""

    id: str = Field(..., description="Adapter id")
    provider: str = Field(..., description="Adapter provider")
    circuit_state: str = Field(..., description="Effective circuit breaker state")


class HealthStatus(BaseModel):
    """Health status information."""

    status: str = Field(..., description="Overall health status (healthy, unhealthy, degraded)")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="When the health check was performed")
    version: str = Field(..., description="Application version")
    adapters: Optional[Dict[str, bool]] = Field(default=None, description="Per-adapter probe results")
