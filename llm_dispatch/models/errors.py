"""Error models and exception taxonomy for the completion dispatch layer."""

from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error_code: str = Field(..., description="Specific error code for programmatic handling")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Additional error details")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="When the error occurred")
    request_id: Optional[str] = Field(default=None, description="Request ID for tracking")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error_code": "ALL_ADAPTERS_FAILED",
                "message": "All fallback adapters failed",
                "details": {"attempted": ["anthropic-claude-4-sonnet", "openai-gpt-4o"]},
                "timestamp": "2024-01-01T12:00:00Z",
                "request_id": "req_123456"
            }
        }
    )


# Common error codes as constants
class ErrorCodes:
    """Standard error codes used throughout the dispatch layer."""

    # General errors
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Configuration errors
    CONFIG_ERROR = "CONFIG_ERROR"
    ADAPTER_NOT_FOUND = "ADAPTER_NOT_FOUND"

    # Adapter errors
    ADAPTER_ERROR = "ADAPTER_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    AUTH_ERROR = "AUTH_ERROR"
    TIMEOUT = "TIMEOUT"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    # Dispatch errors
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    ALL_ADAPTERS_FAILED = "ALL_ADAPTERS_FAILED"


class DispatchError(Exception):
    """Base exception for dispatch layer errors."""

    def __init__(self, message: str, error_code: str = None, details: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or ErrorCodes.INTERNAL_SERVER_ERROR
        self.details = details or {}


class ValidationError(DispatchError):
    """Exception for request validation errors."""

    def __init__(self, message: str, field: str = None, invalid_value: Any = None):
        super().__init__(message, ErrorCodes.VALIDATION_ERROR)
        if field:
            self.details["field"] = field
        if invalid_value is not None:
            self.details["invalid_value"] = invalid_value


class ConfigurationError(DispatchError):
    """Exception for configuration errors."""

    def __init__(self, message: str, config_key: str = None):
        super().__init__(message, ErrorCodes.CONFIG_ERROR)
        if config_key:
            self.details["config_key"] = config_key


class AdapterNotFoundError(DispatchError):
    """Raised when a registry lookup names an adapter id that is not configured."""

    def __init__(self, adapter_id: Optional[str], message: Optional[str] = None):
        super().__init__(message or f"Adapter not found: {adapter_id}", ErrorCodes.ADAPTER_NOT_FOUND)
        self.details["adapter_id"] = adapter_id


class AdapterError(DispatchError):
    """Failure of a single adapter call, normalized from a vendor error.

    ``retryable`` marks transient failures the retry wrapper may re-attempt.
    """

    def __init__(
        self,
        message: str,
        code: str = ErrorCodes.ADAPTER_ERROR,
        retryable: bool = False,
        status_code: Optional[int] = None,
        provider: Optional[str] = None
    ):
        super().__init__(message, code)
        self.code = code
        self.retryable = retryable
        self.status_code = status_code
        if status_code is not None:
            self.details["status_code"] = status_code
        if provider:
            self.details["provider"] = provider


class RateLimitError(AdapterError):
    """Upstream rejected the call for exceeding its rate limit."""

    def __init__(self, message: str, retry_after_ms: Optional[int] = None, provider: Optional[str] = None):
        super().__init__(message, ErrorCodes.RATE_LIMIT, retryable=True, status_code=429, provider=provider)
        self.retry_after_ms = retry_after_ms
        if retry_after_ms is not None:
            self.details["retry_after_ms"] = retry_after_ms


class AuthError(AdapterError):
    """Upstream rejected the credential. Never retried."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message, ErrorCodes.AUTH_ERROR, retryable=False, status_code=401, provider=provider)


class RequestTimeoutError(AdapterError):
    """An attempt did not complete within its timeout."""

    def __init__(self, message: str = "Operation timed out", provider: Optional[str] = None):
        super().__init__(message, ErrorCodes.TIMEOUT, retryable=True, status_code=408, provider=provider)


class ModelNotFoundError(AdapterError):
    """The configured model does not exist upstream."""

    def __init__(self, model: str, provider: Optional[str] = None):
        super().__init__(
            f"Model not found: {model}",
            ErrorCodes.MODEL_NOT_FOUND,
            retryable=False,
            status_code=404,
            provider=provider
        )
        self.details["model"] = model


class CircuitOpenError(DispatchError):
    """Circuit breaker rejected the call without attempting it."""

    def __init__(self, message: str = "Circuit breaker is open", breaker: Optional[str] = None):
        super().__init__(message, ErrorCodes.CIRCUIT_OPEN)
        if breaker:
            self.details["breaker"] = breaker


class AllAdaptersFailedError(DispatchError):
    """Every entry of a fallback chain failed or was skipped."""

    def __init__(self, message: str = "All fallback adapters failed", attempted: list = None):
        super().__init__(message, ErrorCodes.ALL_ADAPTERS_FAILED)
        self.details["attempted"] = attempted or []
