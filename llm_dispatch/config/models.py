"""Configuration models using Pydantic for type validation."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class Environment(str, Enum):
    """Application environment types."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ModelProvider(str, Enum):
    """Supported completion providers."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"


class RateLimitConfig(BaseModel):
    """Advisory upstream rate limits. Not enforced by the dispatch layer."""
    requests_per_minute: int = Field(..., ge=1, description="Requests per minute")
    tokens_per_minute: int = Field(..., ge=1, description="Tokens per minute")


class AdapterConfig(BaseModel):
    """Identity and policy for one provider/model pairing.

    Frozen: changing a setting means building a new config and discarding
    any adapter built from the old one.
    """
    id: str = Field(..., min_length=1, description="Unique, caller-assigned adapter id")
    provider: ModelProvider = Field(..., description="Upstream provider")
    model: str = Field(..., min_length=1, description="Upstream model name")
    api_key: Optional[SecretStr] = Field(None, description="Provider credential")
    base_url: Optional[str] = Field(None, description="Override for the provider endpoint")
    max_retries: int = Field(3, ge=1, le=10, description="Maximum attempts per call, including the first")
    timeout_ms: int = Field(60000, gt=0, description="Per-attempt timeout in milliseconds")
    rate_limit: Optional[RateLimitConfig] = Field(None, description="Advisory rate limit hint")

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    def public_dict(self) -> Dict[str, Any]:
        """Serialize without the credential."""
        data = self.model_dump(mode="json", exclude={"api_key"})
        data["has_api_key"] = self.api_key is not None
        return data


class CircuitBreakerOptions(BaseModel):
    """Circuit breaker policy shared by every breaker of a fallback chain."""
    failure_threshold: int = Field(3, ge=1, description="Consecutive failures that open the circuit")
    reset_timeout_ms: int = Field(30000, ge=1, description="Cooldown before a half-open trial")
    half_open_max_calls: int = Field(1, ge=1, description="Concurrent trial calls while half-open")


class RegistryConfig(BaseModel):
    """Declarative adapter catalogue consumed by the adapter registry."""
    adapters: List[AdapterConfig] = Field(default_factory=list, description="Configured adapters")
    default_adapter_id: Optional[str] = Field(None, description="Adapter used when none is named")
    fallback_chains: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Primary adapter id -> ordered fallback adapter ids"
    )
    circuit_breaker: CircuitBreakerOptions = Field(
        default_factory=CircuitBreakerOptions,
        description="Breaker policy for chains built by the registry"
    )
    enable_fallback: bool = Field(True, description="Build fallback chains from fallback_chains")

    @field_validator("adapters")
    @classmethod
    def unique_adapter_ids(cls, v: List[AdapterConfig]) -> List[AdapterConfig]:
        """Reject duplicate adapter ids."""
        seen = set()
        for adapter in v:
            if adapter.id in seen:
                raise ValueError(f"Duplicate adapter id: {adapter.id}")
            seen.add(adapter.id)
        return v


class APIConfig(BaseModel):
    """API server configuration."""
    host: str = Field("0.0.0.0", description="API server host")
    port: int = Field(8000, ge=1, le=65535, description="API server port")
    log_level: LogLevel = Field(LogLevel.INFO, description="Logging level")
    cors_origins: List[str] = Field(["*"], description="CORS allowed origins")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if isinstance(v, str):
            if v == "*":
                return ["*"]
            return [origin.strip() for origin in v.split(",")]
        return v


class AppConfig(BaseModel):
    """Main application configuration."""
    environment: Environment = Field(Environment.DEVELOPMENT, description="Application environment")
    debug: bool = Field(False, description="Enable debug mode")
    api: APIConfig = Field(default_factory=APIConfig, description="API configuration")
    registry: RegistryConfig = Field(default_factory=RegistryConfig, description="Adapter registry configuration")

    model_config = ConfigDict(validate_assignment=True)
