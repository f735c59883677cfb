"""Environment variable loading and configuration settings."""

from typing import Dict, List, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import (
    AdapterConfig,
    APIConfig,
    AppConfig,
    CircuitBreakerOptions,
    Environment,
    LogLevel,
    ModelProvider,
    RegistryConfig,
)


# Built-in catalogue: (id, provider, model, timeout_ms)
DEFAULT_ADAPTERS = [
    ("anthropic-claude-4-sonnet", ModelProvider.ANTHROPIC, "claude-sonnet-4-5-20250929", 60000),
    ("anthropic-claude-4-opus", ModelProvider.ANTHROPIC, "claude-opus-4-5-20251101", 120000),
    ("openai-gpt-4o", ModelProvider.OPENAI, "gpt-4o", 60000),
    ("google-gemini-pro", ModelProvider.GOOGLE, "gemini-1.5-pro", 60000),
]

DEFAULT_FALLBACK_CHAINS: Dict[str, List[str]] = {
    "anthropic-claude-4-sonnet": ["openai-gpt-4o", "google-gemini-pro"],
    "anthropic-claude-4-opus": ["anthropic-claude-4-sonnet", "openai-gpt-4o"],
    "openai-gpt-4o": ["anthropic-claude-4-sonnet", "google-gemini-pro"],
    "google-gemini-pro": ["anthropic-claude-4-sonnet", "openai-gpt-4o"],
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: Environment = Field(Environment.DEVELOPMENT, alias="ENVIRONMENT")
    debug: bool = Field(False, alias="DEBUG")

    # Provider credentials
    anthropic_api_key: Optional[SecretStr] = Field(None, alias="ANTHROPIC_API_KEY")
    openai_api_key: Optional[SecretStr] = Field(None, alias="OPENAI_API_KEY")
    google_api_key: Optional[SecretStr] = Field(None, alias="GOOGLE_API_KEY")

    # Adapter policy
    default_adapter_id: str = Field("anthropic-claude-4-sonnet", alias="DEFAULT_ADAPTER_ID")
    adapter_timeout_ms: Optional[int] = Field(None, alias="ADAPTER_TIMEOUT_MS")
    adapter_max_retries: int = Field(3, alias="ADAPTER_MAX_RETRIES")
    enable_fallback_chain: bool = Field(True, alias="ENABLE_FALLBACK_CHAIN")

    # Circuit breaker policy
    circuit_failure_threshold: int = Field(3, alias="CIRCUIT_FAILURE_THRESHOLD")
    circuit_reset_timeout_ms: int = Field(30000, alias="CIRCUIT_RESET_TIMEOUT_MS")
    circuit_half_open_max_calls: int = Field(1, alias="CIRCUIT_HALF_OPEN_MAX_CALLS")

    # API Configuration
    api_host: str = Field("0.0.0.0", alias="API_HOST")
    api_port: int = Field(8000, alias="API_PORT")
    log_level: LogLevel = Field(LogLevel.INFO, alias="LOG_LEVEL")
    cors_origins: str = Field("*", alias="CORS_ORIGINS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def api_key_for(self, provider: ModelProvider) -> Optional[SecretStr]:
        """Credential configured for ``provider``, if any."""
        return {
            ModelProvider.ANTHROPIC: self.anthropic_api_key,
            ModelProvider.OPENAI: self.openai_api_key,
            ModelProvider.GOOGLE: self.google_api_key,
        }.get(provider)

    def build_adapter_configs(self) -> List[AdapterConfig]:
        """Apply credentials and policy overrides to the built-in catalogue."""
        return [
            AdapterConfig(
                id=adapter_id,
                provider=provider,
                model=model,
                api_key=self.api_key_for(provider),
                max_retries=self.adapter_max_retries,
                timeout_ms=self.adapter_timeout_ms or timeout_ms,
            )
            for adapter_id, provider, model, timeout_ms in DEFAULT_ADAPTERS
        ]

    def to_registry_config(self) -> RegistryConfig:
        """Convert settings to the registry configuration."""
        return RegistryConfig(
            adapters=self.build_adapter_configs(),
            default_adapter_id=self.default_adapter_id,
            fallback_chains=DEFAULT_FALLBACK_CHAINS if self.enable_fallback_chain else {},
            circuit_breaker=CircuitBreakerOptions(
                failure_threshold=self.circuit_failure_threshold,
                reset_timeout_ms=self.circuit_reset_timeout_ms,
                half_open_max_calls=self.circuit_half_open_max_calls,
            ),
            enable_fallback=self.enable_fallback_chain,
        )

    def to_app_config(self) -> AppConfig:
        """Convert settings to AppConfig model."""
        return AppConfig(
            environment=self.environment,
            debug=self.debug,
            api=APIConfig(
                host=self.api_host,
                port=self.api_port,
                log_level=self.log_level,
                cors_origins=self.cors_origins,
            ),
            registry=self.to_registry_config(),
        )


def load_settings() -> Settings:
    """Load settings from environment variables and .env file."""
    return Settings()


def get_config() -> AppConfig:
    """Get application configuration."""
    settings = load_settings()
    return settings.to_app_config()
