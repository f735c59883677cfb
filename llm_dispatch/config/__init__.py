"""Configuration package for the completion dispatch layer."""

from .factory import ConfigFactory, create_config_for_environment, get_current_config
from .models import (
    AdapterConfig,
    APIConfig,
    AppConfig,
    CircuitBreakerOptions,
    Environment,
    LogLevel,
    ModelProvider,
    RateLimitConfig,
    RegistryConfig,
)
from .settings import DEFAULT_ADAPTERS, DEFAULT_FALLBACK_CHAINS, Settings, get_config, load_settings
from .validation import validate_config, validate_registry_config, validate_startup_config

__all__ = [
    # Main configuration interfaces
    "get_current_config",
    "get_config",
    "validate_startup_config",

    # Factory functions
    "ConfigFactory",
    "create_config_for_environment",

    # Models and enums
    "AdapterConfig",
    "APIConfig",
    "AppConfig",
    "CircuitBreakerOptions",
    "Environment",
    "LogLevel",
    "ModelProvider",
    "RateLimitConfig",
    "RegistryConfig",

    # Settings
    "Settings",
    "DEFAULT_ADAPTERS",
    "DEFAULT_FALLBACK_CHAINS",

    # Utilities
    "load_settings",
    "validate_config",
    "validate_registry_config",
]
