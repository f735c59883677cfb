"""Configuration factory for different environments."""

import os
from typing import Optional

from llm_dispatch.models.errors import ConfigurationError
from .models import AppConfig, Environment, LogLevel
from .settings import get_config
from .validation import validate_config


# Upper bound applied to adapter timeouts in the testing environment
TESTING_TIMEOUT_MS = 10000


class ConfigFactory:
    """Factory for creating environment-specific configurations."""

    @staticmethod
    def create_config(environment: Optional[Environment] = None, validate: bool = True) -> AppConfig:
        """Create configuration for the specified environment.

        Args:
            environment: Target environment. If None, uses ENVIRONMENT env var.
            validate: Raise if the resulting configuration is invalid.

        Returns:
            AppConfig: Application configuration.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        if environment:
            # Override environment variable temporarily
            original_env = os.environ.get("ENVIRONMENT")
            os.environ["ENVIRONMENT"] = environment.value

        try:
            config = get_config()

            if config.environment == Environment.DEVELOPMENT:
                config = ConfigFactory._apply_development_overrides(config)
            elif config.environment == Environment.TESTING:
                config = ConfigFactory._apply_testing_overrides(config)
            elif config.environment == Environment.STAGING:
                config = ConfigFactory._apply_staging_overrides(config)
            elif config.environment == Environment.PRODUCTION:
                config = ConfigFactory._apply_production_overrides(config)

            if validate:
                validation_errors = validate_config(config)
                if validation_errors:
                    error_msg = "Configuration validation failed:\n" + "\n".join(validation_errors)
                    raise ConfigurationError(error_msg)

            return config

        finally:
            if environment and original_env is not None:
                os.environ["ENVIRONMENT"] = original_env
            elif environment and original_env is None:
                os.environ.pop("ENVIRONMENT", None)

    @staticmethod
    def _apply_development_overrides(config: AppConfig) -> AppConfig:
        """Apply development environment overrides."""
        config.debug = True

        if config.api.log_level == LogLevel.INFO:
            config.api.log_level = LogLevel.DEBUG

        return config

    @staticmethod
    def _apply_testing_overrides(config: AppConfig) -> AppConfig:
        """Apply testing environment overrides."""
        config.debug = False

        # Use a different port for testing to avoid conflicts
        config.api.port = 8001

        # Shorter timeouts and single attempts keep test runs fast
        config.registry.adapters = [
            adapter.model_copy(update={
                "timeout_ms": min(adapter.timeout_ms, TESTING_TIMEOUT_MS),
                "max_retries": 1,
            })
            for adapter in config.registry.adapters
        ]
        config.registry.circuit_breaker.reset_timeout_ms = min(
            config.registry.circuit_breaker.reset_timeout_ms, 1000
        )

        return config

    @staticmethod
    def _apply_staging_overrides(config: AppConfig) -> AppConfig:
        """Apply staging environment overrides."""
        config.debug = False
        config.api.log_level = LogLevel.INFO

        if config.api.cors_origins == ["*"]:
            config.api.cors_origins = ["https://staging.example.com"]

        return config

    @staticmethod
    def _apply_production_overrides(config: AppConfig) -> AppConfig:
        """Apply production environment overrides."""
        config.debug = False

        if config.api.log_level == LogLevel.DEBUG:
            config.api.log_level = LogLevel.INFO

        return config


def create_config_for_environment(env: Environment) -> AppConfig:
    """Create configuration for a specific environment.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    return ConfigFactory.create_config(env)


def get_current_config(validate: bool = True) -> AppConfig:
    """Get configuration for the current environment.

    Raises:
        ConfigurationError: If configuration is invalid and ``validate`` is set.
    """
    return ConfigFactory.create_config(validate=validate)
