"""Configuration validation with clear error messages."""

from typing import List

from .models import AppConfig, Environment, RegistryConfig


def validate_config(config: AppConfig) -> List[str]:
    """Validate application configuration and return list of error messages.

    Args:
        config: Application configuration to validate.

    Returns:
        List of validation error messages. Empty list if valid.
    """
    errors = []

    errors.extend(validate_registry_config(config.registry))
    errors.extend(_validate_api_config(config))
    errors.extend(_validate_environment_config(config))

    return errors


def validate_registry_config(registry: RegistryConfig) -> List[str]:
    """Validate the adapter catalogue and its fallback chains."""
    errors = []
    adapter_ids = {adapter.id for adapter in registry.adapters}

    if not registry.adapters:
        errors.append("At least one adapter must be configured.")
        return errors

    if registry.default_adapter_id and registry.default_adapter_id not in adapter_ids:
        errors.append(
            f"Default adapter not found: {registry.default_adapter_id}. "
            "Set DEFAULT_ADAPTER_ID to one of the configured adapter ids."
        )

    default_id = registry.default_adapter_id or registry.adapters[0].id
    default = next((a for a in registry.adapters if a.id == default_id), None)
    if default is not None and default.api_key is None:
        env_var = f"{default.provider.value.upper()}_API_KEY"
        errors.append(
            f"API key is required for the default adapter '{default.id}'. "
            f"Set {env_var} environment variable."
        )

    for primary_id, chain in registry.fallback_chains.items():
        if primary_id not in adapter_ids:
            errors.append(f"Fallback chain defined for unknown adapter: {primary_id}")
        for fallback_id in chain:
            if fallback_id not in adapter_ids:
                errors.append(f"Invalid fallback adapter: {fallback_id} in chain for {primary_id}")
            elif fallback_id == primary_id:
                errors.append(f"Fallback chain for {primary_id} must not reference itself")
        if len(set(chain)) != len(chain):
            errors.append(f"Fallback chain for {primary_id} contains duplicate adapters")

    return errors


def _validate_api_config(config: AppConfig) -> List[str]:
    """Validate API configuration."""
    errors = []

    if not config.api.host or not config.api.host.strip():
        errors.append("API host cannot be empty.")

    if not config.api.cors_origins:
        errors.append("CORS origins cannot be empty.")

    return errors


def _validate_environment_config(config: AppConfig) -> List[str]:
    """Validate environment-specific configuration requirements."""
    errors = []

    if config.environment == Environment.PRODUCTION:
        if config.debug:
            errors.append("Debug mode should be disabled in production.")

        if config.api.cors_origins == ["*"]:
            errors.append(
                "CORS origins should be restricted in production. "
                "Avoid using '*' and specify allowed origins explicitly."
            )

        if config.api.log_level.value == "DEBUG":
            errors.append(
                "Debug logging should be avoided in production. "
                "Use INFO or higher log level."
            )

    elif config.environment == Environment.TESTING:
        slow = [a.id for a in config.registry.adapters if a.timeout_ms > 60000]
        if slow:
            errors.append(
                "Adapter timeouts should be reduced in testing environment "
                f"for faster test execution: {', '.join(slow)}"
            )

    return errors


def validate_startup_config() -> None:
    """Validate configuration at startup and raise exception if invalid.

    Raises:
        ValueError: If configuration is invalid with detailed error message.
    """
    from .factory import get_current_config

    try:
        config = get_current_config(validate=False)
        errors = validate_config(config)

        if errors:
            error_message = (
                "Configuration validation failed. Please fix the following issues:\n\n" +
                "\n".join(f"- {error}" for error in errors) +
                "\n\nCheck your environment variables and .env file."
            )
            raise ValueError(error_message)

    except Exception as e:
        if isinstance(e, ValueError) and "Configuration validation failed" in str(e):
            raise

        raise ValueError(
            f"Failed to load or validate configuration: {str(e)}\n"
            "Please check your environment variables and .env file."
        ) from e
