"""Factory for creating completion adapter instances."""

import logging
from typing import Dict, List, Optional, Type, Union

from pydantic import SecretStr

from llm_dispatch.config.models import AdapterConfig, ModelProvider
from llm_dispatch.models.errors import ConfigurationError, ValidationError
from llm_dispatch.models.interfaces import ICompletionAdapter
from .anthropic_adapter import AnthropicAdapter
from .google_adapter import GoogleAdapter
from .openai_adapter import OpenAIAdapter


logger = logging.getLogger(__name__)


class AdapterFactory:
    """Factory mapping providers to adapter classes."""

    _adapters: Dict[ModelProvider, Type[ICompletionAdapter]] = {
        ModelProvider.ANTHROPIC: AnthropicAdapter,
        ModelProvider.OPENAI: OpenAIAdapter,
        ModelProvider.GOOGLE: GoogleAdapter,
    }

    @classmethod
    def register(
        cls,
        provider: Union[ModelProvider, str],
        adapter_class: Type[ICompletionAdapter]
    ) -> None:
        """Register (or replace) the adapter class for a provider."""
        if not isinstance(adapter_class, type) or not issubclass(adapter_class, ICompletionAdapter):
            raise ValidationError("Adapter class must implement ICompletionAdapter interface")

        cls._adapters[ModelProvider(provider)] = adapter_class
        logger.info(f"Registered adapter for provider: {ModelProvider(provider).value}")

    @classmethod
    def create(cls, config: AdapterConfig) -> ICompletionAdapter:
        """Create an adapter instance from its configuration.

        Raises:
            ConfigurationError: If the provider is unknown or the adapter
                rejects its configuration.
        """
        adapter_class = cls._adapters.get(config.provider)
        if adapter_class is None:
            available = [provider.value for provider in cls._adapters]
            raise ConfigurationError(
                f"Unknown adapter provider: {config.provider}. "
                f"Available providers: {available}"
            )

        try:
            adapter = adapter_class(config)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Failed to create {config.provider.value} adapter {config.id}: {e}")
            raise ConfigurationError(
                f"Failed to initialize {config.provider.value} adapter {config.id}: {str(e)}"
            ) from e

        logger.debug(f"Created {config.provider.value} adapter {config.id}")
        return adapter

    @classmethod
    def has(cls, provider: Union[ModelProvider, str]) -> bool:
        """Check if an adapter class is registered for the provider."""
        try:
            return ModelProvider(provider) in cls._adapters
        except ValueError:
            return False

    @classmethod
    def get_providers(cls) -> List[ModelProvider]:
        """Get all registered providers."""
        return list(cls._adapters.keys())


def create_adapter(
    provider: Union[ModelProvider, str],
    model: str,
    api_key: Optional[str] = None
) -> ICompletionAdapter:
    """Create an adapter with minimal configuration."""
    provider = ModelProvider(provider)
    return AdapterFactory.create(AdapterConfig(
        id=f"{provider.value}-{model}",
        provider=provider,
        model=model,
        api_key=SecretStr(api_key) if api_key else None,
    ))
