"""Tests for AdapterFactory."""

import pytest

from llm_dispatch.config.models import AdapterConfig, ModelProvider
from llm_dispatch.models import ConfigurationError, ValidationError
from llm_dispatch.services.adapters import (
    AdapterFactory,
    AnthropicAdapter,
    GoogleAdapter,
    OpenAIAdapter,
    create_adapter,
)

from tests.fakes import FakeAdapter


def adapter_config(provider, api_key="test-key", **kwargs):
    return AdapterConfig(id=f"{provider.value}-test", provider=provider, model="test-model", api_key=api_key, **kwargs)


class TestAdapterFactory:
    """Tests for adapter construction by provider."""

    @pytest.mark.parametrize("provider,adapter_class", [
        (ModelProvider.ANTHROPIC, AnthropicAdapter),
        (ModelProvider.OPENAI, OpenAIAdapter),
        (ModelProvider.GOOGLE, GoogleAdapter),
    ])
    def test_builds_adapter_for_provider(self, provider, adapter_class):
        adapter = AdapterFactory.create(adapter_config(provider))

        assert isinstance(adapter, adapter_class)
        assert adapter.id == f"{provider.value}-test"
        assert adapter.provider == provider.value
        assert adapter.model == "test-model"

    def test_missing_api_key_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError) as exc_info:
            AdapterFactory.create(adapter_config(ModelProvider.OPENAI, api_key=None))

        assert "OPENAI_API_KEY" in exc_info.value.message
        assert exc_info.value.details["config_key"] == "OPENAI_API_KEY"

    def test_unregistered_provider(self, restore_factory):
        del AdapterFactory._adapters[ModelProvider.GOOGLE]

        with pytest.raises(ConfigurationError, match="Unknown adapter provider"):
            AdapterFactory.create(adapter_config(ModelProvider.GOOGLE))
        assert not AdapterFactory.has(ModelProvider.GOOGLE)

    def test_constructor_failures_are_wrapped(self, restore_factory):
        class BrokenAdapter(FakeAdapter):
            def __init__(self, config):
                raise RuntimeError("client exploded")

        AdapterFactory.register(ModelProvider.OPENAI, BrokenAdapter)

        with pytest.raises(ConfigurationError, match="client exploded") as exc_info:
            AdapterFactory.create(adapter_config(ModelProvider.OPENAI))
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_register_replaces_provider_class(self, restore_factory):
        class ConfiguredFakeAdapter(FakeAdapter):
            def __init__(self, config):
                super().__init__(config.id, config.provider.value)

        AdapterFactory.register("anthropic", ConfiguredFakeAdapter)

        adapter = AdapterFactory.create(adapter_config(ModelProvider.ANTHROPIC))

        assert isinstance(adapter, ConfiguredFakeAdapter)
        assert adapter.id == "anthropic-test"

    def test_register_rejects_non_adapters(self, restore_factory):
        with pytest.raises(ValidationError):
            AdapterFactory.register(ModelProvider.OPENAI, dict)

    def test_has_and_providers(self):
        assert AdapterFactory.has("anthropic")
        assert AdapterFactory.has(ModelProvider.GOOGLE)
        assert not AdapterFactory.has("cohere")
        assert set(AdapterFactory.get_providers()) == set(ModelProvider)

    def test_create_adapter_helper(self):
        adapter = create_adapter("openai", "gpt-4o", api_key="sk-test")

        assert isinstance(adapter, OpenAIAdapter)
        assert adapter.id == "openai-gpt-4o"
        assert adapter.config.api_key.get_secret_value() == "sk-test"
