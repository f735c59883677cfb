"""Shared pytest fixtures.

No fixture talks to a real provider: adapters are scripted fakes or vendor
adapters with mocked clients.
"""

import logging
from typing import List

import pytest

from llm_dispatch.config.models import AdapterConfig, CircuitBreakerOptions, ModelProvider, RegistryConfig
from llm_dispatch.models.interfaces import ICompletionAdapter
from llm_dispatch.services.adapters import AdapterFactory, AdapterRegistry

from tests.fakes import FakeAdapter, ManualClock, RecordingSleep


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def capture_logs(caplog):
    """Attach caplog directly to package loggers.

    The package logger stops propagation once logging is configured, so
    records are captured at the named logger instead of the root, once each.
    """
    attached = []

    def attach(name: str):
        target = logging.getLogger(name)
        attached.append((target, target.level, target.propagate))
        target.addHandler(caplog.handler)
        target.setLevel(logging.DEBUG)
        target.propagate = False
        return caplog

    yield attach

    for target, level, propagate in attached:
        target.removeHandler(caplog.handler)
        target.setLevel(level)
        target.propagate = propagate


@pytest.fixture
def registry_config() -> RegistryConfig:
    """Three adapters; ``primary`` falls back to ``secondary`` then ``tertiary``."""
    return RegistryConfig(
        adapters=[
            AdapterConfig(id="primary", provider=ModelProvider.ANTHROPIC, model="claude-test", api_key="sk-ant"),
            AdapterConfig(id="secondary", provider=ModelProvider.OPENAI, model="gpt-test", api_key="sk-oai"),
            AdapterConfig(id="tertiary", provider=ModelProvider.GOOGLE, model="gemini-test", api_key="g-key"),
        ],
        default_adapter_id="primary",
        fallback_chains={
            "primary": ["secondary", "tertiary"],
            "secondary": ["primary"],
        },
        circuit_breaker=CircuitBreakerOptions(failure_threshold=1, reset_timeout_ms=50),
    )


class FakeAdapterBuilder:
    """Adapter builder for the registry that records every build."""

    def __init__(self):
        self.built: List[str] = []
        self.fail_for: set = set()

    def __call__(self, config: AdapterConfig) -> ICompletionAdapter:
        if config.id in self.fail_for:
            raise RuntimeError(f"cannot build {config.id}")
        self.built.append(config.id)
        return FakeAdapter.from_config(config)


@pytest.fixture
def builder() -> FakeAdapterBuilder:
    return FakeAdapterBuilder()


@pytest.fixture
def registry(registry_config, builder, clock) -> AdapterRegistry:
    return AdapterRegistry(registry_config, factory=builder, clock=clock)


@pytest.fixture
def restore_factory():
    """Undo AdapterFactory.register calls made by a test."""
    saved = dict(AdapterFactory._adapters)
    yield
    AdapterFactory._adapters.clear()
    AdapterFactory._adapters.update(saved)
