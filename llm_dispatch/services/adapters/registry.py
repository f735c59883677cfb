"""Adapter registry: lazy construction, caching and hot reload of adapters."""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from llm_dispatch.config.models import AdapterConfig, CircuitBreakerOptions, RegistryConfig
from llm_dispatch.logging.utils import create_event_logger
from llm_dispatch.models.errors import AdapterNotFoundError, ValidationError
from llm_dispatch.models.interfaces import ICompletionAdapter
from .circuit_breaker import Clock
from .factory import AdapterFactory
from .fallback_manager import FallbackChain, FallbackConfig


logger = logging.getLogger(__name__)

AdapterBuilder = Callable[[AdapterConfig], ICompletionAdapter]


class AdapterRegistry:
    """Registry for managing and accessing completion adapters.

    Holds one ``AdapterConfig`` per adapter id and builds adapters on first
    use. Built adapters, and the fallback chains composed from them, are
    cached until their configuration changes. Cache population happens
    under a lock, so concurrent first lookups build a single instance.
    """

    def __init__(
        self,
        config: Optional[RegistryConfig] = None,
        factory: AdapterBuilder = AdapterFactory.create,
        clock: Optional[Clock] = None
    ):
        self._factory = factory
        self._clock = clock
        self._lock = threading.RLock()
        self._events = create_event_logger("registry")

        self._configs: Dict[str, AdapterConfig] = {}
        self._adapters: Dict[str, ICompletionAdapter] = {}
        self._chains: Dict[str, FallbackChain] = {}
        self._fallback_chains: Dict[str, List[str]] = {}
        self._breaker_options = CircuitBreakerOptions()
        self._enable_fallback = True
        self._default_adapter_id: Optional[str] = None

        if config is not None:
            self.initialize(config)

    @property
    def default_adapter_id(self) -> Optional[str]:
        return self._default_adapter_id

    def initialize(self, config: RegistryConfig) -> None:
        """Replace every configuration and drop all cached adapters and chains."""
        with self._lock:
            self._configs = {adapter.id: adapter for adapter in config.adapters}
            self._adapters = {}
            self._chains = {}
            self._fallback_chains = {k: list(v) for k, v in config.fallback_chains.items()}
            self._breaker_options = config.circuit_breaker
            self._enable_fallback = config.enable_fallback
            self._default_adapter_id = config.default_adapter_id or (
                config.adapters[0].id if config.adapters else None
            )

        self._events.log_event(
            "registry_initialized",
            "Registry initialized",
            adapter_count=len(config.adapters),
            default_adapter_id=self._default_adapter_id,
        )

    def get(self, adapter_id: str) -> ICompletionAdapter:
        """Get an adapter by id, building and caching it on first use.

        Raises:
            AdapterNotFoundError: If no configuration exists for ``adapter_id``.
        """
        with self._lock:
            adapter = self._adapters.get(adapter_id)
            if adapter is not None:
                return adapter

            config = self._configs.get(adapter_id)
            if config is None:
                raise AdapterNotFoundError(adapter_id)

            adapter = self._factory(config)
            self._adapters[adapter_id] = adapter

        self._events.log_event(
            "adapter_created",
            f"Adapter created: {adapter_id}",
            adapter_id=adapter_id,
            provider=config.provider.value,
        )
        return adapter

    def get_default(self) -> ICompletionAdapter:
        """Get the default adapter."""
        if not self._default_adapter_id:
            raise AdapterNotFoundError(None, "No default adapter configured")
        return self.get(self._default_adapter_id)

    def has(self, adapter_id: str) -> bool:
        """Check whether an adapter id is configured."""
        return adapter_id in self._configs

    def list(self) -> List[AdapterConfig]:
        """List all configured adapters in declaration order."""
        with self._lock:
            return list(self._configs.values())

    def get_config(self, adapter_id: str) -> Optional[AdapterConfig]:
        """Get adapter configuration."""
        return self._configs.get(adapter_id)

    def update_config(self, adapter_id: str, **updates: Any) -> AdapterConfig:
        """Merge ``updates`` into an adapter's configuration.

        The cached adapter, and every cached chain containing it, is evicted
        so the next lookup rebuilds it with the new settings.

        Raises:
            AdapterNotFoundError: If ``adapter_id`` is not configured.
            ValidationError: If the merged configuration is invalid.
        """
        if updates.get("id", adapter_id) != adapter_id:
            raise ValidationError("Adapter id cannot be changed", field="id", invalid_value=updates["id"])

        with self._lock:
            existing = self._configs.get(adapter_id)
            if existing is None:
                raise AdapterNotFoundError(adapter_id)

            try:
                updated = AdapterConfig.model_validate({**existing.model_dump(), **updates})
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid configuration for adapter {adapter_id}: {e}") from e

            self._configs[adapter_id] = updated
            self._adapters.pop(adapter_id, None)
            self._chains = {
                primary_id: chain
                for primary_id, chain in self._chains.items()
                if adapter_id not in chain.adapter_ids
            }

        logger.info(f"Adapter config updated: {adapter_id}", extra={"updated_fields": sorted(updates)})
        return updated

    async def reload(self, config: RegistryConfig) -> Dict[str, bool]:
        """Probe currently cached adapters, then re-initialize from ``config``.

        Probe failures are logged and never raised.

        Returns:
            Pre-reload health of the adapters that were cached.
        """
        with self._lock:
            cached = dict(self._adapters)

        results: Dict[str, bool] = {}
        for adapter_id, adapter in cached.items():
            try:
                results[adapter_id] = bool(await adapter.health_check())
            except Exception as e:
                logger.warning(f"Adapter health check failed during reload: {adapter_id}: {e}")
                results[adapter_id] = False

        self._events.log_event(
            "registry_reload",
            "Reloading adapter registry",
            pre_reload_health=results,
        )
        self.initialize(config)
        return results

    async def health_check(self) -> Dict[str, bool]:
        """Probe every configured adapter. Failures, including build errors, map to False."""
        results: Dict[str, bool] = {}
        for adapter_config in self.list():
            try:
                adapter = self.get(adapter_config.id)
                results[adapter_config.id] = bool(await adapter.health_check())
            except Exception as e:
                logger.warning(f"Health check failed for adapter {adapter_config.id}: {e}")
                results[adapter_config.id] = False

        self._events.log_event(
            "registry_health",
            "Registry health check completed",
            healthy=sum(results.values()),
            total=len(results),
        )
        return results

    def get_fallback_chain(self, primary_id: Optional[str] = None) -> FallbackChain:
        """Fallback chain headed by ``primary_id`` (default adapter if omitted).

        Chains are cached so circuit breaker state persists across requests.
        Fallback entries that cannot be built are left out; a primary that
        cannot be built raises.
        """
        primary_id = primary_id or self._default_adapter_id
        if not primary_id or not self.has(primary_id):
            raise AdapterNotFoundError(primary_id)

        with self._lock:
            chain = self._chains.get(primary_id)
            if chain is not None:
                return chain

            adapters = [self.get(primary_id)]
            fallback_ids = self._fallback_chains.get(primary_id, []) if self._enable_fallback else []
            for fallback_id in fallback_ids:
                if fallback_id == primary_id or fallback_id in (a.id for a in adapters):
                    continue
                try:
                    adapters.append(self.get(fallback_id))
                except Exception as e:
                    logger.warning(f"Leaving {fallback_id} out of fallback chain for {primary_id}: {e}")

            chain = FallbackChain(
                FallbackConfig(adapters=adapters, circuit_breaker_options=self._breaker_options),
                clock=self._clock,
            )
            self._chains[primary_id] = chain
            return chain
