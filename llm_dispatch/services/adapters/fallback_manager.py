"""Fallback chain trying adapters in priority order behind circuit breakers."""

import logging
import time
from typing import AsyncIterator, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from llm_dispatch.config.models import CircuitBreakerOptions
from llm_dispatch.logging.utils import create_event_logger
from llm_dispatch.models.errors import AllAdaptersFailedError, CircuitOpenError
from llm_dispatch.models.interfaces import ICompletionAdapter
from llm_dispatch.models.requests import CompletionRequest
from llm_dispatch.models.responses import (
    AdapterStatus,
    CompletionResponse,
    StreamChunk,
    StreamChunkType,
    TokenUsage,
)
from .circuit_breaker import CircuitBreaker, CircuitState, Clock


logger = logging.getLogger(__name__)

FALLBACK_ADAPTER_ID = "fallback"

# Reported as the provider of a chain with no adapters
EMPTY_CHAIN_PROVIDER = "none"


class FallbackConfig(BaseModel):
    """Adapters of a fallback chain, in priority order, and their breaker policy."""

    adapters: List[ICompletionAdapter] = Field(default_factory=list, description="Adapters in priority order")
    circuit_breaker_options: Optional[CircuitBreakerOptions] = Field(
        default=None,
        description="Breaker policy applied to every entry"
    )

    model_config = ConfigDict(arbitrary_types_allowed=True)


class ChainEntry:
    """An adapter paired with the breaker guarding it."""

    def __init__(self, adapter: ICompletionAdapter, breaker: CircuitBreaker):
        self.adapter = adapter
        self.breaker = breaker


class FallbackChain(ICompletionAdapter):
    """Composite adapter that fails over across an ordered list of adapters.

    Each entry has its own circuit breaker. Entries whose breaker is open
    are skipped; the first entry to succeed wins. The order is fixed at
    construction.
    """

    def __init__(self, config: FallbackConfig, clock: Optional[Clock] = None):
        options = config.circuit_breaker_options or CircuitBreakerOptions()
        breaker_kwargs = {"clock": clock} if clock is not None else {}

        self._entries = tuple(
            ChainEntry(adapter, CircuitBreaker(options, name=adapter.id, **breaker_kwargs))
            for adapter in config.adapters
        )
        self._provider = config.adapters[0].provider if config.adapters else EMPTY_CHAIN_PROVIDER
        self._events = create_event_logger("fallback")

        logger.info(
            "Fallback chain initialized",
            extra={
                "adapter_count": len(self._entries),
                "adapter_ids": self.adapter_ids,
            }
        )

    @property
    def id(self) -> str:
        return FALLBACK_ADAPTER_ID

    @property
    def provider(self) -> str:
        return self._provider

    @property
    def adapter_ids(self) -> List[str]:
        return [entry.adapter.id for entry in self._entries]

    @property
    def adapters(self) -> List[ICompletionAdapter]:
        return [entry.adapter for entry in self._entries]

    def get_breaker(self, adapter_id: str) -> Optional[CircuitBreaker]:
        """Breaker guarding ``adapter_id``, if it is in the chain."""
        for entry in self._entries:
            if entry.adapter.id == adapter_id:
                return entry.breaker
        return None

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Return the first successful completion in chain order.

        Raises:
            Exception: The last adapter error when every attempted entry failed.
            AllAdaptersFailedError: If no entry could be attempted.
        """
        last_error: Optional[Exception] = None
        attempted: List[str] = []

        for position, entry in enumerate(self._entries):
            adapter = entry.adapter
            if entry.breaker.get_state() == CircuitState.OPEN:
                logger.debug(f"Skipping adapter with open circuit: {adapter.id}")
                continue

            attempted.append(adapter.id)
            start_time = time.perf_counter()
            try:
                response = await entry.breaker.execute(lambda adapter=adapter: adapter.complete(request))
            except Exception as e:
                last_error = e
                self._events.fallback_advance(adapter.id, position, e)
                continue

            self._events.log_event(
                "fallback_succeeded",
                f"Fallback request succeeded with {adapter.id}",
                adapter_id=adapter.id,
                position=position,
                latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            return response

        self._events.log_event(
            "fallback_exhausted",
            "All fallback adapters failed",
            attempted=attempted,
            last_error=str(last_error) if last_error else None,
        )
        if last_error is not None:
            raise last_error
        raise AllAdaptersFailedError(attempted=attempted)

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        """Stream from the first entry that completes without error.

        Chunks already forwarded from a failed entry are not retracted. When
        an entry fails after producing output, a ``fallback`` chunk naming it
        precedes the next entry's chunks. An exhausted chain ends with a
        single ``error`` chunk.
        """
        last_error: Optional[str] = None
        attempted: List[str] = []

        for position, entry in enumerate(self._entries):
            adapter, breaker = entry.adapter, entry.breaker
            if breaker.get_state() == CircuitState.OPEN:
                logger.debug(f"Skipping adapter with open circuit: {adapter.id}")
                continue

            try:
                admission = breaker.acquire()
            except CircuitOpenError as e:
                last_error = str(e)
                continue

            attempted.append(adapter.id)
            failure: Optional[Exception] = None
            produced_output = False
            chunks = adapter.stream(request)

            try:
                async for chunk in chunks:
                    if chunk.type == StreamChunkType.ERROR:
                        failure = RuntimeError(chunk.error or "Stream failed")
                        break
                    produced_output = True
                    yield chunk
            except Exception as e:
                failure = e
            except BaseException:
                # Consumer went away or the task was cancelled: no verdict
                breaker.release(admission)
                raise
            finally:
                await chunks.aclose()

            if failure is None:
                breaker.record_success(admission)
                self._events.log_event(
                    "fallback_succeeded",
                    f"Fallback stream succeeded with {adapter.id}",
                    adapter_id=adapter.id,
                    position=position,
                )
                return

            breaker.record_failure(admission)
            last_error = str(failure) or type(failure).__name__
            self._events.fallback_advance(adapter.id, position, failure)

            if produced_output:
                yield StreamChunk(
                    type=StreamChunkType.FALLBACK,
                    error=last_error,
                    adapter_id=adapter.id,
                )

        self._events.log_event(
            "fallback_exhausted",
            "All fallback adapters failed while streaming",
            attempted=attempted,
            last_error=last_error,
        )
        yield StreamChunk(
            type=StreamChunkType.ERROR,
            error=last_error or "All fallback adapters failed",
            adapter_id=self.id,
        )

    def count_tokens(self, text: str) -> int:
        """Delegate to the first adapter regardless of breaker state."""
        if not self._entries:
            return 0
        return self._entries[0].adapter.count_tokens(text)

    def estimate_cost(self, usage: TokenUsage) -> float:
        """Delegate to the first adapter regardless of breaker state."""
        if not self._entries:
            return 0.0
        return self._entries[0].adapter.estimate_cost(usage)

    async def health_check(self) -> bool:
        """Healthy if at least one adapter's probe succeeds."""
        for entry in self._entries:
            if await self._probe(entry.adapter):
                return True
        return False

    def get_status(self) -> List[AdapterStatus]:
        """Get status of all adapters in the chain."""
        return [
            AdapterStatus(
                id=entry.adapter.id,
                provider=entry.adapter.provider,
                circuit_state=entry.breaker.get_state().value,
            )
            for entry in self._entries
        ]

    async def get_healthy_adapter(self) -> Optional[ICompletionAdapter]:
        """First adapter whose circuit is not open and whose probe succeeds."""
        for entry in self._entries:
            if entry.breaker.get_state() == CircuitState.OPEN:
                continue
            if await self._probe(entry.adapter):
                return entry.adapter
        return None

    @staticmethod
    async def _probe(adapter: ICompletionAdapter) -> bool:
        try:
            return bool(await adapter.health_check())
        except Exception as e:
            logger.warning(f"Health probe raised for adapter {adapter.id}: {e}")
            return False


def create_fallback_chain(
    adapters: Sequence[ICompletionAdapter],
    options: Optional[CircuitBreakerOptions] = None,
    clock: Optional[Clock] = None
) -> FallbackChain:
    """Create a fallback chain from adapters in priority order."""
    return FallbackChain(
        FallbackConfig(adapters=list(adapters), circuit_breaker_options=options),
        clock=clock,
    )
