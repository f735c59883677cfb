"""Tests for FallbackChain."""

import pytest

from llm_dispatch.config.models import CircuitBreakerOptions
from llm_dispatch.models import (
    AllAdaptersFailedError,
    AuthError,
    RateLimitError,
    StreamChunkType,
    TokenUsage,
)
from llm_dispatch.services.adapters.circuit_breaker import CircuitState
from llm_dispatch.services.adapters.fallback_manager import (
    EMPTY_CHAIN_PROVIDER,
    FALLBACK_ADAPTER_ID,
    FallbackChain,
    FallbackConfig,
    create_fallback_chain,
)

from tests.fakes import FakeAdapter, collect, make_request


FAST_RESET = CircuitBreakerOptions(failure_threshold=1, reset_timeout_ms=50)


class TestFallbackComplete:
    """Tests for FallbackChain.complete."""

    @pytest.mark.asyncio
    async def test_first_healthy_adapter_wins(self, clock):
        primary = FakeAdapter("primary", outcomes=["from primary"])
        secondary = FakeAdapter("secondary")
        chain = create_fallback_chain([primary, secondary], clock=clock)

        response = await chain.complete(make_request())

        assert response.content == "from primary"
        assert response.adapter_id == "primary"
        assert secondary.complete_calls == 0

    @pytest.mark.asyncio
    async def test_advances_past_failures(self, clock):
        primary = FakeAdapter("primary", outcomes=[RateLimitError("busy")])
        secondary = FakeAdapter("secondary", outcomes=["from secondary"])
        chain = create_fallback_chain([primary, secondary], clock=clock)

        response = await chain.complete(make_request())

        assert response.content == "from secondary"
        assert primary.complete_calls == 1

    @pytest.mark.asyncio
    async def test_non_retryable_errors_also_advance(self, clock):
        primary = FakeAdapter("primary", outcomes=[AuthError("bad key")])
        secondary = FakeAdapter("secondary")
        chain = create_fallback_chain([primary, secondary], clock=clock)

        assert (await chain.complete(make_request())).adapter_id == "secondary"

    @pytest.mark.asyncio
    async def test_exhausted_chain_raises_last_error(self, clock):
        last = AuthError("secondary down")
        primary = FakeAdapter("primary", outcomes=[RateLimitError("primary down")])
        secondary = FakeAdapter("secondary", outcomes=[last])
        chain = create_fallback_chain([primary, secondary], clock=clock)

        with pytest.raises(AuthError) as exc_info:
            await chain.complete(make_request())

        assert exc_info.value is last

    @pytest.mark.asyncio
    async def test_nothing_attempted_raises_all_adapters_failed(self, clock):
        primary = FakeAdapter("primary", outcomes=[RateLimitError("down")])
        chain = create_fallback_chain([primary], FAST_RESET, clock=clock)

        with pytest.raises(RateLimitError):
            await chain.complete(make_request())

        with pytest.raises(AllAdaptersFailedError) as exc_info:
            await chain.complete(make_request())

        assert exc_info.value.details["attempted"] == []
        assert primary.complete_calls == 1

    @pytest.mark.asyncio
    async def test_empty_chain_raises_all_adapters_failed(self):
        chain = FallbackChain(FallbackConfig(adapters=[]))

        with pytest.raises(AllAdaptersFailedError):
            await chain.complete(make_request())

    @pytest.mark.asyncio
    async def test_open_circuit_is_skipped_until_cooldown(self, clock):
        """Threshold 1 and a 50ms cooldown: fail, skip, then recover via a trial."""
        primary = FakeAdapter("primary", outcomes=[RateLimitError("down")])
        secondary = FakeAdapter("secondary")
        chain = create_fallback_chain([primary, secondary], FAST_RESET, clock=clock)

        first = await chain.complete(make_request())
        assert first.adapter_id == "secondary"
        assert chain.get_breaker("primary").get_state() == CircuitState.OPEN

        second = await chain.complete(make_request())
        assert second.adapter_id == "secondary"
        assert primary.complete_calls == 1

        clock.advance_ms(50)
        third = await chain.complete(make_request())
        assert third.adapter_id == "primary"
        assert primary.complete_calls == 2
        assert chain.get_breaker("primary").get_state() == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_breakers_are_independent(self, clock):
        primary = FakeAdapter("primary", outcomes=[RateLimitError("down")])
        secondary = FakeAdapter("secondary")
        chain = create_fallback_chain([primary, secondary], FAST_RESET, clock=clock)

        await chain.complete(make_request())

        assert chain.get_breaker("primary").get_state() == CircuitState.OPEN
        assert chain.get_breaker("secondary").get_state() == CircuitState.CLOSED
        assert chain.get_breaker("missing") is None


class TestFallbackStream:
    """Tests for FallbackChain.stream."""

    @pytest.mark.asyncio
    async def test_streams_from_first_adapter(self, clock):
        chain = create_fallback_chain([FakeAdapter("primary"), FakeAdapter("secondary")], clock=clock)

        chunks = await collect(chain.stream(make_request()))

        assert [chunk.type for chunk in chunks] == [
            StreamChunkType.CONTENT, StreamChunkType.CONTENT, StreamChunkType.DONE
        ]
        assert "".join(chunk.content for chunk in chunks if chunk.content) == "Hello"
        assert all(chunk.adapter_id == "primary" for chunk in chunks)

    @pytest.mark.asyncio
    async def test_error_before_output_advances_silently(self, clock):
        primary = FakeAdapter("primary", stream_error_after=0)
        secondary = FakeAdapter("secondary")
        chain = create_fallback_chain([primary, secondary], clock=clock)

        chunks = await collect(chain.stream(make_request()))

        assert all(chunk.adapter_id == "secondary" for chunk in chunks)
        assert chunks[-1].type == StreamChunkType.DONE

    @pytest.mark.asyncio
    async def test_partial_output_is_followed_by_fallback_marker(self, clock):
        primary = FakeAdapter("primary", stream_error_after=1)
        secondary = FakeAdapter("secondary")
        chain = create_fallback_chain([primary, secondary], clock=clock)

        chunks = await collect(chain.stream(make_request()))

        assert [(chunk.type, chunk.adapter_id) for chunk in chunks] == [
            (StreamChunkType.CONTENT, "primary"),
            (StreamChunkType.FALLBACK, "primary"),
            (StreamChunkType.CONTENT, "secondary"),
            (StreamChunkType.CONTENT, "secondary"),
            (StreamChunkType.DONE, "secondary"),
        ]
        assert chunks[1].error == "primary stream failed"

    @pytest.mark.asyncio
    async def test_raised_stream_error_counts_as_failure(self, clock):
        primary = FakeAdapter("primary", stream_raise=RateLimitError("cut off"))
        secondary = FakeAdapter("secondary")
        chain = create_fallback_chain([primary, secondary], FAST_RESET, clock=clock)

        chunks = await collect(chain.stream(make_request()))

        fallback = [chunk for chunk in chunks if chunk.type == StreamChunkType.FALLBACK]
        assert len(fallback) == 1
        assert fallback[0].error == "cut off"
        assert chain.get_breaker("primary").get_state() == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_exhausted_stream_ends_with_single_error(self, clock):
        primary = FakeAdapter("primary", stream_error_after=0)
        secondary = FakeAdapter("secondary", stream_error_after=0)
        chain = create_fallback_chain([primary, secondary], clock=clock)

        chunks = await collect(chain.stream(make_request()))

        assert len(chunks) == 1
        assert chunks[0].type == StreamChunkType.ERROR
        assert chunks[0].adapter_id == FALLBACK_ADAPTER_ID
        assert chunks[0].error == "secondary stream failed"

    @pytest.mark.asyncio
    async def test_open_circuit_is_skipped_while_streaming(self, clock):
        primary = FakeAdapter("primary", stream_error_after=0)
        secondary = FakeAdapter("secondary")
        chain = create_fallback_chain([primary, secondary], FAST_RESET, clock=clock)

        await collect(chain.stream(make_request()))
        await collect(chain.stream(make_request()))

        assert primary.stream_calls == 1
        assert secondary.stream_calls == 2

    @pytest.mark.asyncio
    async def test_all_open_yields_generic_error(self, clock):
        primary = FakeAdapter("primary", stream_error_after=0)
        chain = create_fallback_chain([primary], FAST_RESET, clock=clock)
        await collect(chain.stream(make_request()))

        chunks = await collect(chain.stream(make_request()))

        assert len(chunks) == 1
        assert chunks[0].error == "All fallback adapters failed"

    @pytest.mark.asyncio
    async def test_abandoned_stream_releases_trial_slot(self, clock):
        primary = FakeAdapter("primary", stream_error_after=0)
        chain = create_fallback_chain([primary], FAST_RESET, clock=clock)
        await collect(chain.stream(make_request()))
        clock.advance_ms(50)

        primary.stream_error_after = None
        stream = chain.stream(make_request())
        first = await stream.__anext__()
        assert first.type == StreamChunkType.CONTENT
        await stream.aclose()

        breaker = chain.get_breaker("primary")
        assert breaker.get_snapshot()["half_open_in_flight"] == 0
        chunks = await collect(chain.stream(make_request()))
        assert chunks[-1].type == StreamChunkType.DONE
        assert breaker.get_state() == CircuitState.CLOSED


class TestFallbackIntrospection:
    """Tests for delegation, health and status."""

    def test_identity(self):
        chain = create_fallback_chain([FakeAdapter("primary", provider="openai"), FakeAdapter("secondary")])

        assert chain.id == FALLBACK_ADAPTER_ID
        assert chain.provider == "openai"
        assert chain.adapter_ids == ["primary", "secondary"]

    def test_count_tokens_and_cost_delegate_to_first(self):
        chain = create_fallback_chain([
            FakeAdapter("primary", cost_per_token=0.5),
            FakeAdapter("secondary", cost_per_token=100.0),
        ])

        assert chain.count_tokens("abcdefgh") == 2
        assert chain.estimate_cost(TokenUsage.from_counts(1, 1)) == 1.0

    def test_empty_chain_delegation_defaults(self):
        chain = create_fallback_chain([])
        assert chain.provider == EMPTY_CHAIN_PROVIDER == "none"
        assert chain.get_status() == []
        assert chain.count_tokens("abc") == 0
        assert chain.estimate_cost(TokenUsage()) == 0.0

    @pytest.mark.asyncio
    async def test_health_check_any_healthy(self):
        sick = FakeAdapter("primary", health_error=RuntimeError("probe crashed"))
        healthy = FakeAdapter("secondary")

        assert await create_fallback_chain([sick, healthy]).health_check() is True
        assert await create_fallback_chain([sick, FakeAdapter("x", healthy=False)]).health_check() is False

    @pytest.mark.asyncio
    async def test_get_healthy_adapter_skips_open_circuits(self, clock):
        primary = FakeAdapter("primary", outcomes=[RateLimitError("down")])
        secondary = FakeAdapter("secondary")
        chain = create_fallback_chain([primary, secondary], FAST_RESET, clock=clock)
        await chain.complete(make_request())

        assert await chain.get_healthy_adapter() is secondary
        assert primary.health_calls == 0

    @pytest.mark.asyncio
    async def test_get_healthy_adapter_none(self):
        chain = create_fallback_chain([FakeAdapter("primary", healthy=False)])
        assert await chain.get_healthy_adapter() is None

    @pytest.mark.asyncio
    async def test_get_status_reports_circuit_states(self, clock):
        primary = FakeAdapter("primary", outcomes=[RateLimitError("down")])
        secondary = FakeAdapter("secondary", provider="openai")
        chain = create_fallback_chain([primary, secondary], FAST_RESET, clock=clock)
        await chain.complete(make_request())

        statuses = chain.get_status()

        assert [(s.id, s.provider, s.circuit_state) for s in statuses] == [
            ("primary", "anthropic", "open"),
            ("secondary", "openai", "closed"),
        ]
        clock.advance_ms(50)
        assert chain.get_status()[0].circuit_state == "half_open"
