"""Anthropic adapter for Claude models.

Key differences from OpenAI's chat format:
- The system prompt is a separate parameter, not a message
- Tool results are ``tool_result`` content blocks in a user message
- Response content is a list of blocks (text and tool_use), not a string
"""

import asyncio
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

import anthropic
from anthropic import AsyncAnthropic

from llm_dispatch.config.models import AdapterConfig
from llm_dispatch.models.context import Message, MessageRole, ToolCall, ToolDefinition
from llm_dispatch.models.errors import AdapterError, DispatchError, RequestTimeoutError
from llm_dispatch.models.requests import CompletionRequest, ResponseFormat
from llm_dispatch.models.responses import CompletionResponse, FinishReason, StreamChunk, StreamChunkType
from .base import BaseCompletionAdapter
from .error_handler import error_for_status, parse_retry_after


DEFAULT_MAX_TOKENS = 4096

JSON_INSTRUCTION = "Respond with a single valid JSON document and nothing else."

STOP_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "max_tokens": FinishReason.LENGTH,
    "tool_use": FinishReason.TOOL_USE,
}


class AnthropicAdapter(BaseCompletionAdapter):
    """Adapter for Anthropic Claude models."""

    PRICING = {
        "claude-sonnet-4-5-20250929": (3.0, 15.0),
        "claude-opus-4-5-20251101": (15.0, 75.0),
        "claude-3-5-sonnet-20241022": (3.0, 15.0),
        "claude-3-opus-20240229": (15.0, 75.0),
        "claude-3-haiku-20240307": (0.25, 1.25),
    }
    DEFAULT_PRICING = (3.0, 15.0)

    def __init__(
        self,
        config: AdapterConfig,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        client: Optional[AsyncAnthropic] = None
    ):
        super().__init__(config, sleep=sleep)
        # SDK retries are disabled; retries belong to the dispatch layer
        self.client = client or AsyncAnthropic(
            api_key=self._api_key(),
            base_url=config.base_url,
            timeout=config.timeout_ms / 1000,
            max_retries=0,
        )

    async def _do_complete(self, request: CompletionRequest) -> CompletionResponse:
        model = self._resolve_model(request)
        start_time = time.perf_counter()

        try:
            response = await self.client.messages.create(**self._build_params(request, model))
        except Exception as e:
            mapped = self._map_error(e, model)
            if mapped is e:
                raise
            raise mapped from e

        latency_ms = (time.perf_counter() - start_time) * 1000
        content, tool_calls = self._parse_content(response.content)

        return self._create_response(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            latency_ms=latency_ms,
            finish_reason=STOP_REASONS.get(response.stop_reason, FinishReason.STOP),
            tool_calls=tool_calls,
            request_id=response.id,
        )

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        """Stream text deltas, then any tool calls, then usage."""
        model = self._resolve_model(request)
        self._log_request(request, stream=True)

        try:
            async with self.client.messages.stream(**self._build_params(request, model)) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield self._content_chunk(text)

                final = await stream.get_final_message()

            _, tool_calls = self._parse_content(final.content)
            for call in tool_calls:
                yield StreamChunk(
                    type=StreamChunkType.TOOL_CALL,
                    tool_call=call.model_dump(),
                    adapter_id=self.id,
                )
            yield self._done_chunk(final.usage.input_tokens, final.usage.output_tokens)

        except Exception as e:
            yield self._error_chunk(self._map_error(e, model))

    def _build_params(self, request: CompletionRequest, model: str) -> Dict[str, Any]:
        system, messages = self._split_system(request)
        params: Dict[str, Any] = {
            "model": model,
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": self._format_messages(messages),
        }
        if system:
            params["system"] = system
        if request.temperature is not None:
            params["temperature"] = request.temperature
        if request.stop_sequences:
            params["stop_sequences"] = request.stop_sequences
        if request.tools:
            params["tools"] = self._format_tools(request.tools)
        return params

    def _split_system(self, request: CompletionRequest) -> Tuple[str, List[Message]]:
        """Pull system text out of the message list."""
        system_parts = [request.system_prompt] if request.system_prompt else []
        chat_messages = []
        for message in request.messages:
            if message.role == MessageRole.SYSTEM:
                system_parts.append(message.content)
            else:
                chat_messages.append(message)

        if request.response_format == ResponseFormat.JSON:
            system_parts.append(JSON_INSTRUCTION)

        return "\n\n".join(system_parts), chat_messages

    def _format_messages(self, messages: List[Message]) -> List[Dict[str, Any]]:
        formatted = []
        for message in messages:
            if message.role == MessageRole.TOOL:
                formatted.append({
                    "role": "user",
                    "content": [{
                        "type": "tool_result",
                        "tool_use_id": message.tool_call_id,
                        "content": message.content,
                    }],
                })
            else:
                formatted.append({"role": message.role.value, "content": message.content})
        return formatted

    def _format_tools(self, tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
        # Anthropic calls the JSON schema "input_schema"
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.parameters or {"type": "object", "properties": {}},
            }
            for tool in tools
        ]

    def _parse_content(self, blocks: List[Any]) -> Tuple[str, List[ToolCall]]:
        content = ""
        tool_calls = []
        for block in blocks:
            if block.type == "text":
                content += block.text
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.id,
                    name=block.name,
                    arguments=block.input if isinstance(block.input, dict) else {},
                ))
        return content, tool_calls

    def _map_error(self, error: Exception, model: str) -> Exception:
        """Translate SDK exceptions into the dispatch error taxonomy."""
        if isinstance(error, DispatchError):
            return error

        if isinstance(error, anthropic.APITimeoutError):
            return RequestTimeoutError(f"Anthropic request timed out: {error}", provider=self.provider)

        if isinstance(error, anthropic.APIStatusError):
            return error_for_status(
                error.status_code,
                f"Anthropic API error ({error.status_code}): {error.message}",
                provider=self.provider,
                model=model,
                retry_after_ms=parse_retry_after(error.response.headers),
            )

        if isinstance(error, anthropic.APIConnectionError):
            return AdapterError(f"Anthropic connection error: {error}", provider=self.provider)

        return error
