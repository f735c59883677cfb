"""OpenAI adapter implementation."""

import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

import openai
from openai import AsyncOpenAI
from openai.types.chat import ChatCompletion

from llm_dispatch.config.models import AdapterConfig
from llm_dispatch.models.context import MessageRole, ToolCall, ToolDefinition
from llm_dispatch.models.errors import AdapterError, DispatchError, RequestTimeoutError
from llm_dispatch.models.requests import CompletionRequest, ResponseFormat
from llm_dispatch.models.responses import CompletionResponse, FinishReason, StreamChunk, StreamChunkType
from .base import BaseCompletionAdapter
from .error_handler import error_for_status, parse_retry_after


logger = logging.getLogger(__name__)

FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "tool_calls": FinishReason.TOOL_USE,
    "function_call": FinishReason.TOOL_USE,
    "content_filter": FinishReason.STOP,
}


def parse_tool_arguments(raw: Optional[str]) -> Dict[str, Any]:
    """Decode a tool call's JSON arguments, keeping undecodable text."""
    if not raw:
        return {}
    try:
        arguments = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Tool call arguments are not valid JSON")
        return {"raw": raw}
    return arguments if isinstance(arguments, dict) else {"value": arguments}


class OpenAIAdapter(BaseCompletionAdapter):
    """OpenAI chat completions adapter with async support and error mapping."""

    PRICING = {
        "gpt-4o": (2.5, 10.0),
        "gpt-4o-mini": (0.15, 0.6),
        "gpt-4-turbo": (10.0, 30.0),
        "gpt-4": (30.0, 60.0),
        "gpt-3.5-turbo": (0.5, 1.5),
    }
    DEFAULT_PRICING = (2.5, 10.0)

    def __init__(
        self,
        config: AdapterConfig,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        client: Optional[AsyncOpenAI] = None
    ):
        super().__init__(config, sleep=sleep)
        self.client = client or AsyncOpenAI(
            api_key=self._api_key(),
            base_url=config.base_url,
            timeout=config.timeout_ms / 1000,
            max_retries=0  # We handle retries ourselves
        )

    async def _do_complete(self, request: CompletionRequest) -> CompletionResponse:
        model = self._resolve_model(request)
        start_time = time.perf_counter()

        try:
            response = await self.client.chat.completions.create(**self._build_params(request, model))
        except Exception as e:
            mapped = self._map_error(e, model)
            if mapped is e:
                raise
            raise mapped from e

        latency_ms = (time.perf_counter() - start_time) * 1000
        return self._process_chat_response(response, request, latency_ms)

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        """Stream content deltas, accumulated tool calls, then usage."""
        model = self._resolve_model(request)
        self._log_request(request, stream=True)

        content = ""
        usage = None
        # Tool call fragments keyed by their index in the choice
        tool_fragments: Dict[int, Dict[str, Any]] = {}

        try:
            stream = await self.client.chat.completions.create(
                stream=True,
                stream_options={"include_usage": True},
                **self._build_params(request, model)
            )

            async for chunk in stream:
                if chunk.usage:
                    usage = chunk.usage
                if not chunk.choices:
                    continue

                delta = chunk.choices[0].delta
                if delta.content:
                    content += delta.content
                    yield self._content_chunk(delta.content)

                for fragment in delta.tool_calls or []:
                    entry = tool_fragments.setdefault(fragment.index, {"id": None, "name": "", "arguments": ""})
                    if fragment.id:
                        entry["id"] = fragment.id
                    if fragment.function:
                        entry["name"] += fragment.function.name or ""
                        entry["arguments"] += fragment.function.arguments or ""

            for index in sorted(tool_fragments):
                entry = tool_fragments[index]
                call = ToolCall(
                    id=entry["id"] or f"call_{index}",
                    name=entry["name"],
                    arguments=parse_tool_arguments(entry["arguments"]),
                )
                yield StreamChunk(type=StreamChunkType.TOOL_CALL, tool_call=call.model_dump(), adapter_id=self.id)

            if usage is not None:
                yield self._done_chunk(usage.prompt_tokens, usage.completion_tokens)
            else:
                yield self._done_chunk(self.count_tokens(request.prompt_text()), self.count_tokens(content))

        except Exception as e:
            yield self._error_chunk(self._map_error(e, model))

    def _build_params(self, request: CompletionRequest, model: str) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": model,
            "messages": self._format_messages(request),
        }
        if request.max_tokens is not None:
            params["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            params["temperature"] = request.temperature
        if request.stop_sequences:
            params["stop"] = request.stop_sequences
        if request.tools:
            params["tools"] = self._format_tools(request.tools)
        if request.response_format == ResponseFormat.JSON:
            params["response_format"] = {"type": "json_object"}
        return params

    def _format_messages(self, request: CompletionRequest) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})

        for message in request.messages:
            if message.role == MessageRole.TOOL:
                messages.append({
                    "role": "tool",
                    "content": message.content,
                    "tool_call_id": message.tool_call_id,
                })
                continue

            formatted = {"role": message.role.value, "content": message.content}
            if message.name:
                formatted["name"] = message.name
            messages.append(formatted)

        return messages

    def _format_tools(self, tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in tools
        ]

    def _process_chat_response(
        self,
        response: ChatCompletion,
        request: CompletionRequest,
        latency_ms: float
    ) -> CompletionResponse:
        """Process an OpenAI chat completion into the canonical response."""
        if not response.choices:
            raise AdapterError("OpenAI returned empty response", provider=self.provider)

        choice = response.choices[0]
        content = choice.message.content or ""

        tool_calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                arguments=parse_tool_arguments(call.function.arguments),
            )
            for call in (choice.message.tool_calls or [])
        ]

        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else self.count_tokens(request.prompt_text())
        output_tokens = usage.completion_tokens if usage else self.count_tokens(content)

        return self._create_response(
            content=content,
            model=response.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            latency_ms=latency_ms,
            finish_reason=FINISH_REASONS.get(choice.finish_reason, FinishReason.STOP),
            tool_calls=tool_calls,
            request_id=response.id,
        )

    def _map_error(self, error: Exception, model: str) -> Exception:
        """Translate SDK exceptions into the dispatch error taxonomy."""
        if isinstance(error, DispatchError):
            return error

        if isinstance(error, openai.APITimeoutError):
            return RequestTimeoutError(f"OpenAI API timeout: {error}", provider=self.provider)

        if isinstance(error, openai.APIStatusError):
            return error_for_status(
                error.status_code,
                f"OpenAI API error ({error.status_code}): {error.message}",
                provider=self.provider,
                model=model,
                retry_after_ms=parse_retry_after(error.response.headers),
            )

        if isinstance(error, openai.APIConnectionError):
            return AdapterError(f"OpenAI API connection error: {error}", provider=self.provider)

        return error
