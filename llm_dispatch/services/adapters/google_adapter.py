"""Google Gemini adapter over the Generative Language REST API."""

import asyncio
import json
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from llm_dispatch.config.models import AdapterConfig
from llm_dispatch.models.context import MessageRole, ToolCall, ToolDefinition
from llm_dispatch.models.errors import AdapterError, DispatchError, RequestTimeoutError
from llm_dispatch.models.requests import CompletionRequest, ResponseFormat
from llm_dispatch.models.responses import CompletionResponse, FinishReason, StreamChunk, StreamChunkType
from .base import BaseCompletionAdapter
from .error_handler import error_for_status, parse_retry_after


DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

FINISH_REASONS = {
    "STOP": FinishReason.STOP,
    "MAX_TOKENS": FinishReason.LENGTH,
    "SAFETY": FinishReason.STOP,
    "RECITATION": FinishReason.STOP,
}


class GoogleAdapter(BaseCompletionAdapter):
    """Adapter for Gemini models.

    Talks to the REST API directly with httpx: ``generateContent`` for single
    completions and ``streamGenerateContent?alt=sse`` for streaming.
    """

    PRICING = {
        "gemini-1.5-pro": (1.25, 5.0),
        "gemini-1.5-flash": (0.075, 0.3),
        "gemini-1.0-pro": (0.5, 1.5),
    }
    DEFAULT_PRICING = (1.25, 5.0)

    def __init__(
        self,
        config: AdapterConfig,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(config, sleep=sleep)
        self.base_url = (config.base_url or DEFAULT_BASE_URL).rstrip("/")
        self.client = http_client or httpx.AsyncClient(timeout=config.timeout_ms / 1000)

    async def aclose(self) -> None:
        await self.client.aclose()

    def _headers(self) -> Dict[str, str]:
        return {"x-goog-api-key": self._api_key() or "", "Content-Type": "application/json"}

    async def _do_complete(self, request: CompletionRequest) -> CompletionResponse:
        model = self._resolve_model(request)
        start_time = time.perf_counter()

        try:
            response = await self.client.post(
                f"{self.base_url}/models/{model}:generateContent",
                headers=self._headers(),
                json=self._build_body(request),
            )
            response.raise_for_status()
            data = response.json()
        except Exception as e:
            mapped = self._map_error(e, model)
            if mapped is e:
                raise
            raise mapped from e

        latency_ms = (time.perf_counter() - start_time) * 1000
        return self._parse_response(data, request, model, latency_ms)

    async def stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        """Stream server-sent events as canonical chunks."""
        model = self._resolve_model(request)
        self._log_request(request, stream=True)

        content = ""
        usage: Dict[str, Any] = {}

        try:
            async with self.client.stream(
                "POST",
                f"{self.base_url}/models/{model}:streamGenerateContent",
                params={"alt": "sse"},
                headers=self._headers(),
                json=self._build_body(request),
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    response.raise_for_status()

                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    payload = line[len("data:"):].strip()
                    if not payload:
                        continue

                    event = json.loads(payload)
                    usage = event.get("usageMetadata") or usage
                    text, tool_calls, _ = self._parse_candidate(event)
                    if text:
                        content += text
                        yield self._content_chunk(text)
                    for call in tool_calls:
                        yield StreamChunk(
                            type=StreamChunkType.TOOL_CALL,
                            tool_call=call.model_dump(),
                            adapter_id=self.id,
                        )

            yield self._done_chunk(
                usage.get("promptTokenCount") or self.count_tokens(request.prompt_text()),
                usage.get("candidatesTokenCount") or self.count_tokens(content),
            )

        except Exception as e:
            yield self._error_chunk(self._map_error(e, model))

    def _build_body(self, request: CompletionRequest) -> Dict[str, Any]:
        system_parts = [request.system_prompt] if request.system_prompt else []
        contents = []

        for message in request.messages:
            if message.role == MessageRole.SYSTEM:
                system_parts.append(message.content)
            elif message.role == MessageRole.TOOL:
                contents.append({
                    "role": "user",
                    "parts": [{
                        "functionResponse": {
                            "name": message.name or message.tool_call_id,
                            "response": {"content": message.content},
                        }
                    }],
                })
            else:
                # Gemini names the assistant role "model"
                role = "model" if message.role == MessageRole.ASSISTANT else "user"
                contents.append({"role": role, "parts": [{"text": message.content}]})

        body: Dict[str, Any] = {"contents": contents}
        if system_parts:
            body["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_parts)}]}

        generation_config: Dict[str, Any] = {}
        if request.max_tokens is not None:
            generation_config["maxOutputTokens"] = request.max_tokens
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        if request.stop_sequences:
            generation_config["stopSequences"] = request.stop_sequences
        if request.response_format == ResponseFormat.JSON:
            generation_config["responseMimeType"] = "application/json"
        if generation_config:
            body["generationConfig"] = generation_config

        if request.tools:
            body["tools"] = [{"functionDeclarations": self._format_tools(request.tools)}]

        return body

    def _format_tools(self, tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
        declarations = []
        for tool in tools:
            declaration: Dict[str, Any] = {"name": tool.name, "description": tool.description}
            if tool.parameters:
                declaration["parameters"] = tool.parameters
            declarations.append(declaration)
        return declarations

    def _parse_candidate(self, data: Dict[str, Any]) -> Tuple[str, List[ToolCall], Optional[str]]:
        candidates = data.get("candidates") or []
        if not candidates:
            return "", [], None

        candidate = candidates[0]
        text = ""
        tool_calls = []
        for index, part in enumerate((candidate.get("content") or {}).get("parts") or []):
            if "text" in part:
                text += part["text"]
            elif "functionCall" in part:
                call = part["functionCall"]
                tool_calls.append(ToolCall(
                    id=call.get("id") or f"call_{index}",
                    name=call.get("name", ""),
                    arguments=call.get("args") or {},
                ))
        return text, tool_calls, candidate.get("finishReason")

    def _parse_response(
        self,
        data: Dict[str, Any],
        request: CompletionRequest,
        model: str,
        latency_ms: float
    ) -> CompletionResponse:
        if not data.get("candidates"):
            raise AdapterError("Gemini returned no candidates", provider=self.provider)

        content, tool_calls, finish = self._parse_candidate(data)
        usage = data.get("usageMetadata") or {}

        finish_reason = FINISH_REASONS.get(finish, FinishReason.STOP)
        if tool_calls:
            finish_reason = FinishReason.TOOL_USE

        return self._create_response(
            content=content,
            model=data.get("modelVersion") or model,
            input_tokens=usage.get("promptTokenCount") or self.count_tokens(request.prompt_text()),
            output_tokens=usage.get("candidatesTokenCount") or self.count_tokens(content),
            latency_ms=latency_ms,
            finish_reason=finish_reason,
            tool_calls=tool_calls,
            request_id=data.get("responseId"),
        )

    def _map_error(self, error: Exception, model: str) -> Exception:
        """Translate httpx failures into the dispatch error taxonomy."""
        if isinstance(error, DispatchError):
            return error

        if isinstance(error, httpx.TimeoutException):
            return RequestTimeoutError(f"Gemini request timed out: {error}", provider=self.provider)

        if isinstance(error, httpx.HTTPStatusError):
            response = error.response
            return error_for_status(
                response.status_code,
                f"Gemini API error ({response.status_code}): {self._error_message(response)}",
                provider=self.provider,
                model=model,
                retry_after_ms=parse_retry_after(response.headers),
            )

        if isinstance(error, httpx.RequestError):
            return AdapterError(f"Gemini connection error: {error}", provider=self.provider)

        return error

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            return response.text or response.reason_phrase
