"""Request models for the completion dispatch layer."""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from .context import Message, ToolDefinition


class ResponseFormat(str, Enum):
    """Requested response encoding."""
    TEXT = "text"
    JSON = "json"


class CompletionRequest(BaseModel):
    """Provider-agnostic completion request.

    ``model`` overrides the adapter's configured model. Leave it unset when
    the request is dispatched through a fallback chain, since each entry
    serves a different model.
    """

    messages: List[Message] = Field(..., min_length=1, description="Ordered conversation messages")
    model: Optional[str] = Field(default=None, description="Model override")
    max_tokens: Optional[int] = Field(default=None, gt=0, description="Maximum tokens in the completion")
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0, description="Sampling temperature")
    system_prompt: Optional[str] = Field(default=None, description="System prompt")
    response_format: ResponseFormat = Field(default=ResponseFormat.TEXT, description="Response encoding")
    tools: Optional[List[ToolDefinition]] = Field(default=None, description="Tools the model may call")
    stop_sequences: Optional[List[str]] = Field(default=None, description="Sequences that end generation")

    model_config = ConfigDict(
        protected_namespaces=(),
        json_schema_extra={
            "example": {
                "messages": [
                    {"role": "user", "content": "Decompose: users can export reports as PDF."}
                ],
                "max_tokens": 1024,
                "temperature": 0.2,
                "system_prompt": "You are a product analyst."
            }
        }
    )

    def prompt_text(self) -> str:
        """Concatenate system prompt and message contents for token estimation."""
        parts = [self.system_prompt] if self.system_prompt else []
        parts.extend(message.content for message in self.messages)
        return "".join(parts)
