"""Canonical message and tool structures shared by every adapter."""

from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class MessageRole(str, Enum):
    """Roles for conversation messages."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class Message(BaseModel):
    """Individual message in a conversation."""

    role: MessageRole = Field(..., description="Role of the message sender")
    content: str = Field(..., description="Content of the message")
    name: Optional[str] = Field(default=None, description="Optional participant name")
    tool_call_id: Optional[str] = Field(default=None, description="Tool call this message answers (role=tool)")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "role": "user",
                "content": "Break this requirement down into features."
            }
        }
    )


class ToolDefinition(BaseModel):
    """Definition of a tool the model may call."""

    name: str = Field(..., description="Unique name of the tool")
    description: str = Field(..., description="Description of what the tool does")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="JSON schema for tool parameters")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "create_feature",
                "description": "Record a feature extracted from the requirement",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "title": {"type": "string", "description": "Feature title"}
                    },
                    "required": ["title"]
                }
            }
        }
    )


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str = Field(..., description="Provider-assigned call id")
    name: str = Field(..., description="Name of the tool to call")
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Decoded call arguments")
