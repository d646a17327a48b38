"""
Pydantic models for the chat transport, tool results, and host notices.

These are the shapes that cross a process boundary: requests/responses of the
OpenAI-compatible completion API, tool schemas, ToolResult payloads fed back
to the model, and notification events parsed from the host.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Chat Completion Models
# =============================================================================

class ToolCallFunction(BaseModel):
    """Function part of a tool call; arguments stay raw, untrusted text."""
    name: str
    arguments: str = ""

    @field_validator("arguments", mode="before")
    @classmethod
    def _coerce_arguments(cls, value: Any) -> str:
        # Some providers send an already-decoded object instead of a string
        if value is None:
            return ""
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False)
        return str(value)


class ToolCall(BaseModel):
    """A structured request from the model to invoke a named tool."""
    id: str
    type: Literal["function"] = "function"
    function: ToolCallFunction

    @property
    def name(self) -> str:
        return self.function.name

    @property
    def raw_arguments(self) -> str:
        return self.function.arguments


class ChatMessage(BaseModel):
    """One message in the conversation sent to the transport."""
    role: Literal["system", "user", "assistant", "tool"]
    content: Optional[str] = ""
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Choice(BaseModel):
    """A single completion choice."""
    message: Optional[ChatMessage] = None
    finish_reason: Optional[str] = None


class ChatResponse(BaseModel):
    """Successful completion response."""
    choices: List[Choice] = Field(default_factory=list)
    model: Optional[str] = None


class ToolFunction(BaseModel):
    """JSON-schema description of a tool, exposed to the model verbatim."""
    name: str
    description: str
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class ToolSchema(BaseModel):
    """Tool definition wrapper used by the completion API."""
    type: Literal["function"] = "function"
    function: ToolFunction

    @property
    def name(self) -> str:
        return self.function.name


# =============================================================================
# Tool Results
# =============================================================================

class ToolResult(BaseModel):
    """Outcome of one tool call, serialized into a `tool` role message."""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    data: Optional[Any] = None
    count: Optional[int] = None

    @classmethod
    def ok(cls, message: Optional[str] = None, data: Any = None, count: Optional[int] = None) -> "ToolResult":
        return cls(success=True, message=message, data=data, count=count)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> "ToolResult":
        return cls(success=False, error=error, data=data)

    def to_content(self) -> str:
        return self.model_dump_json(exclude_none=True)

    @property
    def summary(self) -> str:
        return self.message or self.error or ""


# =============================================================================
# Host Notifications
# =============================================================================

class OperationKind(str, Enum):
    """Fire-and-forget host operations confirmed through notice events."""
    BAN = "ban"
    UNBAN = "unban"
    KICK = "kick"
    ADMIN_GRANT = "admin_grant"
    ADMIN_REVOKE = "admin_revoke"
    RECALL = "recall"


class NotificationEvent(BaseModel):
    """An asynchronous host notice that may confirm a pending operation."""
    kind: OperationKind
    scope_id: str
    subject_id: str
    effect: Dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> tuple:
        return (self.kind, self.scope_id, self.subject_id)
