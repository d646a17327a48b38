"""Pydantic models for transport, tool and notice payloads."""

from .schemas import (
    ToolCallFunction,
    ToolCall,
    ChatMessage,
    Choice,
    ChatResponse,
    ToolFunction,
    ToolSchema,
    ToolResult,
    OperationKind,
    NotificationEvent,
)

__all__ = [
    "ToolCallFunction",
    "ToolCall",
    "ChatMessage",
    "Choice",
    "ChatResponse",
    "ToolFunction",
    "ToolSchema",
    "ToolResult",
    "OperationKind",
    "NotificationEvent",
]
