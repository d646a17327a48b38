"""
Closed tool registry.

Every tool name maps to exactly one ToolCategory and every category to
exactly one handler. The registry refuses to build when a category has no
handler or a tool name is claimed twice, so an incomplete wiring fails at
startup instead of on the first unlucky tool call.
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Protocol

from aicat.errors import ToolRegistryError
from aicat.models import ToolFunction, ToolResult, ToolSchema
from aicat.permissions import CallerContext


class ToolCategory(str, Enum):
    HOST_CALL = "host_call"
    WEB = "web"
    CUSTOM_COMMANDS = "custom_commands"
    SCHEDULED_TASKS = "scheduled_tasks"
    USER_WATCHERS = "user_watchers"
    MESSAGE_QUERY = "message_query"
    DIAGNOSTICS = "diagnostics"


class ToolHandler(Protocol):
    """Executes every tool of one category."""

    category: ToolCategory
    tools: List[ToolSchema]

    async def execute(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> ToolResult:
        ...


def tool_schema(
    name: str,
    description: str,
    properties: Optional[Dict[str, Any]] = None,
    required: Optional[List[str]] = None,
) -> ToolSchema:
    """Build a function-tool schema with a JSON-schema object for its parameters."""
    parameters: Dict[str, Any] = {"type": "object", "properties": properties or {}}
    if required:
        parameters["required"] = list(required)
    return ToolSchema(function=ToolFunction(name=name, description=description, parameters=parameters))


class ToolRegistry:
    """Name -> category -> handler, validated at construction."""

    def __init__(self, handlers: Iterable[ToolHandler]):
        self._handlers: Dict[ToolCategory, ToolHandler] = {}
        self._categories: Dict[str, ToolCategory] = {}
        self._schemas: List[ToolSchema] = []

        for handler in handlers:
            category = ToolCategory(handler.category)
            if category in self._handlers:
                raise ToolRegistryError(f"Category {category.value} has more than one handler")
            self._handlers[category] = handler
            for schema in handler.tools:
                if schema.name in self._categories:
                    raise ToolRegistryError(f"Tool {schema.name} is registered twice")
                self._categories[schema.name] = category
                self._schemas.append(schema)

        missing = [c.value for c in ToolCategory if c not in self._handlers]
        if missing:
            raise ToolRegistryError(f"No handler for categories: {', '.join(missing)}")

    def category_of(self, tool_name: str) -> Optional[ToolCategory]:
        return self._categories.get(tool_name)

    def handler_for(self, tool_name: str) -> Optional[ToolHandler]:
        category = self._categories.get(tool_name)
        return self._handlers[category] if category else None

    def handler(self, category: ToolCategory) -> ToolHandler:
        return self._handlers[category]

    @property
    def names(self) -> List[str]:
        return [s.name for s in self._schemas]

    def schemas(self) -> List[ToolSchema]:
        return list(self._schemas)

    def wire_schemas(self) -> List[Dict[str, Any]]:
        """Schemas as sent to the completion API each round."""
        return [s.model_dump() for s in self._schemas]

    def __contains__(self, tool_name: str) -> bool:
        return tool_name in self._categories
