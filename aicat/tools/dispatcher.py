"""
Tool dispatcher.

Looks a tool name up in the closed registry, asks the permission gate,
narrows message-history queries to the caller's scope, and runs the
handler. Nothing raised by a handler escapes: it becomes a failed
ToolResult the model can react to.
"""

import json
from typing import Any, Dict, Optional, Tuple

from aicat.models import ToolResult
from aicat.permissions import CallerContext, PermissionGate
from aicat.tools.registry import ToolCategory, ToolRegistry
from aicat.utils import get_logger

logger = get_logger("AICat.Dispatcher")


def narrow_message_query(args: Dict[str, Any], caller: CallerContext) -> Tuple[Optional[Dict[str, Any]], str]:
    """Restrict a non-owner's history query to their own scope.

    Returns (narrowed_args, "") or (None, reason) when the query must be denied.
    """
    if caller.is_privileged_owner:
        return args, ""

    narrowed = dict(args)
    requested = str(args.get("group_id") or "")

    if caller.is_direct:
        if requested:
            return None, "cross-scope denied: group history is not available from a direct chat"
        narrowed["user_id"] = caller.caller_id
        return narrowed, ""

    if requested and requested != str(caller.scope_id):
        return None, f"cross-scope denied: cannot read group {requested} from group {caller.scope_id}"
    narrowed["group_id"] = str(caller.scope_id)
    return narrowed, ""


class ToolDispatcher:
    """dispatch(tool_name, args, caller) -> ToolResult, never raises."""

    def __init__(self, registry: ToolRegistry, gate: Optional[PermissionGate] = None):
        self.registry = registry
        self.gate = gate or PermissionGate()

    async def dispatch(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> ToolResult:
        handler = self.registry.handler_for(tool_name)
        if handler is None:
            logger.warning(f"Unknown tool requested: {tool_name}")
            return ToolResult.fail(f"Unknown tool: {tool_name}")

        decision = self.gate.authorize(tool_name, args, caller)
        if not decision:
            return ToolResult.fail(decision.reason)

        if self.registry.category_of(tool_name) == ToolCategory.MESSAGE_QUERY:
            narrowed, reason = narrow_message_query(args, caller)
            if narrowed is None:
                return ToolResult.fail(reason)
            args = narrowed

        logger.debug(f"Tool {tool_name} args={json.dumps(args, ensure_ascii=False, default=str)[:200]}")
        try:
            result = await handler.execute(tool_name, args, caller)
        except Exception as exc:
            logger.error(f"Tool {tool_name} raised", exc_info=True)
            return ToolResult.fail(f"{tool_name} failed: {exc}")

        logger.debug(f"Tool {tool_name} success={result.success} {result.summary[:100]}")
        return result
