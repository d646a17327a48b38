"""Owner-only diagnostics: recent warnings and errors from the log ring."""

from typing import Any, Dict

from aicat.models import ToolResult
from aicat.permissions import CallerContext
from aicat.tools.registry import ToolCategory, tool_schema
from aicat.utils import RecentLogHandler


class DiagnosticsTools:
    category = ToolCategory.DIAGNOSTICS
    tools = [
        tool_schema(
            "query_error_logs",
            "Show recent warning and error log lines of this bot",
            {
                "level": {"type": "string", "enum": ["WARNING", "ERROR", "CRITICAL"], "description": "Minimum level"},
                "keyword": {"type": "string", "description": "Substring filter"},
                "minutes_ago": {"type": "number", "description": "Only the last N minutes"},
                "limit": {"type": "integer", "description": "Maximum lines (default 20, max 100)"},
            },
        ),
    ]

    def __init__(self, ring: RecentLogHandler):
        self.ring = ring

    async def execute(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> ToolResult:
        if tool_name != "query_error_logs":
            return ToolResult.fail(f"Unknown tool: {tool_name}")

        limit = max(1, min(int(args.get("limit") or 20), 100))
        minutes = args.get("minutes_ago")
        rows = self.ring.query(
            level=args.get("level") or "WARNING",
            keyword=args.get("keyword"),
            minutes_ago=float(minutes) if minutes else None,
            limit=limit,
        )
        if not rows:
            return ToolResult.ok("No matching log entries", data=[], count=0)
        return ToolResult.ok(data=rows, count=len(rows))
