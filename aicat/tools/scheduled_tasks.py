"""
Scheduled tasks: stored messages with a cron expression.

The store only records tasks; there is no periodic runner in this service.
`run_scheduled_task_now` delivers a task's content immediately through the
host call executor.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from aicat.models import ToolResult
from aicat.permissions import CallerContext
from aicat.tools.host_call import HostCallTools, _as_bool
from aicat.tools.registry import ToolCategory, tool_schema
from aicat.tools.store import JsonStore
from aicat.utils import get_logger

logger = get_logger("AICat.ScheduledTasks")

TARGET_TYPES = ("group", "private")

_CRON_FIELD = re.compile(r"^[\d*/,\-]+$")


def is_valid_cron(expression: str) -> bool:
    """Five space-separated fields of digits, `*`, `/`, `,` and `-`."""
    parts = (expression or "").split()
    return len(parts) == 5 and all(_CRON_FIELD.match(p) for p in parts)


@dataclass
class ScheduledTask:
    cron: str
    target_type: str
    target_id: str
    content: str
    description: str = ""
    enabled: bool = True
    created_at: str = ""
    last_run: Optional[str] = None
    run_count: int = 0


class ScheduledTaskStore(JsonStore[ScheduledTask]):
    filename = "scheduled_tasks.json"
    record_type = ScheduledTask

    def add(
        self,
        task_id: str,
        cron: str,
        target_type: str,
        target_id: str,
        content: str,
        description: str = "",
    ) -> ToolResult:
        if not task_id or not content or not target_id:
            return ToolResult.fail("task_id, target_id and content are required")
        if not is_valid_cron(cron):
            return ToolResult.fail(f"Invalid cron expression: {cron!r} (expected 5 fields, e.g. '0 8 * * *')")
        if target_type not in TARGET_TYPES:
            return ToolResult.fail(f"target_type must be one of {', '.join(TARGET_TYPES)}")

        with self._lock:
            self._records[task_id] = ScheduledTask(
                cron=cron,
                target_type=target_type,
                target_id=str(target_id),
                content=content,
                description=description or "",
                created_at=datetime.now(timezone.utc).isoformat(),
            )
            self._save()
        logger.info(f"Added scheduled task {task_id} cron={cron!r} -> {target_type}:{target_id}")
        return ToolResult.ok(f"Task '{task_id}' added")

    def remove(self, task_id: str) -> ToolResult:
        with self._lock:
            if task_id not in self._records:
                return ToolResult.fail(f"Task '{task_id}' does not exist")
            del self._records[task_id]
            self._save()
        return ToolResult.ok(f"Task '{task_id}' removed")

    def toggle(self, task_id: str, enabled: bool) -> ToolResult:
        with self._lock:
            task = self._records.get(task_id)
            if task is None:
                return ToolResult.fail(f"Task '{task_id}' does not exist")
            task.enabled = bool(enabled)
            self._save()
        return ToolResult.ok(f"Task '{task_id}' {'enabled' if enabled else 'disabled'}")

    def list(self) -> ToolResult:
        rows = [
            {
                "id": task_id,
                "cron": t.cron,
                "target": f"{t.target_type}:{t.target_id}",
                "description": t.description,
                "enabled": t.enabled,
                "run_count": t.run_count,
                "last_run": t.last_run,
            }
            for task_id, t in self.items()
        ]
        return ToolResult.ok(data=rows, count=len(rows))

    def mark_run(self, task_id: str) -> None:
        with self._lock:
            task = self._records.get(task_id)
            if task is None:
                return
            task.run_count += 1
            task.last_run = datetime.now(timezone.utc).isoformat()
            self._save()


class ScheduledTaskTools:
    """Model-facing management of scheduled tasks."""

    category = ToolCategory.SCHEDULED_TASKS
    tools = [
        tool_schema(
            "add_scheduled_task",
            "Add a scheduled message task",
            {
                "task_id": {"type": "string", "description": "Task id"},
                "cron": {"type": "string", "description": "Cron expression, e.g. '0 8 * * *'"},
                "target_type": {"type": "string", "enum": list(TARGET_TYPES), "description": "Send to a group or a user"},
                "target_id": {"type": "string", "description": "Group id or user id"},
                "content": {"type": "string", "description": "Message to send"},
                "description": {"type": "string", "description": "Task description"},
            },
            required=["task_id", "cron", "target_type", "target_id", "content"],
        ),
        tool_schema(
            "remove_scheduled_task",
            "Remove a scheduled task",
            {"task_id": {"type": "string", "description": "Task id"}},
            required=["task_id"],
        ),
        tool_schema("list_scheduled_tasks", "List all scheduled tasks"),
        tool_schema(
            "toggle_scheduled_task",
            "Enable or disable a scheduled task",
            {
                "task_id": {"type": "string", "description": "Task id"},
                "enabled": {"type": "boolean", "description": "Enable the task"},
            },
            required=["task_id", "enabled"],
        ),
        tool_schema(
            "run_scheduled_task_now",
            "Run a scheduled task immediately",
            {"task_id": {"type": "string", "description": "Task id"}},
            required=["task_id"],
        ),
    ]

    def __init__(self, store: ScheduledTaskStore, host: HostCallTools):
        self.store = store
        self.host = host

    async def execute(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> ToolResult:
        task_id = str(args.get("task_id") or "")
        if tool_name == "add_scheduled_task":
            return self.store.add(
                task_id,
                str(args.get("cron") or ""),
                str(args.get("target_type") or "group"),
                str(args.get("target_id") or ""),
                str(args.get("content") or ""),
                str(args.get("description") or ""),
            )
        if tool_name == "remove_scheduled_task":
            return self.store.remove(task_id)
        if tool_name == "list_scheduled_tasks":
            return self.store.list()
        if tool_name == "toggle_scheduled_task":
            return self.store.toggle(task_id, _as_bool(args.get("enabled"), default=True))
        if tool_name == "run_scheduled_task_now":
            return await self.run_now(task_id)
        return ToolResult.fail(f"Unknown tool: {tool_name}")

    async def run_now(self, task_id: str) -> ToolResult:
        task = self.store.get(task_id)
        if task is None:
            return ToolResult.fail(f"Task '{task_id}' does not exist")

        if task.target_type == "group":
            result = await self.host.invoke("send_group_msg", {"group_id": task.target_id, "message": task.content})
        else:
            result = await self.host.invoke("send_private_msg", {"user_id": task.target_id, "message": task.content})

        if not result.success:
            return ToolResult.fail(f"Task '{task_id}' failed: {result.error}")
        self.store.mark_run(task_id)
        return ToolResult.ok(f"Task '{task_id}' sent to {task.target_type} {task.target_id}")
