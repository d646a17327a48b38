"""
User watchers: react automatically to messages from a specific user.

A watcher matches on sender, optional group, and an optional keyword regex.
When it fires it performs one host action (reply, recall, ban, kick, or an
arbitrary API call) and then stays quiet for its cooldown.
"""

import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from aicat.models import ToolResult
from aicat.permissions import CallerContext
from aicat.tools.host_call import HostCallTools, _as_bool
from aicat.tools.registry import ToolCategory, tool_schema
from aicat.tools.store import JsonStore
from aicat.utils import get_logger

logger = get_logger("AICat.UserWatchers")

WATCHER_ACTIONS = ("reply", "recall", "ban", "kick", "api_call")


@dataclass
class UserWatcher:
    target_user: str
    action: str
    group_id: str = ""
    keyword: str = ""
    reply_content: str = ""
    ban_duration: int = 60
    api_action: str = ""
    api_params: Dict[str, Any] = field(default_factory=dict)
    cooldown_seconds: int = 60
    description: str = ""
    enabled: bool = True
    created_at: str = ""
    trigger_count: int = 0
    last_triggered: float = 0.0


def _fill(value: Any, variables: Dict[str, str]) -> Any:
    if isinstance(value, str):
        for name, replacement in variables.items():
            value = value.replace("{" + name + "}", replacement)
        return value
    if isinstance(value, dict):
        return {k: _fill(v, variables) for k, v in value.items()}
    if isinstance(value, list):
        return [_fill(v, variables) for v in value]
    return value


class UserWatcherStore(JsonStore[UserWatcher]):
    filename = "user_watchers.json"
    record_type = UserWatcher

    def __init__(self, data_dir="data", clock: Callable[[], float] = time.time) -> None:
        super().__init__(data_dir)
        self._clock = clock

    def add(self, watcher_id: str, target_user: str, action: str, **options: Any) -> ToolResult:
        if not watcher_id or not target_user:
            return ToolResult.fail("watcher_id and target_user are required")
        if action not in WATCHER_ACTIONS:
            return ToolResult.fail(f"action must be one of {', '.join(WATCHER_ACTIONS)}")
        keyword = str(options.get("keyword") or "")
        if keyword:
            try:
                re.compile(keyword)
            except re.error as exc:
                return ToolResult.fail(f"Invalid keyword regular expression: {exc}")
        if action == "api_call" and not options.get("api_action"):
            return ToolResult.fail("api_action is required for api_call watchers")

        api_params = options.get("api_params") or {}
        if not isinstance(api_params, dict):
            return ToolResult.fail("api_params must be an object")

        with self._lock:
            self._records[watcher_id] = UserWatcher(
                target_user=str(target_user),
                action=action,
                group_id=str(options.get("group_id") or ""),
                keyword=keyword,
                reply_content=str(options.get("reply_content") or ""),
                ban_duration=int(options.get("ban_duration") or 60),
                api_action=str(options.get("api_action") or ""),
                api_params=api_params,
                cooldown_seconds=int(options.get("cooldown_seconds") or 60),
                description=str(options.get("description") or ""),
                created_at=datetime.now(timezone.utc).isoformat(),
            )
            self._save()
        logger.info(f"Added user watcher {watcher_id} on {target_user} -> {action}")
        return ToolResult.ok(f"Watcher '{watcher_id}' added")

    def remove(self, watcher_id: str) -> ToolResult:
        with self._lock:
            if watcher_id not in self._records:
                return ToolResult.fail(f"Watcher '{watcher_id}' does not exist")
            del self._records[watcher_id]
            self._save()
        return ToolResult.ok(f"Watcher '{watcher_id}' removed")

    def toggle(self, watcher_id: str, enabled: bool) -> ToolResult:
        with self._lock:
            watcher = self._records.get(watcher_id)
            if watcher is None:
                return ToolResult.fail(f"Watcher '{watcher_id}' does not exist")
            watcher.enabled = bool(enabled)
            self._save()
        return ToolResult.ok(f"Watcher '{watcher_id}' {'enabled' if enabled else 'disabled'}")

    def list(self) -> ToolResult:
        rows = [
            {
                "id": watcher_id,
                "target_user": w.target_user,
                "group_id": w.group_id,
                "keyword": w.keyword,
                "action": w.action,
                "enabled": w.enabled,
                "trigger_count": w.trigger_count,
                "description": w.description,
            }
            for watcher_id, w in self.items()
        ]
        return ToolResult.ok(data=rows, count=len(rows))

    def find_match(self, user_id: str, group_id: str, text: str) -> Optional[str]:
        """Id of the first enabled watcher that matches and is off cooldown."""
        now = self._clock()
        for watcher_id, w in self.items():
            if not w.enabled or w.target_user != user_id:
                continue
            if w.group_id and w.group_id != group_id:
                continue
            if w.keyword:
                try:
                    if not re.search(w.keyword, text):
                        continue
                except re.error:
                    logger.warning(f"Watcher {watcher_id} has an invalid keyword", exc_info=True)
                    continue
            if w.last_triggered and now - w.last_triggered < w.cooldown_seconds:
                continue
            return watcher_id
        return None

    def mark_triggered(self, watcher_id: str) -> None:
        with self._lock:
            watcher = self._records.get(watcher_id)
            if watcher is None:
                return
            watcher.trigger_count += 1
            watcher.last_triggered = self._clock()
            self._save()


class UserWatcherTools:
    """Model-facing watcher management plus the message-time trigger."""

    category = ToolCategory.USER_WATCHERS
    tools = [
        tool_schema(
            "add_user_watcher",
            "Watch a user's messages and react automatically",
            {
                "watcher_id": {"type": "string", "description": "Watcher id"},
                "target_user": {"type": "string", "description": "User id to watch"},
                "action": {"type": "string", "enum": list(WATCHER_ACTIONS), "description": "Reaction"},
                "group_id": {"type": "string", "description": "Only watch in this group (empty = everywhere)"},
                "keyword": {"type": "string", "description": "Regex the message must match (empty = any)"},
                "reply_content": {"type": "string", "description": "Reply text for the reply action"},
                "ban_duration": {"type": "integer", "description": "Mute seconds for the ban action"},
                "api_action": {"type": "string", "description": "OneBot action for api_call"},
                "api_params": {"type": "object", "description": "Parameters for api_call; {user_id}, {group_id}, {message_id} are substituted"},
                "cooldown_seconds": {"type": "integer", "description": "Minimum seconds between triggers"},
                "description": {"type": "string", "description": "Watcher description"},
            },
            required=["watcher_id", "target_user", "action"],
        ),
        tool_schema(
            "remove_user_watcher",
            "Remove a user watcher",
            {"watcher_id": {"type": "string", "description": "Watcher id"}},
            required=["watcher_id"],
        ),
        tool_schema("list_user_watchers", "List all user watchers"),
        tool_schema(
            "toggle_user_watcher",
            "Enable or disable a user watcher",
            {
                "watcher_id": {"type": "string", "description": "Watcher id"},
                "enabled": {"type": "boolean", "description": "Enable the watcher"},
            },
            required=["watcher_id", "enabled"],
        ),
    ]

    def __init__(self, store: UserWatcherStore, host: HostCallTools):
        self.store = store
        self.host = host

    async def execute(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> ToolResult:
        watcher_id = str(args.get("watcher_id") or "")
        if tool_name == "add_user_watcher":
            options = {k: v for k, v in args.items() if k not in ("watcher_id", "target_user", "action")}
            return self.store.add(
                watcher_id,
                str(args.get("target_user") or ""),
                str(args.get("action") or ""),
                **options,
            )
        if tool_name == "remove_user_watcher":
            return self.store.remove(watcher_id)
        if tool_name == "list_user_watchers":
            return self.store.list()
        if tool_name == "toggle_user_watcher":
            return self.store.toggle(watcher_id, _as_bool(args.get("enabled"), default=True))
        return ToolResult.fail(f"Unknown tool: {tool_name}")

    async def check_and_execute(self, user_id, group_id, text: str, message_id) -> Optional[ToolResult]:
        """Fire the first matching watcher for an inbound message, if any."""
        user_id, group_id = str(user_id), str(group_id or "")
        watcher_id = self.store.find_match(user_id, group_id, text)
        if watcher_id is None:
            return None
        watcher = self.store.get(watcher_id)
        variables = {"user_id": user_id, "group_id": group_id, "message_id": str(message_id or "")}

        action, params = self._plan(watcher, variables)
        if action is None:
            logger.warning(f"Watcher {watcher_id} action {watcher.action} needs a group context")
            return None

        self.store.mark_triggered(watcher_id)
        logger.info(f"Watcher {watcher_id} fired on {user_id}: {action}")
        return await self.host.invoke(action, params)

    @staticmethod
    def _plan(watcher: UserWatcher, variables: Dict[str, str]):
        group_id = variables["group_id"]
        user_id = variables["user_id"]
        message_id = variables["message_id"]

        if watcher.action == "reply":
            message = [
                {"type": "reply", "data": {"id": message_id}},
                {"type": "text", "data": {"text": _fill(watcher.reply_content, variables)}},
            ]
            if group_id:
                return "send_group_msg", {"group_id": group_id, "message": message}
            return "send_private_msg", {"user_id": user_id, "message": message}
        if watcher.action == "recall":
            return "delete_msg", {"message_id": message_id}
        if watcher.action == "ban":
            if not group_id:
                return None, {}
            return "set_group_ban", {"group_id": group_id, "user_id": user_id, "duration": watcher.ban_duration}
        if watcher.action == "kick":
            if not group_id:
                return None, {}
            return "set_group_kick", {"group_id": group_id, "user_id": user_id}
        return watcher.api_action, _fill(dict(watcher.api_params), variables)
