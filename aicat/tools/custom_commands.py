"""
Custom commands: owner-defined regex triggers answered without the model.

A command either replies with fixed text (with `$1..$n` capture groups and
`{user_id}`, `{group_id}`, `{nickname}` substituted) or calls an HTTP API and
replies with a dotted path extracted from its JSON body.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from aicat.models import ToolResult
from aicat.permissions import CallerContext
from aicat.tools.host_call import _as_bool
from aicat.tools.registry import ToolCategory, tool_schema
from aicat.tools.store import JsonStore
from aicat.utils import get_logger

logger = get_logger("AICat.CustomCommands")

RESPONSE_TYPES = ("text", "api")
API_METHODS = ("GET", "POST")


@dataclass
class CustomCommand:
    pattern: str
    response_type: str = "text"
    response_content: str = ""
    api_url: str = ""
    api_method: str = "GET"
    api_extract: str = ""
    description: str = ""
    enabled: bool = True
    created_at: str = ""


def substitute(template: str, match: "re.Match", user_id: str, group_id: str, nickname: str) -> str:
    """Fill capture groups and caller variables into a template."""
    groups = match.groups()

    def _group(m: "re.Match") -> str:
        index = int(m.group(1))
        if 1 <= index <= len(groups) and groups[index - 1] is not None:
            return groups[index - 1]
        return m.group(0)

    text = re.sub(r"\$(\d+)", _group, template)
    return (
        text.replace("{user_id}", user_id)
        .replace("{group_id}", group_id)
        .replace("{nickname}", nickname)
    )


def extract_path(data: Any, path: str) -> Any:
    """Walk a dotted path (``data.items.0.name``) through dicts and lists."""
    current = data
    for key in path.split("."):
        if isinstance(current, dict) and key in current:
            current = current[key]
        elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return None
    return current


class CustomCommandStore(JsonStore[CustomCommand]):
    filename = "custom_commands.json"
    record_type = CustomCommand

    def __init__(self, data_dir="data", http_timeout: float = 15.0) -> None:
        super().__init__(data_dir)
        self.http_timeout = http_timeout

    def add(
        self,
        command_id: str,
        pattern: str,
        response_type: str = "text",
        response_content: str = "",
        api_url: str = "",
        api_method: str = "GET",
        api_extract: str = "",
        description: str = "",
    ) -> ToolResult:
        if not command_id or not pattern:
            return ToolResult.fail("command_id and pattern are required")
        try:
            re.compile(pattern)
        except re.error as exc:
            return ToolResult.fail(f"Invalid regular expression: {exc}")
        if response_type not in RESPONSE_TYPES:
            return ToolResult.fail(f"response_type must be one of {', '.join(RESPONSE_TYPES)}")
        if response_type == "api" and not api_url:
            return ToolResult.fail("api_url is required for api commands")
        method = (api_method or "GET").upper()
        if method not in API_METHODS:
            return ToolResult.fail(f"api_method must be one of {', '.join(API_METHODS)}")

        with self._lock:
            self._records[command_id] = CustomCommand(
                pattern=pattern,
                response_type=response_type,
                response_content=response_content or "",
                api_url=api_url or "",
                api_method=method,
                api_extract=api_extract or "",
                description=description or "",
                enabled=True,
                created_at=datetime.now(timezone.utc).isoformat(),
            )
            self._save()
        logger.info(f"Added custom command {command_id} pattern={pattern!r}")
        return ToolResult.ok(f"Command '{command_id}' added")

    def remove(self, command_id: str) -> ToolResult:
        with self._lock:
            if command_id not in self._records:
                return ToolResult.fail(f"Command '{command_id}' does not exist")
            del self._records[command_id]
            self._save()
        return ToolResult.ok(f"Command '{command_id}' removed")

    def toggle(self, command_id: str, enabled: bool) -> ToolResult:
        with self._lock:
            command = self._records.get(command_id)
            if command is None:
                return ToolResult.fail(f"Command '{command_id}' does not exist")
            command.enabled = bool(enabled)
            self._save()
        return ToolResult.ok(f"Command '{command_id}' {'enabled' if enabled else 'disabled'}")

    def list(self) -> ToolResult:
        rows = [
            {
                "id": command_id,
                "pattern": c.pattern,
                "type": c.response_type,
                "description": c.description,
                "enabled": c.enabled,
            }
            for command_id, c in self.items()
        ]
        return ToolResult.ok(data=rows, count=len(rows))

    async def match_and_execute(self, text: str, user_id, group_id=None, nickname: str = "") -> Optional[str]:
        """Answer ``text`` with the first enabled matching command, or None."""
        for command_id, command in self.items():
            if not command.enabled:
                continue
            try:
                match = re.search(command.pattern, text)
            except re.error:
                logger.warning(f"Custom command {command_id} has an invalid pattern", exc_info=True)
                continue
            if not match:
                continue

            logger.info(f"Custom command {command_id} matched for user {user_id}")
            if command.response_type == "api":
                return await self._call_api(command, match, str(user_id), str(group_id or ""), nickname)
            return substitute(command.response_content, match, str(user_id), str(group_id or ""), nickname)
        return None

    async def _call_api(self, command: CustomCommand, match: "re.Match", user_id: str, group_id: str, nickname: str) -> str:
        url = substitute(command.api_url, match, user_id, group_id, nickname)
        try:
            async with httpx.AsyncClient(timeout=self.http_timeout, follow_redirects=True) as client:
                response = await client.request(command.api_method or "GET", url)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Custom command API {url} failed: {exc}")
            return f"API call failed: {exc}"

        if not command.api_extract:
            return response.text
        value = extract_path(data, command.api_extract)
        if value is None or value == "":
            return "API returned nothing"
        return str(value)


class CustomCommandTools:
    """Model-facing management of the custom command store."""

    category = ToolCategory.CUSTOM_COMMANDS
    tools = [
        tool_schema(
            "add_custom_command",
            "Add a custom command answered by regex match, without the model",
            {
                "command_id": {"type": "string", "description": "Command id"},
                "pattern": {"type": "string", "description": "Regular expression"},
                "response_type": {"type": "string", "enum": list(RESPONSE_TYPES), "description": "Response type"},
                "response_content": {"type": "string", "description": "Fixed reply (text type); $1.. and {user_id} are substituted"},
                "api_url": {"type": "string", "description": "API URL (api type)"},
                "api_method": {"type": "string", "enum": list(API_METHODS), "description": "HTTP method (api type)"},
                "api_extract": {"type": "string", "description": "Dotted path extracted from the API JSON"},
                "description": {"type": "string", "description": "Command description"},
            },
            required=["command_id", "pattern", "response_type"],
        ),
        tool_schema(
            "remove_custom_command",
            "Remove a custom command",
            {"command_id": {"type": "string", "description": "Command id"}},
            required=["command_id"],
        ),
        tool_schema("list_custom_commands", "List all custom commands"),
        tool_schema(
            "toggle_custom_command",
            "Enable or disable a custom command",
            {
                "command_id": {"type": "string", "description": "Command id"},
                "enabled": {"type": "boolean", "description": "Enable the command"},
            },
            required=["command_id", "enabled"],
        ),
    ]

    def __init__(self, store: CustomCommandStore):
        self.store = store

    async def execute(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> ToolResult:
        command_id = str(args.get("command_id") or "")
        if tool_name == "add_custom_command":
            return self.store.add(
                command_id,
                str(args.get("pattern") or ""),
                str(args.get("response_type") or "text"),
                str(args.get("response_content") or ""),
                str(args.get("api_url") or ""),
                str(args.get("api_method") or "GET"),
                str(args.get("api_extract") or ""),
                str(args.get("description") or ""),
            )
        if tool_name == "remove_custom_command":
            return self.store.remove(command_id)
        if tool_name == "list_custom_commands":
            return self.store.list()
        if tool_name == "toggle_custom_command":
            return self.store.toggle(command_id, _as_bool(args.get("enabled"), default=True))
        return ToolResult.fail(f"Unknown tool: {tool_name}")
