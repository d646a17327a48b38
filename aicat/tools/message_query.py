"""
Message archive and the message-query tools.

Every inbound message is recorded in a bounded in-memory archive (count and
age limited). The model can read it back to summarize a chat, search it, or
inspect a single message. Scope narrowing for non-owners happens in the
dispatcher before these handlers run.
"""

import re
import time
from collections import Counter, deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

from aicat.models import ToolResult
from aicat.permissions import CallerContext
from aicat.tools.registry import ToolCategory, tool_schema
from aicat.utils import get_logger

logger = get_logger("AICat.MessageArchive")

MAX_QUERY_LIMIT = 200


@dataclass
class ArchivedMessage:
    message_id: str
    user_id: str
    content: str
    time: float
    group_id: Optional[str] = None
    nickname: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["time"] = datetime.fromtimestamp(self.time, tz=timezone.utc).isoformat()
        return data


class MessageArchive:
    """Bounded, age-limited record of seen messages."""

    def __init__(
        self,
        max_messages: int = 5000,
        retention_days: float = 7,
        clock: Callable[[], float] = time.time,
    ):
        self.max_messages = max_messages
        self.retention_seconds = retention_days * 86400
        self._clock = clock
        self._messages: Deque[ArchivedMessage] = deque(maxlen=max_messages)

    def record(
        self,
        message_id,
        user_id,
        content: str,
        group_id=None,
        nickname: str = "",
        timestamp: Optional[float] = None,
    ) -> ArchivedMessage:
        message = ArchivedMessage(
            message_id=str(message_id),
            user_id=str(user_id),
            content=content or "",
            time=float(timestamp) if timestamp else self._clock(),
            group_id=str(group_id) if group_id else None,
            nickname=nickname or "",
        )
        self._messages.append(message)
        self._prune()
        return message

    def _prune(self) -> None:
        horizon = self._clock() - self.retention_seconds
        while self._messages and self._messages[0].time < horizon:
            self._messages.popleft()

    def _filtered(self, group_id=None, user_id=None, since: Optional[float] = None) -> List[ArchivedMessage]:
        self._prune()
        group_id = str(group_id) if group_id else None
        user_id = str(user_id) if user_id else None
        return [
            m for m in self._messages
            if (group_id is None or m.group_id == group_id)
            and (user_id is None or m.user_id == user_id)
            and (since is None or m.time >= since)
        ]

    def query(
        self,
        group_id=None,
        user_id=None,
        keyword: Optional[str] = None,
        hours_ago: Optional[float] = None,
        limit: int = 20,
    ) -> List[ArchivedMessage]:
        """Most recent matches, returned oldest first."""
        since = self._clock() - hours_ago * 3600 if hours_ago else None
        matches = self._filtered(group_id, user_id, since)
        if keyword:
            needle = keyword.lower()
            matches = [m for m in matches if needle in m.content.lower()]
        return matches[-limit:] if limit > 0 else []

    def search(self, pattern: str, group_id=None, user_id=None, limit: int = 20) -> List[ArchivedMessage]:
        """Regex search over content. Raises re.error for a bad pattern."""
        regex = re.compile(pattern, re.IGNORECASE)
        matches = [m for m in self._filtered(group_id, user_id) if regex.search(m.content)]
        return matches[-limit:] if limit > 0 else []

    def stats(self, group_id=None, user_id=None) -> Dict[str, Any]:
        messages = self._filtered(group_id, user_id)
        now = datetime.fromtimestamp(self._clock())
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0).timestamp()
        senders = Counter(m.user_id for m in messages)
        return {
            "total": len(messages),
            "today": sum(1 for m in messages if m.time >= midnight),
            "active_users": len(senders),
            "top_users": [{"user_id": u, "count": c} for u, c in senders.most_common(5)],
        }

    def get(self, message_id) -> Optional[ArchivedMessage]:
        message_id = str(message_id)
        for message in reversed(self._messages):
            if message.message_id == message_id:
                return message
        return None

    def __len__(self) -> int:
        return len(self._messages)


def _limit(args: Dict[str, Any], default: int = 20) -> int:
    try:
        value = int(args.get("limit") or default)
    except (TypeError, ValueError):
        value = default
    return max(1, min(value, MAX_QUERY_LIMIT))


class MessageQueryTools:
    """Executor for the message-history tools."""

    category = ToolCategory.MESSAGE_QUERY
    tools = [
        tool_schema(
            "query_history_messages",
            "Query recorded chat history; use it before summarizing a conversation",
            {
                "group_id": {"type": "string", "description": "Group id"},
                "user_id": {"type": "string", "description": "Sender user id"},
                "keyword": {"type": "string", "description": "Substring the message must contain"},
                "limit": {"type": "integer", "description": "Maximum messages returned (default 20)"},
                "hours_ago": {"type": "number", "description": "Only messages from the last N hours"},
            },
        ),
        tool_schema(
            "search_messages",
            "Regex search over recorded messages",
            {
                "pattern": {"type": "string", "description": "Regular expression"},
                "group_id": {"type": "string", "description": "Group id"},
                "user_id": {"type": "string", "description": "Sender user id"},
                "limit": {"type": "integer", "description": "Maximum messages returned"},
            },
            required=["pattern"],
        ),
        tool_schema(
            "get_message_stats",
            "Message statistics: total, today, active users",
            {
                "group_id": {"type": "string", "description": "Group id"},
                "user_id": {"type": "string", "description": "Sender user id"},
            },
        ),
        tool_schema(
            "get_message_by_id",
            "Get one recorded message by id",
            {"message_id": {"type": "string", "description": "Message id"}},
            required=["message_id"],
        ),
    ]

    def __init__(self, archive: MessageArchive):
        self.archive = archive

    async def execute(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> ToolResult:
        group_id = args.get("group_id")
        user_id = args.get("user_id")

        if tool_name == "query_history_messages":
            hours = args.get("hours_ago")
            rows = self.archive.query(
                group_id,
                user_id,
                args.get("keyword"),
                float(hours) if hours else None,
                _limit(args),
            )
            return ToolResult.ok(data=[m.to_dict() for m in rows], count=len(rows))

        if tool_name == "search_messages":
            pattern = str(args.get("pattern") or "")
            if not pattern:
                return ToolResult.fail("pattern is required")
            try:
                rows = self.archive.search(pattern, group_id, user_id, _limit(args))
            except re.error as exc:
                return ToolResult.fail(f"Invalid regular expression: {exc}")
            return ToolResult.ok(data=[m.to_dict() for m in rows], count=len(rows))

        if tool_name == "get_message_stats":
            return ToolResult.ok(data=self.archive.stats(group_id, user_id))

        if tool_name == "get_message_by_id":
            message = self.archive.get(args.get("message_id") or "")
            # Narrowed scope filters apply to single lookups too
            if (
                message is None
                or (group_id and message.group_id != str(group_id))
                or (user_id and message.user_id != str(user_id))
            ):
                return ToolResult.fail(f"Message {args.get('message_id')} not found")
            return ToolResult.ok(data=message.to_dict())

        return ToolResult.fail(f"Unknown tool: {tool_name}")
