"""
Conversation context store.

Keeps a bounded, expiring history of (user, assistant) turns per caller and
scope. Entries are mutated only through add_message/clear; an expired entry
is treated as absent and purged on the next read or periodic sweep.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Literal, Optional

from aicat.utils import get_logger

logger = get_logger("AICat.Context")

DIRECT_SCOPE = "direct"

Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class ConversationKey:
    """Identifies one conversation: a caller inside a group or a direct chat."""
    caller_id: str
    scope: str = DIRECT_SCOPE

    @classmethod
    def of(cls, caller_id, scope_id=None) -> "ConversationKey":
        return cls(str(caller_id), str(scope_id) if scope_id else DIRECT_SCOPE)

    def __str__(self) -> str:
        if self.scope == DIRECT_SCOPE:
            return f"p{self.caller_id}"
        return f"g{self.scope}_u{self.caller_id}"


@dataclass
class ContextEntry:
    messages: List[Dict[str, str]] = field(default_factory=list)
    last_touched: float = 0.0


@dataclass
class ContextInfo:
    turns: int
    messages: int
    expired: bool


class ContextStore:
    """
    In-memory, turn-bounded, time-expiring conversation history.

    Args:
        max_turns: Number of (user, assistant) pairs retained; the entry never
            holds more than ``2 * max_turns`` messages.
        expire_seconds: Idle time after which an entry is logically absent.
        cleanup_interval: Period of the background sweep started by start_cleanup().
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_turns: int = 10,
        expire_seconds: float = 600,
        cleanup_interval: float = 120,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_turns < 1:
            raise ValueError(f"max_turns must be at least 1, got {max_turns}")
        self.max_turns = max_turns
        self.expire_seconds = expire_seconds
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._entries: Dict[ConversationKey, ContextEntry] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    def _is_expired(self, entry: Optional[ContextEntry]) -> bool:
        return entry is None or self._clock() - entry.last_touched > self.expire_seconds

    def get_context(self, key: ConversationKey) -> List[Dict[str, str]]:
        """Return a copy of the key's messages in insertion order, or [] if expired."""
        entry = self._entries.get(key)
        if self._is_expired(entry):
            self._entries.pop(key, None)
            return []
        return [dict(m) for m in entry.messages]

    def add_message(self, key: ConversationKey, role: Role, content: str) -> None:
        entry = self._entries.get(key)
        if self._is_expired(entry):
            entry = ContextEntry()
            self._entries[key] = entry

        entry.messages.append({"role": role, "content": content})
        limit = self.max_turns * 2
        if len(entry.messages) > limit:
            del entry.messages[:-limit]
        entry.last_touched = self._clock()

    def add_turn(self, key: ConversationKey, user_text: str, assistant_text: str) -> None:
        """Commit one (user, assistant) pair."""
        self.add_message(key, "user", user_text)
        self.add_message(key, "assistant", assistant_text)

    def clear(self, key: ConversationKey) -> None:
        self._entries.pop(key, None)

    def info(self, key: ConversationKey) -> ContextInfo:
        entry = self._entries.get(key)
        count = len(entry.messages) if entry else 0
        return ContextInfo(turns=count // 2, messages=count, expired=self._is_expired(entry))

    def cleanup(self) -> int:
        """Purge every expired entry. Returns the number removed."""
        expired = [k for k, e in self._entries.items() if self._is_expired(e)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired context(s)")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    # -------------------------------------------------------------------------
    # Periodic sweep
    # -------------------------------------------------------------------------

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.cleanup()

    def start_cleanup(self) -> None:
        """Start the background sweep on the running loop (idempotent)."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop_cleanup(self) -> None:
        """Stop the sweep and drop every entry."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        self._entries.clear()
