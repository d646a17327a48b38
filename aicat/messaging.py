"""
Reply channels.

A ReplyChannel is how the orchestrator and the command router talk back to
the chat a message came from. Short replies go out as a single send_msg;
long replies are split into chunks and sent as one forwarded-node message.
Identical replies to the same target within a short window are dropped.
"""

import time
from typing import Callable, Dict, List, Optional, Protocol

from aicat.errors import HostActionError
from aicat.host import HostActionInvoker
from aicat.utils import get_logger

logger = get_logger("AICat.Messaging")

# Sender id shown on forwarded nodes when the bot's own id is unknown
FORWARD_NODE_USER_ID = "66600000"


class ReplyChannel(Protocol):
    async def send(self, text: str) -> None:
        ...

    async def send_long(self, text: str) -> None:
        ...


class ReplyDeduplicator:
    """Remembers recent (target, content) pairs for ``window`` seconds."""

    def __init__(self, window: float = 3.0, clock: Callable[[], float] = time.monotonic):
        self.window = window
        self._clock = clock
        self._recent: Dict[str, float] = {}

    def is_duplicate(self, target_id: str, content: str) -> bool:
        now = self._clock()
        self._recent = {k: t for k, t in self._recent.items() if now - t <= self.window}

        key = f"{target_id}:{content[:100]}"
        if key in self._recent:
            logger.debug(f"Duplicate reply suppressed: {content[:30]}...")
            return True
        self._recent[key] = now
        return False


def split_text_to_chunks(text: str, max_length: int) -> List[str]:
    """Split on line boundaries; a single line longer than max_length is cut."""
    chunks: List[str] = []
    current = ""

    for line in text.split("\n"):
        while len(line) > max_length:
            if current:
                chunks.append(current.strip())
                current = ""
            chunks.append(line[:max_length])
            line = line[max_length:]

        if current and len(current) + len(line) + 1 > max_length:
            chunks.append(current.strip())
            current = line
        else:
            current = f"{current}\n{line}" if current else line

    if current.strip():
        chunks.append(current.strip())
    return [c for c in chunks if c]


class OneBotReplyChannel:
    """
    Replies into one group or direct chat through the host invoker.

    Send failures are logged and swallowed: a lost reply must not abort the
    orchestration run that produced it.
    """

    def __init__(
        self,
        invoker: HostActionInvoker,
        message_type: str,
        user_id,
        group_id=None,
        bot_name: str = "Xiyu",
        self_id: Optional[str] = None,
        dedup: Optional[ReplyDeduplicator] = None,
        long_threshold: int = 300,
        chunk_size: int = 600,
    ):
        self.invoker = invoker
        self.message_type = message_type
        self.user_id = str(user_id)
        self.group_id = str(group_id) if group_id else None
        self.bot_name = bot_name
        self.self_id = str(self_id) if self_id else FORWARD_NODE_USER_ID
        self.dedup = dedup
        self.long_threshold = long_threshold
        self.chunk_size = chunk_size

    @property
    def target_id(self) -> str:
        return self.group_id or self.user_id

    async def send(self, text: str) -> None:
        if not text:
            return
        if self.dedup is not None and self.dedup.is_duplicate(self.target_id, text):
            return

        params = {"message": text, "message_type": self.message_type}
        if self.group_id:
            params["group_id"] = self.group_id
        else:
            params["user_id"] = self.user_id

        try:
            await self.invoker.call("send_msg", params)
        except HostActionError as exc:
            logger.error(f"Failed to send reply to {self.target_id}: {exc.message}")

    async def send_long(self, text: str) -> None:
        if len(text) <= self.long_threshold:
            await self.send(text)
            return

        chunks = split_text_to_chunks(text, self.chunk_size)
        if len(chunks) <= 1:
            await self.send(text)
            return

        nodes = [
            {
                "type": "node",
                "data": {
                    "user_id": self.self_id,
                    "nickname": self.bot_name,
                    "content": [{"type": "text", "data": {"text": chunk}}],
                },
            }
            for chunk in chunks
        ]

        if self.group_id:
            action, params = "send_group_forward_msg", {"group_id": self.group_id, "messages": nodes}
        else:
            action, params = "send_private_forward_msg", {"user_id": self.user_id, "messages": nodes}

        try:
            await self.invoker.call(action, params)
        except HostActionError as exc:
            logger.error(f"Forward message failed, sending plain text: {exc.message}")
            await self.send(text)


class BufferedReplyChannel:
    """Collects replies in memory. Used where no chat is attached."""

    def __init__(self):
        self.sent: List[str] = []

    async def send(self, text: str) -> None:
        if text:
            self.sent.append(text)

    async def send_long(self, text: str) -> None:
        await self.send(text)
