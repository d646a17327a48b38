"""
OneBot-11 event parsing.

Pure helpers: clean message text of reply/at CQ codes, read mentions, strip
the command prefix, and turn notice events into NotificationEvents for the
confirmation tracker.
"""

import re
from typing import Any, Dict, List, Optional, Tuple

from aicat.models import NotificationEvent, OperationKind
from aicat.tools.host_call import RECALL_SCOPE

_REPLY_CODE = re.compile(r"\[CQ:reply,id=(-?\d+)\]")
_AT_CODE = re.compile(r"\[CQ:at,qq=(\w+)[^\]]*\]")


def process_message_content(raw: str) -> Tuple[str, Optional[str]]:
    """Return (content, quoted_message_id) with reply and at codes removed."""
    raw = raw or ""
    match = _REPLY_CODE.search(raw)
    quoted = match.group(1) if match else None
    content = _AT_CODE.sub("", _REPLY_CODE.sub("", raw)).strip()
    return content, quoted


def extract_mentions(message: Any) -> List[str]:
    """User ids mentioned in a message (segment list or CQ string). Skips @all."""
    mentions: List[str] = []
    if isinstance(message, list):
        for segment in message:
            if not isinstance(segment, dict) or segment.get("type") != "at":
                continue
            qq = (segment.get("data") or {}).get("qq")
            if qq and str(qq) != "all":
                mentions.append(str(qq))
    elif isinstance(message, str):
        mentions = [qq for qq in _AT_CODE.findall(message) if qq != "all"]
    return mentions


def strip_prefix(content: str, prefix: str) -> Optional[str]:
    """Instruction text after the command prefix, or None when the prefix is absent."""
    match = re.match(rf"^{re.escape(prefix)}\s*(.*)", content or "", re.IGNORECASE | re.DOTALL)
    if match is None:
        return None
    return match.group(1).strip()


def message_text(event: Dict[str, Any]) -> str:
    raw = event.get("raw_message")
    if isinstance(raw, str):
        return raw
    message = event.get("message")
    if isinstance(message, str):
        return message
    if isinstance(message, list):
        parts = []
        for segment in message:
            if not isinstance(segment, dict):
                continue
            data = segment.get("data") or {}
            if segment.get("type") == "text":
                parts.append(str(data.get("text", "")))
            elif segment.get("type") == "at":
                parts.append(f"[CQ:at,qq={data.get('qq')}]")
            elif segment.get("type") == "reply":
                parts.append(f"[CQ:reply,id={data.get('id')}]")
        return "".join(parts)
    return ""


def notification_from_notice(event: Dict[str, Any]) -> Optional[NotificationEvent]:
    """Map a OneBot notice to a NotificationEvent, or None if it confirms nothing."""
    notice_type = event.get("notice_type")
    sub_type = event.get("sub_type")
    group_id = str(event.get("group_id") or "")
    user_id = str(event.get("user_id") or "")

    if notice_type == "group_ban":
        # user_id 0 is a whole-group mute
        if not user_id or user_id == "0":
            return None
        duration = int(event.get("duration") or 0)
        if sub_type == "ban" and duration > 0:
            return NotificationEvent(
                kind=OperationKind.BAN, scope_id=group_id, subject_id=user_id,
                effect={"duration": duration},
            )
        if sub_type == "lift_ban" or (sub_type == "ban" and duration == 0):
            return NotificationEvent(kind=OperationKind.UNBAN, scope_id=group_id, subject_id=user_id)
        return None

    if notice_type == "group_decrease" and sub_type in ("kick", "kick_me") and user_id:
        return NotificationEvent(
            kind=OperationKind.KICK, scope_id=group_id, subject_id=user_id,
            effect={"operator_id": str(event.get("operator_id") or "")},
        )

    if notice_type == "group_admin" and user_id:
        if sub_type == "set":
            return NotificationEvent(kind=OperationKind.ADMIN_GRANT, scope_id=group_id, subject_id=user_id)
        if sub_type == "unset":
            return NotificationEvent(kind=OperationKind.ADMIN_REVOKE, scope_id=group_id, subject_id=user_id)
        return None

    if notice_type in ("group_recall", "friend_recall"):
        message_id = event.get("message_id")
        if message_id is None:
            return None
        return NotificationEvent(
            kind=OperationKind.RECALL, scope_id=RECALL_SCOPE, subject_id=str(message_id),
            effect={"operator_id": str(event.get("operator_id") or user_id)},
        )

    return None
