"""
Generic host-call tool (`call_api`).

Runs any OneBot action on the model's behalf. Permission checks happen
upstream in the gate; this module only executes, classifies failures into
friendly categories, and reconciles fire-and-forget actions through the
confirmation tracker.
"""

import json
from typing import Any, Dict, Optional, Tuple

from aicat.confirmation import OperationConfirmationTracker, describe_effect
from aicat.errors import HostActionError, HostErrorCategory, HostNoDataError
from aicat.host import HostActionInvoker, unwrap_data
from aicat.models import OperationKind, ToolResult
from aicat.permissions import CallerContext, split_host_call
from aicat.tools.registry import ToolCategory, tool_schema
from aicat.utils import get_logger

logger = get_logger("AICat.HostCall")

# Actions whose outcome is only reported later by a notice event
FIRE_AND_FORGET_ACTIONS = frozenset({
    "set_group_ban",
    "set_group_kick",
    "set_group_admin",
    "delete_msg",
})

# Message ids are unique across scopes, so recalls are matched on any scope
RECALL_SCOPE = "*"

RETCODE_NO_PERMISSION = 102
RETCODE_NOT_FOUND = 100


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in ("false", "0", "no", "")
    return bool(value)


def operation_for(action: str, params: Dict[str, Any]) -> Optional[Tuple[OperationKind, str, str, Dict[str, Any]]]:
    """Map a fire-and-forget action to (kind, scope_id, subject_id, expected_effect)."""
    group_id = str(params.get("group_id") or "")
    user_id = str(params.get("user_id") or "")

    if action == "set_group_ban":
        duration = _as_int(params.get("duration"))
        kind = OperationKind.BAN if duration > 0 else OperationKind.UNBAN
        return kind, group_id, user_id, {"duration": duration}
    if action == "set_group_kick":
        return OperationKind.KICK, group_id, user_id, {}
    if action == "set_group_admin":
        enable = _as_bool(params.get("enable"), default=True)
        kind = OperationKind.ADMIN_GRANT if enable else OperationKind.ADMIN_REVOKE
        return kind, group_id, user_id, {"enable": enable}
    if action == "delete_msg":
        return OperationKind.RECALL, RECALL_SCOPE, str(params.get("message_id") or ""), {}
    return None


def classify_host_error(action: str, message: str, retcode: Optional[int] = None) -> Tuple[HostErrorCategory, str]:
    """Bucket a host failure and produce a caller-facing explanation."""
    text = (message or "").lower()

    if (
        retcode == RETCODE_NO_PERMISSION
        or "no permission" in text
        or "lack" in text
        or "not_group_admin" in text
        or "permission denied" in text
    ):
        return HostErrorCategory.NO_PERMISSION, "The bot does not have admin permission for this operation"
    if "cannot ban owner" in text or "group owner" in text:
        return HostErrorCategory.NO_PERMISSION, "This operation cannot target the group owner"
    if "cannot ban admin" in text or "is admin" in text:
        return HostErrorCategory.NO_PERMISSION, "This operation cannot target a group admin"
    if "group not found" in text:
        return HostErrorCategory.TARGET_NOT_FOUND, "Group not found"
    if retcode == RETCODE_NOT_FOUND or "not found" in text or "uid error" in text:
        return HostErrorCategory.TARGET_NOT_FOUND, "Target not found; the user may not be in the group"
    if "rate limit" in text or "frequen" in text or "too many" in text or "risk control" in text:
        return HostErrorCategory.RATE_LIMITED, "Operation rate-limited by the host; try again later"

    detail = f"{action} failed: {message[:150]}" if message else f"{action} failed"
    if retcode is not None:
        detail = f"{detail} (code: {retcode})"
    return HostErrorCategory.OTHER, detail


def success_message(action: str, params: Dict[str, Any]) -> str:
    operation = operation_for(action, params)
    if operation is not None:
        kind, scope_id, subject_id, effect = operation
        return describe_effect(kind, scope_id, subject_id, effect)
    if action == "set_group_whole_ban":
        return "Enabled mute-all" if _as_bool(params.get("enable")) else "Disabled mute-all"
    return f"{action} succeeded"


class HostCallTools:
    """Executor for the `call_api` tool."""

    category = ToolCategory.HOST_CALL
    tools = [
        tool_schema(
            "call_api",
            "Call a OneBot API action. See the system prompt for common actions.",
            {
                "action": {"type": "string", "description": "Action name, e.g. send_group_msg, set_group_ban"},
                "params": {"type": "object", "description": "Action parameters"},
            },
            required=["action"],
        ),
    ]

    def __init__(
        self,
        invoker: HostActionInvoker,
        tracker: OperationConfirmationTracker,
        confirmation_timeout: float = 3.0,
    ):
        self.invoker = invoker
        self.tracker = tracker
        self.confirmation_timeout = confirmation_timeout

    async def execute(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> ToolResult:
        action, params = split_host_call(args)
        return await self.invoke(action, params)

    async def invoke(self, action: str, params: Dict[str, Any]) -> ToolResult:
        """Run one host action and turn its outcome into a ToolResult."""
        if not action:
            return ToolResult.fail("Missing action parameter")

        logger.debug(f"Host action {action} params={json.dumps(params, ensure_ascii=False, default=str)[:200]}")

        try:
            result = await self.invoker.call(action, params)
        except HostNoDataError:
            return await self._await_notice(action, params)
        except HostActionError as exc:
            category, friendly = classify_host_error(action, exc.message, exc.retcode)
            logger.warning(f"Host action {action} raised: {exc.message}")
            return ToolResult.fail(friendly, data={"category": category.value})

        if isinstance(result, dict) and result.get("retcode") not in (None, 0):
            retcode = _as_int(result.get("retcode"), default=-1)
            message = str(result.get("message") or result.get("msg") or result.get("wording") or "unknown error")
            category, friendly = classify_host_error(action, message, retcode)
            logger.warning(f"Host action {action} failed: retcode={retcode} message={message}")
            return ToolResult.fail(friendly, data={"category": category.value, "retcode": retcode})

        data = unwrap_data(result)
        return ToolResult.ok(success_message(action, params), data=data if data is not None else {})

    async def _await_notice(self, action: str, params: Dict[str, Any]) -> ToolResult:
        operation = operation_for(action, params) if action in FIRE_AND_FORGET_ACTIONS else None
        if operation is None:
            logger.warning(f"Host action {action} returned no data")
            return ToolResult.fail(
                f"{action} returned no data; its outcome is unknown",
                data={"category": HostErrorCategory.OTHER.value},
            )

        kind, scope_id, subject_id, expected = operation
        logger.debug(f"{action} returned no data; waiting for {kind.value} notice on {subject_id}")
        confirmation = await self.tracker.await_confirmation(
            kind, scope_id, subject_id, expected, timeout=self.confirmation_timeout
        )
        return ToolResult.ok(
            confirmation.message,
            data={
                "confirmed": confirmation.confirmed,
                "assumed": confirmation.assumed,
                "effect": confirmation.effect,
            },
        )
