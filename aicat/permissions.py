"""
Permission gate for tool and host-action invocation.

The gate is a pure rule set: it never performs I/O and never mutates the
caller. Rules are evaluated in order and the first match wins.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from aicat.utils import get_logger

logger = get_logger("AICat.Permissions")

HOST_CALL_TOOL = "call_api"

# Tools only the bot owner may use
OWNER_ONLY_TOOLS = frozenset({"query_error_logs"})

# Management tools for owner-defined automation
OWNER_ONLY_CUSTOM_TOOLS = frozenset({
    "add_custom_command",
    "remove_custom_command",
    "toggle_custom_command",
    "add_scheduled_task",
    "remove_scheduled_task",
    "toggle_scheduled_task",
    "run_scheduled_task_now",
    "add_user_watcher",
    "remove_user_watcher",
    "toggle_user_watcher",
})

# Host actions that enumerate the bot's own relationships or credentials
PRIVILEGED_INFO_ACTIONS = frozenset({
    "get_friend_list",
    "get_group_list",
    "get_friends_with_category",
    "get_unidirectional_friend_list",
    "get_cookies",
    "get_csrf_token",
    "get_credentials",
})

# Host actions that need group admin rights from the caller
ADMIN_REQUIRED_ACTIONS = frozenset({
    "set_group_ban",
    "set_group_kick",
    "set_group_admin",
    "set_group_card",
    "set_group_special_title",
    "set_group_name",
    "set_group_whole_ban",
    "set_group_anonymous_ban",
    "set_essence_msg",
    "delete_essence_msg",
    "send_group_notice",
    "set_group_portrait",
    "upload_group_file",
    "delete_group_file",
    "create_group_file_folder",
})


@dataclass(frozen=True)
class CallerContext:
    """Who is asking, and from where. Computed once per instruction."""
    caller_id: str
    scope_id: Optional[str] = None
    is_admin: bool = False
    is_privileged_owner: bool = False
    nickname: str = ""
    role: str = "member"

    @property
    def is_direct(self) -> bool:
        return not self.scope_id


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = PermissionDecision(True)


def deny(reason: str) -> PermissionDecision:
    return PermissionDecision(False, reason)


def split_host_call(args: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
    """Return (action, params) for a call_api invocation.

    When ``params`` is missing or empty, every other argument key is treated
    as a parameter, so a flattened call is gated exactly like a nested one.
    """
    action = str(args.get("action") or "")
    params = args.get("params")
    if not isinstance(params, dict) or not params:
        params = {k: v for k, v in args.items() if k not in ("action", "params")}
    return action, params


class PermissionGate:
    """Decides whether a caller may invoke a tool with the given arguments."""

    owner_only_tools = OWNER_ONLY_TOOLS | OWNER_ONLY_CUSTOM_TOOLS
    privileged_info_actions = PRIVILEGED_INFO_ACTIONS
    admin_required_actions = ADMIN_REQUIRED_ACTIONS

    def authorize(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> PermissionDecision:
        # 1. Owner-only tools
        if tool_name in self.owner_only_tools and not caller.is_privileged_owner:
            return self._deny(tool_name, caller, "This feature is owner-only")

        if tool_name != HOST_CALL_TOOL:
            return ALLOW

        action, params = split_host_call(args)

        # 2. Privileged info and admin-required host actions
        if action in self.privileged_info_actions and not caller.is_privileged_owner:
            return self._deny(action, caller, f"{action} is owner-only")

        if action in self.admin_required_actions:
            if not caller.is_admin:
                return self._deny(action, caller, "You are not an admin, so this operation is not allowed")

            # 3. Cross-scope guard, only meaningful inside a group
            target = str(params.get("group_id") or "")
            if target and not caller.is_direct and target != str(caller.scope_id):
                return self._deny(
                    action,
                    caller,
                    f"cross-scope denied: cannot act on group {target} from group {caller.scope_id}",
                )

        return ALLOW

    @staticmethod
    def _deny(subject: str, caller: CallerContext, reason: str) -> PermissionDecision:
        logger.info(f"Denied {subject} for caller {caller.caller_id} in scope {caller.scope_id or 'direct'}: {reason}")
        return deny(reason)
