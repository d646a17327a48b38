"""Tool registry, dispatcher and the executors of every tool category."""

from .registry import ToolCategory, ToolHandler, ToolRegistry, tool_schema
from .dispatcher import ToolDispatcher, narrow_message_query
from .host_call import HostCallTools, FIRE_AND_FORGET_ACTIONS
from .custom_commands import CustomCommandStore, CustomCommandTools
from .scheduled_tasks import ScheduledTaskStore, ScheduledTaskTools
from .user_watchers import UserWatcherStore, UserWatcherTools
from .web import WebTools
from .message_query import MessageArchive, MessageQueryTools
from .diagnostics import DiagnosticsTools

__all__ = [
    "ToolCategory",
    "ToolHandler",
    "ToolRegistry",
    "tool_schema",
    "ToolDispatcher",
    "narrow_message_query",
    "HostCallTools",
    "FIRE_AND_FORGET_ACTIONS",
    "CustomCommandStore",
    "CustomCommandTools",
    "ScheduledTaskStore",
    "ScheduledTaskTools",
    "UserWatcherStore",
    "UserWatcherTools",
    "WebTools",
    "MessageArchive",
    "MessageQueryTools",
    "DiagnosticsTools",
]
