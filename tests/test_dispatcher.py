"""Tests for the tool registry and dispatcher."""

import pytest

from aicat.errors import ToolRegistryError
from aicat.models import ToolResult
from aicat.tools import (
    DiagnosticsTools,
    HostCallTools,
    MessageArchive,
    MessageQueryTools,
    ToolCategory,
    ToolDispatcher,
    ToolRegistry,
    narrow_message_query,
    tool_schema,
)
from aicat.utils import RecentLogHandler
from conftest import FakeInvoker


class StubHandler:
    def __init__(self, category, names, result=None, error=None):
        self.category = category
        self.tools = [tool_schema(n, n) for n in names]
        self.result = result or ToolResult.ok("done")
        self.error = error
        self.calls = []

    async def execute(self, tool_name, args, caller):
        self.calls.append((tool_name, args))
        if self.error:
            raise self.error
        return self.result


def full_handlers(overrides=None):
    handlers = {
        ToolCategory.HOST_CALL: StubHandler(ToolCategory.HOST_CALL, ["call_api"]),
        ToolCategory.WEB: StubHandler(ToolCategory.WEB, ["web_search"]),
        ToolCategory.CUSTOM_COMMANDS: StubHandler(ToolCategory.CUSTOM_COMMANDS, ["add_custom_command"]),
        ToolCategory.SCHEDULED_TASKS: StubHandler(ToolCategory.SCHEDULED_TASKS, ["list_scheduled_tasks"]),
        ToolCategory.USER_WATCHERS: StubHandler(ToolCategory.USER_WATCHERS, ["list_user_watchers"]),
        ToolCategory.MESSAGE_QUERY: StubHandler(ToolCategory.MESSAGE_QUERY, ["query_history_messages"]),
        ToolCategory.DIAGNOSTICS: StubHandler(ToolCategory.DIAGNOSTICS, ["query_error_logs"]),
    }
    handlers.update(overrides or {})
    return handlers


class TestToolRegistry:
    def test_builds_when_closed(self):
        registry = ToolRegistry(full_handlers().values())
        assert registry.category_of("web_search") == ToolCategory.WEB
        assert "call_api" in registry
        assert len(registry.wire_schemas()) == 7
        assert registry.wire_schemas()[0]["type"] == "function"

    def test_missing_category_rejected(self):
        handlers = full_handlers()
        del handlers[ToolCategory.DIAGNOSTICS]
        with pytest.raises(ToolRegistryError, match="diagnostics"):
            ToolRegistry(handlers.values())

    def test_duplicate_name_rejected(self):
        handlers = full_handlers()
        handlers[ToolCategory.WEB] = StubHandler(ToolCategory.WEB, ["call_api"])
        with pytest.raises(ToolRegistryError, match="twice"):
            ToolRegistry(handlers.values())

    def test_real_handlers_cover_every_category(self, tracker):
        registry = ToolRegistry([
            HostCallTools(FakeInvoker(), tracker),
            StubHandler(ToolCategory.WEB, ["web_search"]),
            StubHandler(ToolCategory.CUSTOM_COMMANDS, ["add_custom_command"]),
            StubHandler(ToolCategory.SCHEDULED_TASKS, ["list_scheduled_tasks"]),
            StubHandler(ToolCategory.USER_WATCHERS, ["list_user_watchers"]),
            MessageQueryTools(MessageArchive()),
            DiagnosticsTools(RecentLogHandler()),
        ])
        assert "get_message_by_id" in registry.names


class TestToolDispatcher:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, member):
        dispatcher = ToolDispatcher(ToolRegistry(full_handlers().values()))
        result = await dispatcher.dispatch("rm_rf", {}, member)
        assert result.error == "Unknown tool: rm_rf"

    @pytest.mark.asyncio
    async def test_denied_call_never_reaches_handler(self, member):
        handlers = full_handlers()
        dispatcher = ToolDispatcher(ToolRegistry(handlers.values()))

        result = await dispatcher.dispatch(
            "call_api", {"action": "set_group_ban", "params": {"group_id": "100", "user_id": "7"}}, member
        )

        assert not result.success
        assert "not an admin" in result.error
        assert handlers[ToolCategory.HOST_CALL].calls == []

    @pytest.mark.asyncio
    async def test_denied_host_call_never_reaches_invoker(self, member, tracker):
        invoker = FakeInvoker()
        handlers = full_handlers({ToolCategory.HOST_CALL: HostCallTools(invoker, tracker)})
        dispatcher = ToolDispatcher(ToolRegistry(handlers.values()))

        await dispatcher.dispatch("call_api", {"action": "get_friend_list"}, member)
        await dispatcher.dispatch("call_api", {"action": "set_group_kick", "group_id": "100", "user_id": "7"}, member)

        assert invoker.calls == []

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_failed_result(self, member):
        handlers = full_handlers({ToolCategory.WEB: StubHandler(ToolCategory.WEB, ["web_search"], error=RuntimeError("boom"))})
        dispatcher = ToolDispatcher(ToolRegistry(handlers.values()))

        result = await dispatcher.dispatch("web_search", {"query": "x"}, member)
        assert not result.success
        assert "boom" in result.error

    @pytest.mark.asyncio
    async def test_message_query_narrowed_to_current_group(self, member):
        handlers = full_handlers()
        dispatcher = ToolDispatcher(ToolRegistry(handlers.values()))

        await dispatcher.dispatch("query_history_messages", {"limit": 5}, member)
        assert handlers[ToolCategory.MESSAGE_QUERY].calls == [("query_history_messages", {"limit": 5, "group_id": "100"})]


class TestNarrowMessageQuery:
    def test_owner_unrestricted(self, owner):
        assert narrow_message_query({"group_id": "999"}, owner) == ({"group_id": "999"}, "")

    def test_other_group_denied(self, member):
        narrowed, reason = narrow_message_query({"group_id": "999"}, member)
        assert narrowed is None
        assert "cross-scope denied" in reason

    def test_same_group_allowed(self, member):
        narrowed, _ = narrow_message_query({"group_id": "100", "user_id": "5"}, member)
        assert narrowed == {"group_id": "100", "user_id": "5"}

    def test_direct_scope_forced_to_own_user(self, direct_member):
        narrowed, _ = narrow_message_query({"user_id": "5"}, direct_member)
        assert narrowed == {"user_id": "42"}

    def test_direct_scope_cannot_read_groups(self, direct_member):
        narrowed, reason = narrow_message_query({"group_id": "100"}, direct_member)
        assert narrowed is None
        assert "cross-scope denied" in reason
