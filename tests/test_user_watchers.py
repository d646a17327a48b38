"""Tests for user watchers."""

import pytest

from aicat.tools.host_call import HostCallTools
from aicat.tools.user_watchers import UserWatcherStore, UserWatcherTools
from conftest import FakeInvoker


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock):
    return UserWatcherStore(tmp_path, clock=clock)


class TestStore:
    def test_add_validation(self, store):
        assert not store.add("w", "7", "explode").success
        assert not store.add("w", "7", "reply", keyword="(").success
        assert not store.add("w", "7", "api_call").success
        assert not store.add("w", "7", "api_call", api_action="x", api_params="nope").success
        assert store.add("w", "7", "reply", reply_content="hi").success

    def test_find_match_filters(self, store):
        store.add("w", "7", "recall", group_id="100", keyword=r"spam\d+")
        assert store.find_match("7", "100", "buy spam42 now") == "w"
        assert store.find_match("8", "100", "spam42") is None
        assert store.find_match("7", "200", "spam42") is None
        assert store.find_match("7", "100", "hello") is None

    def test_cooldown(self, store, clock):
        store.add("w", "7", "recall", cooldown_seconds=30)
        assert store.find_match("7", "100", "x") == "w"
        store.mark_triggered("w")

        clock.now += 10
        assert store.find_match("7", "100", "x") is None
        clock.now += 25
        assert store.find_match("7", "100", "x") == "w"

    def test_disabled_watcher_ignored(self, store):
        store.add("w", "7", "recall")
        store.toggle("w", False)
        assert store.find_match("7", "100", "x") is None


class TestCheckAndExecute:
    @pytest.mark.asyncio
    async def test_reply_quotes_message(self, store, tracker):
        invoker = FakeInvoker()
        tools = UserWatcherTools(store, HostCallTools(invoker, tracker))
        store.add("w", "7", "reply", reply_content="hush, {user_id}")

        result = await tools.check_and_execute("7", "100", "meow", 555)

        assert result.success
        action, params = invoker.calls[0]
        assert action == "send_group_msg"
        assert params["message"] == [
            {"type": "reply", "data": {"id": "555"}},
            {"type": "text", "data": {"text": "hush, 7"}},
        ]
        assert store.get("w").trigger_count == 1

    @pytest.mark.asyncio
    async def test_ban_uses_duration(self, store, tracker):
        invoker = FakeInvoker()
        tools = UserWatcherTools(store, HostCallTools(invoker, tracker))
        store.add("w", "7", "ban", ban_duration=120)

        await tools.check_and_execute("7", "100", "x", 1)
        assert invoker.calls == [("set_group_ban", {"group_id": "100", "user_id": "7", "duration": 120})]

    @pytest.mark.asyncio
    async def test_ban_outside_group_skipped(self, store, tracker):
        invoker = FakeInvoker()
        tools = UserWatcherTools(store, HostCallTools(invoker, tracker))
        store.add("w", "7", "ban")

        assert await tools.check_and_execute("7", None, "x", 1) is None
        assert invoker.calls == []
        assert store.get("w").trigger_count == 0

    @pytest.mark.asyncio
    async def test_api_call_substitutes_variables(self, store, tracker):
        invoker = FakeInvoker()
        tools = UserWatcherTools(store, HostCallTools(invoker, tracker))
        store.add("w", "7", "api_call", api_action="set_msg_emoji_like", api_params={"message_id": "{message_id}", "emoji_id": "66"})

        await tools.check_and_execute("7", "100", "x", 9)
        assert invoker.calls == [("set_msg_emoji_like", {"message_id": "9", "emoji_id": "66"})]

    @pytest.mark.asyncio
    async def test_no_match(self, store, tracker):
        tools = UserWatcherTools(store, HostCallTools(FakeInvoker(), tracker))
        assert await tools.check_and_execute("7", "100", "x", 1) is None


@pytest.mark.asyncio
async def test_tools_toggle_string_false_disables(store, tracker, owner):
    tools = UserWatcherTools(store, HostCallTools(FakeInvoker(), tracker))
    store.add("w", "7", "recall")

    result = await tools.execute("toggle_user_watcher", {"watcher_id": "w", "enabled": "False"}, owner)

    assert result.success
    assert store.get("w").enabled is False
    assert store.find_match("7", "100", "x") is None
