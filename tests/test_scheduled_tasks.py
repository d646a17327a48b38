"""Tests for scheduled tasks."""

import pytest

from aicat.tools.host_call import HostCallTools
from aicat.tools.scheduled_tasks import ScheduledTaskStore, ScheduledTaskTools, is_valid_cron
from conftest import FakeInvoker


@pytest.fixture
def store(tmp_path):
    return ScheduledTaskStore(tmp_path)


@pytest.mark.parametrize("expression, valid", [
    ("0 8 * * *", True),
    ("*/5 * * * 1-5", True),
    ("0 8 * *", False),
    ("", False),
])
def test_is_valid_cron(expression, valid):
    assert is_valid_cron(expression) is valid


class TestStore:
    def test_add_validates(self, store):
        assert not store.add("t", "bad cron", "group", "100", "hi").success
        assert not store.add("t", "0 8 * * *", "channel", "100", "hi").success
        assert store.add("t", "0 8 * * *", "group", "100", "good morning").success

    def test_list(self, store):
        store.add("t", "0 8 * * *", "group", "100", "good morning", "daily greeting")
        rows = store.list().data
        assert rows == [{
            "id": "t",
            "cron": "0 8 * * *",
            "target": "group:100",
            "description": "daily greeting",
            "enabled": True,
            "run_count": 0,
            "last_run": None,
        }]


class TestRunNow:
    @pytest.mark.asyncio
    async def test_sends_and_bumps_counters(self, store, tracker, owner, tmp_path):
        invoker = FakeInvoker()
        tools = ScheduledTaskTools(store, HostCallTools(invoker, tracker))
        store.add("t", "0 8 * * *", "private", "42", "wake up")

        result = await tools.execute("run_scheduled_task_now", {"task_id": "t"}, owner)

        assert result.success
        assert invoker.calls == [("send_private_msg", {"user_id": "42", "message": "wake up"})]
        task = ScheduledTaskStore(tmp_path).get("t")
        assert task.run_count == 1
        assert task.last_run is not None

    @pytest.mark.asyncio
    async def test_host_failure_does_not_count(self, store, tracker, owner):
        invoker = FakeInvoker({"send_group_msg": {"status": "failed", "retcode": 100, "message": "group not found"}})
        tools = ScheduledTaskTools(store, HostCallTools(invoker, tracker))
        store.add("t", "0 8 * * *", "group", "100", "hi")

        result = await tools.run_now("t")

        assert not result.success
        assert store.get("t").run_count == 0

    @pytest.mark.asyncio
    async def test_unknown_task(self, store, tracker):
        tools = ScheduledTaskTools(store, HostCallTools(FakeInvoker(), tracker))
        assert not (await tools.run_now("nope")).success


@pytest.mark.asyncio
async def test_tools_toggle_string_false_disables(store, tracker, owner):
    tools = ScheduledTaskTools(store, HostCallTools(FakeInvoker(), tracker))
    store.add("t", "0 8 * * *", "group", "100", "hi")

    result = await tools.execute("toggle_scheduled_task", {"task_id": "t", "enabled": "false"}, owner)

    assert result.success
    assert store.get("t").enabled is False
