"""Tests for the permission gate."""

import pytest

from aicat.permissions import CallerContext, PermissionGate, split_host_call


@pytest.fixture
def gate():
    return PermissionGate()


class TestOwnerOnlyTools:
    def test_error_logs_denied_for_admin(self, gate, group_admin):
        decision = gate.authorize("query_error_logs", {}, group_admin)
        assert not decision
        assert "owner-only" in decision.reason

    @pytest.mark.parametrize("tool", [
        "add_custom_command",
        "toggle_scheduled_task",
        "run_scheduled_task_now",
        "remove_user_watcher",
    ])
    def test_custom_management_denied_for_member(self, gate, member, tool):
        assert not gate.authorize(tool, {}, member)

    def test_owner_allowed(self, gate, owner):
        assert gate.authorize("query_error_logs", {}, owner)
        assert gate.authorize("add_user_watcher", {}, owner)

    def test_listing_allowed_for_member(self, gate, member):
        assert gate.authorize("list_custom_commands", {}, member)
        assert gate.authorize("web_search", {"query": "cats"}, member)


class TestHostCall:
    def test_privileged_info_denied_for_admin(self, gate, group_admin):
        decision = gate.authorize("call_api", {"action": "get_friend_list", "params": {}}, group_admin)
        assert not decision
        assert "get_friend_list" in decision.reason

    def test_privileged_info_allowed_for_owner(self, gate, owner):
        assert gate.authorize("call_api", {"action": "get_group_list"}, owner)

    def test_non_admin_ban_denied(self, gate, member):
        decision = gate.authorize(
            "call_api",
            {"action": "set_group_ban", "params": {"group_id": "100", "user_id": "7", "duration": 600}},
            member,
        )
        assert not decision
        assert "not an admin" in decision.reason

    def test_admin_ban_in_own_group_allowed(self, gate, group_admin):
        assert gate.authorize(
            "call_api",
            {"action": "set_group_ban", "params": {"group_id": "100", "user_id": "7", "duration": 600}},
            group_admin,
        )

    def test_cross_scope_denied(self, gate, group_admin):
        decision = gate.authorize(
            "call_api",
            {"action": "set_group_kick", "params": {"group_id": "999", "user_id": "7"}},
            group_admin,
        )
        assert not decision
        assert "cross-scope denied" in decision.reason

    def test_cross_scope_check_uses_flattened_params(self, gate, group_admin):
        decision = gate.authorize(
            "call_api", {"action": "set_group_kick", "group_id": "999", "user_id": "7"}, group_admin
        )
        assert "cross-scope denied" in decision.reason

    def test_cross_scope_skipped_in_direct_scope(self, gate):
        owner_direct = CallerContext(caller_id="1", is_admin=True, is_privileged_owner=True)
        assert gate.authorize(
            "call_api", {"action": "set_group_ban", "params": {"group_id": "999", "user_id": "7"}}, owner_direct
        )

    def test_unrestricted_action_allowed(self, gate, member):
        assert gate.authorize("call_api", {"action": "send_group_msg", "params": {"group_id": "100"}}, member)


class TestSplitHostCall:
    def test_nested_params(self):
        assert split_host_call({"action": "a", "params": {"x": 1}}) == ("a", {"x": 1})

    def test_flattened_params(self):
        assert split_host_call({"action": "a", "x": 1, "params": {}}) == ("a", {"x": 1})

    def test_missing_action(self):
        assert split_host_call({}) == ("", {})
