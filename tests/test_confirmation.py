"""Tests for fire-and-forget confirmation tracking."""

import asyncio

import pytest

from aicat.confirmation import OperationConfirmationTracker, describe_effect
from aicat.models import NotificationEvent, OperationKind


def ban_notice(user="7", group="100", duration=600):
    return NotificationEvent(
        kind=OperationKind.BAN, scope_id=group, subject_id=user, effect={"duration": duration}
    )


class TestDescribeEffect:
    def test_ban_in_minutes(self):
        assert describe_effect(OperationKind.BAN, "100", "7", {"duration": 600}) == "Muted user 7 for 10 minutes"

    def test_short_ban_in_seconds(self):
        assert describe_effect(OperationKind.BAN, "100", "7", {"duration": 30}) == "Muted user 7 for 30 seconds"

    def test_recall(self):
        assert describe_effect(OperationKind.RECALL, "*", "555", {}) == "Recalled message 555"


@pytest.mark.asyncio
async def test_matching_notice_confirms(tracker):
    async def later():
        await asyncio.sleep(0.05)
        assert tracker.notify(ban_notice()) is True

    notifier = asyncio.create_task(later())
    result = await tracker.await_confirmation(OperationKind.BAN, "100", "7", {"duration": 600}, timeout=1.0)
    await notifier

    assert result.confirmed and not result.assumed
    assert "user 7" in result.message
    assert "10 minutes" in result.message
    assert tracker.pending_count == 0


@pytest.mark.asyncio
async def test_timeout_is_assumed_success(tracker):
    result = await tracker.await_confirmation(OperationKind.KICK, "100", "7", {}, timeout=0.05)

    assert result.success
    assert result.assumed and not result.confirmed
    assert "assumed successful" in result.message
    assert tracker.pending_count == 0


@pytest.mark.asyncio
async def test_resolves_once_first_notice_wins(tracker):
    async def notices():
        await asyncio.sleep(0.02)
        first = tracker.notify(ban_notice(duration=600))
        second = tracker.notify(ban_notice(duration=60))
        return first, second

    notifier = asyncio.create_task(notices())
    result = await tracker.await_confirmation(OperationKind.BAN, "100", "7", {"duration": 600}, timeout=1.0)
    first, second = await notifier

    assert first is True
    assert second is False
    assert result.effect["duration"] == 600

    # The duplicate notice must not confirm a follow-up operation on the same user
    follow_up = await tracker.await_confirmation(OperationKind.BAN, "100", "7", {"duration": 60}, timeout=0.05)
    assert not follow_up.confirmed
    assert follow_up.assumed
    assert follow_up.effect == {"duration": 60}


@pytest.mark.asyncio
async def test_late_notice_after_timeout_is_ignored(tracker):
    result = await tracker.await_confirmation(OperationKind.BAN, "100", "7", {"duration": 600}, timeout=0.02)
    assert result.assumed
    assert tracker.notify(ban_notice()) is False

    follow_up = await tracker.await_confirmation(OperationKind.BAN, "100", "7", {"duration": 60}, timeout=0.05)
    assert not follow_up.confirmed
    assert "1 minute" in follow_up.message


@pytest.mark.asyncio
async def test_non_matching_notice_does_not_resolve(tracker):
    async def wrong_user():
        await asyncio.sleep(0.01)
        return tracker.notify(ban_notice(user="8"))

    notifier = asyncio.create_task(wrong_user())
    result = await tracker.await_confirmation(OperationKind.BAN, "100", "7", {"duration": 600}, timeout=0.1)

    assert await notifier is False
    assert result.assumed


@pytest.mark.asyncio
async def test_early_notice_matches_next_registration(tracker):
    # The notice overtakes the host call's return
    assert tracker.notify(ban_notice()) is False

    result = await tracker.await_confirmation(OperationKind.BAN, "100", "7", {"duration": 600}, timeout=1.0)
    assert result.confirmed


@pytest.mark.asyncio
async def test_early_notice_expires():
    now = [0.0]
    tracker = OperationConfirmationTracker(early_event_seconds=2.0, clock=lambda: now[0])
    tracker.notify(ban_notice())
    now[0] = 5.0

    result = await tracker.await_confirmation(OperationKind.BAN, "100", "7", {"duration": 600}, timeout=0.02)
    assert result.assumed


@pytest.mark.asyncio
async def test_resolved_key_forgotten_after_window():
    now = [0.0]
    tracker = OperationConfirmationTracker(early_event_seconds=2.0, late_notice_seconds=10.0, clock=lambda: now[0])
    await tracker.await_confirmation(OperationKind.BAN, "100", "7", {"duration": 600}, timeout=0.01)

    now[0] = 20.0
    tracker.notify(ban_notice(duration=60))
    result = await tracker.await_confirmation(OperationKind.BAN, "100", "7", {"duration": 60}, timeout=1.0)
    assert result.confirmed
