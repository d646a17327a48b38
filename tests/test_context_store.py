"""Tests for the conversation context store."""

import asyncio

import pytest

from aicat.context_store import DIRECT_SCOPE, ContextStore, ConversationKey


class Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store(clock):
    return ContextStore(max_turns=3, expire_seconds=600, cleanup_interval=120, clock=clock)


class TestConversationKey:
    def test_direct_scope_when_no_group(self):
        key = ConversationKey.of(42)
        assert key.scope == DIRECT_SCOPE
        assert str(key) == "p42"

    def test_group_scope(self):
        key = ConversationKey.of(42, 100)
        assert key == ConversationKey("42", "100")
        assert str(key) == "g100_u42"

    def test_keys_differ_per_scope(self):
        assert ConversationKey.of(42, 100) != ConversationKey.of(42, 200)
        assert ConversationKey.of(42, 100) != ConversationKey.of(42)


class TestContextStore:
    def test_add_then_get_round_trip(self, store):
        key = ConversationKey.of(42, 100)
        store.add_message(key, "user", "hi")
        store.add_message(key, "assistant", "hello nya")

        assert store.get_context(key) == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello nya"},
        ]

    def test_get_returns_copy(self, store):
        key = ConversationKey.of(42)
        store.add_message(key, "user", "hi")
        store.get_context(key)[0]["content"] = "mutated"
        assert store.get_context(key)[0]["content"] == "hi"

    def test_unknown_key_is_empty(self, store):
        assert store.get_context(ConversationKey.of(7)) == []

    def test_expired_entry_is_purged_on_read(self, store, clock):
        key = ConversationKey.of(42, 100)
        store.add_turn(key, "hi", "hello")
        clock.now += 601

        assert store.get_context(key) == []
        assert len(store) == 0

    def test_touch_extends_lifetime(self, store, clock):
        key = ConversationKey.of(42)
        store.add_message(key, "user", "one")
        clock.now += 500
        store.add_message(key, "assistant", "two")
        clock.now += 500

        assert len(store.get_context(key)) == 2

    def test_fifo_eviction_to_twice_max_turns(self, store):
        key = ConversationKey.of(42)
        for i in range(5):
            store.add_turn(key, f"q{i}", f"a{i}")

        messages = store.get_context(key)
        assert len(messages) == 6
        assert messages[0] == {"role": "user", "content": "q2"}
        assert messages[-1] == {"role": "assistant", "content": "a4"}

    def test_single_turn_bound(self, clock):
        store = ContextStore(max_turns=1, clock=clock)
        key = ConversationKey.of("42")
        for i in range(3):
            store.add_turn(key, f"q{i}", f"a{i}")
        assert store.get_context(key) == [
            {"role": "user", "content": "q2"},
            {"role": "assistant", "content": "a2"},
        ]

    @pytest.mark.parametrize("max_turns", [0, -1])
    def test_non_positive_max_turns_rejected(self, max_turns):
        with pytest.raises(ValueError, match="max_turns"):
            ContextStore(max_turns=max_turns)

    def test_clear(self, store):
        key = ConversationKey.of(42)
        store.add_turn(key, "q", "a")
        store.clear(key)
        assert store.get_context(key) == []

    def test_info(self, store, clock):
        key = ConversationKey.of(42)
        store.add_turn(key, "q", "a")
        info = store.info(key)
        assert (info.turns, info.messages, info.expired) == (1, 2, False)

        clock.now += 601
        assert store.info(key).expired is True

    def test_cleanup_removes_only_expired(self, store, clock):
        old = ConversationKey.of(1)
        fresh = ConversationKey.of(2)
        store.add_turn(old, "q", "a")
        clock.now += 400
        store.add_turn(fresh, "q", "a")
        clock.now += 300

        assert store.cleanup() == 1
        assert store.get_context(old) == []
        assert len(store.get_context(fresh)) == 2


@pytest.mark.asyncio
async def test_periodic_cleanup_runs_and_stops():
    clock = Clock()
    store = ContextStore(max_turns=2, expire_seconds=10, cleanup_interval=0.01, clock=clock)
    store.add_turn(ConversationKey.of(1), "q", "a")
    clock.now += 11

    store.start_cleanup()
    await asyncio.sleep(0.05)
    assert len(store) == 0

    store.add_turn(ConversationKey.of(2), "q", "a")
    await store.stop_cleanup()
    assert len(store) == 0
