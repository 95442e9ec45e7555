import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from flowbot.services.conversation_state import ConversationLocks, ConversationStore, ResumePoint


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class TestConversationStore:
    def test_state_is_isolated_per_conversation(self):
        store = ConversationStore()
        store.set("a", "name", "Ada")
        store.update("b", {"name": "Bob", "age": "40"})

        assert store.get("a", "name") == "Ada"
        assert store.get("a", "age") is None
        assert store.snapshot("b") == {"name": "Bob", "age": "40"}

    def test_clear_keeps_resume_point(self):
        store = ConversationStore()
        store.set("a", "name", "Ada")
        store.set_resume("a", ResumePoint("register", 1))

        store.clear("a")

        assert store.snapshot("a") == {}
        assert store.get_resume("a") == ResumePoint("register", 1)

    def test_snapshot_is_a_copy(self):
        store = ConversationStore()
        store.set("a", "name", "Ada")

        snapshot = store.snapshot("a")
        snapshot["name"] = "changed"

        assert store.get("a", "name") == "Ada"

    def test_unknown_conversation_defaults(self):
        store = ConversationStore()

        assert store.get("nobody", "x", "fallback") == "fallback"
        assert store.get_resume("nobody") is None
        assert "nobody" not in store

    def test_resume_point_counts_fallbacks(self):
        point = ResumePoint("welcome", 1, keyword="hi")

        assert point.with_fallback().with_fallback().fallbacks == 2
        assert point.fallbacks == 0


class TestExpiry:
    def test_idle_conversation_resets(self):
        clock = FakeClock()
        store = ConversationStore(ttl_seconds=60, clock=clock)
        store.touch("a")
        store.set("a", "name", "Ada")
        store.set_resume("a", ResumePoint("register", 1))

        clock.advance(61)

        assert store.get_resume("a") is None
        assert store.get("a", "name") is None
        assert "a" not in store

    def test_touch_extends_lifetime(self):
        clock = FakeClock()
        store = ConversationStore(ttl_seconds=60, clock=clock)
        store.set("a", "name", "Ada")

        clock.advance(50)
        store.touch("a")
        clock.advance(50)

        assert store.get("a", "name") == "Ada"

    def test_purge_expired(self):
        clock = FakeClock()
        store = ConversationStore(ttl_seconds=60, clock=clock)
        store.touch("old")
        clock.advance(61)
        store.touch("new")

        assert store.purge_expired() == 1
        assert len(store) == 1

    def test_zero_ttl_never_expires(self):
        clock = FakeClock()
        store = ConversationStore(ttl_seconds=0, clock=clock)
        store.set("a", "name", "Ada")
        clock.advance(10**6)

        assert store.get("a", "name") == "Ada"
        assert store.purge_expired() == 0


class TestConversationLocks:
    @pytest.mark.asyncio
    async def test_same_conversation_is_serialized(self):
        locks = ConversationLocks()
        order = []

        async def turn(label):
            async with locks.hold("c1"):
                order.append(f"{label}-in")
                await asyncio.sleep(0.01)
                order.append(f"{label}-out")

        await asyncio.gather(turn("a"), turn("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_conversations_interleave(self):
        locks = ConversationLocks()
        order = []

        async def turn(cid):
            async with locks.hold(cid):
                order.append(f"{cid}-in")
                await asyncio.sleep(0.01)
                order.append(f"{cid}-out")

        await asyncio.gather(turn("c1"), turn("c2"))

        assert order[:2] == ["c1-in", "c2-in"]

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self):
        locks = ConversationLocks()

        with pytest.raises(RuntimeError):
            async with locks.hold("c1"):
                assert locks.is_locked("c1")
                raise RuntimeError("boom")

        assert not locks.is_locked("c1")
        assert len(locks) == 0
