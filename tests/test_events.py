"""
Tests for the event bus.
"""

import asyncio

import pytest

from kernel_bridge.events import EventBus, done_event, output_event, status_event


class TestEventNames:
    """Tests for event name scoping."""

    def test_names(self):
        assert output_event("s1", "r1") == "kernel-output-s1-r1"
        assert status_event("s1") == "kernel-status-s1"
        assert done_event("s1", "r1") == "kernel-done-s1-r1"


class TestEventBus:
    """Tests for EventBus."""

    def test_emit_to_subscribers_in_order(self):
        bus = EventBus()
        received = []
        bus.subscribe("a", lambda p: received.append(("first", p)))
        bus.subscribe("a", lambda p: received.append(("second", p)))
        bus.subscribe("b", lambda p: received.append(("other", p)))

        assert bus.emit("a", {"x": 1}) == 2
        assert received == [("first", {"x": 1}), ("second", {"x": 1})]

    def test_emit_without_subscribers(self):
        assert EventBus().emit("nobody", {}) == 0

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe("a", received.append)
        unsubscribe()
        unsubscribe()

        bus.emit("a", {})
        assert received == []
        assert bus.subscriber_count("a") == 0

    def test_failing_callback_does_not_block_others(self):
        bus = EventBus()
        received = []

        def broken(payload):
            raise RuntimeError("boom")

        bus.subscribe("a", broken)
        bus.subscribe("a", received.append)

        assert bus.emit("a", {"ok": True}) == 1
        assert received == [{"ok": True}]

    def test_stats(self):
        bus = EventBus()
        bus.subscribe("a", lambda p: None)
        bus.subscribe("b", lambda p: None)
        bus.emit("a", {})

        stats = bus.get_stats()
        assert stats["event_names"] == 2
        assert stats["subscribers"] == 2
        assert stats["emitted"] == 1
        assert bus.subscriber_count() == 2

    @pytest.mark.asyncio
    async def test_wait_for(self):
        bus = EventBus()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, bus.emit, "ready", {"value": 42})

        payload = await bus.wait_for("ready", timeout=2.0)
        assert payload == {"value": 42}
        assert bus.subscriber_count("ready") == 0

    @pytest.mark.asyncio
    async def test_wait_for_timeout(self):
        bus = EventBus()
        with pytest.raises(asyncio.TimeoutError):
            await bus.wait_for("never", timeout=0.01)
        assert bus.subscriber_count("never") == 0
