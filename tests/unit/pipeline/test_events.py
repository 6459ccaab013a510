# tests/unit/pipeline/test_events.py — v1
"""Tests for pipeline/events.py — progress event bus."""

from __future__ import annotations

import pytest

from scriptconveyor.pipeline.events import ProgressEvent, ProgressEventBus


def _event(event_type: str = "stage_started", item_id: str = "i1") -> ProgressEvent:
    return ProgressEvent(type=event_type, item_id=item_id, owner_id="o1", stage_index=0)


class TestProgressEventBus:
    @pytest.mark.asyncio
    async def test_sync_and_async_listeners(self):
        bus = ProgressEventBus()
        seen: list[str] = []

        async def async_listener(event):
            seen.append("async:" + event.type)

        bus.subscribe(lambda e: seen.append("sync:" + e.type))
        bus.subscribe(async_listener)
        await bus.publish(_event())
        assert seen == ["sync:stage_started", "async:stage_started"]

    @pytest.mark.asyncio
    async def test_failing_listener_is_isolated(self):
        bus = ProgressEventBus()
        seen = []

        def broken(event):
            raise RuntimeError("listener bug")

        bus.subscribe(broken)
        bus.subscribe(seen.append)
        await bus.publish(_event())
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = ProgressEventBus()
        seen = []
        unsubscribe = bus.subscribe(seen.append)
        unsubscribe()
        unsubscribe()
        await bus.publish(_event())
        assert seen == []

    @pytest.mark.asyncio
    async def test_history_is_bounded_per_item(self):
        bus = ProgressEventBus(history_size=2)
        for event_type in ("item_started", "stage_started", "stage_completed"):
            await bus.publish(_event(event_type))
        await bus.publish(_event("item_started", item_id="i2"))
        assert [e.type for e in bus.history("i1")] == ["stage_started", "stage_completed"]
        assert len(bus.history("i2")) == 1
        assert bus.history("unknown") == []

    @pytest.mark.asyncio
    async def test_history_keeps_most_recently_active_items(self):
        bus = ProgressEventBus(max_items=2)
        await bus.publish(_event(item_id="i1"))
        await bus.publish(_event(item_id="i2"))
        await bus.publish(_event("stage_completed", item_id="i1"))
        await bus.publish(_event(item_id="i3"))

        assert bus.history("i2") == []
        assert [e.type for e in bus.history("i1")] == ["stage_started", "stage_completed"]
        assert len(bus.history("i3")) == 1
