"""
Unit tests for the preload/switch timer scheduler.
"""

import asyncio

import pytest

from cyclecast.scheduling.horizon import project
from cyclecast.scheduling.registry import Channel
from cyclecast.scheduling.resolver import resolve
from cyclecast.tasks.preload_scheduler import EventKind, PreloadScheduler, ScheduledEvent
from tests.conftest import FakeClock


def horizon_at(channel: Channel, clock: FakeClock, count: int):
    return project(channel, resolve(channel, 0, clock()), count)


@pytest.fixture
def recorder():
    events: list[ScheduledEvent] = []
    return events


@pytest.mark.unit
class TestScheduledEvent:
    """Tests for ScheduledEvent keys."""

    def test_key_rounds_to_granularity(self):
        a = ScheduledEvent("abc", "C", "m", EventKind.SWITCH, 300_000)
        b = ScheduledEvent("abc", "C", "m", EventKind.SWITCH, 300_999)
        c = ScheduledEvent("abc", "C", "m", EventKind.SWITCH, 301_000)

        assert a.key(1000) == b.key(1000)
        assert a.key(1000) != c.key(1000)

    def test_key_separates_kind_and_channel(self):
        switch = ScheduledEvent("abc", "C", "m", EventKind.SWITCH, 300_000)
        preload = ScheduledEvent("abc", "C", "m", EventKind.PRELOAD, 300_000)
        other = ScheduledEvent("xyz", "C", "m", EventKind.SWITCH, 300_000)

        assert len({switch.key(1000), preload.key(1000), other.key(1000)}) == 3

    def test_to_dict(self):
        event = ScheduledEvent("abc", "C", "media-c", EventKind.PRELOAD, 240_000)

        assert event.to_dict() == {
            "channel_id": "abc",
            "item_id": "C",
            "media_ref": "media-c",
            "kind": "preload",
            "firing_time": 240_000,
        }


@pytest.mark.unit
class TestPreloadScheduler:
    """Tests for PreloadScheduler arming and firing."""

    def test_invalid_settings(self):
        with pytest.raises(ValueError):
            PreloadScheduler(history_cap=0)
        with pytest.raises(ValueError):
            PreloadScheduler(granularity_ms=0)

    def test_events_for_horizon(self, abc_channel: Channel):
        clock = FakeClock(150_000)
        scheduler = PreloadScheduler(lead_seconds=60, clock=clock)

        events = scheduler.events_for("abc", horizon_at(abc_channel, clock, 2))

        assert [(e.item_id, e.kind, e.firing_time_ms) for e in events] == [
            ("C", EventKind.PRELOAD, 240_000),
            ("C", EventKind.SWITCH, 300_000),
            ("A", EventKind.PRELOAD, 540_000),
            ("A", EventKind.SWITCH, 600_000),
        ]

    @pytest.mark.asyncio
    async def test_overdue_event_fires_immediately(self, abc_channel: Channel, recorder):
        clock = FakeClock(250_000)
        scheduler = PreloadScheduler(lead_seconds=60, clock=clock)
        scheduler.on_preload(recorder.append)

        armed = scheduler.arm("abc", horizon_at(abc_channel, clock, 1))

        # Preload for C was due at 240s; switch at 300s is still ahead
        assert [(e.item_id, e.kind) for e in recorder] == [("C", EventKind.PRELOAD)]
        assert armed == 1
        assert scheduler.armed_events()[0].kind == EventKind.SWITCH
        scheduler.cancel_all()

    @pytest.mark.asyncio
    async def test_rearm_does_not_refire(self, abc_channel: Channel, recorder):
        clock = FakeClock(250_000)
        scheduler = PreloadScheduler(lead_seconds=60, clock=clock)
        scheduler.on_preload(recorder.append)

        scheduler.arm("abc", horizon_at(abc_channel, clock, 3))
        clock.advance(5)
        scheduler.arm("abc", horizon_at(abc_channel, clock, 3))

        assert len(recorder) == 1
        assert scheduler.get_status()["total_fired"] == 1
        scheduler.cancel_all()

    @pytest.mark.asyncio
    async def test_overlapping_horizons_switch_once(self, abc_channel: Channel, recorder):
        clock = FakeClock(299_950)
        scheduler = PreloadScheduler(lead_seconds=60, clock=clock)
        scheduler.on_switch(recorder.append)

        first = scheduler.arm("abc", horizon_at(abc_channel, clock, 2))
        second = scheduler.arm("abc", horizon_at(abc_channel, clock, 2))

        assert first == second
        assert scheduler.armed_count == first

        await asyncio.sleep(0.2)

        assert [(e.item_id, e.firing_time_ms) for e in recorder] == [("C", 300_000)]
        scheduler.cancel_all()

    @pytest.mark.asyncio
    async def test_superseded_timers_cancelled(self, abc_channel: Channel):
        clock = FakeClock(10_000)
        scheduler = PreloadScheduler(lead_seconds=5, clock=clock)

        assert scheduler.arm("abc", horizon_at(abc_channel, clock, 3)) == 6
        assert scheduler.arm("abc", horizon_at(abc_channel, clock, 1)) == 2
        assert scheduler.armed_count == 2
        scheduler.cancel_all()

    @pytest.mark.asyncio
    async def test_overdue_timer_fires_when_dropped_from_horizon(self, abc_channel: Channel, recorder):
        clock = FakeClock(299_000)
        scheduler = PreloadScheduler(lead_seconds=60, clock=clock)
        scheduler.on_switch(recorder.append)

        scheduler.arm("abc", horizon_at(abc_channel, clock, 2))
        assert recorder == []

        # Clock steps past C's start before its timer ran
        clock.ms = 300_200
        scheduler.arm("abc", horizon_at(abc_channel, clock, 2))

        assert [(e.item_id, e.firing_time_ms) for e in recorder] == [("C", 300_000)]
        assert all(e.firing_time_ms > clock() for e in scheduler.armed_events())

        await asyncio.sleep(1.2)
        assert len(recorder) == 1
        scheduler.cancel_all()

    @pytest.mark.asyncio
    async def test_channels_armed_independently(self, abc_channel: Channel, registry):
        clock = FakeClock(10_000)
        scheduler = PreloadScheduler(lead_seconds=5, clock=clock)
        solo = registry.get("solo")

        scheduler.arm("abc", horizon_at(abc_channel, clock, 2))
        scheduler.arm("solo", project(solo, resolve(solo, 0, clock()), 2))
        scheduler.arm("abc", [])

        assert scheduler.armed_count == 4
        assert {e.channel_id for e in scheduler.armed_events()} == {"solo"}
        scheduler.cancel_all()

    @pytest.mark.asyncio
    async def test_callback_errors_are_contained(self, abc_channel: Channel, recorder, caplog):
        clock = FakeClock(299_000)
        scheduler = PreloadScheduler(lead_seconds=60, clock=clock)

        def broken(event):
            raise RuntimeError("observer blew up")

        scheduler.on_preload(broken)
        scheduler.on_preload(recorder.append)

        scheduler.arm("abc", horizon_at(abc_channel, clock, 1))

        assert len(recorder) == 1
        assert "observer blew up" in caplog.text
        scheduler.cancel_all()

    @pytest.mark.asyncio
    async def test_async_callback(self, abc_channel: Channel):
        clock = FakeClock(299_000)
        scheduler = PreloadScheduler(lead_seconds=60, clock=clock)
        seen = asyncio.Event()

        async def on_preload(event):
            seen.set()

        scheduler.on_preload(on_preload)
        scheduler.arm("abc", horizon_at(abc_channel, clock, 1))

        await asyncio.wait_for(seen.wait(), timeout=1)
        scheduler.cancel_all()

    @pytest.mark.asyncio
    async def test_unsubscribe(self, abc_channel: Channel, recorder):
        clock = FakeClock(299_000)
        scheduler = PreloadScheduler(lead_seconds=60, clock=clock)
        unsubscribe = scheduler.on_preload(recorder.append)
        unsubscribe()
        unsubscribe()

        scheduler.arm("abc", horizon_at(abc_channel, clock, 1))

        assert recorder == []
        scheduler.cancel_all()

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, abc_channel: Channel):
        # Far in the future: every event of the horizon is overdue
        clock = FakeClock(10_000_000)
        scheduler = PreloadScheduler(lead_seconds=60, history_cap=3, clock=clock)
        past = project(abc_channel, resolve(abc_channel, 0, 0), 5)

        scheduler.arm("abc", past)

        status = scheduler.get_status()
        assert status["total_fired"] == 10
        assert status["fired_history"] == 3
        # Newest occurrences are remembered, oldest evicted
        assert scheduler.has_fired(scheduler.events_for("abc", past)[-1])
        assert not scheduler.has_fired(scheduler.events_for("abc", past)[0])

    @pytest.mark.asyncio
    async def test_cancel_all_keeps_history(self, abc_channel: Channel):
        clock = FakeClock(250_000)
        scheduler = PreloadScheduler(lead_seconds=60, clock=clock)
        horizon = horizon_at(abc_channel, clock, 2)

        scheduler.arm("abc", horizon)
        scheduler.cancel_all()

        assert scheduler.armed_count == 0
        assert scheduler.has_fired(scheduler.events_for("abc", horizon)[0])


@pytest.mark.unit
class TestPreloadSchedulerLifecycle:
    """Tests for the background refresh loop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, abc_channel: Channel):
        clock = FakeClock(10_000)
        scheduler = PreloadScheduler(lead_seconds=5, clock=clock)
        calls = 0

        def provider():
            nonlocal calls
            calls += 1
            return {"abc": horizon_at(abc_channel, clock, 2)}

        await scheduler.start(provider, interval_seconds=60)
        await scheduler.start(provider, interval_seconds=60)
        await asyncio.sleep(0.05)

        assert scheduler.is_running
        assert calls == 1
        assert scheduler.armed_count == 4
        assert scheduler.get_status()["next_event"]["item_id"] == "B"

        await scheduler.stop()

        assert not scheduler.is_running
        assert scheduler.armed_count == 0

    @pytest.mark.asyncio
    async def test_async_provider(self, abc_channel: Channel):
        clock = FakeClock(10_000)
        scheduler = PreloadScheduler(lead_seconds=5, clock=clock)

        async def provider():
            return {"abc": horizon_at(abc_channel, clock, 1)}

        await scheduler.start(provider, interval_seconds=60)
        await asyncio.sleep(0.05)

        assert scheduler.armed_count == 2
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_provider_error_keeps_loop_alive(self, caplog):
        scheduler = PreloadScheduler()

        def provider():
            raise RuntimeError("projection failed")

        await scheduler.start(provider, interval_seconds=60)
        await asyncio.sleep(0.05)

        assert scheduler.is_running
        assert "projection failed" in caplog.text
        await scheduler.stop()
