"""
Preload and switch timers for projected horizons.

Each projected program occurrence yields a PRELOAD event ``lead_seconds``
before its start and a SWITCH event at its start. Re-arming with an
overlapping horizon never fires the same occurrence twice.

All state is confined to the event loop that owns the scheduler; call
``arm()`` from that loop only.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from cyclecast.scheduling.horizon import UpcomingProgram
from cyclecast.utils.time_format import now_ms

logger = logging.getLogger(__name__)

EventKey = Tuple[str, str, str, int]
EventCallback = Callable[["ScheduledEvent"], Union[None, Awaitable[None]]]
HorizonProvider = Callable[
    [], Union[Dict[str, List[UpcomingProgram]], Awaitable[Dict[str, List[UpcomingProgram]]]]
]


class EventKind(str, Enum):
    """Kinds of timed schedule events."""

    PRELOAD = "preload"
    SWITCH = "switch"


@dataclass(frozen=True)
class ScheduledEvent:
    """A single timed event for one program occurrence."""

    channel_id: str
    item_id: str
    media_ref: str
    kind: EventKind
    firing_time_ms: int

    def key(self, granularity_ms: int) -> EventKey:
        """Dedup key; firing times within one granule collapse together."""
        return (
            self.channel_id,
            self.item_id,
            self.kind.value,
            self.firing_time_ms // granularity_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "item_id": self.item_id,
            "media_ref": self.media_ref,
            "kind": self.kind.value,
            "firing_time": self.firing_time_ms,
        }


class PreloadScheduler:
    """
    Owns the armed timers and fired-event history for preload/switch events.

    Usage:
        scheduler = PreloadScheduler(lead_seconds=300)
        unsubscribe = scheduler.on_switch(handle_switch)
        scheduler.arm("bangla-1", horizon)

        # or keep re-projecting in the background:
        await scheduler.start(lambda: service.horizons(20), interval_seconds=60)
        ...
        await scheduler.stop()
    """

    DEFAULT_LEAD_SECONDS = 300
    DEFAULT_HISTORY_CAP = 100
    DEFAULT_GRANULARITY_MS = 1000

    def __init__(
        self,
        lead_seconds: int = DEFAULT_LEAD_SECONDS,
        history_cap: int = DEFAULT_HISTORY_CAP,
        granularity_ms: int = DEFAULT_GRANULARITY_MS,
        clock: Optional[Callable[[], int]] = None,
    ):
        if history_cap <= 0:
            raise ValueError("history_cap must be positive")
        if granularity_ms <= 0:
            raise ValueError("granularity_ms must be positive")

        self.lead_seconds = lead_seconds
        self.history_cap = history_cap
        self.granularity_ms = granularity_ms
        self.clock = clock or now_ms

        self._armed: dict[EventKey, tuple[asyncio.TimerHandle, ScheduledEvent]] = {}
        self._fired: OrderedDict[EventKey, None] = OrderedDict()

        self._preload_callbacks: list[EventCallback] = []
        self._switch_callbacks: list[EventCallback] = []
        self._pending_callbacks: set[asyncio.Task] = set()

        self._running = False
        self._refresh_task: Optional[asyncio.Task] = None

        self._total_fired = 0
        self._total_armed = 0

    # ------------------------------------------------------------ observers

    def on_preload(self, callback: EventCallback) -> Callable[[], None]:
        """Register a preload observer. Returns an unsubscribe function."""
        return self._subscribe(self._preload_callbacks, callback)

    def on_switch(self, callback: EventCallback) -> Callable[[], None]:
        """Register a switch observer. Returns an unsubscribe function."""
        return self._subscribe(self._switch_callbacks, callback)

    @staticmethod
    def _subscribe(callbacks: list[EventCallback], callback: EventCallback) -> Callable[[], None]:
        callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    # ------------------------------------------------------------ arming

    def events_for(self, channel_id: str, horizon: List[UpcomingProgram]) -> list[ScheduledEvent]:
        """Preload and switch events for every occurrence in a horizon."""
        events: list[ScheduledEvent] = []
        for entry in horizon:
            for kind, firing_time in (
                (EventKind.PRELOAD, entry.absolute_start_ms - self.lead_seconds * 1000),
                (EventKind.SWITCH, entry.absolute_start_ms),
            ):
                events.append(
                    ScheduledEvent(
                        channel_id=channel_id,
                        item_id=entry.item.id,
                        media_ref=entry.item.media_ref,
                        kind=kind,
                        firing_time_ms=firing_time,
                    )
                )
        return events

    def arm(self, channel_id: str, horizon: List[UpcomingProgram]) -> int:
        """
        Arm timers for a freshly projected horizon of one channel.

        Already-fired occurrences are skipped, already-armed ones are
        replaced, and armed occurrences missing from the new horizon are
        cancelled. Events whose time has passed fire immediately, including
        armed ones that dropped out of the horizon before their timer ran.

        Returns:
            Number of timers armed for the channel after this pass.
        """
        loop = asyncio.get_running_loop()
        now = self.clock()
        wanted: set[EventKey] = set()
        due: list[tuple[EventKey, ScheduledEvent]] = []

        for event in self.events_for(channel_id, horizon):
            key = event.key(self.granularity_ms)
            if key in wanted or key in self._fired:
                continue
            wanted.add(key)

            self._cancel(key)

            delay_ms = event.firing_time_ms - now
            if delay_ms <= 0:
                due.append((key, event))
                continue

            handle = loop.call_later(delay_ms / 1000, self._fire, key, event)
            self._armed[key] = (handle, event)
            self._total_armed += 1
            logger.debug(
                f"Armed {event.kind.value} for {channel_id}/{event.item_id} "
                f"in {delay_ms / 1000:.1f}s"
            )

        superseded = [
            key for key in self._armed
            if key[0] == channel_id and key not in wanted
        ]
        cancelled = 0
        for key in superseded:
            _, event = self._armed[key]
            self._cancel(key)
            if event.firing_time_ms <= now:
                # Came due before the loop ran it
                due.append((key, event))
            else:
                cancelled += 1
        if cancelled:
            logger.debug(f"Cancelled {cancelled} superseded timer(s) for {channel_id}")

        # Fire overdue events only after bookkeeping so observers may re-arm
        for key, event in due:
            logger.debug(f"{event.kind.value} for {channel_id}/{event.item_id} overdue, firing now")
            self._fire(key, event)

        return sum(1 for key in self._armed if key[0] == channel_id)

    def _cancel(self, key: EventKey) -> None:
        entry = self._armed.pop(key, None)
        if entry:
            entry[0].cancel()

    def cancel_all(self) -> None:
        """Cancel every armed timer. Fired history is kept."""
        for handle, _ in self._armed.values():
            handle.cancel()
        self._armed.clear()

    # ------------------------------------------------------------ firing

    def _fire(self, key: EventKey, event: ScheduledEvent) -> None:
        self._armed.pop(key, None)
        if key in self._fired:
            return
        self._remember(key)
        self._total_fired += 1

        logger.info(
            f"{event.kind.value.capitalize()} triggered for {event.channel_id}/"
            f"{event.item_id} ({event.media_ref})"
        )

        callbacks = (
            self._preload_callbacks if event.kind == EventKind.PRELOAD
            else self._switch_callbacks
        )
        for callback in list(callbacks):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    task = asyncio.ensure_future(result)
                    self._pending_callbacks.add(task)
                    task.add_done_callback(self._callback_done)
            except Exception as e:
                logger.error(f"{event.kind.value} callback failed: {e}", exc_info=True)

    def _callback_done(self, task: asyncio.Task) -> None:
        self._pending_callbacks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Async event callback failed: {exc}", exc_info=exc)

    def _remember(self, key: EventKey) -> None:
        self._fired[key] = None
        while len(self._fired) > self.history_cap:
            self._fired.popitem(last=False)

    def has_fired(self, event: ScheduledEvent) -> bool:
        return event.key(self.granularity_ms) in self._fired

    # ------------------------------------------------------------ lifecycle

    async def start(self, provider: HorizonProvider, interval_seconds: float) -> None:
        """Re-project and re-arm every ``interval_seconds`` until stopped."""
        if self._running:
            return

        self._running = True
        self._refresh_task = asyncio.create_task(self._refresh_loop(provider, interval_seconds))
        logger.info(f"Preload scheduler started (refresh every {interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the refresh loop and cancel all timers."""
        if not self._running:
            return

        self._running = False

        if self._refresh_task:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

        self.cancel_all()

        for task in list(self._pending_callbacks):
            task.cancel()

        logger.info("Preload scheduler stopped")

    async def _refresh_loop(self, provider: HorizonProvider, interval_seconds: float) -> None:
        while self._running:
            try:
                horizons = provider()
                if asyncio.iscoroutine(horizons):
                    horizons = await horizons
                for channel_id, horizon in horizons.items():
                    self.arm(channel_id, horizon)
                await asyncio.sleep(interval_seconds)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Preload refresh error: {e}")
                await asyncio.sleep(interval_seconds)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def armed_count(self) -> int:
        return len(self._armed)

    def armed_events(self) -> list[ScheduledEvent]:
        """Armed events ordered by firing time."""
        return sorted((event for _, event in self._armed.values()), key=lambda e: e.firing_time_ms)

    def get_status(self) -> dict[str, Any]:
        """Scheduler status for health output."""
        upcoming = self.armed_events()
        return {
            "running": self._running,
            "armed": len(self._armed),
            "fired_history": len(self._fired),
            "total_armed": self._total_armed,
            "total_fired": self._total_fired,
            "next_event": upcoming[0].to_dict() if upcoming else None,
        }
