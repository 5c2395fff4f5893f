"""
Client-side synchronization with the schedule server.

The controller fetches the resolved position once on an explicit start,
estimates clock skew against the server timestamp, then extrapolates
playback position locally. It re-fetches periodically (and as a safety
net when the current program should have ended) and only switches media
when the server reports a different program.

State machine:
    UNINITIALIZED -> AWAITING_FIRST_FETCH -> SYNCED <-> RESYNCHRONIZING
    any state -> TORN_DOWN
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from cyclecast.client.api_client import FetchedPosition
from cyclecast.client.preferences import ViewerPreferences
from cyclecast.errors import SkewAnomaly, TransientFetchError
from cyclecast.utils.time_format import format_time, now_ms

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """Controller lifecycle states."""

    UNINITIALIZED = "uninitialized"
    AWAITING_FIRST_FETCH = "awaiting_first_fetch"
    SYNCED = "synced"
    RESYNCHRONIZING = "resynchronizing"
    TORN_DOWN = "torn_down"


class PositionSource(Protocol):
    """Anything that can fetch a channel's current position."""

    async def fetch_current(self, channel_id: Optional[str] = None) -> FetchedPosition: ...


class MediaSink(Protocol):
    """The media player being kept in sync. Methods may be sync or async."""

    def load(self, media_ref: str, start_seconds: float) -> Any: ...

    def seek(self, seconds: float) -> Any: ...


@dataclass
class ClientSyncState:
    """Per-session sync bookkeeping. In memory only, never persisted."""

    last_known_item_id: Optional[str] = None
    clock_skew_offset_ms: int = 0
    last_reconciled_at_ms: Optional[int] = None

    # Extrapolation anchor: the server said ``anchor_offset_seconds`` at
    # server time ``anchor_server_ms``.
    anchor_offset_seconds: float = 0.0
    anchor_server_ms: int = 0
    item_duration_seconds: int = 0
    item_title: str = ""
    media_ref: str = ""
    program_index: int = 0
    total_programs: int = 0
    schedule_version: str = ""
    channel_id: Optional[str] = None
    next_program_start_ms: Optional[int] = None


@dataclass(frozen=True)
class DisplayState:
    """What the presentation layer shows between reconciliations."""

    channel_id: Optional[str]
    item_id: Optional[str]
    title: str
    offset_seconds: float
    remaining_seconds: float
    elapsed_text: str
    remaining_text: str
    program_index: int
    total_programs: int
    awaiting_confirmation: bool  # local clock says the program ended


class ClientSyncController:
    """
    Keeps a media sink aligned with the server's resolved schedule.

    Usage:
        client = ScheduleClient("http://localhost:8420")
        controller = ClientSyncController(client, sink, channel_id="bangla-1")

        # Only after the user explicitly asks for playback:
        await controller.start()
        ...
        await controller.stop()
    """

    DEFAULT_RESYNC_INTERVAL = 300.0  # 5 minutes
    DEFAULT_DISPLAY_INTERVAL = 0.25
    DEFAULT_DRIFT_TOLERANCE = 2.0
    MIN_RECONCILE_DELAY = 1.0
    END_GRACE_SECONDS = 0.5
    MAX_ANOMALIES = 50

    def __init__(
        self,
        source: PositionSource,
        sink: MediaSink,
        channel_id: Optional[str] = None,
        resync_interval_seconds: float = DEFAULT_RESYNC_INTERVAL,
        display_interval_seconds: float = DEFAULT_DISPLAY_INTERVAL,
        drift_tolerance_seconds: float = DEFAULT_DRIFT_TOLERANCE,
        clock: Optional[Callable[[], int]] = None,
        on_display: Optional[Callable[[DisplayState], None]] = None,
        on_item_change: Optional[Callable[[FetchedPosition], None]] = None,
        preferences: Optional[ViewerPreferences] = None,
        background: bool = True,
        owns_source: bool = False,
    ):
        self._source = source
        self._sink = sink
        self.channel_id = channel_id
        self.resync_interval_seconds = resync_interval_seconds
        self.display_interval_seconds = display_interval_seconds
        self.drift_tolerance_seconds = drift_tolerance_seconds
        self.clock = clock or now_ms
        self._on_display = on_display
        self._on_item_change = on_item_change
        self.preferences = preferences
        self._background = background
        self._owns_source = owns_source

        self._state = SyncState.UNINITIALIZED
        self.sync = ClientSyncState()
        self.anomalies: list[SkewAnomaly] = []
        self.failed_fetches = 0

        self._last_attempt_ms: Optional[int] = None
        self._end_fallback_spent = False
        self._tasks: list[asyncio.Task] = []

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_torn_down(self) -> bool:
        return self._state == SyncState.TORN_DOWN

    # ------------------------------------------------------------ lifecycle

    async def start(self) -> None:
        """
        Explicit activation: fetch the position and begin playback.

        Raises:
            TransientFetchError: The first fetch failed. The controller stays
                in AWAITING_FIRST_FETCH and ``start()`` may be called again.
            RejectedQueryError: The server does not know ``channel_id``.
                Retrying only helps after the channel is changed.
            RuntimeError: The controller was already torn down.
        """
        if self._state == SyncState.TORN_DOWN:
            raise RuntimeError("Controller has been torn down")
        if self._state in (SyncState.SYNCED, SyncState.RESYNCHRONIZING):
            return

        self._state = SyncState.AWAITING_FIRST_FETCH
        fetched = await self._source.fetch_current(self.channel_id)

        if self.is_torn_down:
            return

        self._anchor(fetched)
        self.sync.last_known_item_id = fetched.program.id
        self.sync.last_reconciled_at_ms = self.clock()
        self._last_attempt_ms = self.sync.last_reconciled_at_ms
        if self.preferences is not None:
            self.preferences.preferred_channel_id = fetched.channel_id

        await self._call_sink(self._sink.load, fetched.program.media_ref, self.extrapolated_offset())
        self._state = SyncState.SYNCED

        logger.info(
            f"Synced to {fetched.channel_id}: {fetched.program.title!r} at "
            f"{format_time(self.extrapolated_offset())} (skew {self.sync.clock_skew_offset_ms}ms)"
        )
        self._notify_item_change(fetched)

        if self._background:
            self._tasks = [
                asyncio.create_task(self._display_loop()),
                asyncio.create_task(self._reconcile_loop()),
            ]

    async def stop(self) -> None:
        """Tear down: cancel loops and ignore any in-flight fetch."""
        if self._state == SyncState.TORN_DOWN:
            return

        self._state = SyncState.TORN_DOWN

        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current:
                task.cancel()
        for task in self._tasks:
            if task is current:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()

        if self._owns_source:
            close = getattr(self._source, "close", None)
            if close is not None:
                await close()

        logger.info("Sync controller torn down")

    async def change_channel(self, channel_id: str) -> None:
        """
        Move to another channel while synced.

        Raises:
            TransientFetchError: The fetch failed; the old channel stays active.
        """
        if self._state not in (SyncState.SYNCED, SyncState.RESYNCHRONIZING):
            raise RuntimeError(f"Cannot change channel while {self._state.value}")

        fetched = await self._source.fetch_current(channel_id)
        if self.is_torn_down:
            return

        self._remember_current()
        self.channel_id = channel_id
        self._anchor(fetched)
        self.sync.last_known_item_id = fetched.program.id
        self.sync.last_reconciled_at_ms = self.clock()
        self._last_attempt_ms = self.sync.last_reconciled_at_ms
        if self.preferences is not None:
            self.preferences.preferred_channel_id = fetched.channel_id

        await self._call_sink(self._sink.load, fetched.program.media_ref, self.extrapolated_offset())
        logger.info(f"Changed channel to {fetched.channel_id}: {fetched.program.title!r}")
        self._notify_item_change(fetched)

    # ------------------------------------------------------------ reconciliation

    async def reconcile(self) -> bool:
        """
        Re-fetch and reconcile with the server.

        Returns:
            True when a server answer was applied; False when skipped or
            when the fetch failed (local extrapolation continues).
        """
        if self._state != SyncState.SYNCED:
            return False

        self._state = SyncState.RESYNCHRONIZING
        self._last_attempt_ms = self.clock()
        channel_id = self.channel_id

        try:
            fetched = await self._source.fetch_current(channel_id)
        except TransientFetchError as e:
            if self.is_torn_down:
                return False
            self.failed_fetches += 1
            self._state = SyncState.SYNCED
            logger.warning(f"Resync failed, continuing local extrapolation: {e}")
            return False
        except BaseException:
            if self._state == SyncState.RESYNCHRONIZING:
                self._state = SyncState.SYNCED
            raise

        if self.is_torn_down:
            return False
        if channel_id != self.channel_id:
            # Channel changed while this fetch was in flight
            self._state = SyncState.SYNCED
            return False

        try:
            await self._apply(fetched)
        finally:
            if self._state == SyncState.RESYNCHRONIZING:
                self._state = SyncState.SYNCED
        return True

    async def _apply(self, fetched: FetchedPosition) -> None:
        local_offset = self.extrapolated_offset()

        if self._is_new_occurrence(fetched):
            self._remember_current()
            self._anchor(fetched)
            self.sync.last_known_item_id = fetched.program.id
            target = self.extrapolated_offset()
            logger.info(f"Switching to {fetched.program.title!r} at {format_time(target)}")
            await self._call_sink(self._sink.load, fetched.program.media_ref, target)
            self._notify_item_change(fetched)
        else:
            self._anchor(fetched)
            server_offset = self.extrapolated_offset()
            anomaly = SkewAnomaly(
                item_id=fetched.program.id,
                local_offset_seconds=local_offset,
                server_offset_seconds=server_offset,
            )
            if abs(anomaly.drift_seconds) > self.drift_tolerance_seconds:
                self._record_anomaly(anomaly)
                await self._call_sink(self._sink.seek, server_offset)

        self.sync.last_reconciled_at_ms = self.clock()

    def _is_new_occurrence(self, fetched: FetchedPosition) -> bool:
        """
        Whether the server reports a different airing than the anchored one.

        A repeat of the same item (a single-program channel restarting)
        ends at least one full duration later than the anchored airing.
        """
        if fetched.program.id != self.sync.last_known_item_id:
            return True
        previous_end = self.sync.next_program_start_ms
        if previous_end is None:
            return False
        return abs(fetched.next_program_start_ms - previous_end) >= fetched.program.duration_seconds * 1000

    def _anchor(self, fetched: FetchedPosition) -> None:
        sync = self.sync
        sync.clock_skew_offset_ms = fetched.clock_skew_ms
        sync.anchor_offset_seconds = float(fetched.offset_seconds)
        sync.anchor_server_ms = fetched.server_timestamp_ms
        sync.item_duration_seconds = fetched.program.duration_seconds
        sync.item_title = fetched.program.title
        sync.media_ref = fetched.program.media_ref
        sync.program_index = fetched.program_index
        sync.total_programs = fetched.total_programs
        sync.schedule_version = fetched.schedule_version
        sync.channel_id = fetched.channel_id
        sync.next_program_start_ms = fetched.next_program_start_ms
        self._end_fallback_spent = False

    def _record_anomaly(self, anomaly: SkewAnomaly) -> None:
        self.anomalies.append(anomaly)
        del self.anomalies[: -self.MAX_ANOMALIES]
        logger.warning(
            f"Drift of {anomaly.drift_seconds:+.2f}s on {anomaly.item_id}, "
            f"reseeking to {format_time(anomaly.server_offset_seconds)}"
        )

    def _remember_current(self) -> None:
        sync = self.sync
        if self.preferences is None or sync.last_known_item_id is None or sync.channel_id is None:
            return
        self.preferences.record_watch(
            sync.channel_id,
            sync.last_known_item_id,
            title=sync.item_title,
            media_ref=sync.media_ref,
            watched_at_ms=self.clock(),
        )

    def _notify_item_change(self, fetched: FetchedPosition) -> None:
        if self._on_item_change is None:
            return
        try:
            self._on_item_change(fetched)
        except Exception as e:
            logger.error(f"Item change callback failed: {e}", exc_info=True)

    @staticmethod
    async def _call_sink(method: Callable[..., Any], *args: Any) -> None:
        result = method(*args)
        if inspect.isawaitable(result):
            await result

    # ------------------------------------------------------------ extrapolation

    def server_now_ms(self) -> int:
        """Local clock corrected by the measured skew."""
        return self.clock() + self.sync.clock_skew_offset_ms

    def extrapolated_offset(self) -> float:
        """Seconds into the current program according to the local clock."""
        elapsed = (self.server_now_ms() - self.sync.anchor_server_ms) / 1000
        return self.sync.anchor_offset_seconds + elapsed

    def display_state(self) -> DisplayState:
        """Display-only view; never used to pick the program."""
        sync = self.sync
        offset = self.extrapolated_offset()
        duration = sync.item_duration_seconds
        shown = min(max(offset, 0.0), float(duration))
        remaining = max(duration - shown, 0.0)
        return DisplayState(
            channel_id=sync.channel_id,
            item_id=sync.last_known_item_id,
            title=sync.item_title,
            offset_seconds=shown,
            remaining_seconds=remaining,
            elapsed_text=format_time(shown),
            remaining_text=format_time(remaining),
            program_index=sync.program_index,
            total_programs=sync.total_programs,
            awaiting_confirmation=offset >= duration,
        )

    def seconds_until_reconcile(self) -> float:
        """
        Delay before the next reconciliation attempt.

        The periodic interval counts from the last attempt. The predicted end
        of the current program pulls it earlier, once per anchored program.
        """
        return self._next_reconcile()[0]

    def _next_reconcile(self) -> tuple[float, bool]:
        now = self.clock()
        last = self._last_attempt_ms if self._last_attempt_ms is not None else now
        due = (last - now) / 1000 + self.resync_interval_seconds
        end_triggered = False

        if not self._end_fallback_spent:
            until_end = self.sync.item_duration_seconds - self.extrapolated_offset()
            if until_end + self.END_GRACE_SECONDS < due:
                due = until_end + self.END_GRACE_SECONDS
                end_triggered = True

        return max(due, self.MIN_RECONCILE_DELAY), end_triggered

    # ------------------------------------------------------------ loops

    async def _display_loop(self) -> None:
        while not self.is_torn_down:
            try:
                if self._on_display is not None:
                    try:
                        self._on_display(self.display_state())
                    except Exception as e:
                        logger.error(f"Display callback failed: {e}", exc_info=True)
                await asyncio.sleep(self.display_interval_seconds)
            except asyncio.CancelledError:
                break

    async def _reconcile_loop(self) -> None:
        while not self.is_torn_down:
            try:
                delay, end_triggered = self._next_reconcile()
                await asyncio.sleep(delay)
                if end_triggered:
                    self._end_fallback_spent = True
                    logger.debug("Local clock predicts program end, reconciling early")
                await self.reconcile()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Reconciliation error: {e}", exc_info=True)
                await asyncio.sleep(self.MIN_RECONCILE_DELAY)


class LoggingMediaSink:
    """MediaSink that only logs; used by the headless watcher."""

    def __init__(self, name: str = "player"):
        self._logger = logging.getLogger(f"{__name__}.{name}")
        self.media_ref: Optional[str] = None
        self.position_seconds = 0.0

    def load(self, media_ref: str, start_seconds: float) -> None:
        self.media_ref = media_ref
        self.position_seconds = start_seconds
        self._logger.info(f"Load {media_ref} at {format_time(start_seconds)}")

    def seek(self, seconds: float) -> None:
        self.position_seconds = seconds
        self._logger.info(f"Seek {self.media_ref} to {format_time(seconds)}")
