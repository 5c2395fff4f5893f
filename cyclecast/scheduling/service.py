"""
Schedule query service.

Binds the registry to a wall clock so request handlers and background
tasks can ask "what is on now" and "what comes next" without touching
epochs or playlists directly. Holds no mutable state.
"""

import logging
from typing import Callable, Optional

from cyclecast.scheduling.horizon import (
    PreloadDescriptor,
    UpcomingProgram,
    preload_descriptors,
    project,
)
from cyclecast.scheduling.registry import PlaylistRegistry
from cyclecast.scheduling.resolver import ResolvedPosition, resolve
from cyclecast.utils.time_format import now_ms

logger = logging.getLogger(__name__)


class ScheduleService:
    """
    Stateless facade over resolve() and project().

    Safe to share between concurrent requests.
    """

    def __init__(
        self,
        registry: PlaylistRegistry,
        clock: Optional[Callable[[], int]] = None,
        preload_lead_seconds: int = 300,
    ):
        self.registry = registry
        self.clock = clock or now_ms
        self.preload_lead_seconds = preload_lead_seconds

    @property
    def version(self) -> str:
        return self.registry.version

    @property
    def epoch_ms(self) -> int:
        return self.registry.epoch_ms

    def current_position(
        self,
        channel_id: Optional[str] = None,
        at_ms: Optional[int] = None,
    ) -> ResolvedPosition:
        """Resolve the on-air position for a channel (default channel if None)."""
        channel = self.registry.get(channel_id)
        instant = self.clock() if at_ms is None else at_ms
        return resolve(channel, self.registry.epoch_ms, instant)

    def upcoming(
        self,
        channel_id: Optional[str] = None,
        count: int = 15,
        at_ms: Optional[int] = None,
    ) -> tuple[ResolvedPosition, list[UpcomingProgram], list[PreloadDescriptor]]:
        """Resolve the current position and project ``count`` programs past it."""
        channel = self.registry.get(channel_id)
        position = self.current_position(channel.id, at_ms)
        horizon = project(channel, position, count)
        return position, horizon, preload_descriptors(horizon, self.preload_lead_seconds)

    def horizons(self, count: int) -> dict[str, list[UpcomingProgram]]:
        """Project every channel from a single shared instant."""
        instant = self.clock()
        result: dict[str, list[UpcomingProgram]] = {}
        for channel in self.registry:
            position = resolve(channel, self.registry.epoch_ms, instant)
            result[channel.id] = project(channel, position, count)
        return result
