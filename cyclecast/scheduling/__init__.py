"""
CycleCast Scheduling

Deterministic wall-clock scheduling over fixed cyclic playlists.

Features:
- Immutable channel registry validated at construction
- Stateless cycle-position resolution from a shared epoch
- Upcoming-program projection with wrap-around detection
- Preload descriptors for consumers that warm media ahead of time
"""

from cyclecast.scheduling.horizon import (
    PreloadDescriptor,
    UpcomingProgram,
    preload_descriptors,
    project,
)
from cyclecast.scheduling.registry import Channel, PlaylistRegistry, ProgramItem
from cyclecast.scheduling.resolver import ResolvedPosition, resolve
from cyclecast.scheduling.service import ScheduleService

__all__ = [
    # Registry
    "Channel",
    "PlaylistRegistry",
    "ProgramItem",
    # Resolver
    "ResolvedPosition",
    "resolve",
    # Horizon
    "PreloadDescriptor",
    "UpcomingProgram",
    "preload_descriptors",
    "project",
    # Service
    "ScheduleService",
]
