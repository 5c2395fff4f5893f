"""
CycleCast Background Tasks

Provides:
- Preload/switch timers armed from projected horizons
- Occurrence deduplication with bounded history
- Periodic horizon refresh
"""

from cyclecast.tasks.preload_scheduler import EventKind, PreloadScheduler, ScheduledEvent

__all__ = [
    "EventKind",
    "PreloadScheduler",
    "ScheduledEvent",
]
