"""
CycleCast - Synthetic Linear TV Scheduler

Derives what is "on air" purely from wall-clock time:
- Deterministic cycle-position resolution over fixed cyclic playlists
- Upcoming-program projection with wrap-around detection
- Preload/switch timers for background consumers
- Client-side resynchronization with clock-skew correction
"""

__version__ = "1.0.0"
__author__ = "CycleCast Contributors"
__license__ = "MIT"

from cyclecast.config import get_config, load_config

__all__ = [
    "__version__",
    "get_config",
    "load_config",
]
