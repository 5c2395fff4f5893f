"""Shared utilities for CycleCast."""

from cyclecast.utils.logging_setup import parse_size, setup_logging
from cyclecast.utils.time_format import format_duration, format_time, ms_to_iso, now_ms

__all__ = [
    "parse_size",
    "setup_logging",
    "format_duration",
    "format_time",
    "ms_to_iso",
    "now_ms",
]
