"""
Error taxonomy for scheduling and client synchronization.

Configuration problems are fatal and surface at startup. Fetch failures
are transient and retried on the client's normal cadence. Skew anomalies
are informational and only recorded.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


class CycleCastError(Exception):
    """Base class for all CycleCast errors."""


class ConfigurationError(CycleCastError):
    """
    Invalid schedule data.

    Raised for empty playlists, non-positive durations, duplicate ids and
    references to unknown channels. Never retried.
    """


class UnknownItemReference(ConfigurationError):
    """A resolved or projected index fell outside the playlist bounds."""

    def __init__(self, channel_id: str, index: int, item_count: int):
        self.channel_id = channel_id
        self.index = index
        self.item_count = item_count
        super().__init__(
            f"Index {index} out of bounds for channel {channel_id!r} "
            f"({item_count} items)"
        )


class RejectedQueryError(ConfigurationError):
    """The server refused a query (unknown channel, bad count). Not retried."""

    def __init__(self, message: str, status_code: int):
        self.status_code = status_code
        super().__init__(message)


class TransientFetchError(CycleCastError):
    """A schedule query failed on the network path; safe to retry."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


@dataclass
class SkewAnomaly:
    """Drift beyond tolerance, detected during reconciliation."""

    item_id: str
    local_offset_seconds: float
    server_offset_seconds: float
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def drift_seconds(self) -> float:
        """Positive when the local clock runs ahead of the server."""
        return self.local_offset_seconds - self.server_offset_seconds

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "local_offset_seconds": self.local_offset_seconds,
            "server_offset_seconds": self.server_offset_seconds,
            "drift_seconds": self.drift_seconds,
            "detected_at": self.detected_at.isoformat(),
        }
