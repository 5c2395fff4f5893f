"""
Viewer preferences kept on the receiving side.

Holds the preferred channel and a short per-channel list of previously
watched programs. Display-only: nothing here feeds back into scheduling.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

from cyclecast.utils.time_format import now_ms

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_CAP = 30


@dataclass
class WatchRecord:
    """A program the viewer saw, newest first in history lists."""

    item_id: str
    title: str
    media_ref: str
    channel_id: str
    watched_at_ms: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WatchRecord":
        return cls(
            item_id=str(data["item_id"]),
            title=str(data.get("title", "")),
            media_ref=str(data.get("media_ref", "")),
            channel_id=str(data["channel_id"]),
            watched_at_ms=int(data["watched_at_ms"]),
        )


@dataclass
class ViewerPreferences:
    """Preferred channel plus bounded watch history per channel."""

    preferred_channel_id: Optional[str] = None
    history: dict[str, list[WatchRecord]] = field(default_factory=dict)
    history_cap: int = DEFAULT_HISTORY_CAP

    def record_watch(
        self,
        channel_id: str,
        item_id: str,
        title: str = "",
        media_ref: str = "",
        watched_at_ms: Optional[int] = None,
    ) -> list[WatchRecord]:
        """
        Put a program at the front of the channel's history.

        An earlier entry for the same program is dropped so each program
        appears once. Returns the updated list.
        """
        records = [r for r in self.history.get(channel_id, []) if r.item_id != item_id]
        records.insert(
            0,
            WatchRecord(
                item_id=item_id,
                title=title,
                media_ref=media_ref,
                channel_id=channel_id,
                watched_at_ms=now_ms() if watched_at_ms is None else watched_at_ms,
            ),
        )
        del records[self.history_cap:]
        self.history[channel_id] = records
        return records

    def previous(self, channel_id: str) -> list[WatchRecord]:
        return list(self.history.get(channel_id, []))

    def to_dict(self) -> dict[str, Any]:
        return {
            "preferred_channel_id": self.preferred_channel_id,
            "history": {
                channel_id: [asdict(r) for r in records]
                for channel_id, records in self.history.items()
            },
        }


class PreferencesStore:
    """JSON file persistence for ViewerPreferences."""

    def __init__(self, path: str | Path, history_cap: int = DEFAULT_HISTORY_CAP):
        self.path = Path(path)
        self.history_cap = history_cap

    def load(self) -> ViewerPreferences:
        """Load preferences; a missing or unreadable file yields defaults."""
        prefs = ViewerPreferences(history_cap=self.history_cap)
        if not self.path.exists():
            return prefs

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable preferences file {self.path}: {e}")
            return prefs

        prefs.preferred_channel_id = data.get("preferred_channel_id")
        for channel_id, records in (data.get("history") or {}).items():
            try:
                parsed = [WatchRecord.from_dict(r) for r in records]
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Dropping malformed history for {channel_id}: {e}")
                continue
            prefs.history[channel_id] = parsed[: self.history_cap]
        return prefs

    def save(self, prefs: ViewerPreferences) -> None:
        """Write atomically via a temp file and rename."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(prefs.to_dict(), f, indent=2, ensure_ascii=False)
        os.replace(tmp, self.path)
