"""
Static channel registry.

Maps channel ids to ordered, cyclic playlists. Everything here is
immutable once constructed; a playlist change means a new registry with a
new schedule version.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator, Optional

from cyclecast.errors import ConfigurationError

if TYPE_CHECKING:
    from cyclecast.config import ScheduleConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgramItem:
    """A single program in a channel playlist."""

    id: str
    media_ref: str
    title: str
    duration_seconds: int
    category: str = ""
    language: str = ""
    description: str = ""
    thumbnail: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "media_ref": self.media_ref,
            "title": self.title,
            "duration": self.duration_seconds,
            "category": self.category,
            "language": self.language,
            "description": self.description,
            "thumbnail": self.thumbnail,
        }


@dataclass(frozen=True)
class Channel:
    """
    A channel with a fixed, ordered playlist.

    ``starts`` holds the cumulative start offset (seconds into the cycle)
    of every program, so ``starts[i] <= p < starts[i] + duration[i]``
    identifies the program covering cycle position ``p``.
    """

    id: str
    name: str
    programs: tuple[ProgramItem, ...]
    language: str = ""
    icon: str = ""
    starts: tuple[int, ...] = field(init=False, repr=False, compare=False)
    total_duration: int = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.programs:
            raise ConfigurationError(f"Channel {self.id!r} has an empty playlist")

        seen: set[str] = set()
        starts = []
        accumulated = 0
        for program in self.programs:
            duration = program.duration_seconds
            if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
                raise ConfigurationError(
                    f"Program {program.id!r} on channel {self.id!r} has invalid "
                    f"duration {duration!r}; must be a positive integer"
                )
            if program.id in seen:
                raise ConfigurationError(
                    f"Duplicate program id {program.id!r} on channel {self.id!r}"
                )
            seen.add(program.id)
            starts.append(accumulated)
            accumulated += duration

        object.__setattr__(self, "starts", tuple(starts))
        object.__setattr__(self, "total_duration", accumulated)

    @property
    def item_count(self) -> int:
        return len(self.programs)

    def summary(self) -> dict:
        """Channel metadata without the playlist."""
        return {
            "id": self.id,
            "name": self.name,
            "language": self.language,
            "icon": self.icon,
        }


class PlaylistRegistry:
    """
    Immutable lookup of channels by id.

    Construction validates everything up front so the resolver is never
    queried with bad data.
    """

    def __init__(
        self,
        channels: list[Channel],
        epoch_ms: int,
        version: str,
        default_channel_id: Optional[str] = None,
    ):
        if not channels:
            raise ConfigurationError("Registry requires at least one channel")

        by_id: dict[str, Channel] = {}
        for channel in channels:
            if channel.id in by_id:
                raise ConfigurationError(f"Duplicate channel id {channel.id!r}")
            by_id[channel.id] = channel

        default_channel_id = default_channel_id or channels[0].id
        if default_channel_id not in by_id:
            raise ConfigurationError(
                f"Default channel {default_channel_id!r} is not defined"
            )

        self._channels = by_id
        self._order = tuple(channels)
        self.epoch_ms = epoch_ms
        self.version = version
        self.default_channel_id = default_channel_id

    @classmethod
    def from_config(cls, schedule: "ScheduleConfig") -> "PlaylistRegistry":
        """Build a registry from the ``schedule`` config section."""
        channels = [
            Channel(
                id=ch.id,
                name=ch.name,
                language=ch.language,
                icon=ch.icon,
                programs=tuple(
                    ProgramItem(
                        id=p.id,
                        media_ref=p.media_ref,
                        title=p.title,
                        duration_seconds=p.duration_seconds,
                        category=p.category,
                        language=p.language,
                        description=p.description,
                        thumbnail=p.thumbnail,
                    )
                    for p in ch.programs
                ),
            )
            for ch in schedule.channels
        ]
        registry = cls(
            channels,
            epoch_ms=schedule.epoch_ms,
            version=schedule.version,
            default_channel_id=schedule.default_channel,
        )
        logger.info(
            f"Playlist registry loaded: {len(registry)} channel(s), "
            f"schedule version {registry.version}"
        )
        return registry

    def get(self, channel_id: Optional[str] = None) -> Channel:
        """Look up a channel; ``None`` selects the default channel."""
        key = channel_id or self.default_channel_id
        try:
            return self._channels[key]
        except KeyError:
            raise ConfigurationError(f"Unknown channel id {key!r}") from None

    @property
    def channels(self) -> tuple[Channel, ...]:
        return self._order

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._channels

    def __iter__(self) -> Iterator[Channel]:
        return iter(self._order)

    def __len__(self) -> int:
        return len(self._order)
