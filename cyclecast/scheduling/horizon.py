"""
Horizon projection.

Walks forward from a resolved position to list the next N programs with
their absolute start times, flagging the point where the playlist wraps
back to its first program.
"""

from dataclasses import dataclass

from cyclecast.errors import UnknownItemReference
from cyclecast.scheduling.registry import Channel, ProgramItem
from cyclecast.scheduling.resolver import ResolvedPosition


@dataclass(frozen=True)
class UpcomingProgram:
    """One projected program occurrence."""

    item: ProgramItem
    start_offset_seconds: int  # seconds from the resolved instant
    absolute_start_ms: int
    index: int
    is_wrap: bool
    cycles_ahead: int  # playlist restarts crossed before this occurrence

    @property
    def absolute_end_ms(self) -> int:
        return self.absolute_start_ms + self.item.duration_seconds * 1000


@dataclass(frozen=True)
class PreloadDescriptor:
    """When a consumer should start warming up an upcoming program."""

    item_id: str
    absolute_preload_time_ms: int
    media_ref: str

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "absolute_preload_time": self.absolute_preload_time_ms,
            "media_ref": self.media_ref,
        }


def project(
    channel: Channel,
    position: ResolvedPosition,
    count: int,
) -> list[UpcomingProgram]:
    """
    Project the next ``count`` programs after the one currently on air.

    The first entry always starts at ``position.next_item_absolute_start_ms``.
    ``is_wrap`` marks only the first entry at which the playlist restarts
    from index 0; later entries in the new cycle are not flagged.

    Raises:
        ValueError: If ``count`` is negative.
        UnknownItemReference: If the position does not belong to ``channel``.
    """
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")

    item_count = channel.item_count
    current_index = position.program_index
    if not 0 <= current_index < item_count:
        raise UnknownItemReference(channel.id, current_index, item_count)

    upcoming: list[UpcomingProgram] = []
    offset = position.remaining_seconds
    absolute_ms = position.next_item_absolute_start_ms
    cycles_ahead = 0
    wrap_flagged = False

    for step in range(1, count + 1):
        index = (current_index + step) % item_count
        if index == 0:
            cycles_ahead += 1
        is_wrap = index == 0 and not wrap_flagged
        wrap_flagged = wrap_flagged or is_wrap

        item = channel.programs[index]
        upcoming.append(
            UpcomingProgram(
                item=item,
                start_offset_seconds=offset,
                absolute_start_ms=absolute_ms,
                index=index,
                is_wrap=is_wrap,
                cycles_ahead=cycles_ahead,
            )
        )
        offset += item.duration_seconds
        absolute_ms += item.duration_seconds * 1000

    return upcoming


def preload_descriptors(
    horizon: list[UpcomingProgram],
    lead_seconds: int,
) -> list[PreloadDescriptor]:
    """Preload instants for a projected horizon, ``lead_seconds`` ahead of each start."""
    return [
        PreloadDescriptor(
            item_id=entry.item.id,
            absolute_preload_time_ms=entry.absolute_start_ms - lead_seconds * 1000,
            media_ref=entry.item.media_ref,
        )
        for entry in horizon
    ]
