"""
Cycle-position resolver.

Given a fixed epoch, a channel's ordered durations and a wall-clock time,
work out which program is on air and where inside it we are. All interior
math is integer seconds; milliseconds appear only at the boundary.
"""

import bisect
from dataclasses import dataclass

from cyclecast.errors import ConfigurationError, UnknownItemReference
from cyclecast.scheduling.registry import Channel, ProgramItem


@dataclass(frozen=True)
class ResolvedPosition:
    """
    What a channel is playing at one instant.

    Derived, never stored. ``0 <= offset_seconds < current_item.duration_seconds``
    always holds.
    """

    channel_id: str
    program_index: int
    current_item: ProgramItem
    offset_seconds: int
    remaining_seconds: int
    next_item: ProgramItem
    next_item_absolute_start_ms: int
    next_wraps: bool
    cycle_position: int
    cycle_start_ms: int
    item_count: int
    resolved_at_ms: int

    @property
    def is_first_in_cycle(self) -> bool:
        return self.program_index == 0

    @property
    def is_last_in_cycle(self) -> bool:
        return self.program_index == self.item_count - 1


def resolve(channel: Channel, epoch_ms: int, now_ms: int) -> ResolvedPosition:
    """
    Resolve the on-air position of ``channel`` at ``now_ms``.

    Pure and deterministic: identical arguments give identical results.

    Args:
        channel: Channel whose playlist is cycled.
        epoch_ms: Cycle position zero, in epoch milliseconds.
        now_ms: Wall-clock instant to resolve, in epoch milliseconds.

    Returns:
        ResolvedPosition for the instant.

    Raises:
        ConfigurationError: If the playlist has no positive total duration.
        UnknownItemReference: If the boundary walk lands outside the playlist.
    """
    total = channel.total_duration
    if total <= 0:
        raise ConfigurationError(
            f"Channel {channel.id!r} has non-positive total duration {total}"
        )

    # Floor division keeps both results non-negative for now < epoch
    elapsed_seconds = (now_ms - epoch_ms) // 1000
    cycles, cycle_position = divmod(elapsed_seconds, total)

    # Closed-open intervals: a position on a boundary belongs to the
    # program that starts there.
    index = bisect.bisect_right(channel.starts, cycle_position) - 1
    count = channel.item_count
    if not 0 <= index < count:
        raise UnknownItemReference(channel.id, index, count)

    current = channel.programs[index]
    item_start = channel.starts[index]
    offset = cycle_position - item_start
    if not 0 <= offset < current.duration_seconds:
        raise UnknownItemReference(channel.id, index, count)

    next_index = (index + 1) % count
    cycle_start_seconds = cycles * total
    next_start_ms = epoch_ms + (cycle_start_seconds + item_start + current.duration_seconds) * 1000

    return ResolvedPosition(
        channel_id=channel.id,
        program_index=index,
        current_item=current,
        offset_seconds=offset,
        remaining_seconds=current.duration_seconds - offset,
        next_item=channel.programs[next_index],
        next_item_absolute_start_ms=next_start_ms,
        next_wraps=index == count - 1,
        cycle_position=cycle_position,
        cycle_start_ms=epoch_ms + cycle_start_seconds * 1000,
        item_count=count,
        resolved_at_ms=now_ms,
    )
