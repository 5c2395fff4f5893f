"""Pydantic schemas for schedule API responses"""

from typing import Optional

from pydantic import BaseModel

from cyclecast.scheduling.horizon import PreloadDescriptor, UpcomingProgram
from cyclecast.scheduling.registry import Channel, ProgramItem
from cyclecast.scheduling.resolver import ResolvedPosition


class ProgramResponse(BaseModel):
    """A playlist program as served to clients."""
    id: str
    media_ref: str
    title: str
    duration: int
    category: str = ""
    language: str = ""
    description: str = ""
    thumbnail: Optional[str] = None

    @classmethod
    def from_item(cls, item: ProgramItem) -> "ProgramResponse":
        return cls(**item.to_dict())


class ChannelSummary(BaseModel):
    """Channel metadata without the playlist."""
    id: str
    name: str
    language: str = ""
    icon: str = ""

    @classmethod
    def from_channel(cls, channel: Channel) -> "ChannelSummary":
        return cls(**channel.summary())


class ChannelResponse(ChannelSummary):
    """Channel with playlist totals."""
    total_programs: int
    cycle_duration: int
    is_default: bool = False


# Current position

class CurrentPositionData(BaseModel):
    channel_id: str
    program: ProgramResponse
    current_time: int
    time_remaining: int
    next_program: ProgramResponse
    program_index: int
    next_program_start_time: int
    cycle_position: int
    server_time: int
    epoch_start: int
    total_programs: int
    schedule_version: str
    is_first_in_cycle: bool
    is_last_in_cycle: bool
    available_channels: list[ChannelSummary]


class CurrentPositionResponse(BaseModel):
    success: bool = True
    data: CurrentPositionData
    server_timestamp: int


def current_position_response(
    position: ResolvedPosition,
    channels: list[Channel],
    epoch_ms: int,
    version: str,
) -> CurrentPositionResponse:
    """Build the CurrentPosition envelope from a resolved position."""
    return CurrentPositionResponse(
        data=CurrentPositionData(
            channel_id=position.channel_id,
            program=ProgramResponse.from_item(position.current_item),
            current_time=position.offset_seconds,
            time_remaining=position.remaining_seconds,
            next_program=ProgramResponse.from_item(position.next_item),
            program_index=position.program_index,
            next_program_start_time=position.next_item_absolute_start_ms,
            cycle_position=position.cycle_position,
            server_time=position.resolved_at_ms,
            epoch_start=epoch_ms,
            total_programs=position.item_count,
            schedule_version=version,
            is_first_in_cycle=position.is_first_in_cycle,
            is_last_in_cycle=position.is_last_in_cycle,
            available_channels=[ChannelSummary.from_channel(c) for c in channels],
        ),
        server_timestamp=position.resolved_at_ms,
    )


# Upcoming

class UpcomingEntry(ProgramResponse):
    start_time: int  # seconds from the resolved instant
    absolute_start_time: int
    preload_time: int
    index: int
    is_wrap_around: bool
    is_first_in_next_cycle: bool
    cycles_ahead: int


class PreloadResponse(BaseModel):
    item_id: str
    absolute_preload_time: int
    media_ref: str


class UpcomingData(BaseModel):
    channel_id: str
    current: ProgramResponse
    current_index: int
    current_time: int
    time_remaining: int
    next_program_start_time: int
    upcoming: list[UpcomingEntry]
    next_start_times: list[int]
    next_start_absolute: list[int]
    program_indices: list[int]
    scheduled_preloads: list[PreloadResponse]
    server_time: int
    epoch_start: int
    total_programs: int
    schedule_version: str
    is_last_in_cycle: bool
    will_wrap_to_first: bool


class UpcomingResponse(BaseModel):
    success: bool = True
    data: UpcomingData
    server_timestamp: int


def upcoming_response(
    position: ResolvedPosition,
    horizon: list[UpcomingProgram],
    preloads: list[PreloadDescriptor],
    epoch_ms: int,
    version: str,
) -> UpcomingResponse:
    """Build the Upcoming envelope from a position and its projected horizon."""
    entries = [
        UpcomingEntry(
            **entry.item.to_dict(),
            start_time=entry.start_offset_seconds,
            absolute_start_time=entry.absolute_start_ms,
            preload_time=preload.absolute_preload_time_ms,
            index=entry.index,
            is_wrap_around=entry.is_wrap,
            is_first_in_next_cycle=entry.is_wrap and position.is_last_in_cycle,
            cycles_ahead=entry.cycles_ahead,
        )
        for entry, preload in zip(horizon, preloads)
    ]
    return UpcomingResponse(
        data=UpcomingData(
            channel_id=position.channel_id,
            current=ProgramResponse.from_item(position.current_item),
            current_index=position.program_index,
            current_time=position.offset_seconds,
            time_remaining=position.remaining_seconds,
            next_program_start_time=position.next_item_absolute_start_ms,
            upcoming=entries,
            next_start_times=[e.start_offset_seconds for e in horizon],
            next_start_absolute=[e.absolute_start_ms for e in horizon],
            program_indices=[e.index for e in horizon],
            scheduled_preloads=[PreloadResponse(**p.to_dict()) for p in preloads],
            server_time=position.resolved_at_ms,
            epoch_start=epoch_ms,
            total_programs=position.item_count,
            schedule_version=version,
            is_last_in_cycle=position.is_last_in_cycle,
            will_wrap_to_first=position.next_wraps,
        ),
        server_timestamp=position.resolved_at_ms,
    )
