"""Channel listing endpoints"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from cyclecast.api.dependencies import get_schedule_service
from cyclecast.api.schemas import ChannelResponse, ProgramResponse
from cyclecast.scheduling.registry import Channel
from cyclecast.scheduling.service import ScheduleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/channels", tags=["Channels"])


def channel_to_response(channel: Channel, default_id: str) -> ChannelResponse:
    """Convert a registry Channel to its response model."""
    return ChannelResponse(
        **channel.summary(),
        total_programs=channel.item_count,
        cycle_duration=channel.total_duration,
        is_default=channel.id == default_id,
    )


@router.get("", response_model=list[ChannelResponse])
async def get_all_channels(
    service: ScheduleService = Depends(get_schedule_service),
) -> list[ChannelResponse]:
    """
    Get all channels.

    Returns:
        list[ChannelResponse]: Channels in configuration order
    """
    registry = service.registry
    return [channel_to_response(c, registry.default_channel_id) for c in registry]


@router.get("/{channel_id}/programs", response_model=list[ProgramResponse])
async def get_channel_programs(
    channel_id: str,
    service: ScheduleService = Depends(get_schedule_service),
) -> list[ProgramResponse]:
    """
    Get a channel's playlist in cycle order.

    Raises:
        HTTPException: 404 if the channel does not exist
    """
    if channel_id not in service.registry:
        raise HTTPException(status_code=404, detail="Channel not found")
    channel = service.registry.get(channel_id)
    return [ProgramResponse.from_item(p) for p in channel.programs]
