"""Schedule query endpoints: what is on now, and what comes next"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from cyclecast.api.dependencies import get_app_config, get_schedule_service
from cyclecast.api.schemas import (
    CurrentPositionResponse,
    UpcomingResponse,
    current_position_response,
    upcoming_response,
)
from cyclecast.config import CycleCastConfig
from cyclecast.errors import ConfigurationError
from cyclecast.scheduling.service import ScheduleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedule", tags=["Schedule"])

# Positions are computed per request and must never be served stale
NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
    "Surrogate-Control": "no-store",
}


def _require_channel(service: ScheduleService, channel: Optional[str]) -> None:
    if channel is not None and channel not in service.registry:
        raise HTTPException(
            status_code=404,
            detail=f"Channel not found: {channel}",
            headers=NO_CACHE_HEADERS,
        )


def _failure(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": message},
        headers={"Cache-Control": "no-store"},
    )


@router.get("/current", response_model=CurrentPositionResponse)
async def get_current_position(
    response: Response,
    channel: Optional[str] = Query(None, description="Channel id; defaults to the default channel"),
    service: ScheduleService = Depends(get_schedule_service),
):
    """
    Resolve the program on air right now.

    Returns:
        CurrentPositionResponse: Position envelope with ``server_timestamp``
            for client clock-skew estimation.
    """
    _require_channel(service, channel)

    try:
        position = service.current_position(channel)
    except ConfigurationError as e:
        logger.error(f"Failed to resolve current position for {channel or 'default'}: {e}")
        return _failure("Failed to fetch current program")

    response.headers.update(NO_CACHE_HEADERS)
    return current_position_response(
        position,
        list(service.registry.channels),
        epoch_ms=service.epoch_ms,
        version=service.version,
    )


@router.get("/upcoming", response_model=UpcomingResponse)
async def get_upcoming_programs(
    response: Response,
    channel: Optional[str] = Query(None, description="Channel id; defaults to the default channel"),
    count: Optional[int] = Query(None, description="Number of programs to project"),
    service: ScheduleService = Depends(get_schedule_service),
    config: CycleCastConfig = Depends(get_app_config),
):
    """
    Project the next ``count`` programs after the current one.

    Returns:
        UpcomingResponse: Current position, projected horizon and preload times.
    """
    limits = config.schedule
    if count is None:
        count = limits.upcoming_default_count
    elif not 1 <= count <= limits.upcoming_max_count:
        raise HTTPException(
            status_code=422,
            detail=f"count must be between 1 and {limits.upcoming_max_count}",
            headers=NO_CACHE_HEADERS,
        )

    _require_channel(service, channel)

    try:
        position, horizon, preloads = service.upcoming(channel, count)
    except ConfigurationError as e:
        logger.error(f"Failed to project upcoming programs for {channel or 'default'}: {e}")
        return _failure("Failed to fetch upcoming programs")

    response.headers.update(NO_CACHE_HEADERS)
    return upcoming_response(
        position,
        horizon,
        preloads,
        epoch_ms=service.epoch_ms,
        version=service.version,
    )
