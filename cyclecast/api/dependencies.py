"""Request dependencies resolving objects owned by the application lifespan."""

from typing import Optional

from fastapi import HTTPException, Request

from cyclecast.config import CycleCastConfig
from cyclecast.scheduling.service import ScheduleService
from cyclecast.tasks.preload_scheduler import PreloadScheduler


def get_schedule_service(request: Request) -> ScheduleService:
    """The ScheduleService built at startup."""
    service = getattr(request.app.state, "schedule_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Schedule service not initialized")
    return service


def get_preload_scheduler(request: Request) -> Optional[PreloadScheduler]:
    """The PreloadScheduler, or None when preloading is disabled."""
    return getattr(request.app.state, "preload_scheduler", None)


def get_app_config(request: Request) -> CycleCastConfig:
    config = getattr(request.app.state, "config", None)
    if config is None:
        raise HTTPException(status_code=503, detail="Configuration not loaded")
    return config
