"""Health check API endpoint for CycleCast"""

import logging
import platform
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request

from cyclecast import __version__
from cyclecast.api.dependencies import get_preload_scheduler
from cyclecast.tasks.preload_scheduler import PreloadScheduler
from cyclecast.utils.time_format import ms_to_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("")
async def health_check(
    request: Request,
    scheduler: Optional[PreloadScheduler] = Depends(get_preload_scheduler),
) -> dict[str, Any]:
    """
    Basic health check endpoint.

    Returns:
        dict: Health status with schedule and preload scheduler details
    """
    service = getattr(request.app.state, "schedule_service", None)

    schedule: dict[str, Any] = {"status": "not_initialized"}
    if service is not None:
        schedule = {
            "status": "ok",
            "version": service.version,
            "epoch": ms_to_iso(service.epoch_ms),
            "channels": len(service.registry),
            "default_channel": service.registry.default_channel_id,
        }

    return {
        "status": "healthy" if service is not None else "degraded",
        "version": __version__,
        "timestamp": _timestamp(),
        "system": {
            "platform": platform.system(),
            "python_version": platform.python_version(),
        },
        "components": {
            "schedule": schedule,
            "preload_scheduler": scheduler.get_status() if scheduler else {"running": False},
        },
    }


@router.get("/ready")
async def readiness_check(request: Request) -> dict[str, str]:
    """
    Kubernetes-style readiness probe.

    Returns:
        dict: Readiness status
    """
    if getattr(request.app.state, "schedule_service", None) is None:
        return {"status": "starting"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    """
    Kubernetes-style liveness probe.

    Returns:
        dict: Liveness status
    """
    return {"status": "alive"}
