"""API routes for CycleCast"""

from fastapi import APIRouter

from .channels import router as channels_router
from .health import router as health_router
from .schedule import router as schedule_router

# Create the main API router
api_router = APIRouter(prefix="/api")

api_router.include_router(schedule_router, tags=["Schedule"])
api_router.include_router(channels_router, tags=["Channels"])
api_router.include_router(health_router, tags=["Health"])

__all__ = ["api_router"]
