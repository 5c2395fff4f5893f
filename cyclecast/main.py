"""
CycleCast Main Application

FastAPI application entry point serving a deterministic linear schedule.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cyclecast import __version__
from cyclecast.config import CycleCastConfig, get_config
from cyclecast.scheduling.registry import PlaylistRegistry
from cyclecast.scheduling.service import ScheduleService
from cyclecast.tasks.preload_scheduler import PreloadScheduler, ScheduledEvent

# Logger
logger = logging.getLogger(__name__)


def _log_event(event: ScheduledEvent) -> None:
    logger.debug(f"Event {event.kind.value} {event.channel_id}/{event.item_id} at {event.firing_time_ms}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown tasks:
    - Load configuration
    - Build the playlist registry (invalid schedules abort startup)
    - Start the preload scheduler
    """
    # Startup
    logger.info(f"Starting CycleCast v{__version__}")

    config: Optional[CycleCastConfig] = getattr(app.state, "config", None)
    if config is None:
        config = get_config()
        app.state.config = config
    logger.info(f"Configuration loaded, server port: {config.server.port}")

    registry = PlaylistRegistry.from_config(config.schedule)
    clock: Optional[Callable[[], int]] = getattr(app.state, "clock", None)
    service = ScheduleService(
        registry,
        clock=clock,
        preload_lead_seconds=config.preload.lead_seconds,
    )
    app.state.schedule_service = service

    preload = config.preload
    if preload.enabled:
        scheduler = PreloadScheduler(
            lead_seconds=preload.lead_seconds,
            history_cap=preload.history_cap,
            granularity_ms=preload.granularity_ms,
            clock=clock,
        )
        scheduler.on_preload(_log_event)
        scheduler.on_switch(_log_event)
        await scheduler.start(
            lambda: service.horizons(preload.horizon_count),
            interval_seconds=preload.refresh_interval_seconds,
        )
        app.state.preload_scheduler = scheduler
    else:
        app.state.preload_scheduler = None
        logger.info("Preload scheduler disabled")

    yield

    # Shutdown
    logger.info("Shutting down CycleCast")

    scheduler = getattr(app.state, "preload_scheduler", None)
    if scheduler is not None:
        try:
            await scheduler.stop()
        except Exception as e:
            logger.error(f"Error stopping preload scheduler: {e}")

    app.state.schedule_service = None
    app.state.preload_scheduler = None


def create_app(
    config: Optional[CycleCastConfig] = None,
    clock: Optional[Callable[[], int]] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Configuration to use instead of loading config.yaml.
        clock: Wall-clock source in epoch milliseconds (defaults to system time).

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="CycleCast",
        description="Deterministic linear TV scheduling over fixed cyclic playlists",
        version=__version__,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.state.config = config
    app.state.clock = clock

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # Register API routers
    from cyclecast.api import api_router
    app.include_router(api_router)

    return app


app = create_app()


def main() -> None:
    """
    Main entry point for running the server.

    Called when running `python -m cyclecast` or via the CLI.
    """
    import uvicorn
    from cyclecast.utils.logging_setup import parse_size, setup_logging

    config = get_config()

    # Configure logging using setup_logging
    setup_logging(
        log_level=config.logging.level,
        log_file_name=config.logging.file,
        log_to_console=True,
        log_to_file=True,
        max_bytes=parse_size(config.logging.max_size),
        backup_count=config.logging.backup_count,
        log_format=config.logging.format,
    )

    logger.info(f"Starting CycleCast v{__version__}")

    uvicorn.run(
        "cyclecast.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.debug,
        log_level=config.server.log_level.lower(),
    )


if __name__ == "__main__":
    main()
