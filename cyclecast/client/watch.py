"""
Headless watcher: follows a channel and logs what a player would do.

Usage:
    cyclecast-watch --channel bangla-1
    cyclecast-watch --server http://tv.local:8420 --status-every 10
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import httpx

from cyclecast import __version__
from cyclecast.client.api_client import FetchedPosition, ScheduleClient
from cyclecast.client.preferences import PreferencesStore
from cyclecast.client.sync_controller import (
    ClientSyncController,
    DisplayState,
    LoggingMediaSink,
)
from cyclecast.config import load_config
from cyclecast.errors import RejectedQueryError, TransientFetchError
from cyclecast.utils.logging_setup import parse_size, setup_logging
from cyclecast.utils.time_format import format_duration

logger = logging.getLogger(__name__)


class StatusPrinter:
    """Throttles display updates down to one log line every few seconds."""

    def __init__(self, every_seconds: float):
        self.every_seconds = every_seconds
        self._last_item: Optional[str] = None
        self._last_offset = -1.0

    def __call__(self, display: DisplayState) -> None:
        if display.item_id != self._last_item:
            self._last_item = display.item_id
            self._last_offset = -1.0
        if self._last_offset >= 0 and display.offset_seconds - self._last_offset < self.every_seconds:
            return
        self._last_offset = display.offset_seconds
        suffix = " (waiting for server)" if display.awaiting_confirmation else ""
        logger.info(
            f"[{display.program_index + 1}/{display.total_programs}] {display.title} "
            f"{display.elapsed_text} / -{display.remaining_text}{suffix}"
        )


async def run_watch(
    server_url: str,
    channel_id: Optional[str],
    store: PreferencesStore,
    resync_interval: float,
    display_interval: float,
    drift_tolerance: float,
    timeout: float,
    status_every: float,
    retry_delay: float,
    max_attempts: int,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """
    Run a controller until cancelled. Returns a process exit code.

    A remembered channel the server no longer knows falls back to the
    server default; a rejected default exits with 1.
    """
    preferences = store.load()
    channel = channel_id or preferences.preferred_channel_id

    def on_item_change(fetched: FetchedPosition) -> None:
        logger.info(
            f"Now playing {fetched.program.title!r} "
            f"({format_duration(fetched.program.duration_seconds)}) on {fetched.channel_id}"
        )
        store.save(preferences)

    controller = ClientSyncController(
        ScheduleClient(server_url, timeout=timeout, transport=transport),
        LoggingMediaSink(),
        channel_id=channel,
        resync_interval_seconds=resync_interval,
        display_interval_seconds=display_interval,
        drift_tolerance_seconds=drift_tolerance,
        on_display=StatusPrinter(status_every),
        on_item_change=on_item_change,
        preferences=preferences,
        owns_source=True,
    )

    try:
        attempt = 0
        while True:
            attempt += 1
            try:
                await controller.start()
                break
            except RejectedQueryError as e:
                if controller.channel_id is None:
                    logger.error(f"Server rejected the default channel: {e}")
                    return 1
                logger.warning(
                    f"Channel {controller.channel_id!r} rejected ({e}), "
                    f"falling back to the server default"
                )
                controller.channel_id = None
                preferences.preferred_channel_id = None
            except TransientFetchError as e:
                if max_attempts and attempt >= max_attempts:
                    logger.error(f"Giving up after {attempt} attempt(s): {e}")
                    return 1
                logger.warning(f"First fetch failed ({e}), retrying in {retry_delay:.0f}s")
                await asyncio.sleep(retry_delay)

        # Loops run in the background until the process is interrupted
        await asyncio.Event().wait()
        return 0
    finally:
        await controller.stop()
        store.save(preferences)


def main() -> int:
    """Entry point for ``cyclecast-watch``."""
    parser = argparse.ArgumentParser(
        description="Follow a CycleCast channel and log playback decisions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s
  %(prog)s --channel bangla-1
  %(prog)s --server http://tv.local:8420 --status-every 30
        """,
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--server", default=None, help="Server base URL (overrides config)")
    parser.add_argument("--channel", default=None, help="Channel id (default: last watched or server default)")
    parser.add_argument(
        "--status-every",
        type=float,
        default=15.0,
        help="Seconds of playback between status lines (default: 15)",
    )
    parser.add_argument(
        "--retry-delay",
        type=float,
        default=5.0,
        help="Seconds between first-fetch attempts (default: 5)",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=0,
        help="Give up after this many first-fetch attempts (0 = never)",
    )
    parser.add_argument("--log-to-file", action="store_true", help="Also write the rotating log file")
    args = parser.parse_args()

    config = load_config(str(args.config) if args.config else None)
    setup_logging(
        log_level=config.logging.level,
        log_file_name=config.logging.file,
        log_to_console=True,
        log_to_file=args.log_to_file,
        max_bytes=parse_size(config.logging.max_size),
        backup_count=config.logging.backup_count,
        log_format=config.logging.format,
    )

    client_cfg = config.client
    server_url = args.server or client_cfg.server_url
    logger.info(f"CycleCast watcher v{__version__} -> {server_url}")

    try:
        return asyncio.run(
            run_watch(
                server_url=server_url,
                channel_id=args.channel or client_cfg.channel,
                store=PreferencesStore(client_cfg.preferences_file, client_cfg.history_cap),
                resync_interval=client_cfg.resync_interval_seconds,
                display_interval=client_cfg.display_interval_seconds,
                drift_tolerance=client_cfg.drift_tolerance_seconds,
                timeout=client_cfg.request_timeout_seconds,
                status_every=args.status_every,
                retry_delay=args.retry_delay,
                max_attempts=args.max_attempts,
            )
        )
    except KeyboardInterrupt:
        logger.info("Watcher stopped")
        return 0


if __name__ == "__main__":
    sys.exit(main())
