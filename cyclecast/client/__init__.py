"""Receiving-side synchronization for CycleCast channels."""

from cyclecast.client.api_client import FetchedPosition, RemoteProgram, ScheduleClient
from cyclecast.client.preferences import PreferencesStore, ViewerPreferences, WatchRecord
from cyclecast.client.sync_controller import (
    ClientSyncController,
    ClientSyncState,
    DisplayState,
    LoggingMediaSink,
    MediaSink,
    SyncState,
)

__all__ = [
    "ClientSyncController",
    "ClientSyncState",
    "DisplayState",
    "FetchedPosition",
    "LoggingMediaSink",
    "MediaSink",
    "PreferencesStore",
    "RemoteProgram",
    "ScheduleClient",
    "SyncState",
    "ViewerPreferences",
    "WatchRecord",
]
