"""Client-side synchronization for taskflow."""

from taskflow.sync.conflicts import ConflictRegistry
from taskflow.sync.pending_queue import FlushResult, PendingChangeQueue
from taskflow.sync.ports import CalendarSink, RemotePersistenceService
from taskflow.sync.session import SyncPhase, SyncSession
from taskflow.sync.settings import SyncSettings
from taskflow.sync.strategy import PollingStrategy, SyncStrategy

__all__ = [
    "ConflictRegistry",
    "FlushResult",
    "PendingChangeQueue",
    "CalendarSink",
    "RemotePersistenceService",
    "SyncPhase",
    "SyncSession",
    "SyncSettings",
    "PollingStrategy",
    "SyncStrategy",
]
