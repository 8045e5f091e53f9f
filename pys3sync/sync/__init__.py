"""Sync engine for pys3sync - two-way reconciliation of a folder and a bucket."""

from .comparator import (
    FileComparator,
    FileStatus,
    SyncAction,
    SyncDecision,
    decide_action,
    determine_file_status,
)
from .engine import EngineState, ErrorDetail, RunResult, RunStatus, SyncEngine
from .ignore import RESERVED_MARKER, filter_excluded, is_excluded
from .operations import ConflictResolution, LocalFileTree, SyncOperations
from .progress import SyncProgressEvent, SyncProgressInfo, SyncProgressTracker
from .scanner import LocalFile, RemoteFile, SnapshotBuilder, SyncSnapshot
from .scheduler import SyncScheduler
from .state import (
    SyncFileState,
    SyncState,
    SyncStateManager,
    drop_incomplete_entries,
)

__all__ = [
    "SyncEngine",
    "EngineState",
    "RunStatus",
    "RunResult",
    "ErrorDetail",
    "SyncScheduler",
    "SyncOperations",
    "ConflictResolution",
    "LocalFileTree",
    "SnapshotBuilder",
    "SyncSnapshot",
    "FileComparator",
    "FileStatus",
    "SyncAction",
    "SyncDecision",
    "decide_action",
    "determine_file_status",
    "LocalFile",
    "RemoteFile",
    "SyncFileState",
    "SyncState",
    "SyncStateManager",
    "drop_incomplete_entries",
    "SyncProgressEvent",
    "SyncProgressInfo",
    "SyncProgressTracker",
    "RESERVED_MARKER",
    "filter_excluded",
    "is_excluded",
]
