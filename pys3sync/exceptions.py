"""Custom exceptions for pys3sync."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Categories of failures that can abort a sync run."""

    COLLABORATOR_UNAVAILABLE = "collaborator_unavailable"
    """Remote or local store not reachable or not configured"""

    IO_FAILURE = "io_failure"
    """A specific read, write or delete failed"""

    PERSISTENCE_FAILURE = "persistence_failure"
    """The sync state could not be loaded or saved"""

    CONFLICT_UNRESOLVED = "conflict_unresolved"
    """Reserved for manual conflict resolution"""


class S3SyncError(Exception):
    """Base exception for all pys3sync errors."""

    kind: ErrorKind = ErrorKind.IO_FAILURE

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path


class S3SyncUnavailableError(S3SyncError):
    """Remote or local store cannot be reached."""

    kind = ErrorKind.COLLABORATOR_UNAVAILABLE


class S3SyncConfigError(S3SyncUnavailableError):
    """Configuration is missing or invalid."""


class S3SyncIOError(S3SyncError):
    """A read, write or delete of a single file or object failed."""

    kind = ErrorKind.IO_FAILURE


class S3SyncNotFoundError(S3SyncIOError):
    """A file or object expected to exist was not found."""


class S3SyncPersistenceError(S3SyncError):
    """Sync state could not be read or written."""

    kind = ErrorKind.PERSISTENCE_FAILURE


class S3SyncConflictError(S3SyncError):
    """A conflict could not be resolved automatically."""

    kind = ErrorKind.CONFLICT_UNRESOLVED
