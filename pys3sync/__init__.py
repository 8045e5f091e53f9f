"""pys3sync - two-way sync between a local folder and an S3-compatible bucket."""

from .api import S3Client
from .config import Config, S3SyncSettings
from .exceptions import (
    ErrorKind,
    S3SyncConfigError,
    S3SyncConflictError,
    S3SyncError,
    S3SyncIOError,
    S3SyncNotFoundError,
    S3SyncPersistenceError,
    S3SyncUnavailableError,
)
from .models import RemoteObject
from .utils import get_conflict_path

__version__ = "0.1.0"

__all__ = [
    "S3Client",
    "Config",
    "S3SyncSettings",
    "RemoteObject",
    "ErrorKind",
    "S3SyncError",
    "S3SyncConfigError",
    "S3SyncConflictError",
    "S3SyncIOError",
    "S3SyncNotFoundError",
    "S3SyncPersistenceError",
    "S3SyncUnavailableError",
    "get_conflict_path",
]
