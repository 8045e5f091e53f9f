"""Utility functions for pys3sync."""

from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Optional

# =============================================================================
# Constants
# =============================================================================

# Marker inserted into the names of preserved remote copies
CONFLICT_MARKER: str = "conflict"

# Default interval between automatic syncs (minutes)
DEFAULT_SYNC_INTERVAL_MINUTES: int = 15


# =============================================================================
# Timestamp utilities
# =============================================================================


def datetime_to_millis(dt: datetime) -> int:
    """Convert a datetime to integer milliseconds since the Unix epoch.

    Naive datetimes are interpreted as UTC.

    Args:
        dt: Datetime to convert

    Returns:
        Milliseconds since the epoch

    Examples:
        >>> datetime_to_millis(datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc))
        1000
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(round(dt.timestamp() * 1000))


def millis_to_datetime(mtime: int) -> datetime:
    """Convert milliseconds since the epoch to an aware UTC datetime."""
    return datetime.fromtimestamp(mtime / 1000, tz=timezone.utc)


def ns_to_millis(mtime_ns: int) -> int:
    """Convert a filesystem ``st_mtime_ns`` value to milliseconds."""
    return mtime_ns // 1_000_000


def millis_to_ns(mtime: int) -> int:
    """Convert milliseconds to nanoseconds for ``os.utime``."""
    return mtime * 1_000_000


def format_conflict_timestamp(mtime: int) -> str:
    """Format an mtime as ``YYYYMMDD-HHMMSS`` (UTC).

    Examples:
        >>> format_conflict_timestamp(0)
        '19700101-000000'
    """
    return millis_to_datetime(mtime).strftime("%Y%m%d-%H%M%S")


def format_mtime(mtime: Optional[int]) -> str:
    """Format an mtime for display, or ``-`` when absent."""
    if mtime is None:
        return "-"
    return millis_to_datetime(mtime).strftime("%Y-%m-%d %H:%M:%S UTC")


# =============================================================================
# Path utilities
# =============================================================================


def get_conflict_path(path: str, remote_mtime: int) -> str:
    """Derive the alternate path a conflicting remote copy is saved under.

    The conflict marker and a timestamp derived from the remote mtime are
    inserted before the file extension. Only the final path segment is
    considered when looking for the extension.

    Args:
        path: Original relative path (forward slashes)
        remote_mtime: Remote modification time in milliseconds

    Returns:
        Alternate relative path

    Examples:
        >>> get_conflict_path("notes/a.md", 0)
        'notes/a (conflict 19700101-000000).md'
        >>> get_conflict_path("v1.2/README", 0)
        'v1.2/README (conflict 19700101-000000)'
    """
    pure = PurePosixPath(path)
    timestamp = format_conflict_timestamp(remote_mtime)
    name = f"{pure.stem} ({CONFLICT_MARKER} {timestamp}){pure.suffix}"
    if pure.parent == PurePosixPath("."):
        return name
    return f"{pure.parent.as_posix()}/{name}"


def parent_of(path: str) -> str:
    """Return the parent folder of a relative path ("" for top level)."""
    parent = PurePosixPath(path).parent.as_posix()
    return "" if parent == "." else parent


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
