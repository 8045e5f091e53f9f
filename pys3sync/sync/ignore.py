"""Exclusion rule shared by the local, remote and state views.

A path takes part in sync unless one of its ``/``-separated segments
starts with the reserved marker character. The same predicate must be
applied to all three views, otherwise a path hidden from one of them
would show up as created or deleted.
"""

from typing import TypeVar

RESERVED_MARKER = "."

T = TypeVar("T")


def is_excluded(path: str) -> bool:
    """Check whether a relative path is excluded from sync.

    Args:
        path: Relative path using forward slashes

    Returns:
        True if any segment starts with the reserved marker

    Examples:
        >>> is_excluded(".obsidian/workspace.json")
        True
        >>> is_excluded("notes/.hidden/a.md")
        True
        >>> is_excluded("notes/a.md")
        False
    """
    return any(segment.startswith(RESERVED_MARKER) for segment in path.split("/"))


def filter_excluded(files: dict[str, T]) -> dict[str, T]:
    """Return a copy of a path-keyed mapping without excluded paths."""
    return {path: value for path, value in files.items() if not is_excluded(path)}
