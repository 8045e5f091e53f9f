"""File comparison logic for sync operations.

Each path is classified once per side against the stored state, and the
pair of statuses is mapped to a single action.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .scanner import LocalFile, RemoteFile
from .state import SyncFileState


class FileStatus(str, Enum):
    """Change status of one side of a path relative to the stored state."""

    CREATED = "created"
    """Present now, no stored mtime for this side"""

    MODIFIED = "modified"
    """Present now, newer than the stored mtime"""

    DELETED = "deleted"
    """Absent now, but a stored mtime exists"""

    UNCHANGED = "unchanged"
    """Present and not newer than the stored mtime (or never seen)"""


class SyncAction(str, Enum):
    """Actions that can be taken during sync."""

    UPLOAD = "upload"
    """Upload local file to remote"""

    DOWNLOAD = "download"
    """Download remote file to local"""

    DELETE_LOCAL = "delete_local"
    """Delete local file"""

    DELETE_REMOTE = "delete_remote"
    """Delete remote file"""

    CONFLICT = "conflict"
    """Both sides changed at the same instant; keep both versions"""

    DO_NOTHING = "do_nothing"
    """No action needed"""


@dataclass
class SyncDecision:
    """Represents a decision about how to sync a file."""

    relative_path: str
    """Relative path of the file"""

    local_status: FileStatus
    """Status of the local side"""

    remote_status: FileStatus
    """Status of the remote side"""

    action: SyncAction
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""

    local_file: Optional[LocalFile] = None
    """Local file (if exists)"""

    remote_file: Optional[RemoteFile] = None
    """Remote file (if exists)"""


def determine_file_status(
    observed_mtime: Optional[int], stored_mtime: Optional[int]
) -> FileStatus:
    """Classify one side of a path.

    Comparison is exact; both values are integer milliseconds.

    Args:
        observed_mtime: Current mtime on this side (None if absent)
        stored_mtime: Mtime recorded for this side at the last sync

    Returns:
        FileStatus for this side
    """
    if observed_mtime is None:
        if stored_mtime is None:
            return FileStatus.UNCHANGED
        return FileStatus.DELETED

    if stored_mtime is None:
        return FileStatus.CREATED

    if stored_mtime < observed_mtime:
        return FileStatus.MODIFIED
    return FileStatus.UNCHANGED


def decide_action(
    local_status: FileStatus,
    remote_status: FileStatus,
    local_mtime: Optional[int] = None,
    remote_mtime: Optional[int] = None,
) -> SyncAction:
    """Map a pair of statuses to a sync action.

    Rules, in priority order:

    1. Only one side changed: mirror it to the other side.
    2. Neither side changed: nothing to do.
    3. Both sides deleted: nothing to do.
    4. One side deleted, the other created or modified: the change wins,
       without looking at timestamps.
    5. Both sides created or modified: the newer mtime wins; equal mtimes
       are a conflict.

    Args:
        local_status: Status of the local side
        remote_status: Status of the remote side
        local_mtime: Current local mtime, if present
        remote_mtime: Current remote mtime, if present

    Returns:
        SyncAction to take
    """
    local_changed = local_status != FileStatus.UNCHANGED
    remote_changed = remote_status != FileStatus.UNCHANGED

    if local_changed and not remote_changed:
        if local_status == FileStatus.DELETED:
            return SyncAction.DELETE_REMOTE
        return SyncAction.UPLOAD

    if remote_changed and not local_changed:
        if remote_status == FileStatus.DELETED:
            return SyncAction.DELETE_LOCAL
        return SyncAction.DOWNLOAD

    if not local_changed and not remote_changed:
        return SyncAction.DO_NOTHING

    if local_status == FileStatus.DELETED and remote_status == FileStatus.DELETED:
        return SyncAction.DO_NOTHING

    # Modification or creation beats deletion
    if local_status == FileStatus.DELETED:
        return SyncAction.DOWNLOAD
    if remote_status == FileStatus.DELETED:
        return SyncAction.UPLOAD

    if local_mtime is None or remote_mtime is None:
        return SyncAction.CONFLICT
    if local_mtime > remote_mtime:
        return SyncAction.UPLOAD
    if remote_mtime > local_mtime:
        return SyncAction.DOWNLOAD
    return SyncAction.CONFLICT


def _describe(
    action: SyncAction, local_status: FileStatus, remote_status: FileStatus
) -> str:
    """Human-readable reason for a decision."""
    if action == SyncAction.DO_NOTHING:
        if local_status == remote_status == FileStatus.DELETED:
            return "Deleted on both sides"
        return "No changes"
    if action == SyncAction.CONFLICT:
        return (
            f"Same timestamp on both sides (local: {local_status.value}, "
            f"remote: {remote_status.value})"
        )
    if action == SyncAction.DELETE_REMOTE:
        return "File deleted locally"
    if action == SyncAction.DELETE_LOCAL:
        return "File deleted remotely"

    if action == SyncAction.UPLOAD:
        if remote_status == FileStatus.DELETED:
            return f"Local file {local_status.value}, wins over remote deletion"
        if remote_status == FileStatus.UNCHANGED:
            return f"Local file {local_status.value}"
        return "Local file is newer"

    if local_status == FileStatus.DELETED:
        return f"Remote file {remote_status.value}, wins over local deletion"
    if local_status == FileStatus.UNCHANGED:
        return f"Remote file {remote_status.value}"
    return "Remote file is newer"


class FileComparator:
    """Compares the local, remote and stored views to determine sync actions."""

    def compare_files(
        self,
        local_files: dict[str, LocalFile],
        remote_files: dict[str, RemoteFile],
        state_files: dict[str, SyncFileState],
    ) -> list[SyncDecision]:
        """Decide an action for every path known to any of the three views.

        Args:
            local_files: Dictionary mapping relative_path to LocalFile
            remote_files: Dictionary mapping relative_path to RemoteFile
            state_files: Dictionary mapping relative_path to SyncFileState

        Returns:
            List of SyncDecision objects, ordered by path
        """
        all_paths = set(local_files) | set(remote_files) | set(state_files)

        return [
            self.compare_single_file(
                path,
                local_files.get(path),
                remote_files.get(path),
                state_files.get(path),
            )
            for path in sorted(all_paths)
        ]

    def compare_single_file(
        self,
        path: str,
        local_file: Optional[LocalFile],
        remote_file: Optional[RemoteFile],
        file_state: Optional[SyncFileState],
    ) -> SyncDecision:
        """Compare a single file and determine action.

        Args:
            path: Relative path of the file
            local_file: Local file (if exists)
            remote_file: Remote file (if exists)
            file_state: Stored state (if any)

        Returns:
            SyncDecision for this file
        """
        local_mtime = local_file.mtime if local_file else None
        remote_mtime = remote_file.mtime if remote_file else None
        state = file_state or SyncFileState()

        local_status = determine_file_status(local_mtime, state.local_mtime)
        remote_status = determine_file_status(remote_mtime, state.remote_mtime)
        action = decide_action(local_status, remote_status, local_mtime, remote_mtime)

        return SyncDecision(
            relative_path=path,
            local_status=local_status,
            remote_status=remote_status,
            action=action,
            reason=_describe(action, local_status, remote_status),
            local_file=local_file,
            remote_file=remote_file,
        )
