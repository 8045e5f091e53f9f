"""Snapshot building for sync runs.

A snapshot holds the three views a run compares: the files currently in
the local tree, the objects currently in the bucket, and the per-path
state recorded at the end of the last successful sync.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .ignore import filter_excluded, is_excluded
from .state import SyncFileState

if TYPE_CHECKING:
    from ..api import S3Client
    from .operations import LocalFileTree
    from .state import SyncStateManager

logger = logging.getLogger(__name__)


@dataclass
class LocalFile:
    """Represents a local file with metadata."""

    relative_path: str
    """Relative path (using forward slashes for cross-platform compatibility)"""

    mtime: int
    """Last modification time in milliseconds since the epoch"""

    size: int = 0
    """File size in bytes"""


@dataclass
class RemoteFile:
    """Represents a remote object with metadata."""

    relative_path: str
    """Path relative to the remote prefix"""

    mtime: int
    """LastModified in milliseconds since the epoch"""

    key: str
    """Object key needed to fetch this exact object"""

    size: int = 0
    """Object size in bytes"""


@dataclass
class SyncSnapshot:
    """The three filtered views a sync run is planned from."""

    local_files: dict[str, LocalFile] = field(default_factory=dict)
    remote_files: dict[str, RemoteFile] = field(default_factory=dict)
    state_files: dict[str, SyncFileState] = field(default_factory=dict)

    def all_paths(self) -> set[str]:
        """Union of the paths known to any of the three views."""
        return (
            set(self.local_files.keys())
            | set(self.remote_files.keys())
            | set(self.state_files.keys())
        )

    def working_state(self) -> dict[str, SyncFileState]:
        """Independent copy of the state map for in-run bookkeeping."""
        return {path: entry.copy() for path, entry in self.state_files.items()}


class SnapshotBuilder:
    """Builds the local, remote and state maps for a sync run.

    Collaborator errors are not caught here: a snapshot is either complete
    or not produced at all.
    """

    def __init__(
        self,
        local_tree: "LocalFileTree",
        client: "S3Client",
        state_manager: "SyncStateManager",
    ):
        """Initialize snapshot builder.

        Args:
            local_tree: Local file tree accessor
            client: Remote store client
            state_manager: Sync state persistence
        """
        self.local_tree = local_tree
        self.client = client
        self.state_manager = state_manager

    def build_local_map(self) -> dict[str, LocalFile]:
        """Enumerate local files, excluding filtered paths."""
        local_files = {
            f.relative_path: f
            for f in self.local_tree.list_files()
            if not is_excluded(f.relative_path)
        }
        logger.debug(f"Local map: {len(local_files)} file(s)")
        return local_files

    def build_remote_map(self) -> dict[str, RemoteFile]:
        """Enumerate remote objects, excluding filtered paths."""
        remote_files: dict[str, RemoteFile] = {}
        for obj in self.client.list_objects():
            if is_excluded(obj.relative_path):
                continue
            remote_files[obj.relative_path] = RemoteFile(
                relative_path=obj.relative_path,
                mtime=obj.mtime,
                key=obj.key,
                size=obj.size,
            )
        logger.debug(f"Remote map: {len(remote_files)} object(s)")
        return remote_files

    def build_state_map(self) -> dict[str, SyncFileState]:
        """Load the stored sync state, excluding filtered paths."""
        state = self.state_manager.load_state(
            self.local_tree.root, self.client.remote_root
        )
        state_files = filter_excluded(state.files)
        logger.debug(f"State map: {len(state_files)} entr(ies)")
        return state_files

    def build(self) -> SyncSnapshot:
        """Build all three maps.

        Returns:
            SyncSnapshot with every view filtered to the same domain
        """
        scan_start = time.time()
        snapshot = SyncSnapshot(
            local_files=self.build_local_map(),
            remote_files=self.build_remote_map(),
            state_files=self.build_state_map(),
        )
        logger.debug(
            f"Snapshot took {time.time() - scan_start:.2f}s "
            f"({len(snapshot.all_paths())} path(s))"
        )
        return snapshot
