"""Local file tree access and the per-action sync operations."""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from ..exceptions import S3SyncIOError, S3SyncNotFoundError, S3SyncUnavailableError
from ..utils import get_conflict_path, millis_to_ns, ns_to_millis, parent_of
from .ignore import RESERVED_MARKER
from .scanner import LocalFile, RemoteFile

if TYPE_CHECKING:
    from ..api import S3Client

logger = logging.getLogger(__name__)


class LocalFileTree:
    """Reads and writes files below a local root directory.

    Paths handed in and out are relative, using forward slashes. Every
    filesystem error is raised as an S3SyncIOError; nothing is skipped
    silently, because a file missing from a listing would be taken for a
    deletion.
    """

    def __init__(self, root: Path):
        """Initialize local file tree.

        Args:
            root: Directory to sync
        """
        self.root = root

    def _full_path(self, relative_path: str) -> Path:
        return self.root.joinpath(*relative_path.split("/"))

    def check_available(self) -> None:
        """Ensure the root exists and is a directory."""
        if not self.root.exists():
            raise S3SyncUnavailableError(f"Local directory does not exist: {self.root}")
        if not self.root.is_dir():
            raise S3SyncUnavailableError(
                f"Local path is not a directory: {self.root}"
            )

    def list_files(self) -> list[LocalFile]:
        """Recursively list files below the root.

        Directories whose name starts with the reserved marker are not
        descended into.

        Returns:
            List of LocalFile objects
        """
        self.check_available()
        files: list[LocalFile] = []
        self._scan_directory(self.root, files)
        return files

    def _scan_directory(self, directory: Path, files: list[LocalFile]) -> None:
        try:
            entries = list(os.scandir(directory))
        except OSError as e:
            raise S3SyncIOError(f"Cannot read directory {directory}: {e}") from e

        for entry in entries:
            if entry.name.startswith(RESERVED_MARKER):
                continue
            try:
                if entry.is_dir(follow_symlinks=False):
                    self._scan_directory(Path(entry.path), files)
                elif entry.is_file():
                    stat = entry.stat()
                    relative_path = Path(entry.path).relative_to(self.root).as_posix()
                    files.append(
                        LocalFile(
                            relative_path=relative_path,
                            mtime=ns_to_millis(stat.st_mtime_ns),
                            size=stat.st_size,
                        )
                    )
            except OSError as e:
                raise S3SyncIOError(f"Cannot stat {entry.path}: {e}") from e

    def read_bytes(self, relative_path: str) -> bytes:
        """Read a file's content."""
        try:
            return self._full_path(relative_path).read_bytes()
        except FileNotFoundError as e:
            raise S3SyncNotFoundError(
                f"Local file not found: {relative_path}", relative_path
            ) from e
        except OSError as e:
            raise S3SyncIOError(
                f"Cannot read {relative_path}: {e}", relative_path
            ) from e

    def write_bytes(self, relative_path: str, content: bytes, mtime: int) -> int:
        """Create or overwrite a file and set its modification time.

        The content goes to a hidden temporary file next to the target,
        which is stamped and then moved into place. An interrupted write
        leaves the previous file untouched.

        Args:
            relative_path: Relative path of the file
            content: Bytes to write
            mtime: Desired modification time (ms)

        Returns:
            Modification time (ms) actually stored by the filesystem
        """
        self.ensure_parent_exists(relative_path)
        full_path = self._full_path(relative_path)
        tmp_name: Optional[str] = None
        try:
            # Reserved prefix keeps a leftover temp file out of every scan
            fd, tmp_name = tempfile.mkstemp(
                prefix=f"{RESERVED_MARKER}{full_path.name}.",
                suffix=".tmp",
                dir=full_path.parent,
            )
            with os.fdopen(fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.utime(tmp_name, ns=(millis_to_ns(mtime), millis_to_ns(mtime)))
            os.replace(tmp_name, full_path)
            tmp_name = None
            return ns_to_millis(full_path.stat().st_mtime_ns)
        except OSError as e:
            raise S3SyncIOError(
                f"Cannot write {relative_path}: {e}", relative_path
            ) from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def delete(self, relative_path: str) -> None:
        """Delete a file. A file that is already gone is not an error."""
        try:
            self._full_path(relative_path).unlink()
        except FileNotFoundError:
            logger.debug(f"Local file already deleted: {relative_path}")
        except OSError as e:
            raise S3SyncIOError(
                f"Cannot delete {relative_path}: {e}", relative_path
            ) from e

    def ensure_parent_exists(self, relative_path: str) -> None:
        """Create the parent folder of a relative path if needed."""
        parent = parent_of(relative_path)
        if not parent:
            return
        try:
            self._full_path(parent).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise S3SyncIOError(
                f"Cannot create folder {parent}: {e}", relative_path
            ) from e

    def prune_empty_directories(self) -> list[str]:
        """Remove empty directories below the root, deepest first.

        The root itself and directories starting with the reserved marker
        are left alone.

        Returns:
            Relative paths of the removed directories
        """
        removed: list[str] = []
        for dirpath, dirnames, _filenames in os.walk(self.root, topdown=False):
            directory = Path(dirpath)
            if directory == self.root:
                continue
            relative = directory.relative_to(self.root).as_posix()
            if any(part.startswith(RESERVED_MARKER) for part in relative.split("/")):
                continue
            try:
                if not any(directory.iterdir()):
                    directory.rmdir()
                    removed.append(relative)
                    logger.debug(f"Pruned empty folder: {relative}")
            except OSError as e:
                raise S3SyncIOError(f"Cannot prune folder {relative}: {e}") from e
        return removed


@dataclass
class ConflictResolution:
    """Outcome of resolving one conflict."""

    conflict_path: str
    """Alternate path the remote copy was saved under"""

    conflict_local_mtime: int
    """Local mtime of the saved remote copy"""

    conflict_remote_mtime: int
    """Remote mtime of the saved remote copy after its upload"""

    remote_mtime: int
    """Remote mtime of the original path after uploading the local copy"""


class SyncOperations:
    """Unified operations for upload/download with common interface."""

    def __init__(self, client: "S3Client", local_tree: LocalFileTree):
        """Initialize sync operations.

        Args:
            client: Remote store client
            local_tree: Local file tree accessor
        """
        self.client = client
        self.local_tree = local_tree

    def upload_file(self, local_file: LocalFile) -> int:
        """Upload a local file to remote storage.

        Returns:
            Remote mtime confirmed by the store
        """
        content = self.local_tree.read_bytes(local_file.relative_path)
        return self.client.put_object(local_file.relative_path, content)

    def download_file(self, remote_file: RemoteFile) -> int:
        """Download a remote file, stamping it with the remote mtime.

        Returns:
            Local mtime of the written file
        """
        content = self.client.get_object(remote_file.key)
        return self.local_tree.write_bytes(
            remote_file.relative_path, content, remote_file.mtime
        )

    def delete_local(self, relative_path: str) -> None:
        """Delete a local file."""
        self.local_tree.delete(relative_path)

    def delete_remote(self, relative_path: str) -> None:
        """Delete a remote object."""
        self.client.delete_object(relative_path)

    def resolve_conflict(
        self, local_file: LocalFile, remote_file: RemoteFile
    ) -> ConflictResolution:
        """Keep both versions of a conflicting file.

        The remote content is saved under an alternate name, locally and
        remotely, then the local content is uploaded to the original path.

        Args:
            local_file: Local side of the conflict
            remote_file: Remote side of the conflict

        Returns:
            ConflictResolution with the mtimes needed for bookkeeping
        """
        conflict_path = get_conflict_path(remote_file.relative_path, remote_file.mtime)
        remote_content = self.client.get_object(remote_file.key)

        conflict_local_mtime = self.local_tree.write_bytes(
            conflict_path, remote_content, remote_file.mtime
        )
        conflict_remote_mtime = self.client.put_object(conflict_path, remote_content)
        logger.info(
            f"Saved remote version of {remote_file.relative_path} as {conflict_path}"
        )

        remote_mtime = self.upload_file(local_file)
        return ConflictResolution(
            conflict_path=conflict_path,
            conflict_local_mtime=conflict_local_mtime,
            conflict_remote_mtime=conflict_remote_mtime,
            remote_mtime=remote_mtime,
        )
