"""State management for tracking sync history.

This module persists, per sync location, the local and remote
modification times each path had at the end of the last successful sync.
Comparing the current views against this record is what allows creations,
modifications and deletions to be told apart on each side.
"""

import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ..exceptions import S3SyncPersistenceError

logger = logging.getLogger(__name__)

STATE_FORMAT_VERSION = 2


@dataclass
class SyncFileState:
    """Last known modification times of one path."""

    local_mtime: Optional[int] = None
    """Local mtime (ms) when last synced"""

    remote_mtime: Optional[int] = None
    """Remote mtime (ms) when last synced"""

    def is_complete(self) -> bool:
        """Both sides are known."""
        return self.local_mtime is not None and self.remote_mtime is not None

    def is_empty(self) -> bool:
        """Neither side is known."""
        return self.local_mtime is None and self.remote_mtime is None

    def copy(self) -> "SyncFileState":
        return SyncFileState(self.local_mtime, self.remote_mtime)

    def to_dict(self) -> dict:
        return {"local_mtime": self.local_mtime, "remote_mtime": self.remote_mtime}

    @classmethod
    def from_dict(cls, data: dict) -> "SyncFileState":
        if not isinstance(data, dict):
            raise S3SyncPersistenceError(f"Invalid sync state entry: {data!r}")
        return cls(
            local_mtime=_as_mtime(data.get("local_mtime")),
            remote_mtime=_as_mtime(data.get("remote_mtime")),
        )


def _as_mtime(value: Any) -> Optional[int]:
    """Coerce a stored mtime (int, float or numeric string) to int."""
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError) as e:
        raise S3SyncPersistenceError(f"Invalid mtime in sync state: {value!r}") from e


def drop_incomplete_entries(
    files: dict[str, SyncFileState],
) -> dict[str, SyncFileState]:
    """Keep only entries with both mtimes known.

    Entries with a single side known are in-run bookkeeping only and must
    never be persisted: on the next run the missing side would be taken
    for "never seen" instead of "needs attention".

    Args:
        files: Working state map

    Returns:
        New map holding only complete entries
    """
    complete = {path: entry for path, entry in files.items() if entry.is_complete()}
    dropped = len(files) - len(complete)
    if dropped:
        logger.debug(f"Dropped {dropped} incomplete state entr(ies) before saving")
    return complete


@dataclass
class SyncState:
    """Represents the state of a sync location from a previous sync."""

    local_path: str
    """Local directory path that was synced"""

    remote_path: str
    """Remote location that was synced (bucket/prefix)"""

    files: dict[str, SyncFileState] = field(default_factory=dict)
    """Per-path modification times recorded at the last successful sync"""

    last_sync: Optional[str] = None
    """ISO timestamp of last successful sync"""

    version: int = STATE_FORMAT_VERSION
    """Format version of the stored document"""

    def to_dict(self) -> dict:
        """Convert state to dictionary for JSON serialization."""
        return {
            "version": self.version,
            "local_path": self.local_path,
            "remote_path": self.remote_path,
            "last_sync": self.last_sync,
            "files": {
                path: self.files[path].to_dict() for path in sorted(self.files)
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SyncState":
        """Create SyncState from a stored document of any known version.

        Version 2 is the current layout. A document without a version is
        the legacy layout: a flat mapping of path to either an object with
        ``localMtime``/``remoteMtime`` or a single mtime string, optionally
        nested under a ``syncState`` key.
        """
        if not isinstance(data, dict):
            raise S3SyncPersistenceError("Sync state is not a JSON object")

        version = data.get("version")
        if version is None:
            return cls._from_legacy_dict(data)
        if version != STATE_FORMAT_VERSION:
            raise S3SyncPersistenceError(f"Unsupported sync state version: {version}")

        raw_files = data.get("files", {})
        if not isinstance(raw_files, dict):
            raise S3SyncPersistenceError('Sync state "files" is not a JSON object')
        return cls(
            local_path=data.get("local_path", ""),
            remote_path=data.get("remote_path", ""),
            files={
                path: SyncFileState.from_dict(entry)
                for path, entry in raw_files.items()
            },
            last_sync=data.get("last_sync"),
        )

    @classmethod
    def _from_legacy_dict(cls, data: dict) -> "SyncState":
        raw_files = data.get("syncState", data)
        if not isinstance(raw_files, dict):
            raise S3SyncPersistenceError("Legacy sync state is not a JSON object")
        files: dict[str, SyncFileState] = {}
        for path, entry in raw_files.items():
            if isinstance(entry, dict):
                files[path] = SyncFileState(
                    local_mtime=_as_mtime(entry.get("localMtime")),
                    remote_mtime=_as_mtime(entry.get("remoteMtime")),
                )
            else:
                # Single mtime: the newer of both sides at the time
                mtime = _as_mtime(entry)
                files[path] = SyncFileState(local_mtime=mtime, remote_mtime=mtime)
        logger.info(f"Migrated legacy sync state with {len(files)} entr(ies)")
        return cls(local_path="", remote_path="", files=files)


class SyncStateManager:
    """Manages sync state persistence.

    The state is stored in a JSON file in the user's config directory,
    keyed by a hash of the local and remote paths to support multiple
    sync locations.
    """

    def __init__(self, state_dir: Optional[Path] = None):
        """Initialize state manager.

        Args:
            state_dir: Directory to store state files. Defaults to
                      ~/.config/pys3sync/sync_state/
        """
        if state_dir is None:
            state_dir = Path.home() / ".config" / "pys3sync" / "sync_state"
        self.state_dir = state_dir

    def _get_state_key(self, local_path: Path, remote_path: str) -> str:
        """Generate a unique key for a sync location.

        Args:
            local_path: Local directory path
            remote_path: Remote location (bucket/prefix)

        Returns:
            Hash-based key for the sync location
        """
        local_abs = str(local_path.resolve())
        combined = f"{local_abs}:{remote_path}"
        return hashlib.sha256(combined.encode()).hexdigest()[:16]

    def get_state_file(self, local_path: Path, remote_path: str) -> Path:
        """Get the state file path for a sync location."""
        key = self._get_state_key(local_path, remote_path)
        return self.state_dir / f"{key}.json"

    def load_state(self, local_path: Path, remote_path: str) -> SyncState:
        """Load sync state for a sync location.

        Args:
            local_path: Local directory path
            remote_path: Remote location (bucket/prefix)

        Returns:
            Stored SyncState, or an empty one if nothing was stored yet

        Raises:
            S3SyncPersistenceError: If a state file exists but cannot be read
        """
        state_file = self.get_state_file(local_path, remote_path)

        if not state_file.exists():
            logger.debug(f"No sync state found at {state_file}")
            return SyncState(
                local_path=str(local_path.resolve()), remote_path=remote_path
            )

        try:
            with open(state_file, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise S3SyncPersistenceError(
                f"Failed to load sync state from {state_file}: {e}"
            ) from e

        state = SyncState.from_dict(data)
        logger.debug(
            f"Loaded sync state with {len(state.files)} entr(ies) "
            f"from {state.last_sync}"
        )
        return state

    def save_state(
        self,
        local_path: Path,
        remote_path: str,
        files: dict[str, SyncFileState],
    ) -> SyncState:
        """Replace the stored sync state for a sync location.

        The document is written to a temporary file in the same directory
        and moved into place, so a crash never leaves a half-written state.

        Args:
            local_path: Local directory path
            remote_path: Remote location (bucket/prefix)
            files: Complete per-path state to store

        Returns:
            The SyncState that was written

        Raises:
            S3SyncPersistenceError: If the state could not be written
        """
        state = SyncState(
            local_path=str(local_path.resolve()),
            remote_path=remote_path,
            files=files,
            last_sync=datetime.now().isoformat(),
        )

        state_file = self.get_state_file(local_path, remote_path)
        tmp_name: Optional[str] = None

        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{state_file.stem}.", suffix=".tmp", dir=self.state_dir
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, state_file)
            tmp_name = None
        except OSError as e:
            raise S3SyncPersistenceError(
                f"Failed to save sync state to {state_file}: {e}"
            ) from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.debug(f"Saved sync state with {len(files)} entr(ies) to {state_file}")
        return state

    def clear_state(self, local_path: Path, remote_path: str) -> bool:
        """Clear sync state for a sync location.

        Returns:
            True if state was cleared, False if no state existed
        """
        state_file = self.get_state_file(local_path, remote_path)

        if state_file.exists():
            state_file.unlink()
            logger.debug(f"Cleared sync state at {state_file}")
            return True
        return False
