"""Core sync engine for executing sync operations.

A run moves through ``SNAPSHOTTING -> PLANNING -> EXECUTING -> COMMITTING``
and back to ``IDLE``, or ends in ``FAILED``. The stored sync state is only
replaced at the end of a run in which every action succeeded; a failed
run leaves it untouched, so the next run re-evaluates from the last good
state and redoes whatever is still needed.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from ..exceptions import ErrorKind, S3SyncError
from ..output import OutputFormatter
from ..utils import format_mtime
from .comparator import FileComparator, FileStatus, SyncAction, SyncDecision
from .operations import LocalFileTree, SyncOperations
from .progress import SyncProgressEvent, SyncProgressTracker
from .scanner import SnapshotBuilder, SyncSnapshot
from .state import SyncFileState, SyncStateManager, drop_incomplete_entries

if TYPE_CHECKING:
    from ..api import S3Client
    from ..config import S3SyncSettings

logger = logging.getLogger(__name__)


class EngineState(str, Enum):
    """States of the sync engine."""

    IDLE = "idle"
    SNAPSHOTTING = "snapshotting"
    PLANNING = "planning"
    EXECUTING = "executing"
    COMMITTING = "committing"
    FAILED = "failed"


class RunStatus(str, Enum):
    """Outcome of a run request."""

    SUCCESS = "success"
    FAILED = "failed"
    ALREADY_RUNNING = "already_running"


@dataclass
class ErrorDetail:
    """Why a run failed."""

    kind: ErrorKind
    message: str
    path: Optional[str] = None

    @classmethod
    def from_exception(cls, error: S3SyncError) -> "ErrorDetail":
        return cls(kind=error.kind, message=error.message, path=error.path)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message, "path": self.path}


@dataclass
class RunResult:
    """Result of a run request."""

    status: RunStatus
    error: Optional[ErrorDetail] = None
    decisions: list[SyncDecision] = field(default_factory=list)
    stats: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.SUCCESS

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "error": self.error.to_dict() if self.error else None,
            "stats": self.stats,
        }


# Execution phases, in order. Non-destructive transfers run before deletes.
PHASES: list[tuple[str, tuple[SyncAction, ...]]] = [
    ("download", (SyncAction.DOWNLOAD,)),
    ("upload", (SyncAction.UPLOAD,)),
    ("delete", (SyncAction.DELETE_LOCAL, SyncAction.DELETE_REMOTE)),
    ("conflict", (SyncAction.CONFLICT,)),
]


class SyncEngine:
    """Core sync engine that orchestrates file synchronization."""

    def __init__(
        self,
        client: "S3Client",
        local_tree: LocalFileTree,
        state_manager: SyncStateManager,
        output: Optional[OutputFormatter] = None,
        progress_tracker: Optional[SyncProgressTracker] = None,
        prune_empty_dirs: bool = True,
    ):
        """Initialize sync engine.

        Args:
            client: Remote store client
            local_tree: Local file tree accessor
            state_manager: Sync state persistence
            output: Output formatter for displaying progress/status
            progress_tracker: Receiver of progress events
            prune_empty_dirs: Remove empty local folders after a successful run
        """
        self.local_tree = local_tree
        self.state_manager = state_manager
        self.output = output or OutputFormatter(quiet=True)
        self.progress = progress_tracker or SyncProgressTracker()
        self.prune_empty_dirs = prune_empty_dirs
        self.comparator = FileComparator()
        self._state = EngineState.IDLE
        self._run_lock = threading.Lock()
        self._set_client(client)

    @classmethod
    def from_settings(
        cls,
        settings: "S3SyncSettings",
        local_path: Path,
        state_dir: Optional[Path] = None,
        **kwargs,
    ) -> "SyncEngine":
        """Build an engine and its collaborators from settings.

        Args:
            settings: Connection settings
            local_path: Local directory to sync
            state_dir: Directory holding sync state files
            **kwargs: Passed on to the constructor

        Returns:
            SyncEngine instance
        """
        from ..api import S3Client

        return cls(
            client=S3Client(settings),
            local_tree=LocalFileTree(local_path),
            state_manager=SyncStateManager(state_dir),
            **kwargs,
        )

    def _set_client(self, client: "S3Client") -> None:
        self.client = client
        self.operations = SyncOperations(client, self.local_tree)
        self.snapshot_builder = SnapshotBuilder(
            self.local_tree, client, self.state_manager
        )

    def update_settings(self, settings: "S3SyncSettings") -> None:
        """Rebuild the remote client from new settings.

        Waits for a run in progress to finish first.
        """
        from ..api import S3Client

        with self._run_lock:
            self._set_client(S3Client(settings))
            logger.debug(f"Settings updated, remote is now {self.client.remote_root}")

    @property
    def state(self) -> EngineState:
        """Current engine state."""
        return self._state

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def _transition(self, new_state: EngineState) -> None:
        logger.debug(f"Engine state: {self._state.value} -> {new_state.value}")
        self._state = new_state
        self.progress.emit(SyncProgressEvent.STATE_CHANGED, state=new_state.value)

    # =========================================================================
    # Entry points
    # =========================================================================

    def run_once(self) -> RunResult:
        """Run one full sync.

        Returns immediately with ``ALREADY_RUNNING`` if another run (or
        preview) is in progress; requests are never queued.

        Returns:
            RunResult with status, error detail, plan and statistics
        """
        if not self._run_lock.acquire(blocking=False):
            logger.info("Sync already in progress, request rejected")
            self.progress.emit(SyncProgressEvent.RUN_REJECTED)
            return RunResult(status=RunStatus.ALREADY_RUNNING)

        try:
            return self._run()
        finally:
            self._run_lock.release()

    def preview(self) -> RunResult:
        """Build the plan without executing or saving anything (dry run).

        Returns:
            RunResult holding the planned decisions and their statistics
        """
        if not self._run_lock.acquire(blocking=False):
            self.progress.emit(SyncProgressEvent.RUN_REJECTED)
            return RunResult(status=RunStatus.ALREADY_RUNNING)

        try:
            self._transition(EngineState.SNAPSHOTTING)
            try:
                snapshot = self.snapshot_builder.build()
            except S3SyncError as e:
                return self._fail(e)

            self._transition(EngineState.PLANNING)
            decisions = self.plan(snapshot)
            stats = self._categorize_decisions(decisions)
            self._display_sync_plan(stats, decisions, dry_run=True)
            self._transition(EngineState.IDLE)
            return RunResult(RunStatus.SUCCESS, decisions=decisions, stats=stats)
        finally:
            self._run_lock.release()

    def plan(self, snapshot: SyncSnapshot) -> list[SyncDecision]:
        """Decide an action for every path of a snapshot."""
        decisions = self.comparator.compare_files(
            snapshot.local_files, snapshot.remote_files, snapshot.state_files
        )
        for decision in decisions:
            logger.debug(
                f"{decision.relative_path}: local={decision.local_status.value} "
                f"remote={decision.remote_status.value} -> {decision.action.value}"
            )
        return decisions

    # =========================================================================
    # Run
    # =========================================================================

    def _run(self) -> RunResult:
        start_time = time.time()
        self.progress.emit(SyncProgressEvent.RUN_STARTED)
        if not self.output.quiet:
            self.output.info(f"Syncing: {self.local_tree.root} <-> {self.client.remote_root}")

        try:
            self._transition(EngineState.SNAPSHOTTING)
            try:
                snapshot = self.snapshot_builder.build()
            except S3SyncError as e:
                return self._fail(e)

            self._transition(EngineState.PLANNING)
            decisions = self.plan(snapshot)
            self._display_sync_plan(
                self._categorize_decisions(decisions), decisions, dry_run=False
            )

            self._transition(EngineState.EXECUTING)
            working_state = snapshot.working_state()
            try:
                stats = self._execute_decisions(decisions, working_state)
            except S3SyncError as e:
                return self._fail(e, decisions)

            self._transition(EngineState.COMMITTING)
            try:
                self._commit(working_state)
            except S3SyncError as e:
                return self._fail(e, decisions, stats)
        except Exception:
            self._transition(EngineState.FAILED)
            logger.exception("Unexpected error during sync")
            raise

        self._prune_empty_directories()
        self._transition(EngineState.IDLE)

        logger.debug(f"Sync finished in {time.time() - start_time:.2f}s")
        self.progress.emit(SyncProgressEvent.RUN_COMPLETED)
        if not self.output.quiet:
            self._display_summary(stats)
        return RunResult(RunStatus.SUCCESS, decisions=decisions, stats=stats)

    def _fail(
        self,
        error: S3SyncError,
        decisions: Optional[list[SyncDecision]] = None,
        stats: Optional[dict] = None,
    ) -> RunResult:
        """Move to FAILED and build the result. The stored state is untouched."""
        failed_in = self._state
        self._transition(EngineState.FAILED)
        logger.error(f"Sync failed while {failed_in.value}: {error}")
        self.progress.emit(
            SyncProgressEvent.RUN_FAILED, path=error.path or "", message=str(error)
        )
        if not self.output.quiet:
            self.output.error(f"Sync failed: {error}")
        return RunResult(
            status=RunStatus.FAILED,
            error=ErrorDetail.from_exception(error),
            decisions=decisions or [],
            stats=stats or self._create_empty_stats(),
        )

    def _execute_decisions(
        self,
        decisions: list[SyncDecision],
        working_state: dict[str, SyncFileState],
    ) -> dict:
        """Execute all decisions phase by phase.

        The first failing action raises and aborts the run.

        Args:
            decisions: Planned decisions
            working_state: In-run copy of the sync state (modified in place)

        Returns:
            Dictionary with sync statistics
        """
        stats = self._create_empty_stats()

        for decision in decisions:
            if decision.action != SyncAction.DO_NOTHING:
                continue
            stats["skips"] += 1
            if (
                decision.local_status == FileStatus.DELETED
                and decision.remote_status == FileStatus.DELETED
            ):
                # Gone on both sides, nothing left to track
                working_state.pop(decision.relative_path, None)

        for phase, actions in PHASES:
            phase_decisions = [d for d in decisions if d.action in actions]
            if not phase_decisions:
                continue

            logger.debug(f"Phase {phase}: {len(phase_decisions)} action(s)")
            self.progress.emit(
                SyncProgressEvent.PHASE_STARTED,
                phase=phase,
                phase_total=len(phase_decisions),
            )

            for completed, decision in enumerate(phase_decisions, start=1):
                self._execute_single_decision(decision, working_state)
                self._count_action(decision.action, stats)
                self.progress.emit(
                    SyncProgressEvent.ACTION_COMPLETED,
                    phase=phase,
                    path=decision.relative_path,
                    action=decision.action.value,
                    phase_total=len(phase_decisions),
                    phase_completed=completed,
                )

        return stats

    def _execute_single_decision(
        self,
        decision: SyncDecision,
        working_state: dict[str, SyncFileState],
    ) -> None:
        """Execute a single sync decision and record its effect.

        The working state is only updated after the action succeeded.

        Args:
            decision: Sync decision to execute
            working_state: In-run copy of the sync state (modified in place)
        """
        path = decision.relative_path
        action_start = time.time()

        try:
            if decision.action == SyncAction.DOWNLOAD and decision.remote_file:
                logger.debug(f"Downloading {path}...")
                local_mtime = self.operations.download_file(decision.remote_file)
                working_state[path] = SyncFileState(
                    local_mtime=local_mtime,
                    remote_mtime=decision.remote_file.mtime,
                )

            elif decision.action == SyncAction.UPLOAD and decision.local_file:
                logger.debug(f"Uploading {path}...")
                remote_mtime = self.operations.upload_file(decision.local_file)
                working_state[path] = SyncFileState(
                    local_mtime=decision.local_file.mtime,
                    remote_mtime=remote_mtime,
                )

            elif decision.action == SyncAction.DELETE_LOCAL:
                logger.debug(f"Deleting local {path}...")
                self.operations.delete_local(path)
                entry = working_state.get(path)
                if entry is not None:
                    entry.local_mtime = None
                    if entry.remote_mtime is None:
                        del working_state[path]

            elif decision.action == SyncAction.DELETE_REMOTE:
                logger.debug(f"Deleting remote {path}...")
                self.operations.delete_remote(path)
                entry = working_state.get(path)
                if entry is not None:
                    entry.remote_mtime = None
                    if entry.local_mtime is None:
                        del working_state[path]

            elif (
                decision.action == SyncAction.CONFLICT
                and decision.local_file
                and decision.remote_file
            ):
                logger.debug(f"Resolving conflict for {path}...")
                resolution = self.operations.resolve_conflict(
                    decision.local_file, decision.remote_file
                )
                working_state[path] = SyncFileState(
                    local_mtime=decision.local_file.mtime,
                    remote_mtime=resolution.remote_mtime,
                )
                working_state[resolution.conflict_path] = SyncFileState(
                    local_mtime=resolution.conflict_local_mtime,
                    remote_mtime=resolution.conflict_remote_mtime,
                )
                self.progress.emit(
                    SyncProgressEvent.CONFLICT_RESOLVED,
                    path=path,
                    message=resolution.conflict_path,
                )
                if not self.output.quiet:
                    self.output.warning(
                        f"Conflict: saved remote version of {path} as "
                        f"{resolution.conflict_path}"
                    )

        except S3SyncError as e:
            if e.path is None:
                e.path = path
            if not self.output.quiet:
                self.output.error(f"Error syncing {path}: {e}")
            raise

        logger.debug(
            f"{decision.action.value} of {path} took {time.time() - action_start:.2f}s"
        )

    def _commit(self, working_state: dict[str, SyncFileState]) -> None:
        """Persist the working state, dropping half-known entries."""
        files = drop_incomplete_entries(working_state)
        self.state_manager.save_state(
            self.local_tree.root, self.client.remote_root, files
        )

    def _prune_empty_directories(self) -> None:
        """Best-effort cleanup after a committed run; never fails the run."""
        if not self.prune_empty_dirs:
            return
        try:
            removed = self.local_tree.prune_empty_directories()
        except S3SyncError as e:
            logger.warning(f"Pruning empty folders failed: {e}")
            return
        if removed:
            logger.info(f"Pruned {len(removed)} empty folder(s)")

    # =========================================================================
    # Statistics and display
    # =========================================================================

    def _create_empty_stats(self) -> dict:
        """Create an empty statistics dictionary.

        Returns:
            Dictionary with zero counts for all stat categories
        """
        return {
            "uploads": 0,
            "downloads": 0,
            "deletes_local": 0,
            "deletes_remote": 0,
            "skips": 0,
            "conflicts": 0,
        }

    def _count_action(self, action: SyncAction, stats: dict) -> None:
        if action == SyncAction.UPLOAD:
            stats["uploads"] += 1
        elif action == SyncAction.DOWNLOAD:
            stats["downloads"] += 1
        elif action == SyncAction.DELETE_LOCAL:
            stats["deletes_local"] += 1
        elif action == SyncAction.DELETE_REMOTE:
            stats["deletes_remote"] += 1
        elif action == SyncAction.CONFLICT:
            stats["conflicts"] += 1
        elif action == SyncAction.DO_NOTHING:
            stats["skips"] += 1

    def _categorize_decisions(self, decisions: list[SyncDecision]) -> dict:
        """Categorize decisions into statistics.

        Args:
            decisions: List of sync decisions

        Returns:
            Dictionary with statistics
        """
        stats = self._create_empty_stats()
        for decision in decisions:
            self._count_action(decision.action, stats)
        return stats

    def _display_sync_plan(
        self,
        stats: dict,
        decisions: list[SyncDecision],
        dry_run: bool,
    ) -> None:
        """Display sync plan to user.

        Args:
            stats: Statistics dictionary
            decisions: List of sync decisions
            dry_run: Whether this is a dry run
        """
        if self.output.quiet:
            return

        self.output.info("Sync plan:" if not dry_run else "Sync plan (dry run):")
        if stats["downloads"] > 0:
            self.output.info(f"  ↓ Download: {stats['downloads']} file(s)")
        if stats["uploads"] > 0:
            self.output.info(f"  ↑ Upload: {stats['uploads']} file(s)")
        if stats["deletes_local"] > 0:
            self.output.info(f"  ✗ Delete local: {stats['deletes_local']} file(s)")
        if stats["deletes_remote"] > 0:
            self.output.info(f"  ✗ Delete remote: {stats['deletes_remote']} file(s)")
        if stats["skips"] > 0:
            self.output.info(f"  = Unchanged: {stats['skips']} file(s)")
        if stats["conflicts"] > 0:
            self.output.warning(f"  ⚠ Conflicts: {stats['conflicts']} file(s)")

        if dry_run:
            for decision in decisions:
                if decision.action != SyncAction.DO_NOTHING:
                    self.output.info(
                        f"  {decision.action.value:<13} {decision.relative_path} "
                        f"({decision.reason})"
                    )
                    self.output.info(f"      {self._describe_files(decision)}")

        self.output.print("")

    def _describe_files(self, decision: SyncDecision) -> str:
        """Size and mtime of each side present for a planned action."""
        parts = []
        if decision.local_file is not None:
            parts.append(
                f"local {self.output.format_size(decision.local_file.size)}, "
                f"{format_mtime(decision.local_file.mtime)}"
            )
        if decision.remote_file is not None:
            parts.append(
                f"remote {self.output.format_size(decision.remote_file.size)}, "
                f"{format_mtime(decision.remote_file.mtime)}"
            )
        return "; ".join(parts)

    def _display_summary(self, stats: dict) -> None:
        """Display sync summary.

        Args:
            stats: Statistics dictionary
        """
        self.output.success("Sync complete!")

        total_actions = (
            stats["uploads"]
            + stats["downloads"]
            + stats["deletes_local"]
            + stats["deletes_remote"]
            + stats["conflicts"]
        )

        if total_actions > 0:
            self.output.info(f"Total actions: {total_actions}")
            if stats["downloads"] > 0:
                self.output.info(f"  Downloaded: {stats['downloads']}")
            if stats["uploads"] > 0:
                self.output.info(f"  Uploaded: {stats['uploads']}")
            if stats["deletes_local"] > 0:
                self.output.info(f"  Deleted locally: {stats['deletes_local']}")
            if stats["deletes_remote"] > 0:
                self.output.info(f"  Deleted remotely: {stats['deletes_remote']}")
            if stats["conflicts"] > 0:
                self.output.info(f"  Conflicts resolved: {stats['conflicts']}")
        else:
            self.output.info("No changes needed - everything is in sync!")
