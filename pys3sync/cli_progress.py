"""CLI progress display for sync operations.

This module provides Rich-based progress displays that work with
the SyncProgressTracker from the sync engine.
"""

from typing import TYPE_CHECKING, Optional

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .sync.progress import SyncProgressEvent, SyncProgressInfo, SyncProgressTracker

if TYPE_CHECKING:
    from .sync.engine import RunResult, SyncEngine

PHASE_LABELS = {
    "download": "Downloading",
    "upload": "Uploading",
    "delete": "Deleting",
    "conflict": "Resolving conflicts",
}


class SyncProgressDisplay:
    """Rich-based progress display for sync operations.

    One task bar is reused for every phase of a run; it shows how many
    actions of the current phase are done and which path was handled
    last.
    """

    def __init__(self) -> None:
        """Initialize the progress display."""
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None
        self.conflicts: list[str] = []

    def create_tracker(self) -> SyncProgressTracker:
        """Create a SyncProgressTracker that updates this display.

        Returns:
            A configured SyncProgressTracker
        """
        return SyncProgressTracker(callback=self._handle_event)

    def _handle_event(self, info: SyncProgressInfo) -> None:
        """Handle a progress event from the tracker.

        Args:
            info: Progress information
        """
        if self._progress is None or self._task is None:
            return

        if info.event == SyncProgressEvent.STATE_CHANGED:
            if info.state in ("snapshotting", "planning"):
                self._progress.update(
                    self._task,
                    description=f"{info.state.capitalize()}...",
                    current_path="",
                )
            elif info.state == "committing":
                self._progress.update(self._task, description="Saving sync state...")

        elif info.event == SyncProgressEvent.PHASE_STARTED:
            self._progress.update(
                self._task,
                description=PHASE_LABELS.get(info.phase, info.phase),
                total=info.phase_total,
                completed=0,
                current_path="",
            )

        elif info.event == SyncProgressEvent.ACTION_COMPLETED:
            self._progress.update(
                self._task,
                completed=info.phase_completed,
                current_path=info.path,
            )

        elif info.event == SyncProgressEvent.CONFLICT_RESOLVED:
            self.conflicts.append(info.message)

    def __enter__(self) -> "SyncProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[cyan]{task.fields[current_path]}"),
            TimeElapsedColumn(),
            refresh_per_second=4,
            transient=True,
        )
        self._progress.__enter__()
        self._task = self._progress.add_task(
            "Preparing sync...", total=None, current_path=""
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        if self._progress is not None:
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._task = None


def run_sync_with_progress(engine: "SyncEngine", dry_run: bool) -> "RunResult":
    """Run sync with a Rich progress display.

    The engine's progress tracker is replaced for the duration of the
    run and restored afterwards.

    Args:
        engine: SyncEngine instance
        dry_run: If True, only show what would be done

    Returns:
        RunResult of the run
    """
    # For dry-run, don't show progress bar (just text output)
    if dry_run:
        return engine.preview()

    previous_tracker = engine.progress
    with SyncProgressDisplay() as display:
        engine.progress = display.create_tracker()
        try:
            return engine.run_once()
        finally:
            engine.progress = previous_tracker
