"""Periodic sync runs."""

import logging
import threading
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .engine import RunResult, SyncEngine

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Calls ``engine.run_once()`` at a fixed interval on a daemon thread.

    A tick that finds a run in progress is rejected by the engine itself,
    so ticks never pile up.
    """

    def __init__(
        self,
        engine: "SyncEngine",
        interval_minutes: float,
        run_immediately: bool = True,
    ):
        """Initialize scheduler.

        Args:
            engine: Engine to run
            interval_minutes: Minutes between the start of two runs
            run_immediately: Run once right away instead of waiting a full
                interval first
        """
        if interval_minutes <= 0:
            raise ValueError(f"Sync interval must be positive, got {interval_minutes}")
        self.engine = engine
        self.interval_seconds = interval_minutes * 60
        self.run_immediately = run_immediately
        self.last_result: Optional["RunResult"] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background thread. Does nothing if already started."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop, name="pys3sync-scheduler", daemon=True
        )
        self._thread.start()
        logger.info(f"Automatic sync started (every {self.interval_seconds:.0f}s)")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the thread to stop and wait for it.

        A run in progress is allowed to finish.
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Automatic sync stopped")

    def run_forever(self) -> None:
        """Run in the calling thread until ``stop()`` is called."""
        self._stop_event.clear()
        self._loop()

    def _loop(self) -> None:
        if not self.run_immediately and self._stop_event.wait(self.interval_seconds):
            return
        while not self._stop_event.is_set():
            self._tick()
            if self._stop_event.wait(self.interval_seconds):
                break

    def _tick(self) -> None:
        try:
            self.last_result = self.engine.run_once()
        except Exception:
            # Keep the schedule alive; the engine already logged and moved to FAILED
            logger.exception("Scheduled sync raised an unexpected error")
            return
        logger.debug(f"Scheduled sync finished: {self.last_result.status.value}")
