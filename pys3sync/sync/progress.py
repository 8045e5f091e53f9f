"""Progress events emitted by the sync engine.

The engine reports state transitions, phase starts and completed actions
to an optional tracker. Displays (see ``cli_progress``) subscribe by
passing a callback; the engine never depends on what they do with it.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class SyncProgressEvent(str, Enum):
    """Kinds of progress events."""

    RUN_STARTED = "run_started"
    STATE_CHANGED = "state_changed"
    PHASE_STARTED = "phase_started"
    ACTION_COMPLETED = "action_completed"
    CONFLICT_RESOLVED = "conflict_resolved"
    RUN_COMPLETED = "run_completed"
    RUN_FAILED = "run_failed"
    RUN_REJECTED = "run_rejected"


@dataclass
class SyncProgressInfo:
    """Payload of a progress event."""

    event: SyncProgressEvent
    state: str = ""
    phase: str = ""
    path: str = ""
    action: str = ""
    phase_total: int = 0
    phase_completed: int = 0
    message: str = ""


class SyncProgressTracker:
    """Forwards progress events to a callback.

    Callback errors are logged and never interrupt a sync run.
    """

    def __init__(self, callback: Optional[Callable[[SyncProgressInfo], None]] = None):
        self.callback = callback

    def emit(self, event: SyncProgressEvent, **kwargs) -> None:
        """Send an event to the callback, if any."""
        if self.callback is None:
            return
        info = SyncProgressInfo(event=event, **kwargs)
        try:
            self.callback(info)
        except Exception as e:
            logger.warning(f"Progress callback failed for {event.value}: {e}")
