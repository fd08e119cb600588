"""Cooperative cancellation for workflow runs."""

import threading
import time
from typing import Optional

from reco_autopilot.utils.errors import WorkflowCancelledError, WorkflowStep


class CancelToken:
    """Signals a running workflow to stop at the next step boundary.

    Calls that have already been dispatched are always awaited; the token
    only prevents new ones from starting.
    """

    def __init__(self, deadline_seconds: Optional[float] = None):
        """Initialize cancel token.

        Args:
            deadline_seconds: Optional time budget measured from now
        """
        self._event = threading.Event()
        self._reason = "cancelled"
        self._deadline = time.monotonic() + deadline_seconds if deadline_seconds else None

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation."""
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """True once cancelled or past the deadline."""
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        return False

    def check(self, next_step: WorkflowStep) -> None:
        """Raise if the workflow must not start ``next_step``.

        Raises:
            WorkflowCancelledError: If cancelled or past the deadline
        """
        if self.cancelled:
            raise WorkflowCancelledError(next_step, self._reason)
