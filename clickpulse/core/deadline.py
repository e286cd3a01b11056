# ==============================================================================
# Computation Deadline
# ==============================================================================
"""
Timeout and cancellation token for analytics scans.

Metrics are computed with a full scan over the requested window, so callers
pass a Deadline that the engine checks between sessions.
"""

import threading
import time

from clickpulse.errors import ComputationCancelled


class Deadline:
    """
    Caller-supplied timeout and/or cancellation token.

    Args:
        timeout_seconds: Seconds from construction until the deadline expires.
            None means no time limit.
        cancel_event: Optional threading.Event; setting it cancels the scan.
    """

    def __init__(
        self,
        timeout_seconds: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._expires_at = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )
        self._cancel_event = cancel_event

    @property
    def expired(self) -> bool:
        if self._cancel_event is not None and self._cancel_event.is_set():
            return True
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def check(self) -> None:
        """Raise ComputationCancelled if the deadline passed or was cancelled."""
        if self.expired:
            raise ComputationCancelled("Analytics computation cancelled or timed out")


def check_deadline(deadline: Deadline | None) -> None:
    """Check an optional deadline."""
    if deadline is not None:
        deadline.check()
