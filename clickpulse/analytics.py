# ==============================================================================
# Analytics Service
# ==============================================================================
"""
Query boundary for presentation layers (CLI, dashboards).

Reads a time window from the event store and runs the metrics engine over
it. Analytics are advisory, so store and computation errors (including
deadline expiry) are logged and degrade to neutral values instead of
propagating.

Invalid arguments (unknown window, empty funnel stage) are caller errors
and raise ValueError.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

from clickpulse.base.repositories import EventStore
from clickpulse.core.deadline import Deadline
from clickpulse.core.metrics import MetricsEngine
from clickpulse.core.models import (
    BehaviorPattern,
    FunnelStageResult,
    MetricsSnapshot,
    PageDropOff,
    ensure_utc,
)
from clickpulse.core.patterns import PatternRegistry
from clickpulse.core.sessions import SessionReconstructor
from clickpulse.utils.config import AnalyticsSettings

logger = logging.getLogger(__name__)

WINDOWS = {
    "1d": timedelta(days=1),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "all": None,
}

Window = str | tuple[datetime | None, datetime | None]


def resolve_window(
    window: Window, now: datetime
) -> tuple[datetime | None, datetime | None]:
    """
    Turn a window name or explicit range into a (start, end) range.

    Args:
        window: "1d", "7d", "30d", "all" or an explicit (start, end) tuple;
            naive bounds are taken as UTC
        now: Reference time for relative windows

    Returns:
        (start, end); None means unbounded

    Raises:
        ValueError: On an unknown window name or an inverted range
    """
    if isinstance(window, tuple):
        start, end = window
        start = ensure_utc(start) if start is not None else None
        end = ensure_utc(end) if end is not None else None
        if start is not None and end is not None and start > end:
            raise ValueError(f"Window start {start} is after end {end}")
        return start, end

    if window not in WINDOWS:
        raise ValueError(f"Unknown window '{window}'. Valid options are: {', '.join(WINDOWS)}")
    span = WINDOWS[window]
    if span is None:
        return None, None
    return now - span, None


class AnalyticsService:
    """
    Windowed analytics over an event store.

    Args:
        store: Event store to read from
        settings: Analytics settings (default window, timeout, scaling)
        registry: Pattern registry (defaults to the built-in classifiers)
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        store: EventStore,
        settings: AnalyticsSettings | None = None,
        registry: PatternRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.settings = settings or AnalyticsSettings()
        self.engine = MetricsEngine(
            SessionReconstructor(
                timeout_minutes=self.settings.session_timeout_minutes,
                split_on_inactivity=self.settings.split_on_inactivity,
            ),
            registry,
            self.settings.reference_event_types,
        )
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _deadline(self, timeout: float | None) -> Deadline:
        return Deadline(timeout if timeout is not None else self.settings.timeout_seconds)

    def _range(self, window: Window | None) -> tuple[datetime | None, datetime | None]:
        return resolve_window(window or self.settings.default_window, self._clock())

    def snapshot(
        self,
        window: Window | None = None,
        site_id: str | None = None,
        customer_id: str | None = None,
        timeout: float | None = None,
    ) -> MetricsSnapshot:
        """
        Metrics snapshot for a window.

        Returns:
            The computed snapshot, or the neutral snapshot on any failure
        """
        start, end = self._range(window)
        deadline = self._deadline(timeout)
        try:
            events = self.store.query(
                start=start, end=end, site_id=site_id, customer_id=customer_id
            )
            return self.engine.snapshot(events, deadline=deadline)
        except Exception as e:
            logger.error("Metrics computation failed, returning neutral snapshot: %s", e)
            return MetricsSnapshot.neutral()

    def patterns(
        self,
        window: Window | None = None,
        site_id: str | None = None,
        customer_id: str | None = None,
        timeout: float | None = None,
    ) -> list[BehaviorPattern]:
        """Window-level behavior patterns ([] on failure)."""
        start, end = self._range(window)
        deadline = self._deadline(timeout)
        try:
            events = self.store.query(
                start=start, end=end, site_id=site_id, customer_id=customer_id
            )
            return self.engine.patterns(events, deadline=deadline)
        except Exception as e:
            logger.error("Pattern detection failed: %s", e)
            return []

    def session_patterns(
        self,
        window: Window | None = None,
        site_id: str | None = None,
        customer_id: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, list[BehaviorPattern]]:
        """Behavior patterns per session ({} on failure)."""
        start, end = self._range(window)
        deadline = self._deadline(timeout)
        try:
            events = self.store.query(
                start=start, end=end, site_id=site_id, customer_id=customer_id
            )
            return self.engine.session_patterns(events, deadline=deadline)
        except Exception as e:
            logger.error("Session pattern detection failed: %s", e)
            return {}

    def funnel(
        self,
        stages: Sequence[str],
        window: Window | None = None,
        site_id: str | None = None,
        customer_id: str | None = None,
        timeout: float | None = None,
    ) -> list[FunnelStageResult]:
        """
        Conversion funnel over the given stages ([] on failure).

        Raises:
            ValueError: If a stage label is empty
        """
        if any(not stage for stage in stages):
            raise ValueError("Funnel stage names must be non-empty")
        start, end = self._range(window)
        deadline = self._deadline(timeout)
        try:
            events = self.store.query(
                start=start, end=end, site_id=site_id, customer_id=customer_id
            )
            return self.engine.funnel(events, stages, deadline=deadline)
        except Exception as e:
            logger.error("Funnel computation failed: %s", e)
            return []

    def drop_off(
        self,
        window: Window | None = None,
        site_id: str | None = None,
        customer_id: str | None = None,
        timeout: float | None = None,
    ) -> list[PageDropOff]:
        """Page drop-off ranking ([] on failure)."""
        start, end = self._range(window)
        deadline = self._deadline(timeout)
        try:
            events = self.store.query(
                start=start, end=end, site_id=site_id, customer_id=customer_id
            )
            return self.engine.drop_off(events, deadline=deadline)
        except Exception as e:
            logger.error("Drop-off computation failed: %s", e)
            return []
