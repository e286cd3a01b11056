# ==============================================================================
# Session Reconstructor - Pure Domain Logic
# ==============================================================================
"""
Pure session reconstruction logic with no external dependencies.

Groups a bounded window of raw events into Session records:
- Partitioning by session_id
- Start/end/duration from the min/max timestamps
- Page view counting and device detection
- Optional splitting on inactivity gaps
- Deduplication of at-least-once redeliveries by event_id

Sessions are rebuilt from the raw event set on every query; nothing here
keeps state between calls.
"""

from collections.abc import Iterable
from datetime import timedelta

from clickpulse.core.deadline import Deadline, check_deadline
from clickpulse.core.models import EventType, Session, TrackingEvent

UNKNOWN_DEVICE = "unknown"

_TABLET_MARKERS = ("ipad", "tablet")
_MOBILE_MARKERS = ("mobi", "iphone", "android")


def detect_device_type(metadata: dict) -> str:
    """
    Resolve a device class from event metadata.

    Uses an explicit ``device_type`` key when present, otherwise classifies
    the ``user_agent`` string. Returns "unknown" when neither is available.
    """
    device_type = metadata.get("device_type")
    if isinstance(device_type, str) and device_type:
        return device_type

    user_agent = metadata.get("user_agent")
    if not isinstance(user_agent, str) or not user_agent:
        return UNKNOWN_DEVICE

    ua = user_agent.lower()
    if any(marker in ua for marker in _TABLET_MARKERS):
        return "tablet"
    if any(marker in ua for marker in _MOBILE_MARKERS):
        return "mobile"
    return "desktop"


def deduplicate(events: Iterable[TrackingEvent]) -> list[TrackingEvent]:
    """
    Drop redelivered events sharing an event_id, keeping the first one.

    Events without an event_id are always kept.
    """
    seen: set[str] = set()
    unique = []
    for event in events:
        if event.event_id is not None:
            if event.event_id in seen:
                continue
            seen.add(event.event_id)
        unique.append(event)
    return unique


class SessionReconstructor:
    """
    Pure session reconstruction logic.

    By default a session is exactly the set of events sharing a session_id
    within the query window. With ``split_on_inactivity`` enabled, a
    partition is further split wherever the gap between consecutive events
    exceeds the inactivity timeout; follow-up sessions are suffixed
    ``#2``, ``#3``, ...
    """

    def __init__(self, timeout_minutes: int = 30, split_on_inactivity: bool = False):
        """
        Initialize session reconstructor.

        Args:
            timeout_minutes: Inactivity timeout used when splitting sessions.
            split_on_inactivity: Whether to split partitions on inactivity gaps.
        """
        self.timeout = timedelta(minutes=timeout_minutes)
        self.split_on_inactivity = split_on_inactivity

    def partition(self, events: Iterable[TrackingEvent]) -> dict[str, list[TrackingEvent]]:
        """
        Group events by session_id, each group ordered by timestamp.

        Sorting is stable, so events with equal timestamps keep their
        input order.
        """
        partitions: dict[str, list[TrackingEvent]] = {}
        for event in events:
            partitions.setdefault(event.session_id, []).append(event)
        for session_events in partitions.values():
            session_events.sort(key=lambda e: e.timestamp)
        return partitions

    def build_session(self, session_id: str, events: list[TrackingEvent]) -> Session:
        """
        Build a Session from a non-empty, timestamp-ordered event list.

        Args:
            session_id: Identifier to give the session
            events: Events of the session, ordered by timestamp

        Returns:
            Session with start/end, page view count and device type
        """
        if not events:
            raise ValueError(f"Cannot build session {session_id!r} without events")

        return Session(
            session_id=session_id,
            start=events[0].timestamp,
            end=events[-1].timestamp,
            page_view_count=sum(1 for e in events if e.event_type == EventType.PAGE_VIEW),
            device_type=detect_device_type(events[0].metadata),
            events=list(events),
        )

    def _split(self, session_id: str, events: list[TrackingEvent]) -> list[Session]:
        sessions = []
        current = [events[0]]
        for event in events[1:]:
            if event.timestamp - current[-1].timestamp > self.timeout:
                sessions.append(current)
                current = []
            current.append(event)
        sessions.append(current)

        return [
            self.build_session(session_id if n == 1 else f"{session_id}#{n}", chunk)
            for n, chunk in enumerate(sessions, start=1)
        ]

    def reconstruct(
        self,
        events: Iterable[TrackingEvent],
        deadline: Deadline | None = None,
    ) -> list[Session]:
        """
        Reconstruct sessions from an unordered event window.

        Args:
            events: Raw events in any order
            deadline: Optional deadline checked once per partition

        Returns:
            Sessions ordered by start time, then session id

        Raises:
            ComputationCancelled: If the deadline expires during the scan
        """
        sessions: list[Session] = []
        for session_id, session_events in self.partition(events).items():
            check_deadline(deadline)
            if self.split_on_inactivity:
                sessions.extend(self._split(session_id, session_events))
            else:
                sessions.append(self.build_session(session_id, session_events))

        sessions.sort(key=lambda s: (s.start, s.session_id))
        return sessions
