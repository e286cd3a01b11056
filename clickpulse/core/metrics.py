# ==============================================================================
# Metrics Engine - Pure Domain Logic
# ==============================================================================
"""
Engagement, conversion, funnel and drop-off metrics over an event window.

All metrics are a pure function of the event set in scope: sessions are
reconstructed on every call and no aggregate is cached or accumulated.
Every entry point accepts an optional Deadline, since the computation is a
full scan proportional to the number of events in the window.

Rounding follows the reporting conventions of the dashboards consuming
these numbers: rates to 2 decimals, engagement score and average session
duration to whole numbers.
"""

from collections import Counter
from collections.abc import Sequence

from clickpulse.core.deadline import Deadline, check_deadline
from clickpulse.core.models import (
    BehaviorPattern,
    EventType,
    FunnelStageResult,
    MetricsSnapshot,
    PageDropOff,
    Session,
    TrackingEvent,
)
from clickpulse.core.patterns import PatternRegistry, detect_patterns, detect_session_patterns
from clickpulse.core.sessions import SessionReconstructor, deduplicate

# Number of known event types the engagement score is measured against
REFERENCE_EVENT_TYPES = 5


def _ratio(numerator: float, denominator: float, scale: float = 1.0) -> float:
    return numerator / denominator * scale if denominator > 0 else 0.0


# ==============================================================================
# Individual Metrics
# ==============================================================================


def engagement_score(
    events: Sequence[TrackingEvent], reference_event_types: int = REFERENCE_EVENT_TYPES
) -> float:
    """Diversity of observed event types against a reference cardinality, capped at 100."""
    distinct_types = {e.event_type for e in events}
    return min(100.0, _ratio(len(distinct_types), reference_event_types, 100))


def bounce_rate(sessions: Sequence[Session]) -> float:
    """Percentage of sessions with exactly one page view."""
    bounced = sum(1 for s in sessions if s.page_view_count == 1)
    return _ratio(bounced, len(sessions), 100)


def avg_session_duration(sessions: Sequence[Session]) -> float:
    """Mean session duration in seconds."""
    return _ratio(sum(s.duration_seconds for s in sessions), len(sessions))


def pages_per_session(sessions: Sequence[Session]) -> float:
    """Window-wide page views divided by sessions (not a mean of ratios)."""
    return _ratio(sum(s.page_view_count for s in sessions), len(sessions))


def conversion_rate(sessions: Sequence[Session]) -> float:
    """
    Form submissions per session, as a percentage.

    Counts submit events rather than converting sessions, so a session with
    several submissions inflates the rate and the value can exceed 100.
    """
    submissions = sum(s.count(EventType.FORM_SUBMIT) for s in sessions)
    return _ratio(submissions, len(sessions), 100)


def return_visitor_rate(sessions: Sequence[Session]) -> float | None:
    """
    Share of identified customers seen in more than one session.

    Only sessions carrying an authenticated customer_id can be attributed
    across sessions. Returns None when no session carries one.
    """
    sessions_per_customer = Counter(s.customer_id for s in sessions if s.customer_id)
    if not sessions_per_customer:
        return None
    returning = sum(1 for count in sessions_per_customer.values() if count > 1)
    return _ratio(returning, len(sessions_per_customer), 100)


def build_snapshot(
    events: Sequence[TrackingEvent],
    sessions: Sequence[Session],
    reference_event_types: int = REFERENCE_EVENT_TYPES,
) -> MetricsSnapshot:
    """Assemble a MetricsSnapshot from an event window and its sessions."""
    if not sessions:
        return MetricsSnapshot.neutral()

    returning = return_visitor_rate(sessions)
    return MetricsSnapshot(
        engagement_score=round(engagement_score(events, reference_event_types)),
        bounce_rate=round(bounce_rate(sessions), 2),
        conversion_rate=round(conversion_rate(sessions), 2),
        avg_session_duration=round(avg_session_duration(sessions)),
        pages_per_session=round(pages_per_session(sessions), 2),
        return_visitor_rate=round(returning, 2) if returning is not None else 0.0,
        return_visitor_rate_available=returning is not None,
        total_sessions=len(sessions),
        total_events=len(events),
    )


# ==============================================================================
# Funnel and Drop-off
# ==============================================================================


def _visitor_key(event: TrackingEvent) -> str:
    return event.customer_id or event.session_id


def _matches_stage(event: TrackingEvent, stage: str) -> bool:
    return stage in event.page_url or (event.element_id is not None and stage in event.element_id)


def conversion_funnel(
    events: Sequence[TrackingEvent],
    stages: Sequence[str],
    deadline: Deadline | None = None,
) -> list[FunnelStageResult]:
    """
    Distinct visitors per funnel stage with stage-to-stage conversion.

    Stages are matched by substring against page_url or element_id. An
    event matching several stages is assigned to the first one in declared
    order. A visitor counts at stage i only if they were also counted at
    stage i-1, so visitor counts never increase along the funnel.

    Args:
        events: Event window
        stages: Ordered stage labels
        deadline: Optional deadline checked per stage

    Returns:
        One FunnelStageResult per stage, in declared order

    Raises:
        ValueError: If a stage label is empty
    """
    if any(not stage for stage in stages):
        raise ValueError("Funnel stage labels must be non-empty")

    matched: list[set[str]] = [set() for _ in stages]
    for event in events:
        for index, stage in enumerate(stages):
            if _matches_stage(event, stage):
                matched[index].add(_visitor_key(event))
                break

    results = []
    previous: set[str] | None = None
    for index, stage in enumerate(stages):
        check_deadline(deadline)
        visitors = matched[index] if previous is None else matched[index] & previous

        if previous is None:
            rate = 100.0
        else:
            rate = _ratio(len(visitors), len(previous), 100)

        results.append(
            FunnelStageResult(
                stage=stage,
                visitor_count=len(visitors),
                conversion_rate=round(rate, 2),
                drop_off_rate=round(100.0 - rate, 2),
            )
        )
        previous = visitors

    return results


def page_drop_off(
    events: Sequence[TrackingEvent],
    deadline: Deadline | None = None,
) -> list[PageDropOff]:
    """
    Rank pages by page_view volume and compute drop-off between neighbours.

    This is a volume-ranking approximation, not a sequential path analysis:
    drop_off[N] = (views[N-1] - views[N]) / views[N-1] * 100. The top page
    has no drop-off value. Ties are ordered by URL.
    """
    views = Counter(e.page_url for e in events if e.event_type == EventType.PAGE_VIEW)
    check_deadline(deadline)

    ranked = sorted(views.items(), key=lambda item: (-item[1], item[0]))
    results = []
    for index, (page_url, count) in enumerate(ranked):
        drop_off = None
        if index > 0:
            previous_views = ranked[index - 1][1]
            drop_off = round(_ratio(previous_views - count, previous_views, 100), 2)
        results.append(PageDropOff(page_url=page_url, views=count, drop_off_rate=drop_off))
    return results


# ==============================================================================
# Engine
# ==============================================================================


class MetricsEngine:
    """
    Computes all analytics for an event window.

    Stateless between calls: every method deduplicates and reconstructs
    sessions from the events it is given.
    """

    def __init__(
        self,
        reconstructor: SessionReconstructor | None = None,
        registry: PatternRegistry | None = None,
        reference_event_types: int = REFERENCE_EVENT_TYPES,
    ):
        self._reconstructor = reconstructor or SessionReconstructor()
        self._registry = registry
        self._reference_event_types = reference_event_types

    def sessions(
        self, events: Sequence[TrackingEvent], deadline: Deadline | None = None
    ) -> list[Session]:
        return self._reconstructor.reconstruct(deduplicate(events), deadline=deadline)

    def snapshot(
        self, events: Sequence[TrackingEvent], deadline: Deadline | None = None
    ) -> MetricsSnapshot:
        """Compute the metrics snapshot for the window."""
        unique = deduplicate(events)
        sessions = self._reconstructor.reconstruct(unique, deadline=deadline)
        check_deadline(deadline)
        return build_snapshot(unique, sessions, self._reference_event_types)

    def patterns(
        self, events: Sequence[TrackingEvent], deadline: Deadline | None = None
    ) -> list[BehaviorPattern]:
        """Window-level behavior patterns."""
        check_deadline(deadline)
        return detect_patterns(deduplicate(events), self._registry)

    def session_patterns(
        self, events: Sequence[TrackingEvent], deadline: Deadline | None = None
    ) -> dict[str, list[BehaviorPattern]]:
        """Behavior patterns per reconstructed session."""
        sessions = self.sessions(events, deadline=deadline)
        return detect_session_patterns(sessions, self._registry, deadline=deadline)

    def funnel(
        self,
        events: Sequence[TrackingEvent],
        stages: Sequence[str],
        deadline: Deadline | None = None,
    ) -> list[FunnelStageResult]:
        return conversion_funnel(deduplicate(events), stages, deadline=deadline)

    def drop_off(
        self, events: Sequence[TrackingEvent], deadline: Deadline | None = None
    ) -> list[PageDropOff]:
        return page_drop_off(deduplicate(events), deadline=deadline)
