# ==============================================================================
# Behavior Pattern Heuristics
# ==============================================================================
"""
Heuristic behavior-pattern detection.

Each heuristic is an independent classifier function that takes a list of
events (one session, or a whole window) and returns a BehaviorPattern or
None. Classifiers live in a registry, so new heuristics are added with the
``register_pattern`` decorator without touching the existing ones.

Built-in classifiers:
- click_pattern: repeated button-like clicks
- scroll_pattern: deep average scroll depth
- navigation_pattern: several distinct pages viewed
- form_completion: at least one form submission
"""

import logging
from collections import Counter
from collections.abc import Callable, Iterable, Sequence

from clickpulse.core.deadline import Deadline, check_deadline
from clickpulse.core.models import BehaviorPattern, EventType, PatternType, Session, TrackingEvent

logger = logging.getLogger(__name__)

Classifier = Callable[[Sequence[TrackingEvent]], BehaviorPattern | None]

# Thresholds
BUTTON_CLICK_THRESHOLD = 3
SCROLL_DEPTH_THRESHOLD = 50.0
DISTINCT_PAGES_THRESHOLD = 2

# Confidence caps
CLICK_CONFIDENCE_CAP = 90
CLICK_CONFIDENCE_PER_CLICK = 15
SCROLL_CONFIDENCE_CAP = 85
NAVIGATION_CONFIDENCE_CAP = 80
NAVIGATION_CONFIDENCE_PER_PAGE = 20
FORM_COMPLETION_CONFIDENCE = 95


class PatternRegistry:
    """Ordered, open set of named behavior classifiers."""

    def __init__(self) -> None:
        self._classifiers: dict[str, Classifier] = {}

    @property
    def names(self) -> list[str]:
        return list(self._classifiers)

    def register(self, name: str | None = None) -> Callable[[Classifier], Classifier]:
        """
        Decorator registering a classifier under ``name``.

        Args:
            name: Registry key. Defaults to the function name.

        Example:
            @registry.register("rage_click")
            def rage_click(events):
                ...
        """

        def decorator(fn: Classifier) -> Classifier:
            key = name or fn.__name__
            if key in self._classifiers:
                raise ValueError(f"Pattern classifier already registered: '{key}'")
            self._classifiers[key] = fn
            return fn

        return decorator

    def unregister(self, name: str) -> None:
        self._classifiers.pop(name, None)

    def copy(self) -> "PatternRegistry":
        clone = PatternRegistry()
        clone._classifiers = dict(self._classifiers)
        return clone

    def detect(self, events: Sequence[TrackingEvent]) -> list[BehaviorPattern]:
        """
        Run every classifier over the events.

        A classifier that raises is logged and skipped; the others still run.

        Returns:
            Patterns that fired, in registration order
        """
        patterns = []
        for name, classifier in self._classifiers.items():
            try:
                pattern = classifier(events)
            except Exception:
                logger.exception("Pattern classifier '%s' failed", name)
                continue
            if pattern is not None:
                patterns.append(pattern)
        return patterns


default_registry = PatternRegistry()
register_pattern = default_registry.register


# ==============================================================================
# Helpers
# ==============================================================================


def _of_type(events: Iterable[TrackingEvent], event_type: EventType) -> list[TrackingEvent]:
    return [e for e in events if e.event_type == event_type]


def _class_markers(classes) -> list[str]:
    if isinstance(classes, str):
        return classes.split()
    if isinstance(classes, (list, tuple)):
        return [str(c) for c in classes]
    return []


def is_button_click(event: TrackingEvent) -> bool:
    """Whether a click targeted a button-like element (tag, id or class marker)."""
    tag_name = event.metadata.get("tag_name")
    if isinstance(tag_name, str) and tag_name.upper() == "BUTTON":
        return True
    if event.element_id and "button" in event.element_id.lower():
        return True
    return "btn" in _class_markers(event.metadata.get("classes"))


def most_clicked_elements(clicks: Sequence[TrackingEvent], limit: int = 3) -> list[str]:
    counts = Counter(
        click.element_id or click.metadata.get("tag_name") or "unknown" for click in clicks
    )
    return [element for element, _ in counts.most_common(limit)]


def _scroll_depth(event: TrackingEvent) -> float:
    value = event.metadata.get("scroll_percentage", event.metadata.get("scroll_percent", 0))
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


# ==============================================================================
# Built-in Classifiers
# ==============================================================================


@register_pattern(PatternType.CLICK.value)
def click_pattern(events: Sequence[TrackingEvent]) -> BehaviorPattern | None:
    clicks = _of_type(events, EventType.CLICK)
    button_clicks = [c for c in clicks if is_button_click(c)]
    if len(button_clicks) <= BUTTON_CLICK_THRESHOLD:
        return None

    return BehaviorPattern(
        pattern_type=PatternType.CLICK,
        confidence=min(CLICK_CONFIDENCE_CAP, len(button_clicks) * CLICK_CONFIDENCE_PER_CLICK),
        description=(
            f"User shows preference for button interactions ({len(button_clicks)} button clicks)"
        ),
        metadata={
            "total_clicks": len(clicks),
            "button_clicks": len(button_clicks),
            "preferred_elements": most_clicked_elements(clicks),
        },
    )


@register_pattern(PatternType.SCROLL.value)
def scroll_pattern(events: Sequence[TrackingEvent]) -> BehaviorPattern | None:
    scrolls = _of_type(events, EventType.SCROLL)
    if not scrolls:
        return None

    avg_depth = sum(_scroll_depth(s) for s in scrolls) / len(scrolls)
    if avg_depth <= SCROLL_DEPTH_THRESHOLD:
        return None

    return BehaviorPattern(
        pattern_type=PatternType.SCROLL,
        confidence=round(min(SCROLL_CONFIDENCE_CAP, avg_depth), 2),
        description=f"User engages deeply with content (avg scroll depth: {round(avg_depth)}%)",
        metadata={
            "avg_scroll_depth": round(avg_depth),
            "total_scroll_events": len(scrolls),
        },
    )


@register_pattern(PatternType.NAVIGATION.value)
def navigation_pattern(events: Sequence[TrackingEvent]) -> BehaviorPattern | None:
    page_views = _of_type(events, EventType.PAGE_VIEW)
    # dict keeps first-visit order
    pages = list(dict.fromkeys(p.page_url for p in page_views))
    if len(pages) <= DISTINCT_PAGES_THRESHOLD:
        return None

    return BehaviorPattern(
        pattern_type=PatternType.NAVIGATION,
        confidence=min(NAVIGATION_CONFIDENCE_CAP, len(pages) * NAVIGATION_CONFIDENCE_PER_PAGE),
        description=f"User explores multiple pages ({len(pages)} unique pages visited)",
        metadata={
            "pages_visited": pages,
            "total_page_views": len(page_views),
        },
    )


@register_pattern(PatternType.FORM_COMPLETION.value)
def form_completion(events: Sequence[TrackingEvent]) -> BehaviorPattern | None:
    submissions = _of_type(events, EventType.FORM_SUBMIT)
    if not submissions:
        return None

    return BehaviorPattern(
        pattern_type=PatternType.FORM_COMPLETION,
        confidence=FORM_COMPLETION_CONFIDENCE,
        description=f"User completes forms ({len(submissions)} form submissions)",
        metadata={
            "forms_completed": len(submissions),
            "form_types": [f.element_id or "unknown" for f in submissions],
        },
    )


# ==============================================================================
# Entry Points
# ==============================================================================


def detect_patterns(
    events: Sequence[TrackingEvent],
    registry: PatternRegistry | None = None,
) -> list[BehaviorPattern]:
    """Run all registered classifiers over one event list."""
    return (registry or default_registry).detect(events)


def detect_session_patterns(
    sessions: Iterable[Session],
    registry: PatternRegistry | None = None,
    deadline: Deadline | None = None,
) -> dict[str, list[BehaviorPattern]]:
    """
    Run all registered classifiers per session.

    Returns:
        Dict mapping session_id to the patterns that fired (sessions with
        no pattern map to an empty list)
    """
    registry = registry or default_registry
    results = {}
    for session in sessions:
        check_deadline(deadline)
        results[session.session_id] = registry.detect(session.events)
    return results
