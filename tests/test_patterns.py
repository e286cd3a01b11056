# ==============================================================================
# Tests for Behavior Pattern Heuristics
# ==============================================================================
"""
Unit tests for the pattern classifiers and their registry.

Tests cover:
- Thresholds and confidence caps of each built-in classifier
- Button click detection by tag, id and class marker
- Legacy scroll depth key
- Registry isolation, duplicate names and failing classifiers
- Per-session detection
"""

import pytest

from clickpulse.core.models import BehaviorPattern, PatternType
from clickpulse.core.patterns import (
    PatternRegistry,
    click_pattern,
    default_registry,
    detect_patterns,
    detect_session_patterns,
    form_completion,
    is_button_click,
    navigation_pattern,
    scroll_pattern,
)
from clickpulse.core.sessions import SessionReconstructor


def _button_clicks(make_event, count, **kwargs):
    return [
        make_event("click", offset=n, metadata={"tag_name": "BUTTON"}, **kwargs)
        for n in range(count)
    ]


# ==============================================================================
# Built-in Classifiers
# ==============================================================================


class TestClickPattern:
    """Tests for click_pattern()."""

    def test_three_button_clicks_do_not_fire(self, make_event):
        assert click_pattern(_button_clicks(make_event, 3)) is None

    def test_confidence_scales_per_click(self, make_event):
        pattern = click_pattern(_button_clicks(make_event, 5))
        assert pattern.pattern_type == PatternType.CLICK
        assert pattern.confidence == 75
        assert pattern.metadata["button_clicks"] == 5

    def test_confidence_capped(self, make_event):
        assert click_pattern(_button_clicks(make_event, 10)).confidence == 90

    def test_non_button_clicks_ignored(self, make_event):
        clicks = [make_event("click", offset=n, metadata={"tag_name": "A"}) for n in range(6)]
        assert click_pattern(clicks) is None

    def test_preferred_elements(self, make_event):
        clicks = _button_clicks(make_event, 3, element_id="add-to-cart")
        clicks.append(make_event("click", element_id="buy-button"))
        pattern = click_pattern(clicks)
        assert pattern.metadata["preferred_elements"][0] == "add-to-cart"
        assert pattern.metadata["total_clicks"] == 4


class TestIsButtonClick:
    """Tests for is_button_click()."""

    def test_tag_name_case_insensitive(self, make_event):
        assert is_button_click(make_event("click", metadata={"tag_name": "button"}))

    def test_element_id_marker(self, make_event):
        assert is_button_click(make_event("click", element_id="Signup-Button"))

    def test_class_marker_string(self, make_event):
        assert is_button_click(make_event("click", metadata={"classes": "btn btn-primary"}))

    def test_class_marker_list(self, make_event):
        assert is_button_click(make_event("click", metadata={"classes": ["nav", "btn"]}))

    def test_btn_prefix_is_not_a_marker(self, make_event):
        assert not is_button_click(make_event("click", metadata={"classes": "btn-link"}))


class TestScrollPattern:
    """Tests for scroll_pattern()."""

    def test_deep_scrolling(self, make_event):
        scrolls = [
            make_event("scroll", metadata={"scroll_percentage": 60}),
            make_event("scroll", metadata={"scroll_percentage": 80}),
        ]
        pattern = scroll_pattern(scrolls)
        assert pattern.confidence == 70
        assert pattern.metadata == {"avg_scroll_depth": 70, "total_scroll_events": 2}

    def test_threshold_is_exclusive(self, make_event):
        assert scroll_pattern([make_event("scroll", metadata={"scroll_percentage": 50})]) is None

    def test_confidence_capped(self, make_event):
        pattern = scroll_pattern([make_event("scroll", metadata={"scroll_percentage": 100})])
        assert pattern.confidence == 85

    def test_legacy_key(self, make_event):
        pattern = scroll_pattern([make_event("scroll", metadata={"scroll_percent": 75})])
        assert pattern is not None
        assert pattern.metadata["avg_scroll_depth"] == 75

    def test_missing_depth_counts_as_zero(self, make_event):
        scrolls = [
            make_event("scroll", metadata={"scroll_percentage": 100}),
            make_event("scroll"),
        ]
        assert scroll_pattern(scrolls) is None

    def test_no_scrolls(self, make_event):
        assert scroll_pattern([make_event()]) is None


class TestNavigationPattern:
    """Tests for navigation_pattern()."""

    def test_needs_more_than_two_pages(self, make_event):
        views = [
            make_event(page_url="https://x.example/a"),
            make_event(page_url="https://x.example/b"),
            make_event(page_url="https://x.example/a"),
        ]
        assert navigation_pattern(views) is None

    def test_pages_in_first_visit_order(self, make_event):
        urls = ["https://x.example/c", "https://x.example/a", "https://x.example/c", "https://x.example/b"]
        pattern = navigation_pattern([make_event(page_url=u, offset=n) for n, u in enumerate(urls)])
        assert pattern.confidence == 60
        assert pattern.metadata["pages_visited"] == [
            "https://x.example/c",
            "https://x.example/a",
            "https://x.example/b",
        ]
        assert pattern.metadata["total_page_views"] == 4

    def test_confidence_capped(self, make_event):
        views = [make_event(page_url=f"https://x.example/{n}") for n in range(6)]
        assert navigation_pattern(views).confidence == 80


class TestFormCompletion:
    """Tests for form_completion()."""

    def test_single_submission_fires(self, make_event):
        pattern = form_completion([make_event("form_submit", element_id="signup")])
        assert pattern.confidence == 95
        assert pattern.metadata == {"forms_completed": 1, "form_types": ["signup"]}

    def test_unknown_form_type(self, make_event):
        pattern = form_completion([make_event("form_submit")])
        assert pattern.metadata["form_types"] == ["unknown"]

    def test_no_submissions(self, make_event):
        assert form_completion([make_event("click")]) is None


# ==============================================================================
# Registry
# ==============================================================================


class TestPatternRegistry:
    """Tests for PatternRegistry."""

    def test_default_registry_order(self):
        assert default_registry.names == [
            "click_pattern",
            "scroll_pattern",
            "navigation_pattern",
            "form_completion",
        ]

    def test_duplicate_name_rejected(self):
        registry = PatternRegistry()

        @registry.register("custom")
        def first(events):
            return None

        with pytest.raises(ValueError):

            @registry.register("custom")
            def second(events):
                return None

    def test_name_defaults_to_function_name(self):
        registry = PatternRegistry()

        @registry.register()
        def rage_click(events):
            return None

        assert registry.names == ["rage_click"]

    def test_failing_classifier_is_skipped(self, make_event):
        registry = default_registry.copy()

        @registry.register("broken")
        def broken(events):
            raise RuntimeError("boom")

        patterns = registry.detect([make_event("form_submit")])
        assert [p.pattern_type for p in patterns] == [PatternType.FORM_COMPLETION]

    def test_copy_is_isolated(self, make_event):
        registry = default_registry.copy()
        registry.unregister("form_completion")

        assert "form_completion" in default_registry.names
        assert detect_patterns([make_event("form_submit")], registry) == []

    def test_custom_classifier_runs(self, make_event):
        registry = PatternRegistry()

        @registry.register("always")
        def always(events):
            return BehaviorPattern(
                pattern_type=PatternType.NAVIGATION, confidence=10, description="always"
            )

        assert len(detect_patterns([make_event()], registry)) == 1


# ==============================================================================
# Per-session Detection
# ==============================================================================


class TestDetectSessionPatterns:
    """Tests for detect_session_patterns()."""

    def test_patterns_keyed_by_session(self, make_event):
        events = [
            make_event(session_id="quiet"),
            make_event("form_submit", session_id="buyer", element_id="checkout"),
        ]
        sessions = SessionReconstructor().reconstruct(events)
        results = detect_session_patterns(sessions)

        assert results["quiet"] == []
        assert [p.pattern_type for p in results["buyer"]] == [PatternType.FORM_COMPLETION]

    def test_window_and_session_detection_differ(self, make_event):
        """Clicks spread over two sessions only form a pattern at window level."""
        events = _button_clicks(make_event, 2, session_id="a") + _button_clicks(
            make_event, 2, session_id="b"
        )
        sessions = SessionReconstructor().reconstruct(events)

        assert detect_session_patterns(sessions) == {"a": [], "b": []}
        assert [p.pattern_type for p in detect_patterns(events)] == [PatternType.CLICK]
