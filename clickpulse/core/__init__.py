# ==============================================================================
# Core Domain Logic
# ==============================================================================
"""
Pure domain logic with no external dependencies.

This module contains:
- Domain models (TrackingEvent, Session, MetricsSnapshot, ...)
- Session reconstruction (partitioning, deduplication, device detection)
- Metrics engine (engagement, bounce, conversion, funnel, drop-off)
- Behavior pattern heuristics (pluggable classifier registry)

All code here is framework-agnostic and easily unit-testable.
"""

from clickpulse.core.deadline import Deadline
from clickpulse.core.metrics import MetricsEngine, conversion_funnel, page_drop_off
from clickpulse.core.models import (
    BehaviorPattern,
    EventType,
    FunnelStageResult,
    MetricsSnapshot,
    PageDropOff,
    PatternType,
    Session,
    TrackingEvent,
)
from clickpulse.core.patterns import PatternRegistry, detect_patterns, register_pattern
from clickpulse.core.sessions import SessionReconstructor, deduplicate

__all__ = [
    "BehaviorPattern",
    "Deadline",
    "EventType",
    "FunnelStageResult",
    "MetricsEngine",
    "MetricsSnapshot",
    "PageDropOff",
    "PatternRegistry",
    "PatternType",
    "Session",
    "SessionReconstructor",
    "TrackingEvent",
    "conversion_funnel",
    "deduplicate",
    "detect_patterns",
    "page_drop_off",
    "register_pattern",
]
