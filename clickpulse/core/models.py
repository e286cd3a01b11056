# ==============================================================================
# Tracking Domain Models
# ==============================================================================
"""
Pydantic models for tracking events and the analytics derived from them.

These models are used for:
- Validating events handed over by the ingestion gate
- Serializing events for the agent wire format and the event store
- Carrying reconstructed sessions and computed metrics

This module is part of the core domain layer and has no external dependencies
beyond Pydantic.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventType(str, Enum):
    """Event types emitted by the tracking agent."""

    PAGE_VIEW = "page_view"
    CLICK = "click"
    FORM_SUBMIT = "form_submit"
    SCROLL = "scroll"
    SESSION_START = "session_start"
    SESSION_END = "session_end"


class PatternType(str, Enum):
    """Behavior pattern families detected by the heuristics."""

    CLICK = "click_pattern"
    SCROLL = "scroll_pattern"
    NAVIGATION = "navigation_pattern"
    FORM_COMPLETION = "form_completion"


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TrackingEvent(BaseModel):
    """
    A single recorded interaction or lifecycle signal.

    Events are immutable once created. The metadata bag is open: only the
    top-level fields are validated, everything else travels untouched.

    Attributes:
        event_type: Kind of interaction (page_view, click, ...)
        session_id: Session correlation key
        page_url: URL of the page the event happened on
        timestamp: When the event happened (always UTC)
        site_credential: Credential of the tracked site
        element_id: Element the interaction targeted, if any
        customer_id: Authenticated identity, if the site provides one
        event_id: Client-generated unique id used for deduplication
        metadata: Free-form key/value data captured with the event
    """

    model_config = ConfigDict(frozen=True)

    event_type: EventType = Field(..., description="Event type")
    session_id: str = Field(..., min_length=1, description="Session identifier")
    page_url: str = Field(..., description="Page URL")
    timestamp: datetime = Field(..., description="Event time (UTC)")
    site_credential: str = Field(..., description="Site credential")
    element_id: str | None = Field(None, description="Target element identifier")
    customer_id: str | None = Field(None, description="Authenticated customer identifier")
    event_id: str | None = Field(None, description="Client-generated event id")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Open metadata bag")

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def to_wire(self) -> dict:
        """Serialize for the ingestion wire format (metadata flattened)."""
        payload = dict(self.metadata)
        payload.update(
            {
                "event_type": self.event_type.value,
                "session_id": self.session_id,
                "page_url": self.page_url,
                "timestamp": self.timestamp.isoformat(),
                "site_credential": self.site_credential,
            }
        )
        for key in ("element_id", "customer_id", "event_id"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload

    def to_record(self) -> dict:
        """Serialize for the event store (metadata kept nested)."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "session_id": self.session_id,
            "page_url": self.page_url,
            "timestamp": self.timestamp,
            "site_credential": self.site_credential,
            "element_id": self.element_id,
            "customer_id": self.customer_id,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_record(cls, data: dict) -> "TrackingEvent":
        """Deserialize an event store record."""
        return cls(
            event_type=data["event_type"],
            session_id=data["session_id"],
            page_url=data["page_url"],
            timestamp=data["timestamp"],
            site_credential=data["site_credential"],
            element_id=data.get("element_id"),
            customer_id=data.get("customer_id"),
            event_id=data.get("event_id"),
            metadata=data.get("metadata") or {},
        )


class Session(BaseModel):
    """
    A session reconstructed from events sharing a session id.

    Sessions are derived on every analytics query and are never stored.

    Attributes:
        session_id: Session correlation key
        start: Earliest event timestamp
        end: Latest event timestamp
        page_view_count: Number of page_view events (may be 0)
        device_type: Device class from the earliest event, or "unknown"
        events: Events of the session ordered by timestamp
    """

    session_id: str = Field(..., description="Session identifier")
    start: datetime = Field(..., description="Session start time")
    end: datetime = Field(..., description="Session end time")
    page_view_count: int = Field(0, ge=0, description="Page views in session")
    device_type: str = Field("unknown", description="Device type")
    events: list[TrackingEvent] = Field(default_factory=list, description="Events in session")

    @property
    def duration_seconds(self) -> float:
        """Session duration in seconds (0 for single-event sessions)."""
        return (self.end - self.start).total_seconds()

    @property
    def event_count(self) -> int:
        """Total number of events in session."""
        return len(self.events)

    @property
    def customer_id(self) -> str | None:
        """First authenticated identity seen in the session, if any."""
        for event in self.events:
            if event.customer_id:
                return event.customer_id
        return None

    def count(self, event_type: EventType) -> int:
        """Number of events of the given type in session."""
        return sum(1 for e in self.events if e.event_type == event_type)


class MetricsSnapshot(BaseModel):
    """Engagement metrics for a time window and optional filter."""

    engagement_score: float = 0
    bounce_rate: float = 0.0
    conversion_rate: float = 0.0
    avg_session_duration: float = 0
    pages_per_session: float = 0.0
    return_visitor_rate: float = 0.0
    return_visitor_rate_available: bool = False
    total_sessions: int = 0
    total_events: int = 0

    @classmethod
    def neutral(cls) -> "MetricsSnapshot":
        """Zeroed snapshot returned when nothing can be computed."""
        return cls()


class BehaviorPattern(BaseModel):
    """A heuristically detected interaction style."""

    pattern_type: PatternType
    confidence: float = Field(..., ge=0, le=100)
    description: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class FunnelStageResult(BaseModel):
    """Visitor counts and rates for one funnel stage."""

    stage: str
    visitor_count: int = Field(..., ge=0)
    conversion_rate: float
    drop_off_rate: float


class PageDropOff(BaseModel):
    """Volume-ranked page with its drop-off relative to the previous page."""

    page_url: str
    views: int = Field(..., ge=0)
    drop_off_rate: float | None = None
