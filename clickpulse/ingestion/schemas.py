# ==============================================================================
# Ingestion Wire Schemas
# ==============================================================================
"""
Pydantic models for the ingestion wire format.

    { "events": [ { event_type, session_id, page_url, timestamp,
                    site_credential, ...openMetadata } ] }

Only the required top-level fields are validated. Any other key is kept in
``model_extra`` and ends up in the event's metadata bag.
"""

from datetime import datetime
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from clickpulse.core.models import EventType


class IncomingEvent(BaseModel):
    """A single event as sent by the tracking agent."""

    model_config = ConfigDict(extra="allow")

    event_type: EventType
    session_id: str = Field(..., min_length=1)
    page_url: str
    timestamp: datetime
    # Older tracker builds send the credential as "api_key"
    site_credential: str | None = Field(
        None, validation_alias=AliasChoices("site_credential", "api_key")
    )
    element_id: str | None = None
    customer_id: str | None = None
    event_id: str | None = None

    @field_validator("page_url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("must be an absolute http(s) URL")
        return value

    @field_validator("timestamp", mode="before")
    @classmethod
    def _check_iso_timestamp(cls, value):
        if not isinstance(value, str):
            raise ValueError("must be an ISO-8601 string")
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError("must be an ISO-8601 string") from None

    @property
    def metadata(self) -> dict:
        """Unknown extra fields, in the order they were sent."""
        return dict(self.model_extra or {})
