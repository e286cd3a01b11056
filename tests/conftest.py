# ==============================================================================
# Shared Test Fixtures
# ==============================================================================
"""
Pytest fixtures shared across all test modules.

Provides:
- An event factory with a fixed base time
- In-memory event store and static site registry
- An IngestionGate wired to both
- A clean fakeredis instance for Valkey registry tests
"""

from datetime import datetime, timedelta, timezone

import fakeredis
import pytest

from clickpulse.core.models import TrackingEvent
from clickpulse.infrastructure.memory import InMemoryEventStore, StaticSiteRegistry
from clickpulse.ingestion.gate import IngestionGate
from clickpulse.utils.config import IngestionSettings

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
SITE_CREDENTIAL = "site-key-123"
SITE_ID = "shop"


@pytest.fixture()
def base_time():
    return BASE_TIME


@pytest.fixture()
def make_event():
    """Factory for TrackingEvents offset in seconds from BASE_TIME."""

    def _make(
        event_type="page_view",
        session_id="s1",
        page_url="https://shop.example.com/home",
        offset=0,
        **kwargs,
    ) -> TrackingEvent:
        kwargs.setdefault("site_credential", SITE_CREDENTIAL)
        return TrackingEvent(
            event_type=event_type,
            session_id=session_id,
            page_url=page_url,
            timestamp=BASE_TIME + timedelta(seconds=offset),
            **kwargs,
        )

    return _make


@pytest.fixture()
def wire_event():
    """Factory for raw wire-format event dicts as the agent sends them."""

    def _make(**overrides) -> dict:
        event = {
            "event_type": "page_view",
            "session_id": "sess_1714564800000_abc123xyz",
            "page_url": "https://shop.example.com/home",
            "timestamp": "2024-05-01T12:00:00Z",
            "site_credential": SITE_CREDENTIAL,
        }
        event.update(overrides)
        return event

    return _make


@pytest.fixture()
def store():
    return InMemoryEventStore()


@pytest.fixture()
def registry():
    return StaticSiteRegistry({SITE_CREDENTIAL: SITE_ID})


@pytest.fixture()
def gate(store, registry):
    """An IngestionGate with a frozen received_at clock."""
    return IngestionGate(
        store,
        registry,
        IngestionSettings(),
        clock=lambda: BASE_TIME + timedelta(minutes=5),
    )


@pytest.fixture()
def fake_redis():
    """A clean fakeredis instance for each test.

    Uses decode_responses=True to match the real Valkey client behavior.
    """
    server = fakeredis.FakeServer()
    client = fakeredis.FakeRedis(server=server, decode_responses=True)
    yield client
    client.flushall()
    client.close()
