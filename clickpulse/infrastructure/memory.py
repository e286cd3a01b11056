# ==============================================================================
# In-Memory Adapters
# ==============================================================================
"""
Process-local implementations of the collaborator ports.

Provides:
- InMemoryEventStore: lock-guarded append-only list with atomic batch insert
- StaticSiteRegistry: credential -> site mapping from configuration

Used by the ingestion API in development mode, by the CLI when reading
JSON-lines files, and throughout the test suite.
"""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path

from clickpulse.base.repositories import EventStore, SiteRegistry
from clickpulse.core.models import TrackingEvent

logger = logging.getLogger(__name__)


class InMemoryEventStore(EventStore):
    """
    In-memory EventStore.

    A batch is appended with a single list extend under a lock, so readers
    either see the whole batch or none of it. Setting ``fail_next_insert``
    makes the next insert raise without persisting anything.
    """

    def __init__(self, events: list[TrackingEvent] | None = None):
        self._events: list[TrackingEvent] = list(events or [])
        self._lock = threading.Lock()
        self.fail_next_insert: Exception | None = None

    def __len__(self) -> int:
        return len(self._events)

    def insert_batch(self, events: list[TrackingEvent]) -> int:
        batch = list(events)
        if not all(isinstance(e, TrackingEvent) for e in batch):
            raise TypeError("insert_batch expects TrackingEvent instances")

        with self._lock:
            if self.fail_next_insert is not None:
                error, self.fail_next_insert = self.fail_next_insert, None
                raise error
            self._events.extend(batch)

        logger.debug("Inserted %d events", len(batch))
        return len(batch)

    def query(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        site_id: str | None = None,
        session_id: str | None = None,
        customer_id: str | None = None,
    ) -> list[TrackingEvent]:
        with self._lock:
            snapshot = list(self._events)

        matches = [
            e
            for e in snapshot
            if (start is None or e.timestamp >= start)
            and (end is None or e.timestamp < end)
            and (site_id is None or e.metadata.get("site_id") == site_id)
            and (session_id is None or e.session_id == session_id)
            and (customer_id is None or e.customer_id == customer_id)
        ]
        matches.sort(key=lambda e: e.timestamp)
        return matches

    def all(self) -> list[TrackingEvent]:
        with self._lock:
            return list(self._events)

    @classmethod
    def from_jsonl(cls, path: Path) -> "InMemoryEventStore":
        """
        Load a store from a JSON-lines file of event records.

        Each line is a record as produced by TrackingEvent.to_record(),
        with the timestamp as an ISO-8601 string. Blank lines are skipped.
        """
        events = []
        with open(path, encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(TrackingEvent.from_record(json.loads(line)))
                except (ValueError, KeyError) as e:
                    raise ValueError(f"{path}:{line_number}: invalid event record: {e}") from e
        return cls(events)


class StaticSiteRegistry(SiteRegistry):
    """SiteRegistry backed by a fixed credential -> site_id mapping."""

    def __init__(self, credentials: dict[str, str] | None = None):
        self._credentials = dict(credentials or {})

    def register(self, credential: str, site_id: str) -> None:
        self._credentials[credential] = site_id

    def resolve(self, credential: str) -> str | None:
        return self._credentials.get(credential)
