# ==============================================================================
# Repository Abstract Base Classes
# ==============================================================================
"""
Repository ABCs for the collaborators consumed by the tracking core.

These define the "what" (append a batch, query a window, resolve a
credential) not the "how". Concrete implementations in infrastructure/
handle the specifics.

Includes:
- EventStore: append-only, time/session-queryable event storage
- SiteRegistry: credential -> site lookup
"""

from abc import ABC, abstractmethod
from datetime import datetime

from clickpulse.core.models import TrackingEvent


class EventStore(ABC):
    """Append-only store for tracking events."""

    def connect(self) -> None:
        """Establish connection to the data store. No-op by default."""

    @abstractmethod
    def insert_batch(self, events: list[TrackingEvent]) -> int:
        """
        Persist a batch atomically.

        Either every event of the batch is stored or none is.

        Args:
            events: Events to append

        Returns:
            Count of events stored

        Raises:
            Any store-specific exception; nothing is persisted in that case
        """
        ...

    @abstractmethod
    def query(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        site_id: str | None = None,
        session_id: str | None = None,
        customer_id: str | None = None,
    ) -> list[TrackingEvent]:
        """
        Read events in a time range, optionally filtered.

        Args:
            start: Inclusive lower bound on timestamp (None = unbounded)
            end: Exclusive upper bound on timestamp (None = unbounded)
            site_id: Only events of this site
            session_id: Only events of this session
            customer_id: Only events of this authenticated customer

        Returns:
            Matching events ordered by timestamp
        """
        ...

    def close(self) -> None:
        """Close connection and release resources. No-op by default."""


class SiteRegistry(ABC):
    """Lookup of tracked sites by their embed credential."""

    @abstractmethod
    def resolve(self, credential: str) -> str | None:
        """
        Resolve a site credential.

        Args:
            credential: Credential sent by the tracking agent

        Returns:
            Site identifier, or None if the credential is unknown
        """
        ...
