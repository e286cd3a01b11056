# ==============================================================================
# Base Transport Abstract Class
# ==============================================================================
"""
Base class for batch transports.

A transport delivers one ordered batch of events to the ingestion boundary.
It carries no business logic: batching, retry and ordering are owned by the
tracking agent.
"""

from abc import ABC, abstractmethod


class Transport(ABC):
    """Base class for batch transports."""

    @abstractmethod
    def send(self, events: list[dict]) -> None:
        """
        Deliver a batch of wire-format events.

        Called from a worker thread, so implementations may block.

        Args:
            events: Events serialized with TrackingEvent.to_wire()

        Raises:
            ClientDeliveryError: If the batch was not accepted
        """
        ...

    def close(self) -> None:
        """
        Release transport resources.

        Called when the agent stops. No-op by default.
        """
