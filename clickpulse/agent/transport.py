# ==============================================================================
# Batch Transports
# ==============================================================================
"""
Transport implementations used by the tracking agent.

- HttpTransport: POSTs {"events": [...]} to the ingestion endpoint
- RecordingTransport: keeps batches in memory and can simulate failures

Neither retries: a failed batch is requeued by the agent.
"""

import logging

import requests

from clickpulse.base.transport import Transport
from clickpulse.errors import ClientDeliveryError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10  # seconds


class HttpTransport(Transport):
    """
    Deliver batches to the ingestion endpoint over HTTP.

    Args:
        endpoint: Ingestion URL (e.g. https://example.com/api/track)
        timeout: Per-request timeout in seconds
        session: requests session to reuse. If None, one is created.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self._session = session or requests.Session()

    def send(self, events: list[dict]) -> None:
        try:
            response = self._session.post(
                self.endpoint, json={"events": events}, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ClientDeliveryError(f"Could not reach {self.endpoint}: {e}") from e

        if not response.ok:
            raise ClientDeliveryError(
                f"Ingestion endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        logger.debug("Delivered %d events to %s", len(events), self.endpoint)

    def close(self) -> None:
        self._session.close()


class RecordingTransport(Transport):
    """
    In-memory transport recording every delivered batch.

    Attributes:
        batches: Delivered batches in delivery order
        attempts: Number of send() calls, including failed ones
    """

    def __init__(self):
        self.batches: list[list[dict]] = []
        self.attempts = 0
        self._failures_left = 0
        self._failure_status = 503

    def fail_next(self, count: int = 1, status_code: int = 503) -> None:
        """Make the next `count` sends raise ClientDeliveryError."""
        self._failures_left = count
        self._failure_status = status_code

    def send(self, events: list[dict]) -> None:
        self.attempts += 1
        if self._failures_left > 0:
            self._failures_left -= 1
            raise ClientDeliveryError(
                f"Simulated delivery failure (HTTP {self._failure_status})",
                status_code=self._failure_status,
            )
        self.batches.append(list(events))

    @property
    def events(self) -> list[dict]:
        """All delivered events, flattened in delivery order."""
        return [event for batch in self.batches for event in batch]
