# ==============================================================================
# Error Taxonomy
# ==============================================================================
"""
Exception classes shared across the tracking pipeline.

- ClientDeliveryError: network/5xx while the agent flushes a batch
- MissingCredentialError: embed configuration without a site credential
- ValidationFailure: malformed batch, rejected as a whole
- CredentialFailure: unknown or missing site credential
- StorageFailure: event store unavailable or insert failed
- ComputationFailure / ComputationCancelled: analytics aggregation errors
"""


class ClickpulseError(Exception):
    """Base class for all clickpulse errors."""


class ClientDeliveryError(ClickpulseError):
    """A batch could not be delivered to the ingestion endpoint."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MissingCredentialError(ClickpulseError):
    """No site credential was found in the embed configuration."""


class IngestionError(ClickpulseError):
    """Base class for failures raised by the ingestion gate."""

    error_message = "Ingestion failed"

    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(message or self.error_message)
        self.message = message or self.error_message
        self.details = details or {}


class ValidationFailure(IngestionError):
    """The batch violated the wire schema; carries field-level detail."""

    error_message = "Invalid events data"


class CredentialFailure(IngestionError):
    """The batch referenced a missing or unknown site credential."""

    error_message = "Invalid site credential"


class StorageFailure(IngestionError):
    """The event store rejected or could not accept the batch."""

    error_message = "Failed to store events"


class ComputationFailure(ClickpulseError):
    """An analytics aggregation could not be completed."""


class ComputationCancelled(ComputationFailure):
    """An analytics aggregation exceeded its deadline or was cancelled."""
