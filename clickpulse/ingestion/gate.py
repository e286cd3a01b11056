# ==============================================================================
# Ingestion Gate
# ==============================================================================
"""
Validation, credential check, enrichment and persistence of event batches.

The gate is stateless per call: it validates the whole batch before anything
is written, so a batch is either stored in full or rejected in full.

Steps for one batch:
1. Schema validation (IncomingEvent), collecting field-level errors
2. Credential resolution through the SiteRegistry
3. Request enrichment (user agent, referrer, client address, received_at)
4. Atomic insert through the EventStore
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError

from clickpulse.base.repositories import EventStore, SiteRegistry
from clickpulse.core.models import TrackingEvent
from clickpulse.errors import CredentialFailure, StorageFailure, ValidationFailure
from clickpulse.ingestion.schemas import IncomingEvent
from clickpulse.utils.config import IngestionSettings

logger = logging.getLogger(__name__)

# Metadata keys owned by the gate; payload values are overwritten
ENRICHED_KEYS = ("user_agent", "referrer", "ip_address", "received_at", "site_id")

# Characters of a credential that may appear in logs
CREDENTIAL_LOG_PREFIX = 4


@dataclass(frozen=True)
class RequestContext:
    """Request-derived values attached to every event of a batch."""

    user_agent: str | None = None
    referrer: str | None = None
    ip_address: str | None = None

    @classmethod
    def from_headers(cls, headers, client_host: str | None = None) -> "RequestContext":
        """
        Build a context from request headers.

        The first hop of X-Forwarded-For wins over the socket address.

        Args:
            headers: Case-insensitive header mapping
            client_host: Address of the connecting peer
        """
        forwarded = headers.get("x-forwarded-for")
        if forwarded:
            client_host = forwarded.split(",")[0].strip() or client_host
        return cls(
            user_agent=headers.get("user-agent"),
            referrer=headers.get("referer"),
            ip_address=client_host,
        )


def _credential_prefix(credential: str) -> str:
    return f"{credential[:CREDENTIAL_LOG_PREFIX]}..."


def _field_path(index: int, loc: tuple) -> str:
    return ".".join(["events", str(index), *(str(part) for part in loc)])


class IngestionGate:
    """
    Accepts event batches from the tracking agent.

    Args:
        store: Event store receiving accepted batches
        registry: Credential registry
        settings: Ingestion settings (batch bounds, credential length)
        clock: Returns the current UTC time; used for received_at
    """

    def __init__(
        self,
        store: EventStore,
        registry: SiteRegistry,
        settings: IngestionSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.registry = registry
        self.settings = settings or IngestionSettings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def validate(self, payload: Any) -> list[IncomingEvent]:
        """
        Validate a raw request body.

        Every event is checked before the batch is rejected, so the caller
        sees all field errors at once.

        Raises:
            ValidationFailure: With {"events.<i>.<field>": message} details
            CredentialFailure: If an otherwise valid event has no credential
        """
        if not isinstance(payload, dict) or not isinstance(payload.get("events"), list):
            raise ValidationFailure(details={"events": "must be a list of events"})

        raw_events = payload["events"]
        if not raw_events:
            raise ValidationFailure(details={"events": "must contain at least one event"})
        if len(raw_events) > self.settings.max_batch_size:
            raise ValidationFailure(
                details={
                    "events": f"must contain at most {self.settings.max_batch_size} events"
                }
            )

        details: dict[str, str] = {}
        incoming: list[IncomingEvent] = []
        missing_credential: list[int] = []
        for index, raw in enumerate(raw_events):
            if not isinstance(raw, dict):
                details[f"events.{index}"] = "must be an object"
                continue
            try:
                event = IncomingEvent.model_validate(raw)
            except ValidationError as e:
                for error in e.errors():
                    details[_field_path(index, error["loc"])] = error["msg"]
                continue

            if event.site_credential is None or event.site_credential == "":
                missing_credential.append(index)
            elif len(event.site_credential) < self.settings.min_credential_length:
                details[_field_path(index, ("site_credential",))] = (
                    f"must be at least {self.settings.min_credential_length} characters"
                )
            incoming.append(event)

        if details:
            raise ValidationFailure(details=details)
        if missing_credential:
            raise CredentialFailure(
                details={
                    _field_path(index, ("site_credential",)): "missing site credential"
                    for index in missing_credential
                }
            )
        return incoming

    def authorize(self, events: list[IncomingEvent]) -> dict[str, str]:
        """
        Resolve every distinct credential of the batch.

        Returns:
            Mapping credential -> site_id

        Raises:
            CredentialFailure: If any credential is unknown
        """
        sites = {}
        unknown = []
        for credential in dict.fromkeys(e.site_credential for e in events):
            site_id = self.registry.resolve(credential)
            if site_id is None:
                unknown.append(credential)
            else:
                sites[credential] = site_id

        if unknown:
            logger.warning(
                "Unknown site credentials in batch: %s",
                ", ".join(_credential_prefix(c) for c in unknown),
            )
            details = {
                _field_path(index, ("site_credential",)): "unknown site credential"
                for index, event in enumerate(events)
                if event.site_credential in unknown
            }
            raise CredentialFailure(details=details)
        return sites

    def enrich(
        self,
        events: list[IncomingEvent],
        sites: dict[str, str],
        context: RequestContext,
    ) -> list[TrackingEvent]:
        """Build stored events with request-derived metadata attached."""
        received_at = self._clock().isoformat()
        enriched = []
        for event in events:
            metadata = event.metadata
            metadata.update(
                {
                    "user_agent": context.user_agent,
                    "referrer": context.referrer,
                    "ip_address": context.ip_address,
                    "received_at": received_at,
                    "site_id": sites[event.site_credential],
                }
            )
            enriched.append(
                TrackingEvent(
                    event_type=event.event_type,
                    session_id=event.session_id,
                    page_url=event.page_url,
                    timestamp=event.timestamp,
                    site_credential=event.site_credential,
                    element_id=event.element_id,
                    customer_id=event.customer_id,
                    event_id=event.event_id,
                    metadata=metadata,
                )
            )
        return enriched

    def ingest(self, payload: Any, context: RequestContext | None = None) -> int:
        """
        Validate, authorize, enrich and store one batch.

        Args:
            payload: Decoded JSON request body
            context: Request-derived values (empty if None)

        Returns:
            Number of events stored

        Raises:
            ValidationFailure: Schema violation; nothing stored
            CredentialFailure: Missing or unknown credential; nothing stored
            StorageFailure: Store error; nothing stored
        """
        context = context or RequestContext()
        try:
            incoming = self.validate(payload)
            sites = self.authorize(incoming)
        except (ValidationFailure, CredentialFailure) as e:
            logger.warning("Rejected batch: %s %s", e.message, e.details)
            raise

        events = self.enrich(incoming, sites, context)
        try:
            count = self.store.insert_batch(events)
        except Exception as e:
            logger.error("Event store rejected batch of %d events: %s", len(events), e)
            raise StorageFailure() from e

        logger.info(
            "Accepted batch: %d events from %d sessions (sites: %s)",
            count,
            len({e.session_id for e in events}),
            ", ".join(sorted(set(sites.values()))),
        )
        return count
