# ==============================================================================
# Adapter Factory
# ==============================================================================
"""
Factory functions for the configured event store and site registry.

The backends are selected by the INGESTION_STORE_BACKEND and
INGESTION_REGISTRY_BACKEND environment variables.
"""

from clickpulse.base.repositories import EventStore, SiteRegistry
from clickpulse.utils.config import Settings, get_settings


def get_event_store(settings: Settings | None = None) -> EventStore:
    """
    Get the event store based on INGESTION_STORE_BACKEND.

    - "memory" (default): process-local InMemoryEventStore
    - "postgresql": PostgreSQLEventStore

    Raises:
        ValueError: If an unknown backend is configured
    """
    settings = settings or get_settings()
    backend = settings.ingestion.store_backend

    match backend:
        case "memory":
            from clickpulse.infrastructure.memory import InMemoryEventStore

            return InMemoryEventStore()
        case "postgresql":
            from clickpulse.infrastructure.repositories import PostgreSQLEventStore

            return PostgreSQLEventStore(settings)
        case _:
            raise ValueError(
                f"Unknown event store backend: '{backend}'.\nValid options are: memory, postgresql"
            )


def get_site_registry(settings: Settings | None = None) -> SiteRegistry:
    """
    Get the credential registry based on INGESTION_REGISTRY_BACKEND.

    - "static" (default): credentials from INGESTION_STATIC_CREDENTIALS
    - "valkey": ValkeySiteRegistry
    - "postgresql": PostgreSQLSiteRegistry (sites table)

    Raises:
        ValueError: If an unknown backend is configured
    """
    settings = settings or get_settings()
    backend = settings.ingestion.registry_backend

    match backend:
        case "static":
            from clickpulse.infrastructure.memory import StaticSiteRegistry

            return StaticSiteRegistry(settings.ingestion.credential_map)
        case "valkey":
            from clickpulse.infrastructure.valkey import ValkeySiteRegistry, get_valkey_client

            return ValkeySiteRegistry(
                get_valkey_client(settings.valkey.url), key=settings.valkey.registry_key
            )
        case "postgresql":
            from clickpulse.infrastructure.repositories import PostgreSQLSiteRegistry

            return PostgreSQLSiteRegistry(settings)
        case _:
            raise ValueError(
                f"Unknown site registry backend: '{backend}'.\nValid options are: static, valkey, postgresql"
            )
