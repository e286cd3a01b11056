# ==============================================================================
# Infrastructure Adapters
# ==============================================================================
"""
Adapters for external services (ports-and-adapters architecture).

This module contains concrete implementations of the collaborator ports:
- memory.py - in-process event store and static credential registry
- repositories/ - PostgreSQL event store and site registry
- valkey.py - Valkey credential registry
- factory.py - backend selection from settings
"""

from clickpulse.infrastructure.factory import get_event_store, get_site_registry
from clickpulse.infrastructure.memory import InMemoryEventStore, StaticSiteRegistry

__all__ = [
    "InMemoryEventStore",
    "StaticSiteRegistry",
    "get_event_store",
    "get_site_registry",
]
