# ==============================================================================
# Base Abstract Classes
# ==============================================================================
"""
Abstract base classes defining the ports of the tracking core.

The event store and the credential registry are external collaborators;
the transport is the agent's only way out to the network. Concrete
adapters live in clickpulse.infrastructure and clickpulse.agent.transport.
"""

from clickpulse.base.repositories import EventStore, SiteRegistry
from clickpulse.base.transport import Transport

__all__ = [
    "EventStore",
    "SiteRegistry",
    "Transport",
]
