# ==============================================================================
# Tracking Agent
# ==============================================================================
"""
Client-side event capture, batching and delivery.

- page.py - host page model and DOM-like event dispatch
- session.py - session identity with inactivity expiry
- config.py - embed configuration resolution
- transport.py - HTTP and in-memory batch transports
- tracker.py - the TrackingAgent
"""

from clickpulse.agent.config import EmbedConfig, resolve_embed_config
from clickpulse.agent.page import DomEvent, Element, Page
from clickpulse.agent.session import SessionIdentity, SessionStorage, generate_session_id
from clickpulse.agent.tracker import TrackingAgent
from clickpulse.agent.transport import HttpTransport, RecordingTransport

__all__ = [
    "DomEvent",
    "Element",
    "EmbedConfig",
    "HttpTransport",
    "Page",
    "RecordingTransport",
    "SessionIdentity",
    "SessionStorage",
    "TrackingAgent",
    "generate_session_id",
    "resolve_embed_config",
]
