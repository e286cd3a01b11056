# ==============================================================================
# Ingestion Gate
# ==============================================================================
"""
Server-side boundary for tracking events.

- schemas.py - wire format models
- gate.py - validation, credential check, enrichment, atomic persistence
- api.py - FastAPI application
"""

from clickpulse.ingestion.gate import IngestionGate, RequestContext
from clickpulse.ingestion.schemas import IncomingEvent

__all__ = ["IncomingEvent", "IngestionGate", "RequestContext"]
