# ==============================================================================
# CLI Commands Module
# ==============================================================================
"""
CLI commands for clickpulse.

Commands are organized into separate modules for maintainability:
- shared.py: Common utilities, constants, and helpers
- serve.py: Ingestion API server
- simulate.py: Simulated visitor driving a TrackingAgent
- analytics.py: Metrics, patterns, funnel and drop-off reports
- config.py: Configuration display
- db.py: Event store schema and site registration
"""

from clickpulse.cli.shared import (
    BOX_WIDTH,
    B,
    C,
    I,
    configure_logging,
    get_analytics_service,
)

__all__ = [
    "BOX_WIDTH",
    "B",
    "C",
    "I",
    "configure_logging",
    "get_analytics_service",
]
