# ==============================================================================
# Clickpulse Utilities
# ==============================================================================
"""
Shared utilities for clickpulse.

This module exports configuration and database helpers for use throughout
the project.
"""

from clickpulse.utils.config import (
    AgentSettings,
    AnalyticsSettings,
    IngestionSettings,
    PostgresSettings,
    Settings,
    ValkeySettings,
    get_settings,
)
from clickpulse.utils.db import (
    ensure_schema,
    register_site,
    render_schema_sql,
)

__all__ = [
    # Config
    "AgentSettings",
    "AnalyticsSettings",
    "IngestionSettings",
    "PostgresSettings",
    "Settings",
    "ValkeySettings",
    "get_settings",
    # Database
    "ensure_schema",
    "register_site",
    "render_schema_sql",
]
