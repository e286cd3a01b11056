# ==============================================================================
# Database Repository Adapters
# ==============================================================================
"""
Database adapters implementing the repository interfaces from base/repositories.py.

Currently supported:
- PostgreSQL (postgresql.py)
"""

from clickpulse.infrastructure.repositories.postgresql import (
    PostgreSQLEventStore,
    PostgreSQLSiteRegistry,
)

__all__ = [
    "PostgreSQLEventStore",
    "PostgreSQLSiteRegistry",
]
