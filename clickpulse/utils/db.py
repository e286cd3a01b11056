# ==============================================================================
# Database Utilities
# ==============================================================================
"""
Database utility functions for the PostgreSQL event store.

Provides schema initialization and site registration helpers.
Includes retry logic with exponential backoff for network resilience.
"""

import logging
from pathlib import Path

import psycopg2
from jinja2 import Template

from clickpulse.utils.config import Settings, get_settings
from clickpulse.utils.paths import get_init_sql_path
from clickpulse.utils.retry import POSTGRES_RETRY_EXCEPTIONS, retry_standard

logger = logging.getLogger(__name__)


def get_schema_file() -> Path | None:
    """Get the schema init.sql path, or None if not found."""
    path = get_init_sql_path()
    if path.exists():
        return path
    # Fallback to current directory
    cwd_path = Path.cwd() / "schema" / "init.sql"
    if cwd_path.exists():
        return cwd_path
    return None


def render_schema_sql(schema_name: str) -> str:
    """Render the schema SQL template with the given schema name."""
    schema_file = get_schema_file()
    if not schema_file:
        raise RuntimeError(
            "Schema file (schema/init.sql) not found. "
            "Make sure you're running from the project root."
        )

    template = Template(schema_file.read_text())
    return template.render(schema_name=schema_name)


@retry_standard(POSTGRES_RETRY_EXCEPTIONS, logger)
def ensure_schema(settings: Settings | None = None) -> None:
    """
    Create the event store schema if it does not exist.

    The rendered script only uses IF NOT EXISTS statements, so this is
    idempotent and safe to call on every server start.

    Retries on connection errors with exponential backoff (10 attempts, ~60 seconds).

    Raises:
        RuntimeError: If the schema file is missing
    """
    settings = settings or get_settings()
    schema_name = settings.postgres.schema_name
    schema_sql = render_schema_sql(schema_name)

    logger.info("Ensuring database schema '%s'...", schema_name)
    with psycopg2.connect(settings.postgres.connection_string, connect_timeout=5) as conn:
        with conn.cursor() as cur:
            cur.execute(schema_sql)
        conn.commit()
    logger.info("Database schema '%s' ready.", schema_name)


def register_site(credential: str, site_id: str, settings: Settings | None = None) -> None:
    """
    Insert or re-activate a site credential in the sites table.

    Args:
        credential: Embed credential handed to the site owner
        site_id: Identifier of the tracked site
    """
    settings = settings or get_settings()
    schema_name = settings.postgres.schema_name
    with psycopg2.connect(settings.postgres.connection_string, connect_timeout=5) as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO {schema_name}.sites (site_id, credential)
                VALUES (%s, %s)
                ON CONFLICT (site_id) DO UPDATE
                    SET credential = EXCLUDED.credential, active = TRUE
                """,
                (site_id, credential),
            )
        conn.commit()
    logger.info("Registered site '%s'", site_id)
