# ==============================================================================
# Config Commands
# ==============================================================================
"""
Configuration management commands for the clickpulse CLI.
"""

import json
from typing import Annotated

import typer

from clickpulse.cli.shared import (
    BOX_WIDTH,
    C,
    _box_bottom,
    _box_header,
    _box_line,
    _section_header,
)
from clickpulse.utils.config import get_settings


# ==============================================================================
# Commands
# ==============================================================================


def config_show(
    json_output: Annotated[
        bool, typer.Option("--json", "-j", help="Output configuration as JSON")
    ] = False,
) -> None:
    """Display current configuration (includes secrets in JSON mode)."""
    settings = get_settings()

    # JSON output mode
    if json_output:
        config = {
            "agent": settings.agent.model_dump(),
            "ingestion": {
                **settings.ingestion.model_dump(exclude={"static_credentials"}),
                "static_sites": sorted(set(settings.ingestion.credential_map.values())),
            },
            "postgresql": {
                "host": settings.postgres.host,
                "port": settings.postgres.port,
                "database": settings.postgres.database,
                "schema": settings.postgres.schema_name,
                "user": settings.postgres.user,
                "password": settings.postgres.password,
                "sslmode": settings.postgres.sslmode,
            },
            "valkey": {
                "host": settings.valkey.host,
                "port": settings.valkey.port,
                "db": settings.valkey.db,
                "ssl_enabled": settings.valkey.ssl,
                "registry_key": settings.valkey.registry_key,
            },
            "analytics": settings.analytics.model_dump(),
            "debug": settings.debug,
            "log_level": settings.log_level,
        }
        print(json.dumps(config, indent=2))
        return

    W = BOX_WIDTH

    def row(label: str, value) -> None:
        print(_box_line(f"  {label + ':':<26}{C.WHITE}{value}{C.RESET}", W))

    print()
    print(_box_header("CLICKPULSE CONFIGURATION", W))

    print(_section_header("Tracking Agent", W))
    row("Endpoint", settings.agent.endpoint)
    row("Batch size", settings.agent.batch_size)
    row("Batch timeout (s)", settings.agent.batch_timeout_seconds)
    row("Session timeout (min)", settings.agent.session_timeout_minutes)
    row("Max queue size", settings.agent.max_queue_size)

    print(_section_header("Ingestion", W))
    row("Listen", f"{settings.ingestion.host}:{settings.ingestion.port}{settings.ingestion.path}")
    row("Max batch size", settings.ingestion.max_batch_size)
    row("Event store", settings.ingestion.store_backend)
    row("Site registry", settings.ingestion.registry_backend)
    if settings.ingestion.registry_backend == "static":
        row("Static sites", len(settings.ingestion.credential_map))

    if settings.ingestion.store_backend == "postgresql":
        print(_section_header("PostgreSQL", W))
        row("Host", f"{settings.postgres.host}:{settings.postgres.port}")
        row("Database", settings.postgres.database)
        row("Schema", settings.postgres.schema_name)
        row("User", settings.postgres.user)

    if settings.ingestion.registry_backend == "valkey":
        print(_section_header("Valkey", W))
        row("Host", f"{settings.valkey.host}:{settings.valkey.port}")
        row("Registry key", settings.valkey.registry_key)

    print(_section_header("Analytics", W))
    row("Default window", settings.analytics.default_window)
    row("Timeout (s)", settings.analytics.timeout_seconds)
    row("Split on inactivity", settings.analytics.split_on_inactivity)

    print(_box_bottom(W))
    print()
