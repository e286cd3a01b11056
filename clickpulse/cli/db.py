# ==============================================================================
# Database Commands
# ==============================================================================
"""
PostgreSQL event store management commands.
"""

from typing import Annotated

import typer

from clickpulse.cli.shared import C, I
from clickpulse.utils.config import get_settings


def db_init() -> None:
    """Create the event store schema (idempotent)."""
    from clickpulse.utils.db import ensure_schema

    settings = get_settings()
    print(
        f"  Initializing schema '{C.WHITE}{settings.postgres.schema_name}{C.RESET}'...",
        end=" ",
        flush=True,
    )
    try:
        ensure_schema(settings)
    except Exception as e:
        print(f"{C.BRIGHT_RED}{I.CROSS} {e}{C.RESET}")
        raise typer.Exit(1)
    print(f"{C.BRIGHT_GREEN}{I.CHECK}{C.RESET}")


def db_add_site(
    credential: Annotated[str, typer.Argument(help="Embed credential handed to the site")],
    site_id: Annotated[str, typer.Argument(help="Identifier of the tracked site")],
) -> None:
    """Register a site credential in the configured registry.

    Writes to the sites table, or to the Valkey hash when
    INGESTION_REGISTRY_BACKEND=valkey.
    """
    settings = get_settings()
    if len(credential) < settings.ingestion.min_credential_length:
        print(
            f"{C.BRIGHT_RED}{I.CROSS} Credential must be at least "
            f"{settings.ingestion.min_credential_length} characters{C.RESET}"
        )
        raise typer.Exit(1)

    try:
        if settings.ingestion.registry_backend == "valkey":
            from clickpulse.infrastructure.valkey import ValkeySiteRegistry, get_valkey_client

            registry = ValkeySiteRegistry(
                get_valkey_client(settings.valkey.url), key=settings.valkey.registry_key
            )
            registry.register(credential, site_id)
            registry.close()
        else:
            from clickpulse.utils.db import register_site

            register_site(credential, site_id, settings)
    except Exception as e:
        print(f"{C.BRIGHT_RED}{I.CROSS} Failed to register site: {e}{C.RESET}")
        raise typer.Exit(1)

    print(f"  {C.BRIGHT_GREEN}{I.CHECK}{C.RESET} Registered site '{site_id}'")
