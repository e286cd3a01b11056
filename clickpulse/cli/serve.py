# ==============================================================================
# Serve Command
# ==============================================================================
"""
Run the ingestion API with uvicorn.
"""

from typing import Annotated, Optional

import typer

from clickpulse.cli.shared import C, I, configure_logging
from clickpulse.utils.config import get_settings


def serve(
    host: Annotated[Optional[str], typer.Option("--host", help="Bind address")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Port to listen on")] = None,
) -> None:
    """Start the ingestion API server.

    With the PostgreSQL event store the schema is created first if needed.

    Examples:
        clickpulse serve
        clickpulse serve --host 127.0.0.1 --port 9000
    """
    import uvicorn

    settings = get_settings()
    configure_logging()

    if settings.ingestion.store_backend == "postgresql":
        print("  Making sure PostgreSQL schema has been initialized...", end=" ", flush=True)
        try:
            from clickpulse.utils.db import ensure_schema

            ensure_schema(settings)
            print(f"{C.BRIGHT_GREEN}{I.CHECK}{C.RESET}")
        except Exception as e:
            print(f"{C.BRIGHT_RED}{I.CROSS} Failed to initialize schema: {e}{C.RESET}")
            raise typer.Exit(1)

    uvicorn.run(
        "clickpulse.ingestion.api:create_app",
        factory=True,
        host=host or settings.ingestion.host,
        port=port or settings.ingestion.port,
        log_level=settings.log_level.lower(),
    )
