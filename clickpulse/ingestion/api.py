# ==============================================================================
# Ingestion HTTP API
# ==============================================================================
"""
FastAPI application exposing the ingestion gate.

Routes:
- POST    /api/track  accept a batch ({success, count} / {error, details})
- OPTIONS /api/track  CORS preflight
- GET     /health     liveness probe

The tracker is embedded on arbitrary third-party origins, so every response
carries permissive CORS headers.
"""

import logging

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from clickpulse.errors import CredentialFailure, StorageFailure, ValidationFailure
from clickpulse.ingestion.gate import IngestionGate, RequestContext
from clickpulse.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def build_gate(settings: Settings | None = None) -> IngestionGate:
    """Build a gate from the configured store and registry backends."""
    from clickpulse.infrastructure import get_event_store, get_site_registry

    settings = settings or get_settings()
    store = get_event_store(settings)
    store.connect()
    return IngestionGate(store, get_site_registry(settings), settings.ingestion)


def create_app(gate: IngestionGate | None = None, settings: Settings | None = None) -> FastAPI:
    """
    Create the ingestion application.

    Args:
        gate: Gate to serve. If None, one is built from settings.
        settings: Application settings. If None, uses get_settings().

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    gate = gate or build_gate(settings)
    path = settings.ingestion.path

    app = FastAPI(title="clickpulse ingestion", version="0.1.0")
    app.state.gate = gate

    @app.middleware("http")
    async def add_cors_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.options(path)
    def preflight():
        return Response(status_code=200)

    @app.post(path)
    async def track(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            failure = ValidationFailure(details={"body": "must be valid JSON"})
            return JSONResponse(
                status_code=400, content={"error": failure.message, "details": failure.details}
            )

        context = RequestContext.from_headers(
            request.headers, request.client.host if request.client else None
        )
        try:
            count = await run_in_threadpool(app.state.gate.ingest, payload, context)
        except (ValidationFailure, CredentialFailure) as e:
            return JSONResponse(status_code=400, content={"error": e.message, "details": e.details})
        except StorageFailure as e:
            return JSONResponse(status_code=500, content={"error": e.message})
        except Exception:
            logger.exception("Unexpected error while ingesting batch")
            return JSONResponse(status_code=500, content={"error": "Internal server error"})

        return {"success": True, "count": count}

    @app.get("/health")
    def health():
        return {"ok": True, "service": "clickpulse-ingestion"}

    return app
