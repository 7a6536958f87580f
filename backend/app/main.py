"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import api_router
from app.config import get_settings
from app.core.logging import setup_logging
from app.core.telemetry import setup_telemetry
from app.services.dashboard import build_aggregator, initialize_dashboard

logger = logging.getLogger(__name__)

settings = get_settings()
app = FastAPI(title=settings.app_name, version="0.1.0")
setup_logging(settings.log_level)
setup_telemetry(app, settings)

# Allow the local portal frontend (Vite dev server and preview) to call the API
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:4173",
    "http://localhost",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["traceparent", "tracestate", "x-request-id"],
)


@app.on_event("startup")
async def startup() -> None:
    """Build the aggregator and load the dashboard once when the service boots."""

    logger.info("Starting with settings: %s", settings.dict_for_logging())
    app.state.dashboard = build_aggregator(settings)
    await initialize_dashboard(app.state.dashboard, settings)


@app.on_event("shutdown")
async def shutdown() -> None:
    aggregator = getattr(app.state, "dashboard", None)
    if aggregator is None:
        return
    await aggregator.aclose()
    source = aggregator.source
    if hasattr(source, "aclose"):
        await source.aclose()


@app.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    """Return service readiness metadata."""

    return {
        "status": "ok",
        "timestamp": datetime.now().isoformat(),
    }


def configure_app() -> FastAPI:
    """Attach routes."""

    app.include_router(api_router)
    return app


configure_app()

__all__ = ["app", "configure_app"]
