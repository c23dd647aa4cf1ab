"""
FloodCast — FastAPI Application.

Run: uvicorn floodcast.main:app --host 0.0.0.0 --port 8010
     python -m floodcast.main   (API_HOST / API_PORT from settings)

Control surface:
  - /api/v1/monitoring/*  ← start / stop location monitoring
  - /api/v1/alerts/*      ← live alerts, settings, synthetic alerts
  - /api/v1/events/stream ← SSE stream of alert changes
  - /health               ← liveness probe
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from floodcast.config import settings
from floodcast.exceptions import FloodCastError
from floodcast.logging_config import configure_logging
from floodcast.middleware.error_handler import ErrorHandlerMiddleware, floodcast_error_handler
from floodcast.service import FloodAlertService, build_service

from floodcast.api.routers.alerts import router as alerts_router
from floodcast.api.routers.events import router as events_router
from floodcast.api.routers.monitoring import router as monitoring_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan — startup and shutdown."""
    configure_logging(settings.log_level, settings.log_format)
    logger.info("floodcast_starting", version=settings.app_version)
    if app.state.alert_service is None:
        app.state.alert_service = build_service(settings)
    yield
    await app.state.alert_service.close()
    logger.info("floodcast_shutdown")


def create_app(service: Optional[FloodAlertService] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description=(
            "# FloodCast — Location-based flood alerting\n\n"
            "Monitors locations against an external flood prediction model, "
            "classifies risk and urgency, and schedules tiered notifications.\n"
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_tags=[
            {"name": "health", "description": "Liveness probe"},
            {"name": "monitoring", "description": "Location monitoring sessions"},
            {"name": "alerts", "description": "Live alerts, settings, synthetic alerts"},
            {"name": "events", "description": "Server-Sent Events stream"},
        ],
    )
    app.state.alert_service = service

    # ── Middleware (last added = outermost) ───────────────────────────
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(FloodCastError, floodcast_error_handler)

    # ── Routes ────────────────────────────────────────────────────────
    app.include_router(monitoring_router)   # /api/v1/monitoring/*
    app.include_router(alerts_router)       # /api/v1/alerts/*
    app.include_router(events_router)       # /api/v1/events/stream

    @app.get("/health", tags=["health"])
    async def health():
        """Liveness probe. Does NOT check the prediction service."""
        service = app.state.alert_service
        return {
            "status": "ok",
            "version": settings.app_version,
            "environment": settings.environment,
            "service": "floodcast",
            "monitored_locations": len(service.sessions()) if service else 0,
            "active_alerts": len(service.list_active_alerts()) if service else 0,
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("floodcast.main:app", host=settings.api_host, port=settings.api_port)
