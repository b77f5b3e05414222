"""
ScreenWatch Main Application
============================

FastAPI entry point for the screen monitor.

The frame pipeline and the sync jobs live in a ScreenMonitor created in the
application lifespan; the HTTP surface only reports on it.

Endpoints:
    GET  /                  - Service information
    GET  /health            - Liveness probe (is process alive?)
    GET  /ready             - Readiness probe (templates loaded + worker up?)
    GET  /metrics           - Gate, processor, matcher and sync counters
    POST /templates/reload  - Reload templates from the local directory
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from screenwatch.config import Settings, load_config, setup_logging
from screenwatch.monitor import ScreenMonitor


logger = logging.getLogger(__name__)


def _monitor(request: Request) -> Optional[ScreenMonitor]:
    return getattr(request.app.state, "monitor", None)


def create_app(
    settings: Optional[Settings] = None,
    monitor: Optional[ScreenMonitor] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Loaded settings (load_config() when omitted)
        monitor: Pre-built monitor, mainly for tests
        configure_logging: Install the logging handlers on startup
    """
    settings = settings or load_config(os.environ.get("SCREENWATCH_CONFIG"))

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan manager with graceful shutdown."""
        if configure_logging:
            setup_logging(settings)

        app.state.startup_time = time.time()
        app.state.monitor = monitor or ScreenMonitor(settings)
        await app.state.monitor.start()

        yield

        await app.state.monitor.shutdown()

    app = FastAPI(
        title="ScreenWatch",
        description="Screen frame monitor with multi-scale template matching",
        version=settings.app.version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.startup_time = time.time()

    @app.get("/")
    async def root() -> JSONResponse:
        """Service information endpoint."""
        return JSONResponse({
            "service": "ScreenWatch",
            "version": settings.app.version,
            "name": settings.app.name,
            "device_id": settings.app.device_id,
            "status": "running",
        })

    @app.get("/health")
    async def health() -> JSONResponse:
        """
        Liveness probe - is the process alive?

        Always returns 200 if the service is running.
        """
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": round(time.time() - app.state.startup_time, 1),
        })

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        """
        Readiness probe.

        Returns 200 once templates are loaded and the frame worker accepts
        frames, 503 otherwise.
        """
        monitor_ = _monitor(request)
        templates_loaded = bool(monitor_ and not monitor_.store.is_empty)
        worker_alive = bool(monitor_ and monitor_.processor.accepting and monitor_.gate.running)

        body = {
            "templates_loaded": templates_loaded,
            "template_count": len(monitor_.store.snapshot()) if monitor_ else 0,
            "worker_alive": worker_alive,
            "webdav_bound": bool(monitor_ and monitor_.sync.client is not None),
        }
        if templates_loaded and worker_alive:
            return JSONResponse({"status": "ready", **body})
        return JSONResponse({"status": "not_ready", **body}, status_code=503)

    @app.get("/metrics")
    async def metrics(request: Request) -> JSONResponse:
        """Detailed metrics for observability."""
        monitor_ = _monitor(request)
        if monitor_ is None:
            return JSONResponse({"error": "Monitor not started"}, status_code=503)
        return JSONResponse({
            **monitor_.metrics(),
            "live_config": monitor_.live_config.model_dump(),
        })

    @app.post("/templates/reload")
    async def reload_templates(request: Request) -> JSONResponse:
        """Reload templates from the local template directory."""
        monitor_ = _monitor(request)
        if monitor_ is None:
            return JSONResponse({"error": "Monitor not started"}, status_code=503)
        template_set = await asyncio.to_thread(monitor_.store.reload)
        return JSONResponse({
            "version": template_set.version,
            "templates": list(template_set.names),
        })

    return app


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    _settings: Settings = app.state.settings
    port = int(os.environ.get("PORT", _settings.server.port))

    uvicorn.run(
        "screenwatch.main:app",
        host=_settings.server.host,
        port=port,
        reload=False,
    )
