"""RingPulse API — FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import Settings, get_settings
from src.dependencies import build_orchestrator
from src.refresh.orchestrator import RefreshOrchestrator
from src.routers import dashboard, health

OrchestratorFactory = Callable[[Settings], RefreshOrchestrator]

# ---------- Logging ----------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("ringpulse")


# ---------- App factory ----------

def create_app(orchestrator_factory: OrchestratorFactory = build_orchestrator) -> FastAPI:
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Startup / shutdown hooks."""
        logger.info(
            "Starting RingPulse API v%s [%s]",
            settings.app_version,
            settings.environment,
        )
        orchestrator = orchestrator_factory(settings)
        app.state.orchestrator = orchestrator
        await orchestrator.start()
        yield
        await orchestrator.stop()
        app.state.orchestrator = None
        logger.info("RingPulse API shut down")

    app = FastAPI(
        title="RingPulse API",
        description="Oura readiness, sleep and heart-rate dashboard with background refresh.",
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (outside the v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    app.include_router(dashboard.router, prefix="/api/v1")

    return app


app = create_app()
