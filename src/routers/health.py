"""Health check endpoint — public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from src.config import get_settings

router = APIRouter(tags=["system"])
logger = logging.getLogger("ringpulse.health")


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Reports "degraded" while the refresh engine is not running or the
    most recent cycle failed.
    """
    settings = get_settings()
    orchestrator = getattr(request.app.state, "orchestrator", None)

    engine_ok = orchestrator is not None
    last_error = None
    last_fetch_time = None
    if orchestrator is not None:
        snapshot = orchestrator.snapshot
        if snapshot.last_error is not None:
            last_error = str(snapshot.last_error)
        if snapshot.last_fetch_time is not None:
            last_fetch_time = snapshot.last_fetch_time.isoformat()

    return {
        "status": "healthy" if engine_ok and last_error is None else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "refresh_engine": "running" if engine_ok else "stopped",
        "has_token": await orchestrator.has_token() if engine_ok else False,
        "last_error": last_error,
        "last_fetch_time": last_fetch_time,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
