"""Dashboard endpoints: snapshot read, refresh-now, preferences and credentials."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from src.dependencies import Orchestrator
from src.models.dashboard import (
    PreferencesRead,
    PreferencesUpdate,
    RefreshResult,
    SnapshotRead,
    TokenStatus,
    TokenUpdate,
)
from src.refresh.preferences import PreferencesValidationError, build_preferences
from src.services.secret_store import SecretStoreError

router = APIRouter(prefix="/dashboard", tags=["dashboard"])
logger = logging.getLogger("ringpulse.routers.dashboard")


# ---------- Snapshot ----------

@router.get("/snapshot", response_model=SnapshotRead)
async def get_snapshot(orchestrator: Orchestrator) -> Any:
    return SnapshotRead.from_snapshot(orchestrator.snapshot)


@router.post("/refresh", response_model=RefreshResult, status_code=202)
async def refresh_now(
    orchestrator: Orchestrator,
    wait: bool = Query(default=False, description="Return after the cycle completes"),
) -> Any:
    """Start a refresh cycle.

    Without ``wait`` a cycle already in flight absorbs the request.  With
    ``wait`` the in-flight cycle finishes first and a fresh one runs.
    """
    if wait:
        await orchestrator.wait_until_idle()
        started = not orchestrator.is_refreshing
        snapshot = await orchestrator.refresh()
    else:
        started = orchestrator.trigger_refresh() is not None
        snapshot = orchestrator.snapshot
    return RefreshResult(started=started, snapshot=SnapshotRead.from_snapshot(snapshot))


@router.post("/clear", response_model=SnapshotRead)
async def clear_data(orchestrator: Orchestrator) -> Any:
    orchestrator.clear_data()
    return SnapshotRead.from_snapshot(orchestrator.snapshot)


# ---------- Preferences ----------

@router.get("/preferences", response_model=PreferencesRead)
async def get_preferences(orchestrator: Orchestrator) -> Any:
    return PreferencesRead.from_orchestrator(orchestrator)


@router.patch("/preferences", response_model=PreferencesRead)
async def update_preferences(orchestrator: Orchestrator, body: PreferencesUpdate) -> Any:
    updates = body.model_dump(exclude_unset=True, exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    try:
        prefs = build_preferences(updates, orchestrator.preferences)
    except PreferencesValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    orchestrator.update_preferences(
        refresh_interval=prefs.refresh_interval,
        history_period=prefs.history_period,
    )
    return PreferencesRead.from_orchestrator(orchestrator)


# ---------- Credentials ----------

async def _token_status(orchestrator: Orchestrator) -> TokenStatus:
    return TokenStatus(
        has_token=await orchestrator.has_token(),
        authentication_type=orchestrator.authentication_type.value,
    )


@router.get("/token", response_model=TokenStatus)
async def get_token_status(orchestrator: Orchestrator) -> Any:
    return await _token_status(orchestrator)


@router.put("/token", response_model=TokenStatus)
async def save_token(orchestrator: Orchestrator, body: TokenUpdate) -> Any:
    try:
        await orchestrator.save_token(body.token)
    except SecretStoreError as exc:
        logger.warning("Could not store Oura token: %s", exc)
        raise HTTPException(status_code=503, detail="Credential store unavailable") from exc
    except NotImplementedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return await _token_status(orchestrator)


@router.delete("/token", response_model=TokenStatus)
async def delete_token(orchestrator: Orchestrator) -> Any:
    try:
        await orchestrator.delete_token()
    except SecretStoreError as exc:
        logger.warning("Could not remove Oura token: %s", exc)
        raise HTTPException(status_code=503, detail="Credential store unavailable") from exc
    except NotImplementedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return await _token_status(orchestrator)
