"""Collaborator wiring and shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from src.config import Settings
from src.oura.auth import SecretStoreTokenSource, StaticTokenSource, TokenSelector
from src.oura.client import OuraClient
from src.oura.pagination import PageDrainer
from src.oura.retry import RetryingFetcher, RetryPolicy
from src.refresh.orchestrator import RefreshOrchestrator
from src.refresh.preferences import (
    HistoryPeriod,
    Preferences,
    PreferencesStore,
    RefreshInterval,
)
from src.services.power import ManualPowerState, PmsetPowerState
from src.services.secret_store import (
    InMemorySecretStore,
    KeychainSecretStore,
    SecretStore,
)

logger = logging.getLogger("ringpulse.dependencies")


def build_secret_store(settings: Settings) -> SecretStore:
    if settings.credential_store == "keychain":
        return KeychainSecretStore(
            service=settings.keychain_service,
            account=settings.keychain_account,
        )
    return InMemorySecretStore()


def build_token_source(settings: Settings) -> TokenSelector:
    """Keychain/memory store as the provider; the settings token as the direct value.

    A direct token from the environment only answers when no provider is
    attached, so ``oura_personal_token`` switches the provider off.
    """
    direct = StaticTokenSource(settings.oura_personal_token)
    if direct.is_configured:
        return TokenSelector(direct=direct)
    return TokenSelector(provider=SecretStoreTokenSource(build_secret_store(settings)))


def build_default_preferences(settings: Settings) -> Preferences:
    try:
        return Preferences(
            history_period=HistoryPeriod(settings.history_period_days),
            refresh_interval=RefreshInterval(settings.refresh_interval_minutes),
        )
    except ValueError as exc:
        logger.warning("Ignoring invalid refresh defaults in settings: %s", exc)
        return Preferences()


def build_power_state(settings: Settings) -> ManualPowerState:
    if settings.power_source == "pmset":
        return PmsetPowerState(poll_seconds=settings.power_poll_seconds)
    return ManualPowerState()


def build_orchestrator(settings: Settings) -> RefreshOrchestrator:
    """Assemble the fetch engine and refresh engine from settings."""
    client = OuraClient(
        base_url=settings.oura_api_base,
        timeout=settings.oura_request_timeout_s,
    )
    policy = RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay_s,
        max_delay=settings.retry_max_delay_s,
    )
    drainer = PageDrainer(RetryingFetcher(client, policy), max_pages=settings.max_pages)
    store = PreferencesStore(
        path=Path(settings.preferences_path) if settings.preferences_path else None,
        defaults=build_default_preferences(settings),
    )
    return RefreshOrchestrator(
        build_token_source(settings),
        drainer,
        preferences_store=store,
        power=build_power_state(settings),
    )


def get_orchestrator(request: Request) -> RefreshOrchestrator:
    """Return the orchestrator started by the app lifespan."""
    orchestrator: RefreshOrchestrator | None = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Refresh engine is not running")
    return orchestrator


# Annotated shortcut for route signatures
Orchestrator = Annotated[RefreshOrchestrator, Depends(get_orchestrator)]
