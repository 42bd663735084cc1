"""Refresh engine — public API.

Usage::

    from src.refresh import RefreshOrchestrator

    orchestrator = RefreshOrchestrator(token_source, drainer)
    snapshot = await orchestrator.refresh()
    print(snapshot.readiness_score, snapshot.last_error)
"""

from __future__ import annotations

from src.refresh.orchestrator import RefreshOrchestrator
from src.refresh.preferences import (
    HistoryPeriod,
    Preferences,
    PreferencesStore,
    PreferencesValidationError,
    RefreshInterval,
)
from src.refresh.snapshot import CycleResults, DayValue, Snapshot
from src.refresh.timer import RefreshTimer, effective_interval

__all__ = [
    "RefreshOrchestrator",
    "Snapshot",
    "CycleResults",
    "DayValue",
    "Preferences",
    "PreferencesStore",
    "PreferencesValidationError",
    "HistoryPeriod",
    "RefreshInterval",
    "RefreshTimer",
    "effective_interval",
]
