"""Shared fixtures for refresh-engine tests.

``FakeDrainer`` stands in for the page drainer: results and errors are
keyed by ``(endpoint, is_today)`` and an optional gate holds every fetch
open so tests can observe a cycle in flight.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from typing import Any

import pytest
import pytest_asyncio

from src.oura.auth import StaticTokenSource
from src.oura.client import DateRange, Endpoint
from src.oura.records import DailyReadiness, DailySleep, HeartRateSample, SleepPeriod
from src.oura.tests.conftest import (
    heart_rate_payload,
    readiness_payload,
    sleep_payload,
    sleep_period_payload,
)
from src.refresh.orchestrator import RefreshOrchestrator
from src.refresh.preferences import Preferences
from src.services.power import ManualPowerState

TODAY = date(2026, 2, 23)
FETCHED_AT = datetime(2026, 2, 23, 8, 30, tzinfo=timezone.utc)

DrainKey = tuple[Endpoint, bool]


def readiness(day: str, score: int | None = 80) -> DailyReadiness:
    return DailyReadiness.model_validate(readiness_payload(day, score))


def daily_sleep(day: str, score: int | None = 75) -> DailySleep:
    return DailySleep.model_validate(sleep_payload(day, score))


def sleep_period(day: str, sleep_type: str = "long_sleep", hrv: int | None = 45, suffix: str = "") -> SleepPeriod:
    return SleepPeriod.model_validate(sleep_period_payload(day, sleep_type, hrv, suffix))


def heart_rate(timestamp: str, bpm: int, source: str = "rest") -> HeartRateSample:
    return HeartRateSample.model_validate(heart_rate_payload(timestamp, bpm, source))


def default_results() -> dict[DrainKey, list[Any]]:
    return {
        (Endpoint.DAILY_READINESS, True): [readiness("2026-02-23", 82)],
        (Endpoint.DAILY_SLEEP, True): [daily_sleep("2026-02-23", 77)],
        (Endpoint.SLEEP, True): [sleep_period("2026-02-23")],
        (Endpoint.DAILY_READINESS, False): [readiness("2026-02-22", 70), readiness("2026-02-23", 82)],
        (Endpoint.DAILY_SLEEP, False): [daily_sleep("2026-02-22", 71), daily_sleep("2026-02-23", 77)],
        (Endpoint.SLEEP, False): [sleep_period("2026-02-22", hrv=40), sleep_period("2026-02-23", hrv=50)],
        (Endpoint.HEARTRATE, False): [
            heart_rate("2026-02-22T03:00:00+00:00", 55),
            heart_rate("2026-02-22T04:00:00+00:00", 51),
            heart_rate("2026-02-23T03:00:00+00:00", 53),
            heart_rate("2026-02-23T12:00:00+00:00", 90, "awake"),
        ],
    }


class FakeDrainer:
    def __init__(self, results: dict[DrainKey, list[Any]] | None = None) -> None:
        self.results = results if results is not None else default_results()
        self.errors: dict[DrainKey, BaseException] = {}
        self.calls: list[tuple[Endpoint, DateRange, str]] = []
        self.gate: asyncio.Event | None = None
        self.cancelled = 0

    async def drain(self, endpoint: Endpoint, date_range: DateRange, token: str) -> list[Any]:
        self.calls.append((endpoint, date_range, token))
        try:
            if self.gate is not None:
                await self.gate.wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        key = (endpoint, date_range.start == date_range.end)
        if key in self.errors:
            raise self.errors[key]
        return list(self.results.get(key, []))

    def history_ranges(self) -> list[DateRange]:
        return [r for _, r, _ in self.calls if r.start != r.end]


async def settle(rounds: int = 5) -> None:
    """Let spawned tasks run up to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def drainer() -> FakeDrainer:
    return FakeDrainer()


@pytest.fixture
def token_source() -> StaticTokenSource:
    return StaticTokenSource("test-token")


@pytest.fixture
def power() -> ManualPowerState:
    return ManualPowerState()


@pytest_asyncio.fixture
async def orchestrator(
    token_source: StaticTokenSource, drainer: FakeDrainer, power: ManualPowerState
):
    """Orchestrator on fixed dates; timers and cycles are stopped on teardown."""
    orch = RefreshOrchestrator(
        token_source,
        drainer,  # type: ignore[arg-type]
        preferences=Preferences(),
        power=power,
        today=lambda: TODAY,
        clock=lambda: FETCHED_AT,
    )
    yield orch
    await orch.stop()
