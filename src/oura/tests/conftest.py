"""Shared fixtures and realistic Oura API v2 payloads for fetch-engine tests."""

from __future__ import annotations

from datetime import date
from typing import Any

import pytest

from src.oura.client import DateRange, Endpoint, PageRequest
from src.oura.records import DailyReadiness, Page

API_BASE = "https://api.ouraring.test"
TEST_TOKEN = "test_personal_token"
TEST_DAY = date(2026, 2, 23)


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def readiness_payload(day: str = "2026-02-23", score: int | None = 84, **extra: Any) -> dict:
    return {
        "id": f"readiness-{day}",
        "day": day,
        "score": score,
        "temperature_deviation": 0.12,
        "temperature_trend_deviation": -0.05,
        "timestamp": f"{day}T07:00:00+00:00",
        "contributors": {
            "activity_balance": 80,
            "body_temperature": 95,
            "hrv_balance": 72,
            "previous_day_activity": 85,
            "previous_night": 88,
            "recovery_index": 90,
            "resting_heart_rate": 93,
            "sleep_balance": 78,
        },
        **extra,
    }


def sleep_payload(day: str = "2026-02-23", score: int | None = 78) -> dict:
    return {
        "id": f"daily-sleep-{day}",
        "day": day,
        "score": score,
        "timestamp": f"{day}T07:00:00+00:00",
        "contributors": {
            "deep_sleep": 90,
            "efficiency": 85,
            "latency": 70,
            "rem_sleep": 80,
            "restfulness": 65,
            "timing": 75,
            "total_sleep": 82,
        },
    }


def sleep_period_payload(
    day: str = "2026-02-23",
    sleep_type: str = "long_sleep",
    average_hrv: int | None = 48,
    suffix: str = "",
) -> dict:
    return {
        "id": f"sleep-{day}-{sleep_type}{suffix}",
        "day": day,
        "bedtime_start": "2026-02-22T22:50:00+00:00",
        "bedtime_end": "2026-02-23T06:45:00+00:00",
        "time_in_bed": 28500,
        "total_sleep_duration": 25500,
        "awake_time": 3000,
        "light_sleep_duration": 12600,
        "rem_sleep_duration": 5400,
        "deep_sleep_duration": 7500,
        "restless_periods": 212,
        "efficiency": 89,
        "latency": 540,
        "average_heart_rate": 54.5,
        "lowest_heart_rate": 48,
        "average_hrv": average_hrv,
        "type": sleep_type,
    }


def heart_rate_payload(timestamp: str = "2026-02-23T03:00:00+00:00", bpm: int = 52, source: str = "rest") -> dict:
    return {"bpm": bpm, "source": source, "timestamp": timestamp}


def readiness_page(*days: str, next_token: str | None = None) -> Page:
    return Page[DailyReadiness].model_validate(
        {"data": [readiness_payload(d) for d in days], "next_token": next_token}
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def today_range() -> DateRange:
    return DateRange.single_day(TEST_DAY)


@pytest.fixture
def readiness_request(today_range: DateRange) -> PageRequest:
    return PageRequest(Endpoint.DAILY_READINESS, today_range)


class RecordingSleep:
    """Awaitable stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
