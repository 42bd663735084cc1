"""Pydantic models for the dashboard surface: snapshot, preferences, credentials."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from src.models.base import PulseBase
from src.oura.errors import OuraAPIError
from src.oura.quality import ScoreQuality
from src.oura.records import DailyReadiness, DailySleep, SleepPeriod
from src.refresh.orchestrator import RefreshOrchestrator
from src.refresh.preferences import Preferences
from src.refresh.snapshot import Snapshot


# ---------- Snapshot ----------

class DayValueRead(PulseBase):
    day: str
    value: int


class RefreshErrorRead(PulseBase):
    kind: str
    message: str
    status_code: int | None = None
    retryable: bool = False

    @classmethod
    def from_exception(cls, exc: Exception) -> "RefreshErrorRead":
        if isinstance(exc, OuraAPIError):
            return cls(
                kind=exc.kind.value,
                message=exc.message,
                status_code=exc.status_code,
                retryable=exc.retryable,
            )
        return cls(kind="unexpected", message=str(exc) or type(exc).__name__)


class SnapshotRead(PulseBase):
    readiness: DailyReadiness | None = None
    sleep: DailySleep | None = None
    sleep_period: SleepPeriod | None = None
    readiness_history: list[DailyReadiness] = Field(default_factory=list)
    sleep_history: list[DailySleep] = Field(default_factory=list)
    sleep_period_history: list[SleepPeriod] = Field(default_factory=list)
    heart_rate_sample_count: int = 0

    readiness_score: int | None = None
    readiness_quality: ScoreQuality = ScoreQuality.UNKNOWN
    sleep_score: int | None = None
    sleep_quality: ScoreQuality = ScoreQuality.UNKNOWN
    average_readiness_score: int | None = None
    average_sleep_score: int | None = None
    average_hrv: int | None = None
    average_resting_heart_rate: int | None = None
    daily_resting_heart_rates: list[DayValueRead] = Field(default_factory=list)
    daily_hrv_values: list[DayValueRead] = Field(default_factory=list)

    is_loading: bool = False
    last_error: RefreshErrorRead | None = None
    last_fetch_time: datetime | None = None

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "SnapshotRead":
        return cls(
            readiness=snapshot.readiness,
            sleep=snapshot.sleep,
            sleep_period=snapshot.sleep_period,
            readiness_history=list(snapshot.readiness_history),
            sleep_history=list(snapshot.sleep_history),
            sleep_period_history=list(snapshot.sleep_period_history),
            heart_rate_sample_count=len(snapshot.heart_rate_history),
            readiness_score=snapshot.readiness_score,
            readiness_quality=snapshot.readiness_quality,
            sleep_score=snapshot.sleep_score,
            sleep_quality=snapshot.sleep_quality,
            average_readiness_score=snapshot.average_readiness_score,
            average_sleep_score=snapshot.average_sleep_score,
            average_hrv=snapshot.average_hrv,
            average_resting_heart_rate=snapshot.average_resting_heart_rate,
            daily_resting_heart_rates=[
                DayValueRead(day=d.day, value=d.value) for d in snapshot.daily_resting_heart_rates
            ],
            daily_hrv_values=[
                DayValueRead(day=d.day, value=d.value) for d in snapshot.daily_hrv_values
            ],
            is_loading=snapshot.is_loading,
            last_error=(
                RefreshErrorRead.from_exception(snapshot.last_error)
                if snapshot.last_error is not None
                else None
            ),
            last_fetch_time=snapshot.last_fetch_time,
        )


class RefreshResult(PulseBase):
    started: bool
    snapshot: SnapshotRead


# ---------- Preferences ----------

class PreferencesRead(PulseBase):
    history_period_days: int
    history_period_display: str
    refresh_interval_minutes: int
    refresh_interval_display: str
    power_constrained: bool
    timer_period_seconds: float | None = None

    @classmethod
    def from_orchestrator(cls, orchestrator: RefreshOrchestrator) -> "PreferencesRead":
        prefs: Preferences = orchestrator.preferences
        return cls(
            history_period_days=int(prefs.history_period),
            history_period_display=prefs.history_period.display_name,
            refresh_interval_minutes=int(prefs.refresh_interval),
            refresh_interval_display=prefs.refresh_interval.display_name,
            power_constrained=orchestrator.power_constrained,
            timer_period_seconds=orchestrator.timer_period,
        )


class PreferencesUpdate(PulseBase):
    history_period_days: int | None = None
    refresh_interval_minutes: int | None = None


# ---------- Credentials ----------

class TokenUpdate(PulseBase):
    token: str = Field(min_length=1)


class TokenStatus(PulseBase):
    has_token: bool
    authentication_type: str
