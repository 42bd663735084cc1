"""Typed Oura API v2 records and the paginated response envelope.

Records are immutable pydantic models decoded straight from the
``/v2/usercollection/*`` JSON.  Optional numeric fields stay ``None`` when
the provider had no data; they are never coerced to zero.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.oura.quality import ScoreQuality


class OuraRecord(BaseModel):
    """Shared config: frozen, unknown keys ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str
    day: str

    @field_validator("day")
    @classmethod
    def _validate_day(cls, value: str) -> str:
        date.fromisoformat(value)
        return value

    @property
    def day_date(self) -> date:
        return date.fromisoformat(self.day)

    @property
    def formatted_date(self) -> str:
        """Medium-style date, e.g. ``Feb 23, 2026``."""
        d = self.day_date
        return f"{d.strftime('%b')} {d.day}, {d.year}"


def _score_display(score: int | None) -> str:
    return "--" if score is None else f"{score}%"


def format_duration(seconds: int) -> str:
    """Format seconds as ``7h 5m`` or ``45m``."""
    hours, remainder = divmod(seconds, 3600)
    minutes = remainder // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


# ---------------------------------------------------------------------------
# Daily readiness
# ---------------------------------------------------------------------------


class ReadinessContributors(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    activity_balance: int | None = None
    body_temperature: int | None = None
    hrv_balance: int | None = None
    previous_day_activity: int | None = None
    previous_night: int | None = None
    recovery_index: int | None = None
    resting_heart_rate: int | None = None
    sleep_balance: int | None = None


class DailyReadiness(OuraRecord):
    """One ``daily_readiness`` entry."""

    score: int | None = None
    temperature_deviation: float | None = None
    temperature_trend_deviation: float | None = None
    timestamp: str = ""
    contributors: ReadinessContributors = Field(default_factory=ReadinessContributors)

    @property
    def score_display(self) -> str:
        return _score_display(self.score)

    @property
    def score_quality(self) -> ScoreQuality:
        return ScoreQuality.from_score(self.score)

    @property
    def temperature_deviation_display(self) -> str:
        if self.temperature_deviation is None:
            return "--"
        sign = "+" if self.temperature_deviation >= 0 else ""
        return f"{sign}{self.temperature_deviation:.1f}°C"


# ---------------------------------------------------------------------------
# Daily sleep summary
# ---------------------------------------------------------------------------


class SleepContributors(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    deep_sleep: int | None = None
    efficiency: int | None = None
    latency: int | None = None
    rem_sleep: int | None = None
    restfulness: int | None = None
    timing: int | None = None
    total_sleep: int | None = None


class DailySleep(OuraRecord):
    """One ``daily_sleep`` entry."""

    score: int | None = None
    timestamp: str = ""
    contributors: SleepContributors = Field(default_factory=SleepContributors)

    @property
    def score_display(self) -> str:
        return _score_display(self.score)

    @property
    def score_quality(self) -> ScoreQuality:
        return ScoreQuality.from_score(self.score)


# ---------------------------------------------------------------------------
# Detailed sleep period
# ---------------------------------------------------------------------------


class SleepType(str, Enum):
    LONG_SLEEP = "long_sleep"
    SLEEP = "sleep"
    NAP = "nap"
    REST = "rest"
    UNKNOWN = "unknown"


class SleepStages(BaseModel):
    """Stage breakdown in seconds.  ``total`` excludes awake time."""

    model_config = ConfigDict(frozen=True)

    deep: int
    rem: int
    light: int
    awake: int

    @property
    def total(self) -> int:
        return self.deep + self.rem + self.light


class SleepPeriod(OuraRecord):
    """One ``sleep`` entry: a single continuous sleep or rest period."""

    bedtime_start: str
    bedtime_end: str
    # The API names this time_in_bed; populate_by_name also accepts duration.
    duration: int = Field(alias="time_in_bed", default=0)
    total_sleep_duration: int | None = None
    awake_time: int | None = None
    light_sleep_duration: int | None = None
    rem_sleep_duration: int | None = None
    deep_sleep_duration: int | None = None
    restless_periods: int | None = None
    efficiency: int | None = None
    latency: int | None = None
    average_heart_rate: float | None = None
    lowest_heart_rate: int | None = None
    average_hrv: int | None = None
    type: SleepType = SleepType.UNKNOWN

    @field_validator("type", mode="before")
    @classmethod
    def _unknown_type(cls, value: Any) -> Any:
        if value is None:
            return SleepType.UNKNOWN
        try:
            return SleepType(value)
        except ValueError:
            return SleepType.UNKNOWN

    @property
    def is_long_sleep(self) -> bool:
        return self.type is SleepType.LONG_SLEEP

    @property
    def stages(self) -> SleepStages:
        return SleepStages(
            deep=self.deep_sleep_duration or 0,
            rem=self.rem_sleep_duration or 0,
            light=self.light_sleep_duration or 0,
            awake=self.awake_time or 0,
        )

    @property
    def duration_display(self) -> str:
        if self.total_sleep_duration is not None:
            return format_duration(self.total_sleep_duration)
        return format_duration(self.duration)

    @property
    def efficiency_display(self) -> str:
        return _score_display(self.efficiency)

    @property
    def efficiency_quality(self) -> ScoreQuality:
        return ScoreQuality.from_score(self.efficiency)


# ---------------------------------------------------------------------------
# Heart rate
# ---------------------------------------------------------------------------


class HeartRateSource(str, Enum):
    AWAKE = "awake"
    REST = "rest"
    SLEEP = "sleep"
    SESSION = "session"
    LIVE = "live"
    WORKOUT = "workout"
    UNKNOWN = "unknown"


class HeartRateSample(OuraRecord):
    """One ``heartrate`` sample.

    The heartrate endpoint returns bare ``{bpm, source, timestamp}`` rows,
    so ``id`` and ``day`` are derived from the timestamp when absent.
    """

    timestamp: str
    bpm: int
    source: HeartRateSource = HeartRateSource.UNKNOWN

    @model_validator(mode="before")
    @classmethod
    def _derive_identity(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not data.get("timestamp"):
            return data
        data = dict(data)
        if not data.get("day"):
            parsed = datetime.fromisoformat(str(data["timestamp"]).replace("Z", "+00:00"))
            data["day"] = parsed.date().isoformat()
        if not data.get("id"):
            data["id"] = f"{data['timestamp']}:{data.get('source', 'unknown')}"
        return data

    @field_validator("source", mode="before")
    @classmethod
    def _unknown_source(cls, value: Any) -> Any:
        try:
            return HeartRateSource(value)
        except ValueError:
            return HeartRateSource.UNKNOWN

    @property
    def bpm_display(self) -> str:
        return f"{self.bpm} bpm"


# ---------------------------------------------------------------------------
# Response envelope
# ---------------------------------------------------------------------------

RecordT = TypeVar("RecordT", bound=OuraRecord)


class Page(BaseModel, Generic[RecordT]):
    """One page of results plus the optional continuation cursor.

    A non-None ``next_token`` means more data exists; its absence is the only
    termination signal.  Empty-string tokens are normalised to None.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    data: list[RecordT]
    next_token: str | None = None

    @field_validator("next_token", mode="before")
    @classmethod
    def _blank_token_is_absent(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def has_more(self) -> bool:
        return self.next_token is not None
