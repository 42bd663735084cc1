"""The published dashboard state and the cycle-result merge.

A ``Snapshot`` is immutable.  The orchestrator publishes a new one by
swapping the reference, so observers never see a half-updated state.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Sequence, TypeVar

from src.oura.quality import ScoreQuality
from src.oura.records import (
    DailyReadiness,
    DailySleep,
    HeartRateSample,
    HeartRateSource,
    OuraRecord,
    SleepPeriod,
)

RecordT = TypeVar("RecordT", bound=OuraRecord)


@dataclass(frozen=True)
class DayValue:
    """One value per calendar day, for trend charts."""

    day: str
    value: int


@dataclass(frozen=True)
class CycleResults:
    """Raw output of the seven fetches of one refresh cycle."""

    today_readiness: Sequence[DailyReadiness]
    today_sleep: Sequence[DailySleep]
    today_sleep_periods: Sequence[SleepPeriod]
    readiness_history: Sequence[DailyReadiness]
    sleep_history: Sequence[DailySleep]
    sleep_period_history: Sequence[SleepPeriod]
    heart_rate_history: Sequence[HeartRateSample]


@dataclass(frozen=True)
class Snapshot:
    """Latest-per-type records for today, day-sorted history and status.

    Attributes:
        readiness:            Today's readiness (last returned entry).
        sleep:                Today's sleep summary (last returned entry).
        sleep_period:         Today's long-sleep period, else the last period.
        readiness_history:    Readiness over the look-back window, by day.
        sleep_history:        Sleep summaries over the window, by day.
        sleep_period_history: Long-sleep periods only, by day.
        heart_rate_history:   Heart-rate samples, by day.
        is_loading:           True while a cycle runs.
        last_error:           Error of the most recent failed cycle.
        last_fetch_time:      Completion time of the last successful cycle.
    """

    readiness: DailyReadiness | None = None
    sleep: DailySleep | None = None
    sleep_period: SleepPeriod | None = None
    readiness_history: tuple[DailyReadiness, ...] = ()
    sleep_history: tuple[DailySleep, ...] = ()
    sleep_period_history: tuple[SleepPeriod, ...] = ()
    heart_rate_history: tuple[HeartRateSample, ...] = field(default=(), repr=False)
    is_loading: bool = False
    last_error: Exception | None = None
    last_fetch_time: datetime | None = None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def without_data(self) -> "Snapshot":
        """Drop all fetched data and the error; keep loading flag and fetch time."""
        return Snapshot(is_loading=self.is_loading, last_fetch_time=self.last_fetch_time)

    def with_status(self, **changes: object) -> "Snapshot":
        return replace(self, **changes)

    @property
    def has_data(self) -> bool:
        return any(
            (
                self.readiness,
                self.sleep,
                self.sleep_period,
                self.readiness_history,
                self.sleep_history,
                self.sleep_period_history,
                self.heart_rate_history,
            )
        )

    # ------------------------------------------------------------------
    # Derived metrics
    # ------------------------------------------------------------------

    @property
    def readiness_score(self) -> int | None:
        return self.readiness.score if self.readiness else None

    @property
    def readiness_quality(self) -> ScoreQuality:
        return ScoreQuality.from_score(self.readiness_score)

    @property
    def sleep_score(self) -> int | None:
        return self.sleep.score if self.sleep else None

    @property
    def sleep_quality(self) -> ScoreQuality:
        return ScoreQuality.from_score(self.sleep_score)

    @property
    def average_readiness_score(self) -> int | None:
        return _floor_mean(r.score for r in self.readiness_history)

    @property
    def average_sleep_score(self) -> int | None:
        return _floor_mean(s.score for s in self.sleep_history)

    @property
    def average_hrv(self) -> int | None:
        return _floor_mean(p.average_hrv for p in self.sleep_period_history)

    @property
    def daily_resting_heart_rates(self) -> list[DayValue]:
        """Lowest ``rest``-source bpm per day, ordered by day."""
        daily_min: dict[str, int] = {}
        for sample in self.heart_rate_history:
            if sample.source is not HeartRateSource.REST:
                continue
            current = daily_min.get(sample.day)
            daily_min[sample.day] = sample.bpm if current is None else min(current, sample.bpm)
        return [DayValue(day, bpm) for day, bpm in sorted(daily_min.items())]

    @property
    def average_resting_heart_rate(self) -> int | None:
        return _floor_mean(d.value for d in self.daily_resting_heart_rates)

    @property
    def daily_hrv_values(self) -> list[DayValue]:
        return [
            DayValue(p.day, p.average_hrv)
            for p in self.sleep_period_history
            if p.average_hrv is not None
        ]


def _floor_mean(values) -> int | None:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) // len(present)


def _by_day(records: Sequence[RecordT]) -> tuple[RecordT, ...]:
    # Stable: same-day records keep server order.
    return tuple(sorted(records, key=lambda r: r.day))


def latest(records: Sequence[RecordT]) -> RecordT | None:
    """The chronologically last record: greatest day, then last returned."""
    if not records:
        return None
    return _by_day(records)[-1]


def select_today_sleep_period(periods: Sequence[SleepPeriod]) -> SleepPeriod | None:
    """First long-sleep period, else the chronologically last period of any type."""
    for period in periods:
        if period.is_long_sleep:
            return period
    return latest(periods)


def merge_results(previous: Snapshot, results: CycleResults, fetched_at: datetime) -> Snapshot:
    """Build the snapshot published after a fully successful cycle."""
    return replace(
        previous,
        readiness=latest(results.today_readiness),
        sleep=latest(results.today_sleep),
        sleep_period=select_today_sleep_period(results.today_sleep_periods),
        readiness_history=_by_day(results.readiness_history),
        sleep_history=_by_day(results.sleep_history),
        sleep_period_history=_by_day(
            [p for p in results.sleep_period_history if p.is_long_sleep]
        ),
        heart_rate_history=_by_day(results.heart_rate_history),
        last_error=None,
        last_fetch_time=fetched_at,
    )
