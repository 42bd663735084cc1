"""Tests for the refresh orchestrator: cycle semantics, scheduling and cancellation."""

from __future__ import annotations

import asyncio
import gc
import logging
import time
from datetime import date
from typing import Awaitable, TypeVar

import pytest

from src.oura.auth import SecretStoreTokenSource, StaticTokenSource
from src.oura.client import Endpoint
from src.oura.errors import ServerError, UnauthorizedError
from src.refresh.orchestrator import RefreshOrchestrator
from src.refresh.preferences import (
    HistoryPeriod,
    Preferences,
    PreferencesStore,
    RefreshInterval,
)
from src.refresh.snapshot import Snapshot
from src.refresh.tests.conftest import (
    FETCHED_AT,
    TODAY,
    FakeDrainer,
    readiness,
    settle,
    sleep_period,
)
from src.services.power import ManualPowerState
from src.services.secret_store import InMemorySecretStore

T = TypeVar("T")


class SlowStore(InMemorySecretStore):
    """Secret store whose calls block like a `security` subprocess."""

    def save(self, token: str) -> None:
        time.sleep(0.3)
        super().save(token)

    def retrieve(self) -> str:
        time.sleep(0.3)
        return super().retrieve()


async def max_loop_stall(awaitable: Awaitable[T]) -> tuple[float, T]:
    """Await ``awaitable`` while a ticker measures the longest event-loop gap."""
    loop = asyncio.get_running_loop()
    gaps: list[float] = []
    done = asyncio.Event()

    async def tick() -> None:
        last = loop.time()
        while not done.is_set():
            await asyncio.sleep(0.02)
            now = loop.time()
            gaps.append(now - last)
            last = now

    ticker = asyncio.create_task(tick())
    await asyncio.sleep(0)
    try:
        result = await awaitable
    finally:
        done.set()
        await ticker
    return max(gaps, default=0.0), result


# ---------------------------------------------------------------------------
# Successful cycle
# ---------------------------------------------------------------------------


class TestSuccessfulCycle:
    @pytest.mark.asyncio
    async def test_issues_seven_fetches(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        await orchestrator.refresh()

        assert len(drainer.calls) == 7
        endpoints_today = sorted(e.value for e, r, _ in drainer.calls if r.start == r.end)
        endpoints_history = sorted(e.value for e, r, _ in drainer.calls if r.start != r.end)
        assert endpoints_today == ["daily_readiness", "daily_sleep", "sleep"]
        assert endpoints_history == ["daily_readiness", "daily_sleep", "heartrate", "sleep"]
        assert all(token == "test-token" for _, _, token in drainer.calls)

    @pytest.mark.asyncio
    async def test_publishes_merged_snapshot(self, orchestrator: RefreshOrchestrator) -> None:
        snapshot = await orchestrator.refresh()

        assert snapshot is orchestrator.snapshot
        assert snapshot.readiness_score == 82
        assert snapshot.sleep_score == 77
        assert snapshot.sleep_period is not None
        assert [r.day for r in snapshot.readiness_history] == ["2026-02-22", "2026-02-23"]
        assert snapshot.is_loading is False
        assert snapshot.last_error is None
        assert snapshot.last_fetch_time == FETCHED_AT

    @pytest.mark.asyncio
    async def test_history_sleep_periods_are_long_sleep_only(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        drainer.results[(Endpoint.SLEEP, False)] = [
            sleep_period("2026-02-23", "long_sleep"),
            sleep_period("2026-02-21", "long_sleep"),
            sleep_period("2026-02-22", "nap"),
        ]

        snapshot = await orchestrator.refresh()

        assert [p.day for p in snapshot.sleep_period_history] == ["2026-02-21", "2026-02-23"]
        assert all(p.is_long_sleep for p in snapshot.sleep_period_history)

    @pytest.mark.asyncio
    async def test_today_picks_last_record_and_long_sleep(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        drainer.results[(Endpoint.DAILY_READINESS, True)] = [
            readiness("2026-02-23", 60),
            readiness("2026-02-23", 91),
        ]
        drainer.results[(Endpoint.SLEEP, True)] = [
            sleep_period("2026-02-23", "nap"),
            sleep_period("2026-02-23", "long_sleep"),
            sleep_period("2026-02-23", "rest"),
        ]

        snapshot = await orchestrator.refresh()

        assert snapshot.readiness_score == 91
        assert snapshot.sleep_period is not None
        assert snapshot.sleep_period.is_long_sleep

    @pytest.mark.asyncio
    async def test_today_period_falls_back_to_last_period(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        drainer.results[(Endpoint.SLEEP, True)] = [
            sleep_period("2026-02-23", "nap", suffix="-1"),
            sleep_period("2026-02-23", "rest", suffix="-2"),
        ]

        snapshot = await orchestrator.refresh()

        assert snapshot.sleep_period is not None
        assert snapshot.sleep_period.id == "sleep-2026-02-23-rest-2"

    @pytest.mark.asyncio
    async def test_empty_today_leaves_today_values_absent(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        drainer.results[(Endpoint.DAILY_READINESS, True)] = []

        snapshot = await orchestrator.refresh()

        assert snapshot.readiness is None
        assert snapshot.readiness_score is None


# ---------------------------------------------------------------------------
# Missing credential and failures
# ---------------------------------------------------------------------------


class TestNotConfigured:
    @pytest.mark.asyncio
    async def test_no_token_resets_without_error(
        self,
        orchestrator: RefreshOrchestrator,
        token_source: StaticTokenSource,
        drainer: FakeDrainer,
    ) -> None:
        await orchestrator.refresh()
        assert orchestrator.snapshot.has_data
        token_source.clear_credentials()

        snapshot = await orchestrator.refresh()

        assert not snapshot.has_data
        assert snapshot.readiness is None
        assert snapshot.readiness_history == ()
        assert snapshot.last_error is None
        assert snapshot.is_loading is False
        assert len(drainer.calls) == 7

    @pytest.mark.asyncio
    async def test_first_run_without_token_fetches_nothing(self, drainer: FakeDrainer) -> None:
        orch = RefreshOrchestrator(StaticTokenSource(), drainer)  # type: ignore[arg-type]

        snapshot = await orch.refresh()

        assert drainer.calls == []
        assert snapshot == Snapshot()
        assert not await orch.has_token()


class TestFailedCycle:
    @pytest.mark.asyncio
    async def test_failure_keeps_previous_data(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        before = await orchestrator.refresh()
        failure = ServerError("Server error (503). Please try again later", status_code=503)
        drainer.errors[(Endpoint.SLEEP, False)] = failure
        drainer.results[(Endpoint.DAILY_READINESS, False)] = [readiness("2026-02-23", 10)]

        after = await orchestrator.refresh()

        assert after.readiness_history == before.readiness_history
        assert after.sleep_history == before.sleep_history
        assert after.sleep_period_history == before.sleep_period_history
        assert after.heart_rate_history == before.heart_rate_history
        assert after.readiness == before.readiness
        assert after.last_fetch_time == before.last_fetch_time
        assert after.last_error is failure
        assert after.is_loading is False

    @pytest.mark.asyncio
    async def test_next_cycle_clears_error(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        drainer.errors[(Endpoint.HEARTRATE, False)] = UnauthorizedError(status_code=401)
        assert isinstance((await orchestrator.refresh()).last_error, UnauthorizedError)

        drainer.errors.clear()
        snapshot = await orchestrator.refresh()

        assert snapshot.last_error is None
        assert snapshot.has_data

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_recorded_not_raised(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        drainer.errors[(Endpoint.DAILY_SLEEP, True)] = RuntimeError("boom")

        snapshot = await orchestrator.refresh()

        assert isinstance(snapshot.last_error, RuntimeError)
        assert snapshot.is_loading is False
        assert not orchestrator.is_refreshing


# ---------------------------------------------------------------------------
# Date ranges
# ---------------------------------------------------------------------------


class TestDateRanges:
    @pytest.mark.asyncio
    async def test_today_range_is_single_day(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        await orchestrator.refresh()

        today_ranges = {r for _, r, _ in drainer.calls if r.start == r.end}
        assert {(r.start, r.end) for r in today_ranges} == {(TODAY, TODAY)}

    @pytest.mark.asyncio
    async def test_seven_then_thirty_day_windows(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        await orchestrator.refresh()
        seven = drainer.history_ranges()
        assert {r.as_params()["start_date"] for r in seven} == {"2026-02-16"}
        assert {r.as_params()["end_date"] for r in seven} == {"2026-02-23"}

        drainer.calls.clear()
        orchestrator.update_preferences(history_period=HistoryPeriod.THIRTY_DAYS)
        await settle()
        while orchestrator.is_refreshing:
            await asyncio.sleep(0)

        thirty = drainer.history_ranges()
        assert len(thirty) == 4
        assert {r.start for r in thirty} == {date(2026, 1, 24)}
        assert {r.end for r in thirty} == {TODAY}


# ---------------------------------------------------------------------------
# At most one cycle
# ---------------------------------------------------------------------------


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_refresh_runs_one_cycle(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        drainer.gate = asyncio.Event()
        first = asyncio.create_task(orchestrator.refresh())
        await settle()
        assert orchestrator.is_refreshing
        assert orchestrator.snapshot.is_loading

        second = await orchestrator.refresh()
        assert orchestrator.trigger_refresh() is None
        assert second.is_loading

        drainer.gate.set()
        await first

        assert len(drainer.calls) == 7
        assert not orchestrator.snapshot.is_loading

    @pytest.mark.asyncio
    async def test_back_to_back_triggers_start_one_cycle(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        drainer.gate = asyncio.Event()
        first = orchestrator.trigger_refresh()
        assert first is not None
        assert orchestrator.is_refreshing
        assert orchestrator.trigger_refresh() is None

        drainer.gate.set()
        await first
        assert len(drainer.calls) == 7

    @pytest.mark.asyncio
    async def test_wait_until_idle_covers_pending_trigger(
        self, orchestrator: RefreshOrchestrator
    ) -> None:
        orchestrator.trigger_refresh()
        await orchestrator.wait_until_idle()
        assert not orchestrator.is_refreshing
        assert orchestrator.snapshot.has_data

    @pytest.mark.asyncio
    async def test_trigger_refresh_returns_task(self, orchestrator: RefreshOrchestrator) -> None:
        task = orchestrator.trigger_refresh()
        assert task is not None
        snapshot = await task
        assert snapshot.has_data


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_signal_leaves_snapshot_untouched(
        self,
        orchestrator: RefreshOrchestrator,
        drainer: FakeDrainer,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        caplog.set_level(logging.ERROR, logger="asyncio")
        before = await orchestrator.refresh()
        drainer.gate = asyncio.Event()
        drainer.results[(Endpoint.DAILY_READINESS, False)] = [readiness("2026-02-23", 1)]
        cancel = asyncio.Event()

        task = asyncio.create_task(orchestrator.refresh(cancel))
        await settle()
        cancel.set()
        after = await task
        await settle()
        gc.collect()

        assert after.readiness_history == before.readiness_history
        assert after.last_fetch_time == before.last_fetch_time
        assert after.last_error is None
        assert after.is_loading is False
        assert drainer.cancelled == 7
        assert not [r for r in caplog.records if r.name == "asyncio"]

    @pytest.mark.asyncio
    async def test_cancel_restores_previous_error(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        failure = ServerError(status_code=500)
        drainer.errors[(Endpoint.SLEEP, True)] = failure
        await orchestrator.refresh()

        drainer.gate = asyncio.Event()
        cancel = asyncio.Event()
        task = asyncio.create_task(orchestrator.refresh(cancel))
        await settle()
        assert orchestrator.snapshot.last_error is None
        cancel.set()

        assert (await task).last_error is failure

    @pytest.mark.asyncio
    async def test_unused_cancel_signal_does_not_interfere(
        self, orchestrator: RefreshOrchestrator
    ) -> None:
        snapshot = await orchestrator.refresh(asyncio.Event())
        assert snapshot.has_data
        assert snapshot.last_error is None

    @pytest.mark.asyncio
    async def test_stop_cancels_in_flight_cycle(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        drainer.gate = asyncio.Event()
        orchestrator.trigger_refresh()
        await settle()

        await orchestrator.stop()

        assert drainer.cancelled == 7
        assert not orchestrator.is_refreshing
        assert not orchestrator.snapshot.is_loading


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


class TestScheduling:
    @pytest.mark.asyncio
    async def test_start_uses_configured_interval(self, orchestrator: RefreshOrchestrator) -> None:
        await orchestrator.start(initial_refresh=False)
        assert orchestrator.timer_period == 900.0

    @pytest.mark.asyncio
    async def test_start_runs_initial_refresh(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        await orchestrator.start()
        await settle(20)
        assert len(drainer.calls) == 7

    @pytest.mark.asyncio
    async def test_power_transition_doubles_period(
        self, orchestrator: RefreshOrchestrator, power: ManualPowerState
    ) -> None:
        await orchestrator.start(initial_refresh=False)

        power.set_constrained(True)
        assert orchestrator.timer_period == 1800.0

        power.set_constrained(False)
        assert orchestrator.timer_period == 900.0

    @pytest.mark.asyncio
    async def test_power_transition_during_cycle_keeps_cycle(
        self,
        orchestrator: RefreshOrchestrator,
        drainer: FakeDrainer,
        power: ManualPowerState,
    ) -> None:
        await orchestrator.start(initial_refresh=False)
        drainer.gate = asyncio.Event()
        cycle = orchestrator.trigger_refresh()
        await settle()

        power.set_constrained(True)
        assert orchestrator.timer_period == 1800.0
        assert orchestrator.is_refreshing

        drainer.gate.set()
        assert cycle is not None
        await cycle
        assert len(drainer.calls) == 7
        assert orchestrator.snapshot.has_data

    @pytest.mark.asyncio
    async def test_stop_unsubscribes_from_power(
        self, orchestrator: RefreshOrchestrator, power: ManualPowerState
    ) -> None:
        await orchestrator.start(initial_refresh=False)
        await orchestrator.stop()

        power.set_constrained(True)
        assert orchestrator.timer_period is None

    @pytest.mark.asyncio
    async def test_manual_only_disables_timer(self, orchestrator: RefreshOrchestrator) -> None:
        await orchestrator.start(initial_refresh=False)

        orchestrator.update_preferences(refresh_interval=RefreshInterval.MANUAL_ONLY)

        assert orchestrator.timer_period is None

    @pytest.mark.asyncio
    async def test_interval_change_reschedules_without_refresh(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        await orchestrator.start(initial_refresh=False)

        orchestrator.update_preferences(refresh_interval=RefreshInterval.SIXTY_MINUTES)
        await settle()

        assert orchestrator.timer_period == 3600.0
        assert drainer.calls == []

    @pytest.mark.asyncio
    async def test_unchanged_preferences_are_a_no_op(
        self, orchestrator: RefreshOrchestrator, drainer: FakeDrainer
    ) -> None:
        orchestrator.update_preferences(history_period=HistoryPeriod.SEVEN_DAYS)
        await settle()
        assert drainer.calls == []
        assert orchestrator.timer_period is None

    @pytest.mark.asyncio
    async def test_preferences_are_persisted(self, drainer: FakeDrainer, tmp_path) -> None:
        store = PreferencesStore(tmp_path / "prefs.yaml")
        orch = RefreshOrchestrator(
            StaticTokenSource("t"), drainer, preferences_store=store  # type: ignore[arg-type]
        )
        try:
            orch.update_preferences(refresh_interval=RefreshInterval.THIRTY_MINUTES)
        finally:
            await orch.stop()

        assert store.load() == Preferences(refresh_interval=RefreshInterval.THIRTY_MINUTES)


# ---------------------------------------------------------------------------
# Observers, credentials and data
# ---------------------------------------------------------------------------


class TestObserversAndCredentials:
    @pytest.mark.asyncio
    async def test_subscribers_see_loading_then_result(self, orchestrator: RefreshOrchestrator) -> None:
        seen: list[Snapshot] = []
        unsubscribe = orchestrator.subscribe(seen.append)

        await orchestrator.refresh()

        assert seen[0].is_loading
        assert not seen[-1].is_loading
        assert seen[-1].has_data

        unsubscribe()
        count = len(seen)
        await orchestrator.refresh()
        assert len(seen) == count

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_cycle(self, orchestrator: RefreshOrchestrator) -> None:
        def explode(_: Snapshot) -> None:
            raise ValueError("listener bug")

        orchestrator.subscribe(explode)
        snapshot = await orchestrator.refresh()
        assert snapshot.has_data

    @pytest.mark.asyncio
    async def test_save_token_refreshes(self, drainer: FakeDrainer) -> None:
        orch = RefreshOrchestrator(StaticTokenSource(), drainer)  # type: ignore[arg-type]

        task = await orch.save_token("fresh-token")
        assert task is not None
        await task

        assert await orch.has_token()
        assert {token for _, _, token in drainer.calls} == {"fresh-token"}
        assert orch.snapshot.has_data

    @pytest.mark.asyncio
    async def test_delete_token_resets_data(self, orchestrator: RefreshOrchestrator) -> None:
        await orchestrator.refresh()

        task = await orchestrator.delete_token()
        assert task is not None
        await task

        assert not await orchestrator.has_token()
        assert not orchestrator.snapshot.has_data

    @pytest.mark.asyncio
    async def test_clear_data(self, orchestrator: RefreshOrchestrator) -> None:
        await orchestrator.refresh()

        orchestrator.clear_data()

        assert orchestrator.snapshot == Snapshot()


# ---------------------------------------------------------------------------
# Event-loop responsiveness with a blocking secret store
# ---------------------------------------------------------------------------


class TestBlockingSecretStore:
    @pytest.mark.asyncio
    async def test_token_resolution_keeps_loop_responsive(self, drainer: FakeDrainer) -> None:
        orch = RefreshOrchestrator(
            SecretStoreTokenSource(SlowStore("pat")), drainer  # type: ignore[arg-type]
        )

        stall, snapshot = await max_loop_stall(orch.refresh())

        assert stall < 0.2
        assert snapshot.has_data
        assert {token for _, _, token in drainer.calls} == {"pat"}

    @pytest.mark.asyncio
    async def test_has_token_keeps_loop_responsive(self, drainer: FakeDrainer) -> None:
        orch = RefreshOrchestrator(
            SecretStoreTokenSource(SlowStore("pat")), drainer  # type: ignore[arg-type]
        )

        stall, configured = await max_loop_stall(orch.has_token())

        assert stall < 0.2
        assert configured

    @pytest.mark.asyncio
    async def test_save_token_keeps_loop_responsive(self, drainer: FakeDrainer) -> None:
        orch = RefreshOrchestrator(
            SecretStoreTokenSource(SlowStore()), drainer  # type: ignore[arg-type]
        )

        stall, task = await max_loop_stall(orch.save_token("pat"))

        assert stall < 0.2
        assert task is not None
        await task
        assert orch.snapshot.has_data
