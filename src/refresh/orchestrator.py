"""Refresh orchestrator: owns the published snapshot and the refresh timer.

One refresh cycle:
1. Skip if a cycle is already running (at most one at a time)
2. Mark loading, clear the last error
3. Resolve the token; with none configured, reset to an empty snapshot
4. Compute the "today" and look-back date ranges
5. Run the seven fetches concurrently and wait for all of them
6. On full success, merge into a new snapshot; on failure keep the old
   data and record only the error
7. Clear the loading flag

The background timer period follows the configured refresh interval,
doubled while the device is power constrained.  Interval changes,
look-back changes and power transitions all replace the timer.

Usage::

    orchestrator = RefreshOrchestrator(token_source, drainer, power=power)
    await orchestrator.start()
    ...
    orchestrator.update_preferences(history_period=HistoryPeriod.THIRTY_DAYS)
    await orchestrator.stop()
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Callable

from src.oura.auth import AuthenticationType, TokenSource
from src.oura.client import DateRange, Endpoint
from src.oura.errors import FetchCancelledError, NotConfiguredError, OuraAPIError
from src.oura.pagination import PageDrainer
from src.refresh.preferences import (
    HistoryPeriod,
    Preferences,
    PreferencesStore,
    RefreshInterval,
)
from src.refresh.snapshot import CycleResults, Snapshot, merge_results
from src.refresh.timer import RefreshTimer, effective_interval
from src.services.power import ManualPowerState

logger = logging.getLogger("ringpulse.refresh.orchestrator")

SnapshotListener = Callable[[Snapshot], None]


def _consume_outcome(future: asyncio.Future) -> None:
    # An abandoned gather still records its failure; read it so asyncio
    # does not report it as never retrieved.
    if not future.cancelled():
        future.exception()


class RefreshOrchestrator:
    """Coordinates refresh cycles and publishes a consistent ``Snapshot``.

    All snapshot writes happen on the event loop that runs the
    orchestrator; fetch workers only return values.

    Args:
        token_source:      Credential provider, resolved once per cycle.
        drainer:           Page drainer used for every fetch.
        preferences:       Initial preferences; loaded from the store if omitted.
        preferences_store: Where preference changes are persisted.
        power:             Power-state collaborator; None means never constrained.
        today:             Local-date provider (injectable for tests).
        clock:             Timestamp provider for ``last_fetch_time``.
    """

    def __init__(
        self,
        token_source: TokenSource,
        drainer: PageDrainer,
        preferences: Preferences | None = None,
        preferences_store: PreferencesStore | None = None,
        power: ManualPowerState | None = None,
        today: Callable[[], date] = date.today,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._token_source = token_source
        self._drainer = drainer
        self._preferences_store = preferences_store
        if preferences is None:
            preferences = preferences_store.load() if preferences_store else Preferences()
        self._preferences = preferences
        self._power = power
        self._today = today
        self._clock = clock

        self._snapshot = Snapshot()
        self._listeners: list[SnapshotListener] = []
        self._in_flight = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._tasks: set[asyncio.Task] = set()
        self._cycle_task: asyncio.Task | None = None
        self._timer = RefreshTimer(self.trigger_refresh)
        self._power_unsubscribe: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def preferences(self) -> Preferences:
        return self._preferences

    @property
    def is_refreshing(self) -> bool:
        """True while a cycle runs or a triggered cycle has yet to start."""
        return self._in_flight or (self._cycle_task is not None and not self._cycle_task.done())

    async def has_token(self) -> bool:
        """Whether a credential is configured.  Store reads run in a worker thread."""
        return await asyncio.to_thread(lambda: self._token_source.is_configured)

    @property
    def authentication_type(self) -> AuthenticationType:
        return self._token_source.authentication_type

    @property
    def power_constrained(self) -> bool:
        return self._power.is_constrained if self._power is not None else False

    @property
    def timer_period(self) -> float | None:
        """Seconds between background refreshes of the active timer."""
        return self._timer.period

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call ``listener`` with every published snapshot.  Returns an unsubscribe."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _publish(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener %r failed", listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, initial_refresh: bool = True) -> None:
        """Subscribe to power changes, kick off the first cycle and the timer."""
        if self._power is not None:
            await self._power.start()
            self._power_unsubscribe = self._power.subscribe(self._on_power_change)
        if initial_refresh:
            self.trigger_refresh()
        self.reschedule()

    async def stop(self) -> None:
        """Cancel the timer and any cycle still running."""
        self._timer.cancel()
        if self._power_unsubscribe is not None:
            self._power_unsubscribe()
            self._power_unsubscribe = None
        if self._power is not None:
            await self._power.stop()

        pending = [t for t in self._tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Refresh orchestrator stopped")

    # ------------------------------------------------------------------
    # Refresh cycle
    # ------------------------------------------------------------------

    def trigger_refresh(self) -> asyncio.Task | None:
        """Start a cycle in the background unless one is already running."""
        if self.is_refreshing:
            logger.debug("Refresh already in progress; trigger ignored")
            return None
        task = asyncio.create_task(self.refresh(), name="refresh-cycle")
        self._cycle_task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_until_idle(self) -> None:
        """Return once no cycle is running or pending."""
        task = self._cycle_task
        if task is not None and not task.done():
            await asyncio.wait({task})
        await self._idle.wait()

    async def refresh(self, cancel: asyncio.Event | None = None) -> Snapshot:
        """Run one refresh cycle and return the resulting snapshot.

        Never raises for fetch outcomes; they end up in ``last_error``.
        Setting ``cancel`` aborts all outstanding fetches and backoff sleeps
        and leaves the snapshot as it was.

        Args:
            cancel: Optional cancellation signal for this cycle.
        """
        if self._in_flight:
            logger.debug("Refresh already in progress; request ignored")
            return self._snapshot

        self._in_flight = True
        self._idle.clear()
        previous_error = self._snapshot.last_error
        self._publish(self._snapshot.with_status(is_loading=True, last_error=None))
        try:
            await self._run_cycle(cancel, previous_error)
        except Exception as exc:
            logger.exception("Unexpected error during refresh")
            self._publish(self._snapshot.with_status(last_error=exc))
        finally:
            self._in_flight = False
            self._idle.set()
            self._publish(self._snapshot.with_status(is_loading=False))
        return self._snapshot

    async def _run_cycle(
        self, cancel: asyncio.Event | None, previous_error: Exception | None
    ) -> None:
        try:
            token = await self._token_source.resolve()
        except NotConfiguredError:
            logger.info("No Oura token configured; dashboard data cleared")
            self._publish(self._snapshot.without_data())
            return

        today = self._today()
        today_range = DateRange.single_day(today)
        history_range = DateRange.trailing(int(self._preferences.history_period), today)

        try:
            results = await self._fetch_all(token, today_range, history_range, cancel)
        except FetchCancelledError:
            logger.info("Refresh cancelled; keeping previous snapshot")
            self._publish(self._snapshot.with_status(last_error=previous_error))
            return
        except OuraAPIError as exc:
            logger.warning("Refresh failed (%s): %s", exc.kind.value, exc)
            self._publish(self._snapshot.with_status(last_error=exc))
            return

        self._publish(merge_results(self._snapshot, results, self._clock()))
        logger.info(
            "Refresh complete for %s..%s: %d readiness, %d sleep, %d periods, %d HR samples",
            history_range.start,
            history_range.end,
            len(results.readiness_history),
            len(results.sleep_history),
            len(results.sleep_period_history),
            len(results.heart_rate_history),
        )

    async def _fetch_all(
        self,
        token: str,
        today_range: DateRange,
        history_range: DateRange,
        cancel: asyncio.Event | None,
    ) -> CycleResults:
        """Fan out the seven fetches and join them.

        The first failure cancels the remaining fetches.  The ordering of
        ``plan`` matches the field order of ``CycleResults``.
        """
        plan = (
            (Endpoint.DAILY_READINESS, today_range),
            (Endpoint.DAILY_SLEEP, today_range),
            (Endpoint.SLEEP, today_range),
            (Endpoint.DAILY_READINESS, history_range),
            (Endpoint.DAILY_SLEEP, history_range),
            (Endpoint.SLEEP, history_range),
            (Endpoint.HEARTRATE, history_range),
        )
        tasks = [
            asyncio.create_task(
                self._drainer.drain(endpoint, date_range, token),
                name=f"fetch-{endpoint.value}-{date_range.start}",
            )
            for endpoint, date_range in plan
        ]
        gathered = asyncio.gather(*tasks)
        gathered.add_done_callback(_consume_outcome)
        waiter = asyncio.create_task(cancel.wait()) if cancel is not None else None

        try:
            if waiter is None:
                results = await gathered
            else:
                done, _ = await asyncio.wait(
                    {gathered, waiter}, return_when=asyncio.FIRST_COMPLETED
                )
                if gathered not in done:
                    raise FetchCancelledError()
                results = gathered.result()
        finally:
            if waiter is not None:
                waiter.cancel()
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        return CycleResults(*results)

    # ------------------------------------------------------------------
    # Scheduling and configuration
    # ------------------------------------------------------------------

    def reschedule(self) -> None:
        """Replace the timer using the current interval and power state."""
        period = effective_interval(self._preferences.refresh_interval, self.power_constrained)
        self._timer.schedule(period)

    def _on_power_change(self, constrained: bool) -> None:
        logger.info(
            "Power constrained=%s; rescheduling %s refresh",
            constrained,
            self._preferences.refresh_interval.display_name,
        )
        self.reschedule()

    def update_preferences(
        self,
        refresh_interval: RefreshInterval | None = None,
        history_period: HistoryPeriod | None = None,
    ) -> Preferences:
        """Apply preference changes, persist them and reschedule.

        A look-back change also starts a cycle immediately because the data
        window changed.
        """
        changes: dict[str, object] = {}
        if refresh_interval is not None and refresh_interval != self._preferences.refresh_interval:
            changes["refresh_interval"] = RefreshInterval(refresh_interval)
        if history_period is not None and history_period != self._preferences.history_period:
            changes["history_period"] = HistoryPeriod(history_period)
        if not changes:
            return self._preferences

        self._preferences = self._preferences.with_changes(**changes)
        logger.info("Preferences updated: %s", self._preferences.to_dict())
        if self._preferences_store is not None:
            self._preferences_store.save(self._preferences)

        self.reschedule()
        if "history_period" in changes:
            self.trigger_refresh()
        return self._preferences

    # ------------------------------------------------------------------
    # Credentials and data
    # ------------------------------------------------------------------

    async def save_token(self, token: str) -> asyncio.Task | None:
        """Store a new token and refresh right away."""
        await asyncio.to_thread(self._token_source.save_token, token)
        logger.info("Oura token updated")
        return self.trigger_refresh()

    async def delete_token(self) -> asyncio.Task | None:
        """Forget the token; the following cycle resets the dashboard."""
        await asyncio.to_thread(self._token_source.clear_credentials)
        logger.info("Oura token removed")
        return self.trigger_refresh()

    def clear_data(self) -> None:
        self._publish(Snapshot(is_loading=self._snapshot.is_loading))
