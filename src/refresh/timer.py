"""Single repeating asyncio timer with power-aware period selection."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from src.refresh.preferences import RefreshInterval

logger = logging.getLogger("ringpulse.refresh.timer")


def effective_interval(interval: RefreshInterval, power_constrained: bool) -> float | None:
    """Seconds between background refreshes, or None for manual only.

    The configured interval is doubled while the device is power constrained.
    """
    if power_constrained:
        return interval.low_power_seconds
    return interval.seconds


class RefreshTimer:
    """At most one active repeating timer.

    ``schedule()`` always cancels the previous timer before starting a new
    one.  The callback is synchronous and must not block; the orchestrator
    passes a function that spawns the refresh as its own task, so cancelling
    the timer never cancels a cycle already running.
    """

    def __init__(self, callback: Callable[[], object]) -> None:
        self._callback = callback
        self._task: asyncio.Task | None = None
        self._period: float | None = None

    @property
    def period(self) -> float | None:
        """Seconds between fires of the active timer, None when inactive."""
        return self._period if self.is_active else None

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, period: float | None) -> None:
        """Replace any active timer with one firing every ``period`` seconds.

        A None period leaves no timer running (manual only).
        """
        self.cancel()
        if period is None:
            logger.info("Background refresh disabled (manual only)")
            return
        if period <= 0:
            raise ValueError(f"Timer period must be positive, got {period}")
        self._period = period
        self._task = asyncio.create_task(self._run(period), name="refresh-timer")
        logger.info("Background refresh every %.0fs", period)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._period = None

    async def _run(self, period: float) -> None:
        while True:
            await asyncio.sleep(period)
            try:
                self._callback()
            except Exception:
                logger.exception("Refresh timer callback failed")
