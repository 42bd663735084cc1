"""Tests for the single repeating refresh timer."""

from __future__ import annotations

import asyncio

import pytest

from src.refresh.preferences import RefreshInterval
from src.refresh.timer import RefreshTimer, effective_interval


class TestEffectiveInterval:
    @pytest.mark.parametrize(
        ("interval", "constrained", "expected"),
        [
            (RefreshInterval.FIFTEEN_MINUTES, False, 900.0),
            (RefreshInterval.FIFTEEN_MINUTES, True, 1800.0),
            (RefreshInterval.SIXTY_MINUTES, True, 7200.0),
            (RefreshInterval.MANUAL_ONLY, False, None),
            (RefreshInterval.MANUAL_ONLY, True, None),
        ],
    )
    def test_effective_interval(
        self, interval: RefreshInterval, constrained: bool, expected: float | None
    ) -> None:
        assert effective_interval(interval, constrained) == expected


class TestRefreshTimer:
    @pytest.mark.asyncio
    async def test_fires_repeatedly(self) -> None:
        fired: list[int] = []
        timer = RefreshTimer(lambda: fired.append(1))

        timer.schedule(0.01)
        await asyncio.sleep(0.055)
        timer.cancel()

        assert len(fired) >= 2

    @pytest.mark.asyncio
    async def test_reschedule_replaces_active_timer(self) -> None:
        timer = RefreshTimer(lambda: None)
        timer.schedule(100.0)
        first = timer._task

        timer.schedule(200.0)
        await asyncio.sleep(0)

        assert first is not None and first.cancelled()
        assert timer.period == 200.0
        timer.cancel()

    @pytest.mark.asyncio
    async def test_none_period_means_inactive(self) -> None:
        timer = RefreshTimer(lambda: None)
        timer.schedule(100.0)

        timer.schedule(None)

        assert not timer.is_active
        assert timer.period is None

    @pytest.mark.asyncio
    async def test_non_positive_period_rejected(self) -> None:
        timer = RefreshTimer(lambda: None)
        with pytest.raises(ValueError):
            timer.schedule(0)
        assert not timer.is_active

    @pytest.mark.asyncio
    async def test_callback_failure_keeps_timer_alive(self) -> None:
        calls: list[int] = []

        def flaky() -> None:
            calls.append(1)
            raise RuntimeError("callback failed")

        timer = RefreshTimer(flaky)
        timer.schedule(0.01)
        await asyncio.sleep(0.055)

        assert timer.is_active
        assert len(calls) >= 2
        timer.cancel()

    def test_cancel_without_schedule(self) -> None:
        timer = RefreshTimer(lambda: None)
        timer.cancel()
        assert timer.period is None
