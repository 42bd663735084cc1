"""Power-state collaborator: a boolean "power constrained" signal.

The refresh engine only reads the current value and subscribes to
transitions.  Listeners fire on changes only, never on repeated values.

Implementations:
    ManualPowerState — set by hand (tests, non-mac hosts)
    PmsetPowerState  — polls macOS ``pmset -g`` for the low-power-mode flag
"""

from __future__ import annotations

import asyncio
import logging
import re
import subprocess
from typing import Callable

logger = logging.getLogger("ringpulse.services.power")

PowerListener = Callable[[bool], None]

_LOW_POWER_RE = re.compile(r"^\s*lowpowermode\s+(\d+)", re.MULTILINE)


class ManualPowerState:
    """In-process power flag with change notifications."""

    def __init__(self, constrained: bool = False) -> None:
        self._constrained = constrained
        self._listeners: list[PowerListener] = []

    @property
    def is_constrained(self) -> bool:
        return self._constrained

    def subscribe(self, listener: PowerListener) -> Callable[[], None]:
        """Register a transition listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def set_constrained(self, constrained: bool) -> None:
        if constrained == self._constrained:
            return
        self._constrained = constrained
        logger.info("Power state changed: constrained=%s", constrained)
        for listener in list(self._listeners):
            try:
                listener(constrained)
            except Exception:
                logger.exception("Power state listener %r failed", listener)

    async def start(self) -> None:
        """No background work for a manually driven flag."""

    async def stop(self) -> None:
        """No background work for a manually driven flag."""


def read_low_power_mode(pmset_bin: str = "pmset") -> bool | None:
    """Return the macOS low-power-mode flag, or None if it cannot be read."""
    try:
        result = subprocess.run(
            [pmset_bin, "-g"],
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        logger.debug("pmset unavailable: %s", exc)
        return None
    return parse_low_power_mode(result.stdout)


def parse_low_power_mode(output: str) -> bool | None:
    match = _LOW_POWER_RE.search(output)
    if match is None:
        return None
    return match.group(1) != "0"


class PmsetPowerState(ManualPowerState):
    """Polls ``pmset -g`` and publishes low-power-mode transitions.

    Args:
        poll_seconds: Interval between polls.
        reader:       Injectable flag reader (defaults to ``read_low_power_mode``).
    """

    def __init__(
        self,
        poll_seconds: float = 60.0,
        reader: Callable[[], bool | None] = read_low_power_mode,
    ) -> None:
        super().__init__(constrained=bool(reader()))
        self._poll_seconds = poll_seconds
        self._reader = reader
        self._task: asyncio.Task | None = None

    async def poll_once(self) -> None:
        # Read off-loop; notify on-loop so listeners may touch asyncio state.
        value = await asyncio.to_thread(self._reader)
        if value is not None:
            self.set_constrained(value)

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_seconds)
            await self.poll_once()

    async def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._poll_loop(), name="pmset-poll")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
