"""User-selectable refresh preferences and their YAML persistence.

Preferences live in ``~/.config/ringpulse/preferences.yaml`` (XDG
compliant) unless a path is configured.  A missing file yields defaults.

Usage::

    store = PreferencesStore(path)
    prefs = store.load()
    store.save(prefs.with_changes(history_period=HistoryPeriod.THIRTY_DAYS))
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, replace
from enum import IntEnum
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("ringpulse.refresh.preferences")


def get_config_dir() -> Path:
    """Config directory (XDG compliant)."""
    if env_dir := os.environ.get("XDG_CONFIG_HOME"):
        return Path(env_dir) / "ringpulse"
    return Path.home() / ".config" / "ringpulse"


class HistoryPeriod(IntEnum):
    """Look-back window for historical data, in days."""

    SEVEN_DAYS = 7
    FOURTEEN_DAYS = 14
    THIRTY_DAYS = 30

    @property
    def display_name(self) -> str:
        return f"{self.value} Days"


class RefreshInterval(IntEnum):
    """Background refresh period in minutes.  0 means manual only."""

    FIFTEEN_MINUTES = 15
    THIRTY_MINUTES = 30
    SIXTY_MINUTES = 60
    MANUAL_ONLY = 0

    @property
    def display_name(self) -> str:
        if self is RefreshInterval.MANUAL_ONLY:
            return "Manual Only"
        return f"{self.value} Minutes"

    @property
    def seconds(self) -> float | None:
        if self is RefreshInterval.MANUAL_ONLY:
            return None
        return float(self.value * 60)

    @property
    def low_power_seconds(self) -> float | None:
        seconds = self.seconds
        return None if seconds is None else seconds * 2


@dataclass(frozen=True)
class Preferences:
    history_period: HistoryPeriod = HistoryPeriod.SEVEN_DAYS
    refresh_interval: RefreshInterval = RefreshInterval.FIFTEEN_MINUTES

    def with_changes(self, **changes: Any) -> "Preferences":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, int]:
        return {
            "history_period_days": int(self.history_period),
            "refresh_interval_minutes": int(self.refresh_interval),
        }


class PreferencesValidationError(ValueError):
    """Raised when stored or submitted preferences are invalid."""


def build_preferences(raw: dict, defaults: Preferences | None = None) -> Preferences:
    """Validate a raw mapping and construct ``Preferences``.

    Missing keys take the default.  Every invalid value is reported at once.

    Raises:
        PreferencesValidationError: If any value is out of range.
    """
    base = defaults or Preferences()
    errors: list[str] = []

    history = base.history_period
    if "history_period_days" in raw:
        try:
            history = HistoryPeriod(int(raw["history_period_days"]))
        except (TypeError, ValueError):
            errors.append(
                f"history_period_days must be one of {[p.value for p in HistoryPeriod]}, "
                f"got {raw['history_period_days']!r}"
            )

    interval = base.refresh_interval
    if "refresh_interval_minutes" in raw:
        try:
            interval = RefreshInterval(int(raw["refresh_interval_minutes"]))
        except (TypeError, ValueError):
            errors.append(
                f"refresh_interval_minutes must be one of {[i.value for i in RefreshInterval]}, "
                f"got {raw['refresh_interval_minutes']!r}"
            )

    if errors:
        raise PreferencesValidationError(
            f"{len(errors)} invalid preference value(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )
    return Preferences(history_period=history, refresh_interval=interval)


class PreferencesStore:
    """Loads and saves ``Preferences`` as YAML.

    Args:
        path:     File location; defaults to the XDG config dir.
        defaults: Values used when the file or a key is missing.
    """

    def __init__(self, path: Path | None = None, defaults: Preferences | None = None) -> None:
        self._path = path or get_config_dir() / "preferences.yaml"
        self._defaults = defaults or Preferences()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self, strict: bool = False) -> Preferences:
        """Read preferences from disk.

        With ``strict`` false (the default) unreadable or invalid files are
        logged and defaults returned, so a bad file never blocks startup.
        """
        if not self._path.exists():
            return self._defaults

        try:
            with self._path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            if not isinstance(raw, dict):
                raise PreferencesValidationError(
                    f"{self._path} must contain a mapping, got {type(raw).__name__}"
                )
            prefs = build_preferences(raw, self._defaults)
        except (yaml.YAMLError, OSError, PreferencesValidationError) as exc:
            if strict:
                if isinstance(exc, PreferencesValidationError):
                    raise
                raise PreferencesValidationError(f"Could not read {self._path}: {exc}") from exc
            logger.warning("Using default preferences; could not load %s: %s", self._path, exc)
            return self._defaults

        logger.debug("Loaded preferences from %s: %s", self._path, prefs.to_dict())
        return prefs

    def save(self, prefs: Preferences) -> None:
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("w", encoding="utf-8") as fh:
                yaml.safe_dump(prefs.to_dict(), fh, default_flow_style=False)
        logger.info("Saved preferences to %s", self._path)
