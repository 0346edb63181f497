"""Usage data types and the thread-safe container the dashboard reads.

SECURITY MODEL:
- Contains only usage metric data (percentages, timestamps).
- No credentials, tokens, or authentication data flows through this module.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterator

from .config import LABEL_CURRENT, LABEL_WEEKLY
from .errors import UsageError
from .utils import clamp, format_reset

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageWindow:
    """A single rolling usage window."""
    utilization: float | None = None
    resets_at: datetime | None = None


@dataclass(frozen=True)
class UsageRow:
    """One chart row, ready to draw."""
    label: str
    percent: float
    reset: str = ""
    remaining: str = ""


@dataclass(frozen=True)
class UsageSnapshot:
    """The last successfully decoded pair of windows."""
    five_hour: UsageWindow | None = None
    seven_day: UsageWindow | None = None

    @property
    def five_hour_percent(self) -> float | None:
        return self.five_hour.utilization if self.five_hour else None

    @property
    def five_hour_reset(self) -> datetime | None:
        return self.five_hour.resets_at if self.five_hour else None

    @property
    def seven_day_percent(self) -> float | None:
        return self.seven_day.utilization if self.seven_day else None

    @property
    def seven_day_reset(self) -> datetime | None:
        return self.seven_day.resets_at if self.seven_day else None

    def _labeled(self) -> Iterator[tuple[str, UsageWindow | None]]:
        yield LABEL_CURRENT, self.five_hour
        yield LABEL_WEEKLY, self.seven_day

    def rows(self, now: datetime | None = None) -> list[UsageRow]:
        """Chart rows for every window that reported a utilization."""
        rows = []
        for label, window in self._labeled():
            if window is None or window.utilization is None:
                continue
            reset, remaining = format_reset(window.resets_at, now)
            rows.append(UsageRow(
                label=label,
                percent=clamp(window.utilization, 0.0, 100.0),
                reset=reset,
                remaining=remaining,
            ))
        return rows

    def to_payload(self) -> dict[str, Any]:
        """Encode back into the API's JSON shape."""
        def _window(w: UsageWindow | None) -> dict[str, Any] | None:
            if w is None:
                return None
            return {
                "utilization": w.utilization,
                "resets_at": w.resets_at.isoformat() if w.resets_at else None,
            }

        return {"five_hour": _window(self.five_hour), "seven_day": _window(self.seven_day)}


@dataclass(frozen=True)
class DashboardView:
    """Read-only view of the controller handed to the presentation layer."""
    refresh_interval: float
    snapshot: UsageSnapshot | None = None
    last_updated: datetime | None = None
    loading: bool = False
    last_error: UsageError | None = None
    consecutive_failures: int = 0
    next_refresh_in: float | None = None


class SharedState:
    """Thread-safe wrapper around DashboardView with change callbacks."""

    def __init__(self, initial: DashboardView) -> None:
        self._lock = threading.Lock()
        self._view = initial
        self._callbacks: list[Callable[[DashboardView], None]] = []

    def update(self, view: DashboardView) -> None:
        """Update the stored view and notify all callbacks."""
        with self._lock:
            self._view = view
            callbacks = list(self._callbacks)
        for cb in callbacks:
            try:
                cb(view)
            except Exception:
                log.debug("Callback error in %s", getattr(cb, "__name__", cb), exc_info=True)

    def get(self) -> DashboardView:
        """Return the current view."""
        with self._lock:
            return self._view

    def on_change(self, callback: Callable[[DashboardView], None]) -> None:
        """Register a callback to be invoked on every update."""
        with self._lock:
            self._callbacks.append(callback)
