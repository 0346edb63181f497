"""Main application coordinator: wires all components together."""

from __future__ import annotations

import functools
import logging
import signal
import threading
import time

from rich.console import Console
from rich.live import Live

from .config import KEYS_QUIT, KEYS_REFRESH, RENDER_TICK_SECONDS
from .dashboard import SPINNER_FRAMES, Dashboard
from .keys import KeyReader
from .settings import Settings
from .shared_state import DashboardView, SharedState
from .theme import Theme
from .usage_api import fetch_usage
from .usage_monitor import UsageMonitor

log = logging.getLogger(__name__)


class App:
    """Top-level coordinator for the live dashboard."""

    def __init__(self, settings: Settings, theme: Theme, console: Console | None = None) -> None:
        self._settings = settings
        self._theme = theme
        self._console = console or Console(no_color=theme.no_color)
        self._state = SharedState(DashboardView(refresh_interval=settings.refresh_interval))
        self._dashboard = Dashboard(theme)
        self._quit = threading.Event()
        self._dirty = threading.Event()
        self._monitor: UsageMonitor | None = None
        self._keys: KeyReader | None = None

    def run(self) -> None:
        """Start all components and redraw until the user quits."""
        log.info("Starting dashboard")

        fetch = functools.partial(
            fetch_usage,
            token=self._settings.token,
            beta_header=self._settings.beta_header,
        )
        self._monitor = UsageMonitor(
            self._state,
            fetch,
            interval=self._settings.refresh_interval,
            timeout=self._settings.http_timeout,
        )
        self._state.on_change(lambda _view: self._dirty.set())

        self._keys = KeyReader(self._on_key)
        previous_sigterm = signal.signal(signal.SIGTERM, self._on_signal)

        try:
            self._keys.start()
            with Live(
                self._frame(),
                console=self._console,
                screen=True,
                auto_refresh=False,
                transient=True,
            ) as live:
                self._monitor.start()
                self._loop(live)
        except KeyboardInterrupt:
            log.info("Interrupted")
        finally:
            self._shutdown()
            signal.signal(signal.SIGTERM, previous_sigterm)

    def _loop(self, live: Live) -> None:
        while not self._quit.is_set():
            live.update(self._frame(), refresh=True)
            self._dirty.wait(RENDER_TICK_SECONDS)
            self._dirty.clear()

    def _frame(self):
        frame = int(time.monotonic() / RENDER_TICK_SECONDS) % len(SPINNER_FRAMES)
        return self._dashboard.render(
            self._state.get(),
            width=self._console.width,
            spinner_frame=frame,
        )

    def _on_key(self, key: str) -> None:
        if key in KEYS_REFRESH and self._monitor:
            self._monitor.refresh_now()
        elif key in KEYS_QUIT:
            self._quit.set()
            self._dirty.set()

    def _on_signal(self, signum, _frame) -> None:
        log.info("Received signal %d", signum)
        self._quit.set()
        self._dirty.set()

    def _shutdown(self) -> None:
        """Clean shutdown of all components."""
        log.info("Shutting down...")
        self._quit.set()
        if self._monitor:
            self._monitor.stop()
        if self._keys:
            self._keys.stop()
        log.info("Shutdown complete")
