"""Background event loop that drives the refresh state machine.

All ControllerState changes happen on one thread, which drains an event
queue and feeds each event through refresh.reduce(). Fetches run on short
lived worker threads and report back through the same queue, so the state
never needs a lock.

SECURITY MODEL:
- The token is handed to the fetch function only; it never enters state,
  events, or log messages.
"""

from __future__ import annotations

import logging
import math
import queue
import random
import threading
from datetime import datetime, timezone
from typing import Callable

from .config import MAX_DELAY_SECONDS
from .errors import UsageError
from .refresh import (
    Cancel, CancelFetch, Command, ControllerState, Event, FetchFailed,
    FetchSucceeded, IssueFetch, ScheduleTick, Start, Trigger, reduce,
)
from .shared_state import DashboardView, SharedState, UsageSnapshot
from .usage_api import FetchContext

log = logging.getLogger(__name__)

FetchFunc = Callable[[FetchContext], UsageSnapshot]

_STOP = object()


class UsageMonitor:
    """Owns the controller state and runs ticks, fetches and cancellation."""

    def __init__(
        self,
        state: SharedState,
        fetch: FetchFunc,
        interval: float,
        timeout: float,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._shared = state
        self._fetch = fetch
        self._interval = interval
        self._timeout = timeout
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._events: queue.Queue = queue.Queue()
        self._state = ControllerState()
        self._contexts: dict[int, FetchContext] = {}
        self._timer: threading.Timer | None = None
        self._timer_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stopped = threading.Event()
        self._next_delay: float | None = None

    @property
    def state(self) -> ControllerState:
        """Latest controller state (read-only snapshot)."""
        return self._state

    @property
    def interval(self) -> float:
        return self._interval

    def start(self) -> None:
        """Start the event loop and kick off the initial load."""
        self._thread = threading.Thread(target=self._run, daemon=True, name="UsageMonitor")
        self._thread.start()
        log.info("Usage monitor started (poll every %.1fs)", self._interval)
        self.post(Start(Trigger.INITIAL))

    def stop(self, timeout: float = 5.0) -> None:
        """Cancel any in-flight fetch and stop the loop."""
        if self._stopped.is_set():
            return
        self._events.put(Cancel())
        self._events.put(_STOP)
        self._stopped.set()
        self._cancel_timer()
        if self._thread:
            self._thread.join(timeout=timeout)
        log.info("Usage monitor stopped")

    def refresh_now(self) -> None:
        """Manual refresh: supersedes any fetch already in flight."""
        log.info("Manual refresh requested")
        self.post(Start(Trigger.MANUAL))

    def update_interval(self, interval: float) -> None:
        """Update the poll interval (takes effect next cycle)."""
        self._interval = interval
        log.info("Poll interval updated to %.1fs", interval)

    def post(self, event: Event) -> None:
        """Queue an event for the loop thread."""
        if not self._stopped.is_set():
            self._events.put(event)

    def view(self) -> DashboardView:
        s = self._state
        return DashboardView(
            refresh_interval=self._interval,
            snapshot=s.snapshot,
            last_updated=s.last_updated,
            loading=s.loading,
            last_error=s.last_error,
            consecutive_failures=s.consecutive_failures,
            next_refresh_in=self._next_delay,
        )

    # ── loop ───────────────────────────────────────────────────

    def _run(self) -> None:
        while True:
            event = self._events.get()
            if event is _STOP:
                break
            self.handle(event)

    def handle(self, event: Event) -> None:
        """Apply one event. Only called from the loop thread (or tests)."""
        previous = self._state
        self._state, commands = reduce(
            previous,
            event,
            interval=self._interval,
            timeout=self._timeout,
            now=self._clock(),
            rng=self._rng,
        )
        self._log_transition(previous, self._state, event)
        for command in commands:
            self._execute(command)
        if self._state is not previous or commands:
            self._shared.update(self.view())

    def _log_transition(self, before: ControllerState, after: ControllerState, event: Event) -> None:
        if after is before:
            return
        if isinstance(event, FetchFailed):
            log.warning(
                "Poll error (%d consecutive): %s",
                after.consecutive_failures, event.error.message,
            )
        elif isinstance(event, FetchSucceeded):
            if before.consecutive_failures > 0:
                log.info("Poll recovered after %d errors", before.consecutive_failures)
            if after.last_error is not None:
                log.info("Poll succeeded but returned no utilization data")
        log.debug("%s: loading=%s token=%s", type(event).__name__, after.loading, after.active_token)

    def _execute(self, command: Command) -> None:
        if isinstance(command, IssueFetch):
            ctx = FetchContext(command.token, command.timeout)
            self._contexts[command.token] = ctx
            worker = threading.Thread(
                target=self._do_fetch, args=(ctx,), daemon=True,
                name=f"UsageFetch-{command.token}",
            )
            worker.start()
        elif isinstance(command, CancelFetch):
            ctx = self._contexts.pop(command.token, None)
            if ctx is not None:
                ctx.cancel()
                log.debug("Cancelled fetch %s", command.token)
        elif isinstance(command, ScheduleTick):
            self._schedule(command.delay)

    def _do_fetch(self, ctx: FetchContext) -> None:
        try:
            snapshot = self._fetch(ctx)
        except UsageError as exc:
            result: Event = FetchFailed(ctx.token, exc)
        except Exception as exc:
            log.exception("Unexpected error during fetch")
            result = FetchFailed(ctx.token, UsageError.transport(str(exc) or type(exc).__name__))
        else:
            if ctx.cancelled:
                result = FetchFailed(ctx.token, UsageError.canceled())
            else:
                result = FetchSucceeded(ctx.token, snapshot)
        self._contexts.pop(ctx.token, None)
        self.post(result)

    # ── timer ──────────────────────────────────────────────────

    def _schedule(self, delay: float) -> None:
        # Timer cannot wait past the platform time_t range
        if math.isnan(delay) or delay < 0:
            delay = 0.0
        delay = min(delay, MAX_DELAY_SECONDS)
        self._next_delay = delay
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
            if self._stopped.is_set():
                return
            self._timer = threading.Timer(delay, self.post, args=(Start(Trigger.TICK),))
            self._timer.daemon = True
            self._timer.start()
        log.debug("Next poll in %.1fs", delay)

    def _cancel_timer(self) -> None:
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
