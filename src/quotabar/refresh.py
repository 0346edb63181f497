"""Refresh state machine.

reduce() is a pure function of (state, event) that returns the next state
and the commands the runtime must carry out: issue a fetch, cancel a fetch,
or schedule the next tick. It performs no I/O and never sleeps, so the
polling policy can be tested without threads or a network.

States are Idle (no active token) and Fetching (one active token). A result
whose token is not the active one is stale and produces no change.
"""

from __future__ import annotations

import enum
import itertools
import logging
import random
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Union

from .config import MAX_BACKOFF_FACTOR, MAX_BACKOFF_STEP, SAFETY_TIMEOUT_SECONDS
from .errors import UsageError
from .shared_state import UsageSnapshot

log = logging.getLogger(__name__)

_token_counter = itertools.count(1)


def next_token() -> int:
    """Return a process-unique fetch token."""
    return next(_token_counter)


class Trigger(enum.Enum):
    INITIAL = "initial"
    TICK = "tick"
    MANUAL = "manual"


# ── Events ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class Start:
    trigger: Trigger


@dataclass(frozen=True)
class FetchSucceeded:
    token: int
    snapshot: UsageSnapshot


@dataclass(frozen=True)
class FetchFailed:
    token: int
    error: UsageError


@dataclass(frozen=True)
class Cancel:
    pass


Event = Union[Start, FetchSucceeded, FetchFailed, Cancel]


# ── Commands ───────────────────────────────────────────────────

@dataclass(frozen=True)
class IssueFetch:
    token: int
    timeout: float


@dataclass(frozen=True)
class CancelFetch:
    token: int


@dataclass(frozen=True)
class ScheduleTick:
    delay: float


Command = Union[IssueFetch, CancelFetch, ScheduleTick]


@dataclass(frozen=True)
class ControllerState:
    """Everything the controller knows. Replaced, never mutated."""
    snapshot: UsageSnapshot | None = None
    last_updated: datetime | None = None
    loading: bool = False
    last_error: UsageError | None = None
    consecutive_failures: int = 0
    active_token: int | None = None


def retry_interval(
    interval: float,
    failures: int,
    retry_after: float = 0.0,
    rng: random.Random | None = None,
) -> float:
    """Delay before the next poll after `failures` consecutive failures.

    A positive server hint wins outright. Otherwise the interval doubles per
    failure up to 8x, plus up to 20% jitter so clients don't re-poll in sync.
    """
    if retry_after > 0:
        return retry_after
    if failures <= 0 or interval <= 0:
        return interval
    step = min(failures, MAX_BACKOFF_STEP)
    backoff = min(interval * (2 ** step), interval * MAX_BACKOFF_FACTOR)
    jitter = (rng or random).random() * (backoff / 5)
    return backoff + jitter


def effective_timeout(timeout: float, interval: float) -> float:
    """Per-fetch deadline: never longer than one polling cycle."""
    bounded = timeout
    if 0 < interval < timeout:
        bounded = interval
    if bounded <= 0:
        bounded = timeout
    if bounded <= 0:
        bounded = SAFETY_TIMEOUT_SECONDS
    return bounded


def reduce(
    state: ControllerState,
    event: Event,
    *,
    interval: float,
    timeout: float,
    now: datetime,
    rng: random.Random | None = None,
) -> tuple[ControllerState, list[Command]]:
    """Apply one event and return the new state plus commands to run."""
    if isinstance(event, Start):
        return _start(state, event.trigger, interval, timeout)
    if isinstance(event, FetchSucceeded):
        return _succeeded(state, event, interval, now)
    if isinstance(event, FetchFailed):
        return _failed(state, event, interval, rng)
    if isinstance(event, Cancel):
        return _cancel(state)
    raise TypeError(f"unknown event {event!r}")


def _start(state, trigger, interval, timeout):
    commands: list[Command] = []
    if state.loading:
        if trigger is not Trigger.MANUAL:
            return state, []
        log.debug("Manual refresh supersedes fetch %s", state.active_token)
        commands.append(CancelFetch(state.active_token))

    token = next_token()
    new_state = replace(state, loading=True, last_error=None, active_token=token)
    commands.append(IssueFetch(token, effective_timeout(timeout, interval)))
    return new_state, commands


def _succeeded(state, event, interval, now):
    if event.token != state.active_token:
        log.debug("Discarding stale result for fetch %s", event.token)
        return state, []

    error = UsageError.no_data() if not event.snapshot.rows(now) else None
    new_state = replace(
        state,
        snapshot=event.snapshot,
        last_updated=now,
        loading=False,
        active_token=None,
        consecutive_failures=0,
        last_error=error,
    )
    return new_state, [ScheduleTick(interval)]


def _failed(state, event, interval, rng):
    if event.token != state.active_token:
        log.debug("Discarding stale failure for fetch %s", event.token)
        return state, []

    failures = state.consecutive_failures + 1
    new_state = replace(
        state,
        last_error=event.error,
        loading=False,
        active_token=None,
        consecutive_failures=failures,
    )
    delay = retry_interval(interval, failures, event.error.retry_after, rng)
    return new_state, [ScheduleTick(delay)]


def _cancel(state):
    if state.active_token is None:
        return state, []
    return (
        replace(state, loading=False, active_token=None),
        [CancelFetch(state.active_token)],
    )
