"""Utility functions for time formatting and display helpers."""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def clamp(value: float, low: float, high: float) -> float:
    """Constrain value to the inclusive [low, high] range (NaN maps to low)."""
    if math.isnan(value) or value < low:
        return low
    if value > high:
        return high
    return value


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def parse_timestamp(text: str) -> datetime:
    """Parse an RFC 3339 timestamp, e.g. "2025-01-01T10:00:00.123456Z".

    Raises ValueError for malformed input or a timestamp without an offset.
    """
    if not isinstance(text, str):
        raise ValueError(f"timestamp must be a string, got {type(text).__name__}")
    raw = text.strip()
    if raw[-1:] in ("Z", "z"):
        raw = raw[:-1] + "+00:00"
    # fromisoformat on older interpreters only accepts 3 or 6 fraction digits
    match = re.match(r"^(.*T\d{2}:\d{2}:\d{2})\.(\d+)(.*)$", raw)
    if match:
        head, frac, tail = match.groups()
        raw = f"{head}.{frac[:6].ljust(6, '0')}{tail}"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp {text!r} has no timezone")
    return parsed


def friendly_duration(seconds: float) -> str:
    """Render a duration compactly: "45m", "2h30m", "3d 5h"."""
    total = int(seconds)
    if total < 60:
        return "less than a minute"
    if total < 3600:
        return f"{total // 60}m"
    if total < 86400:
        hours = total // 3600
        minutes = (total % 3600) // 60
        if minutes == 0:
            return f"{hours}h"
        return f"{hours}h{minutes}m"
    days = total // 86400
    hours = (total % 86400) // 3600
    if hours == 0:
        return f"{days}d"
    return f"{days}d {hours}h"


def format_reset(reset_at: datetime | None, now: datetime | None = None) -> tuple[str, str]:
    """Build the reset and remaining labels for a usage window.

    Examples: ("resets at 14:00 CET Jan 01", "2h15m left"),
    ("resets at 09:00 UTC Jan 01", "resets soon") once the reset has passed.
    """
    if reset_at is None:
        return "", ""
    local = reset_at.astimezone()
    reset = f"resets at {local.strftime('%H:%M %Z %b %d')}"
    remaining = (reset_at - _now(now)).total_seconds()
    if remaining > 0:
        return reset, f"{friendly_duration(remaining)} left"
    return reset, "resets soon"


def human_time(ts: datetime, now: datetime | None = None) -> str:
    """Describe how long ago ts was: "updated 20s ago", "updated 3m ago"."""
    diff = (_now(now) - ts).total_seconds()
    if diff < 5:
        return "updated right now"
    if diff < 60:
        secs = int(diff)
        secs = 10 if secs < 10 else (secs // 10) * 10
        return f"updated {secs}s ago"
    if diff < 3600:
        return f"updated {int(diff // 60)}m ago"
    return f"updated {int(diff // 3600)}h ago"


def pct_str(value: float | None) -> str:
    """Format a percentage value for the chart."""
    if value is None:
        return "--"
    return f"{value:5.1f}%"


def parse_duration(text: str) -> float:
    """Parse "500ms", "30s", "1m", "1h30m" or bare seconds into seconds."""
    raw = str(text).strip().lower()
    if not raw:
        raise ValueError("empty duration")
    try:
        seconds = float(raw)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            raise ValueError(f"invalid duration {text!r}")
        return seconds
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(raw):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(raw):
        raise ValueError(f"invalid duration {text!r}")
    return total


def format_interval(seconds: float) -> str:
    """Render a refresh interval the way it is typed on the command line."""
    if seconds < 1:
        return f"{int(round(seconds * 1000))}ms"
    total = int(seconds)
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs}s")
    return "".join(parts)
