"""Runtime settings: defaults, the optional preferences file, env and flags.

SECURITY MODEL:
- The preferences file stores ONLY display/cadence preferences.
- NO credentials or tokens are ever read from or written to it.

Precedence, highest first: command-line flags, environment, preferences
file, built-in defaults.
"""

from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path

from .config import (
    CREDENTIALS_PATH, DEFAULT_BETA_HEADER, DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_INTERVAL_SECONDS, ENV_BETA_HEADER, ENV_HTTP_TIMEOUT, ENV_INTERVAL,
    MIN_INTERVAL_SECONDS,
)
from .errors import ConfigError
from .utils import format_interval, parse_duration

log = logging.getLogger(__name__)

SETTINGS_DIR = Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config") / "quotabar"
SETTINGS_FILE = SETTINGS_DIR / "settings.json"

DEFAULTS = {
    "interval": DEFAULT_INTERVAL_SECONDS,        # seconds between API polls
    "http_timeout": DEFAULT_HTTP_TIMEOUT_SECONDS,  # per-request timeout
    "beta_header": DEFAULT_BETA_HEADER,
    "high_contrast": False,
}


@dataclass
class Settings:
    """Validated runtime options for the dashboard."""
    token: str
    credentials_path: Path = CREDENTIALS_PATH
    refresh_interval: float = DEFAULT_INTERVAL_SECONDS
    http_timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    beta_header: str = DEFAULT_BETA_HEADER
    no_color: bool = False
    high_contrast: bool = False

    def validate(self) -> None:
        """Raise ConfigError describing the first invalid field."""
        if not self.token or not self.token.strip():
            raise ConfigError("token required")
        if self.http_timeout <= 0:
            raise ConfigError("http client timeout must be positive")
        if not self.beta_header or not self.beta_header.strip():
            raise ConfigError("beta header required")
        if self.refresh_interval <= 0:
            raise ConfigError("refresh interval must be positive")
        if self.refresh_interval < MIN_INTERVAL_SECONDS:
            raise ConfigError(
                "refresh interval too small; must be at least "
                f"{format_interval(MIN_INTERVAL_SECONDS)}"
            )

    @property
    def uses_default_beta_header(self) -> bool:
        return self.beta_header.strip() == DEFAULT_BETA_HEADER


def load(path: Path | None = None) -> dict:
    """Load preferences from disk, returning defaults for missing keys."""
    settings_file = path or SETTINGS_FILE
    settings = dict(DEFAULTS)
    try:
        if settings_file.exists():
            data = json.loads(settings_file.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
            # Only accept known keys
            for key in DEFAULTS:
                if key in data:
                    settings[key] = data[key]
    except (ValueError, OSError) as exc:
        log.warning("Failed to load settings: %s", exc)
    return settings


def _duration(value, default: float, source: str) -> tuple[float, str | None]:
    """Coerce a duration preference; return (seconds, warning)."""
    if isinstance(value, bool):
        value = str(value)
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value), None
    try:
        return parse_duration(value), None
    except ValueError:
        return default, (
            f"warning: invalid {source} value {value!r}; "
            f"using default {format_interval(default)}"
        )


def env_defaults(prefs: dict | None = None) -> tuple[dict, list[str]]:
    """Merge preferences file and environment into flag defaults.

    Returns (defaults, warnings). Invalid values fall back to the built-in
    default and produce a warning instead of failing.
    """
    prefs = prefs if prefs is not None else load()
    warnings: list[str] = []

    interval, warn = _duration(prefs["interval"], DEFAULT_INTERVAL_SECONDS, "interval setting")
    if warn:
        warnings.append(warn)
    timeout, warn = _duration(prefs["http_timeout"], DEFAULT_HTTP_TIMEOUT_SECONDS, "http_timeout setting")
    if warn:
        warnings.append(warn)

    raw_interval = os.environ.get(ENV_INTERVAL, "").strip()
    if raw_interval:
        interval, warn = _duration(raw_interval, DEFAULT_INTERVAL_SECONDS, ENV_INTERVAL)
        if warn:
            warnings.append(warn)

    raw_timeout = os.environ.get(ENV_HTTP_TIMEOUT, "").strip()
    if raw_timeout:
        parsed, warn = _duration(raw_timeout, DEFAULT_HTTP_TIMEOUT_SECONDS, ENV_HTTP_TIMEOUT)
        if warn is None and parsed <= 0:
            warn = (
                f"warning: invalid {ENV_HTTP_TIMEOUT} value {raw_timeout!r}; "
                f"using default {format_interval(DEFAULT_HTTP_TIMEOUT_SECONDS)}"
            )
            parsed = DEFAULT_HTTP_TIMEOUT_SECONDS
        timeout = parsed
        if warn:
            warnings.append(warn)

    beta = os.environ.get(ENV_BETA_HEADER, "").strip() or str(prefs["beta_header"]).strip()

    return {
        "interval": interval,
        "http_timeout": timeout,
        "beta_header": beta or DEFAULT_BETA_HEADER,
        "high_contrast": bool(prefs["high_contrast"]),
    }, warnings
