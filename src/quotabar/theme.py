"""Terminal theme detection and the styles derived from it.

The theme is resolved once at startup and passed into the dashboard; the
refresh controller never sees it.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from .config import (
    COLOR_ACCENT, COLOR_ACCENT_HI, COLOR_ERROR, COLOR_MUTED, COLOR_TEXT,
    COLOR_TRACK, ENV_HIGH_CONTRAST, color_for_utilization,
)

log = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Theme:
    no_color: bool = False
    high_contrast: bool = False

    @property
    def accent(self) -> str:
        if self.no_color:
            return "bold"
        return "bold yellow" if self.high_contrast else COLOR_ACCENT

    @property
    def accent_hi(self) -> str:
        if self.no_color:
            return ""
        return "bright_white" if self.high_contrast else COLOR_ACCENT_HI

    @property
    def muted(self) -> str:
        if self.no_color:
            return "dim"
        return "white" if self.high_contrast else COLOR_MUTED

    @property
    def error(self) -> str:
        if self.no_color:
            return "bold"
        return "bold bright_red" if self.high_contrast else COLOR_ERROR

    @property
    def header(self) -> str:
        if self.no_color:
            return "bold reverse"
        return f"bold {COLOR_TEXT} on {COLOR_ACCENT}"

    @property
    def track(self) -> str:
        if self.no_color:
            return "dim"
        return "grey50" if self.high_contrast else COLOR_TRACK

    @property
    def label(self) -> str:
        return "bold" if self.no_color else f"bold {COLOR_TEXT}"

    def bar(self, percent: float) -> str:
        """Style for the filled part of a usage bar."""
        if self.no_color:
            return "bold"
        if self.high_contrast:
            return color_for_utilization(percent)
        return COLOR_ACCENT

    def value(self, percent: float) -> str:
        if self.no_color:
            return "bold"
        return f"bold {color_for_utilization(percent)}"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUTHY


def resolve_theme(no_color: bool = False, high_contrast: bool = False) -> Theme:
    """Combine CLI flags with environment hints (NO_COLOR, TERM=dumb)."""
    if "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb":
        no_color = True
    if _env_flag(ENV_HIGH_CONTRAST):
        high_contrast = True
    theme = Theme(no_color=no_color, high_contrast=high_contrast)
    log.debug("Theme resolved: %s", theme)
    return theme
