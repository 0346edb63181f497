"""Constants and configuration for Quotabar."""

from pathlib import Path

# App identity
APP_NAME = "Quotabar"
APP_TAGLINE = "Claude OAuth Usage"
USER_AGENT = "quotabar"

# API
USAGE_API_URL = "https://api.anthropic.com/api/oauth/usage"
DEFAULT_BETA_HEADER = "oauth-2025-04-20"
MAX_BODY_BYTES = 32 << 10
MAX_ERROR_BODY_BYTES = 4 << 10

# Refresh cadence (seconds)
DEFAULT_INTERVAL_SECONDS = 30.0
DEFAULT_HTTP_TIMEOUT_SECONDS = 8.0
MIN_INTERVAL_SECONDS = 0.2
SAFETY_TIMEOUT_SECONDS = 2.0
MAX_BACKOFF_STEP = 3
MAX_BACKOFF_FACTOR = 8
RENDER_TICK_SECONDS = 0.1
# Longest wait before the next poll, whatever the server hints
MAX_DELAY_SECONDS = 7 * 24 * 3600.0

# Credentials
CREDENTIALS_PATH = Path.home() / ".claude" / ".credentials.json"

# Environment
ENV_TOKEN = "ANTHROPIC_OAUTH_TOKEN"
ENV_BETA_HEADER = "ANTHROPIC_BETA_HEADER"
ENV_HTTP_TIMEOUT = "ANTHROPIC_HTTP_TIMEOUT"
ENV_INTERVAL = "QUOTABAR_INTERVAL"
ENV_HIGH_CONTRAST = "QUOTABAR_HIGH_CONTRAST"

# Row labels
LABEL_CURRENT = "Current"
LABEL_WEEKLY = "Weekly"

# User-facing copy
TEXT_NO_DATA = "No utilization data available."
TEXT_SEPARATOR = " · "
TEXT_STATUS_FETCH = "{spinner} fetching latest…"
TEXT_STATUS_WAITING = "waiting for first sample…"
TEXT_INTERVAL = "interval {interval}"
TEXT_TIMED_OUT = "request timed out"
TEXT_CANCELED = "request canceled"
TEXT_SKELETON_RESET = "resets at …"
TEXT_SKELETON_LEFT = "... left"
TEXT_BETA_HINT = (
    " (beta header may be outdated; set --beta-header or ANTHROPIC_BETA_HEADER)"
)
TEXT_BETA_WARNING = (
    "warning: using baked-in beta header; override --beta-header or "
    "ANTHROPIC_BETA_HEADER when Anthropic rotates betas"
)
ERROR_LINE_LIMIT = 120
MARK_ART = " ▐▛███▜▌ \n▝▜█████▛▘\n  ▘▘ ▝▝"

# Keys
KEYS_REFRESH = ("r", "R")
KEYS_QUIT = ("q", "Q", "\x03")

# Thresholds (percentage)
THRESHOLD_GREEN = 50    # 0-50% = green
THRESHOLD_YELLOW = 80   # 50-80% = yellow
                        # 80-100% = red

# Colors
COLOR_ACCENT = "#d77757"
COLOR_ACCENT_HI = "#f0a889"
COLOR_MUTED = "#b09a90"
COLOR_TRACK = "#3c3c3c"
COLOR_ERROR = "#ff7b7b"
COLOR_GREEN = "#a6e3a1"
COLOR_YELLOW = "#f9e2af"
COLOR_RED = "#f38ba8"
COLOR_TEXT = "#ffffff"

# Layout
MIN_CONTAINER_WIDTH = 20
MIN_LABEL_WIDTH = 6
MIN_BAR_WIDTH = 8


def color_for_utilization(pct: float) -> str:
    """Return color string based on utilization percentage."""
    if pct < THRESHOLD_GREEN:
        return COLOR_GREEN
    elif pct < THRESHOLD_YELLOW:
        return COLOR_YELLOW
    else:
        return COLOR_RED
