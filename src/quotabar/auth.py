"""Authentication: OAuth token from the environment or Claude Code's credential file.

SECURITY MODEL:
- Quotabar NEVER stores, caches, or writes credentials to disk.
- The token is never logged or printed, not even partially.
- A credentials file readable by group/other is rejected.
"""

from __future__ import annotations

import json
import logging
import os
import stat
import time
from pathlib import Path

from .config import CREDENTIALS_PATH, ENV_TOKEN
from .errors import ConfigError

log = logging.getLogger(__name__)

# Buffer before expiry to report "expiring" (5 minutes in ms)
_EXPIRY_BUFFER_MS = 5 * 60 * 1000


def expand_path(path: str | Path | None) -> Path:
    """Expand a leading ~ to the home directory."""
    if path is None or str(path) == "":
        return CREDENTIALS_PATH
    return Path(os.path.expanduser(str(path)))


def _check_permissions(path: Path) -> None:
    if os.name != "posix":
        return
    try:
        mode = path.stat().st_mode
    except OSError:
        return
    if stat.S_IMODE(mode) & 0o077:
        raise ConfigError(
            f"credentials file {path} must not be group/other readable "
            f"(mode {stat.S_IMODE(mode):o}); set chmod 600"
        )


def _read_oauth_block(path: Path) -> dict:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    oauth = data.get("claudeAiOauth") or {}
    return oauth if isinstance(oauth, dict) else {}


def resolve_token(path: str | Path | None = None) -> str:
    """Find the OAuth token: ANTHROPIC_OAUTH_TOKEN first, then the credentials file.

    Raises ConfigError with a user-facing message when no token is available.
    """
    env_token = os.environ.get(ENV_TOKEN, "").strip()
    if env_token:
        log.debug("Using token from %s", ENV_TOKEN)
        return env_token

    cred_path = expand_path(path)
    try:
        content = cred_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"read credentials: {cred_path}: {exc.strerror or exc}") from exc

    _check_permissions(cred_path)

    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"parse credentials: {cred_path}: {exc}") from exc

    oauth = data.get("claudeAiOauth") if isinstance(data, dict) else None
    token = oauth.get("accessToken") if isinstance(oauth, dict) else None
    if not isinstance(token, str) or not token.strip():
        raise ConfigError("accessToken empty in credentials file")
    log.debug("Using token from %s", cred_path)
    return token.strip()


def check_token_health(path: str | Path | None = None) -> tuple[str, str]:
    """Check whether the file token is expired or expiring soon.

    Returns (status, message) where status is one of:
    - "ok"       token exists and has plenty of time left
    - "expiring" token is within 5 minutes of expiry
    - "expired"  token has passed its expiresAt timestamp
    - "missing"  no token or credentials file found
    """
    cred_path = expand_path(path)
    try:
        oauth = _read_oauth_block(cred_path)
    except FileNotFoundError:
        return "missing", "Credentials file not found"
    except (OSError, ValueError):
        return "missing", "Credentials file is corrupt"

    if not oauth.get("accessToken"):
        return "missing", "No accessToken in credentials"

    expires_at = oauth.get("expiresAt")
    if not expires_at:
        return "ok", "Token present (no expiry info)"

    now_ms = int(time.time() * 1000)
    try:
        exp_ms = int(expires_at)
    except (ValueError, TypeError):
        return "ok", "Token present (unparseable expiry)"

    if now_ms > exp_ms:
        return "expired", "Token expired; open Claude Code to refresh"
    elif now_ms > exp_ms - _EXPIRY_BUFFER_MS:
        mins_left = max(0, (exp_ms - now_ms) // 60000)
        return "expiring", f"Token expires in {mins_left}m"
    else:
        mins_left = (exp_ms - now_ms) // 60000
        return "ok", f"Token valid ({mins_left}m remaining)"
