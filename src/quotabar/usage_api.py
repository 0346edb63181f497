"""HTTP client for the Anthropic OAuth usage API.

SECURITY MODEL:
- Only calls the OAuth usage endpoint (read-only, no billing).
- Uses explicit SSL context with certificate verification.
- Never logs the bearer token.
- Response bodies are size-capped before decoding.
"""

from __future__ import annotations

import http.client
import json
import logging
import math
import socket
import ssl
import threading
import time
import urllib.error
import urllib.request
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import certifi

from .config import (
    DEFAULT_BETA_HEADER, MAX_BODY_BYTES, MAX_DELAY_SECONDS, MAX_ERROR_BODY_BYTES,
    TEXT_BETA_HINT, USAGE_API_URL, USER_AGENT,
)
from .errors import MalformedReason, UsageError
from .shared_state import UsageSnapshot, UsageWindow
from .utils import parse_timestamp

log = logging.getLogger(__name__)


class FetchContext:
    """Deadline and cancellation scope for a single fetch.

    The controller creates one per fetch and cancels it when the fetch is
    superseded or the program shuts down.
    """

    def __init__(self, token: int, timeout: float) -> None:
        self.token = token
        self.timeout = timeout
        self.deadline = time.monotonic() + timeout
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> float:
        return max(0.0, self.deadline - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0


def _ssl_context() -> ssl.SSLContext:
    """Create an SSL context verified against the certifi bundle."""
    ctx = ssl.create_default_context(cafile=certifi.where())
    # Enforce minimum TLS 1.2
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    return ctx


def parse_retry_after(raw: str | None, now: datetime | None = None) -> float:
    """Convert a Retry-After header into seconds; 0 when absent or unusable.

    Accepts a delay in seconds ("30", "1.5") or an HTTP-date. Hints longer
    than MAX_DELAY_SECONDS are cut down to it.
    """
    if not raw or not raw.strip():
        return 0.0
    value = raw.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            return 0.0
        if when is None:
            return 0.0
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - (now or datetime.now(timezone.utc))).total_seconds()
    if math.isnan(seconds) or seconds <= 0:
        return 0.0
    return min(seconds, MAX_DELAY_SECONDS)


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return True
    reason = getattr(exc, "reason", None)
    return isinstance(reason, (socket.timeout, TimeoutError))


def fetch_usage(ctx: FetchContext, token: str, beta_header: str) -> UsageSnapshot:
    """Call the usage endpoint and return the decoded snapshot.

    Raises UsageError for every failure. Never retries.
    """
    if not token or not token.strip():
        raise UsageError.malformed(MalformedReason.MISSING_TOKEN, "missing OAuth token")
    if not beta_header or not beta_header.strip():
        raise UsageError.malformed(MalformedReason.MISSING_HEADER, "beta header required")
    if ctx.cancelled:
        raise UsageError.canceled()
    if ctx.expired:
        raise UsageError.timeout()

    req = urllib.request.Request(
        USAGE_API_URL,
        headers={
            "Authorization": f"Bearer {token.strip()}",
            "anthropic-beta": beta_header,
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        },
        method="GET",
    )

    try:
        with urllib.request.urlopen(req, timeout=ctx.remaining(), context=_ssl_context()) as resp:
            status = resp.status
            headers = resp.headers
            body = resp.read(MAX_BODY_BYTES)
    except urllib.error.HTTPError as exc:
        raise _classify_http_error(exc, beta_header) from None
    except (urllib.error.URLError, OSError) as exc:
        if ctx.cancelled:
            raise UsageError.canceled() from None
        if _is_timeout(exc) or ctx.expired:
            raise UsageError.timeout() from None
        raise _classify_transport(exc) from None
    except http.client.HTTPException as exc:
        # IncompleteRead and BadStatusLine are not OSErrors
        if ctx.cancelled:
            raise UsageError.canceled() from None
        raise _classify_transport(exc) from None

    if ctx.cancelled:
        raise UsageError.canceled()
    if status >= 300:
        # urlopen follows redirects, so a 3xx landing here had no usable target
        raise _status_error(status, body[:MAX_ERROR_BODY_BYTES], headers, beta_header)

    return parse_response(body)


def _classify_http_error(exc: urllib.error.HTTPError, beta_header: str) -> UsageError:
    try:
        raw = exc.read(MAX_ERROR_BODY_BYTES) if exc.fp is not None else b""
    except OSError:
        raw = b""
    finally:
        exc.close()
    return _status_error(exc.code, raw, exc.headers, beta_header)


def _status_error(code: int, raw: bytes, headers, beta_header: str) -> UsageError:
    """Classify any response with status >= 300."""
    body = raw.decode("utf-8", "replace").strip()
    if beta_header == DEFAULT_BETA_HEADER:
        body += TEXT_BETA_HINT
    retry_after = parse_retry_after(headers.get("Retry-After") if headers else None)
    log.error("API HTTP %d", code)
    return UsageError.http_status(code, body, retry_after)


def _classify_transport(exc: BaseException) -> UsageError:
    reason = getattr(exc, "reason", exc)
    text = str(reason) if reason else "Unknown"
    log.warning("API transport error: %s", text)
    if isinstance(reason, ssl.SSLError) or "certificate" in text.lower():
        return UsageError.transport("SSL certificate error")
    return UsageError.transport(f"connection failed: {text}")


def parse_response(body: bytes) -> UsageSnapshot:
    """Decode the raw response body into a UsageSnapshot."""
    try:
        raw = json.loads(body.decode("utf-8"), parse_constant=_reject_constant)
    except (UnicodeDecodeError, ValueError) as exc:
        raise _decode_failure(f"decode usage response: {exc}")
    if not isinstance(raw, dict):
        raise _decode_failure("decode usage response: expected a JSON object")

    return UsageSnapshot(
        five_hour=_window(raw, "five_hour"),
        seven_day=_window(raw, "seven_day"),
    )


def _window(raw: dict, key: str) -> UsageWindow | None:
    d = raw.get(key)
    if d is None:
        return None
    if not isinstance(d, dict):
        raise _decode_failure(f"{key}: expected an object")

    utilization = d.get("utilization")
    if utilization is not None:
        if isinstance(utilization, bool) or not isinstance(utilization, (int, float)):
            raise _decode_failure(f"{key}.utilization: expected a number")
        try:
            utilization = float(utilization)
        except OverflowError:
            utilization = math.inf
        if not math.isfinite(utilization):
            raise _decode_failure(f"{key}.utilization: expected a finite number")

    resets_at = d.get("resets_at")
    if resets_at is not None:
        try:
            resets_at = parse_timestamp(resets_at)
        except ValueError as exc:
            raise _decode_failure(f"resets_at parse: {exc}")

    return UsageWindow(utilization=utilization, resets_at=resets_at)


def _reject_constant(name: str):
    raise ValueError(f"non-standard JSON constant {name}")


def _decode_failure(message: str) -> UsageError:
    return UsageError.malformed(MalformedReason.DECODE_FAILURE, message)
