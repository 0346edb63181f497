"""Error taxonomy for usage fetches and startup configuration.

Every failed fetch is classified exactly once into a UsageError. The
controller stores it as the last error and derives its retry delay from it;
the dashboard renders it through format_error().
"""

from __future__ import annotations

import enum
import json

from .config import (
    ERROR_LINE_LIMIT, TEXT_CANCELED, TEXT_NO_DATA, TEXT_SEPARATOR, TEXT_TIMED_OUT,
)


class ConfigError(Exception):
    """Invalid startup configuration. Fatal before the dashboard starts."""


class ErrorKind(enum.Enum):
    TIMEOUT = "timeout"
    CANCELED = "canceled"
    HTTP_STATUS = "http_status"
    TRANSPORT = "transport"
    MALFORMED = "malformed"
    NO_DATA = "no_data"


class MalformedReason(enum.Enum):
    MISSING_TOKEN = "missing-token"
    MISSING_HEADER = "missing-header"
    DECODE_FAILURE = "decode-failure"


class UsageError(Exception):
    """A classified fetch failure.

    retry_after is a server-provided retry hint in seconds; 0 means no hint.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status: int | None = None,
        body: str = "",
        retry_after: float = 0.0,
        reason: MalformedReason | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status = status
        self.body = body
        self.retry_after = retry_after
        self.reason = reason

    def __repr__(self) -> str:
        return f"UsageError({self.kind.name}, {self.message!r})"

    @property
    def is_soft(self) -> bool:
        """Soft errors are banners, not failures (no backoff)."""
        return self.kind is ErrorKind.NO_DATA

    @classmethod
    def timeout(cls) -> UsageError:
        return cls(ErrorKind.TIMEOUT, TEXT_TIMED_OUT)

    @classmethod
    def canceled(cls) -> UsageError:
        return cls(ErrorKind.CANCELED, TEXT_CANCELED)

    @classmethod
    def http_status(cls, code: int, body: str, retry_after: float = 0.0) -> UsageError:
        return cls(
            ErrorKind.HTTP_STATUS,
            f"http {code}: {body}",
            status=code,
            body=body,
            retry_after=retry_after,
        )

    @classmethod
    def transport(cls, message: str) -> UsageError:
        return cls(ErrorKind.TRANSPORT, message)

    @classmethod
    def malformed(cls, reason: MalformedReason, message: str) -> UsageError:
        return cls(ErrorKind.MALFORMED, message, reason=reason)

    @classmethod
    def no_data(cls) -> UsageError:
        return cls(ErrorKind.NO_DATA, TEXT_NO_DATA)


def truncate(text: str, limit: int) -> str:
    """Shorten text to limit characters, ending with an ellipsis when cut."""
    if limit <= 0:
        return ""
    if len(text) <= limit:
        return text
    if limit == 1:
        return text[:1]
    return text[: limit - 1] + "…"


def _structured_summary(body: str) -> tuple[str, str]:
    """Pull (message, error_code) out of a JSON error body, if it has one."""
    if not body or body[0] not in "{[":
        return "", ""
    try:
        payload = json.loads(body)
    except ValueError:
        return "", ""
    if not isinstance(payload, dict):
        return "", ""

    nested = payload.get("error")
    if isinstance(nested, dict) and nested.get("message"):
        return str(nested["message"]), str(nested.get("error_code") or "")
    if payload.get("message"):
        return str(payload["message"]), str(payload.get("error_code") or "")
    return "", ""


def format_error(err: BaseException) -> str:
    """Render an error as a single line fit for the dashboard.

    Example: "http 429 · Rate limited · code: rate_limit"
    """
    if isinstance(err, UsageError):
        if err.kind is ErrorKind.TIMEOUT:
            return TEXT_TIMED_OUT
        if err.kind is ErrorKind.CANCELED:
            return TEXT_CANCELED
        if err.kind is ErrorKind.HTTP_STATUS:
            status = f"http {err.status}"
            body = err.body.strip()
        else:
            status = ""
            body = err.message.strip()
    else:
        status = ""
        body = str(err).strip()

    summary, code = _structured_summary(body)
    if not summary:
        summary = body

    parts = [p for p in (status, summary) if p]
    if code:
        parts.append(f"code: {code}")
    return truncate(TEXT_SEPARATOR.join(parts), ERROR_LINE_LIMIT)
