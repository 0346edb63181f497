"""Shared fixtures: a fake urlopen and a clean environment."""

from __future__ import annotations

import email.message
import io
import json
import urllib.error

import pytest

from quotabar import usage_api
from quotabar.config import ENV_BETA_HEADER, ENV_HIGH_CONTRAST, ENV_HTTP_TIMEOUT, ENV_INTERVAL, ENV_TOKEN


def _headers(headers: dict | None) -> email.message.Message:
    msg = email.message.Message()
    for key, value in (headers or {}).items():
        msg[key] = value
    return msg


class FakeResponse:
    """Minimal stand-in for the object urlopen returns."""

    def __init__(self, body: bytes, status: int = 200, headers: dict | None = None) -> None:
        self.status = status
        self.headers = _headers(headers)
        self._buf = io.BytesIO(body)

    def read(self, n: int = -1) -> bytes:
        return self._buf.read(n)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def _http_error(code: int, body: str = "", headers: dict | None = None) -> urllib.error.HTTPError:
    return urllib.error.HTTPError(
        usage_api.USAGE_API_URL, code, "error", _headers(headers), io.BytesIO(body.encode("utf-8")),
    )


class FakeUrlopen:
    """Records requests and replays a canned response or exception."""

    def __init__(self) -> None:
        self.requests = []
        self.timeouts = []
        self.result = FakeResponse(b"{}")

    def respond(self, payload, status: int = 200, headers: dict | None = None) -> None:
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
        self.result = FakeResponse(body, status, headers)

    def fail(self, exc: BaseException) -> None:
        self.result = exc

    def __call__(self, req, timeout=None, context=None):
        self.requests.append(req)
        self.timeouts.append(timeout)
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


@pytest.fixture
def http_error():
    return _http_error


@pytest.fixture
def fake_urlopen(monkeypatch):
    fake = FakeUrlopen()
    monkeypatch.setattr(usage_api.urllib.request, "urlopen", fake)
    return fake


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (ENV_TOKEN, ENV_BETA_HEADER, ENV_HTTP_TIMEOUT, ENV_INTERVAL,
                 ENV_HIGH_CONTRAST, "NO_COLOR"):
        monkeypatch.delenv(name, raising=False)
