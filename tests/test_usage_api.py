"""Tests for the usage API client: request shape, decoding, classification."""

import http.client
import json
import socket
import urllib.error
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import pytest

from quotabar.config import DEFAULT_BETA_HEADER, MAX_BODY_BYTES, MAX_DELAY_SECONDS, USAGE_API_URL
from quotabar.errors import ErrorKind, MalformedReason, UsageError
from quotabar.shared_state import UsageSnapshot, UsageWindow
from quotabar import usage_api
from quotabar.usage_api import FetchContext, fetch_usage, parse_response, parse_retry_after

TOKEN = "sk-ant-oat01-test"
CUSTOM_BETA = "oauth-2099-01-01"


def ctx(timeout: float = 5.0) -> FetchContext:
    return FetchContext(1, timeout)


class TestPreconditions:
    def test_missing_token_makes_no_request(self, fake_urlopen):
        with pytest.raises(UsageError) as exc_info:
            fetch_usage(ctx(), "  ", DEFAULT_BETA_HEADER)
        assert exc_info.value.kind is ErrorKind.MALFORMED
        assert exc_info.value.reason is MalformedReason.MISSING_TOKEN
        assert fake_urlopen.requests == []

    def test_missing_header_makes_no_request(self, fake_urlopen):
        with pytest.raises(UsageError) as exc_info:
            fetch_usage(ctx(), TOKEN, "")
        assert exc_info.value.reason is MalformedReason.MISSING_HEADER
        assert fake_urlopen.requests == []

    def test_cancelled_context_makes_no_request(self, fake_urlopen):
        c = ctx()
        c.cancel()
        with pytest.raises(UsageError) as exc_info:
            fetch_usage(c, TOKEN, DEFAULT_BETA_HEADER)
        assert exc_info.value.kind is ErrorKind.CANCELED
        assert fake_urlopen.requests == []


class TestRequest:
    def test_headers_and_url(self, fake_urlopen):
        fake_urlopen.respond({"five_hour": {"utilization": 1.0, "resets_at": None}})
        fetch_usage(ctx(), TOKEN, DEFAULT_BETA_HEADER)

        (req,) = fake_urlopen.requests
        assert req.full_url == USAGE_API_URL
        assert req.get_method() == "GET"
        assert req.get_header("Authorization") == f"Bearer {TOKEN}"
        assert req.get_header("Anthropic-beta") == DEFAULT_BETA_HEADER
        assert req.get_header("Accept") == "application/json"

    def test_timeout_bounded_by_context(self, fake_urlopen):
        fake_urlopen.respond({})
        fetch_usage(ctx(timeout=3.0), TOKEN, DEFAULT_BETA_HEADER)
        assert 0 < fake_urlopen.timeouts[0] <= 3.0


class TestDecode:
    def test_current_only(self, fake_urlopen):
        fake_urlopen.respond({
            "five_hour": {"utilization": 42.0, "resets_at": "2025-01-01T10:00:00Z"},
            "seven_day": None,
        })
        snap = fetch_usage(ctx(), TOKEN, DEFAULT_BETA_HEADER)

        rows = snap.rows()
        assert [r.label for r in rows] == ["Current"]
        assert rows[0].percent == 42.0
        assert snap.seven_day is None
        assert snap.five_hour_reset == datetime(2025, 1, 1, 10, tzinfo=timezone.utc)

    def test_null_utilization_omits_window(self):
        snap = parse_response(b'{"five_hour": {"utilization": null}, "seven_day": {"utilization": 7}}')
        assert [r.label for r in snap.rows()] == ["Weekly"]
        assert snap.five_hour_percent is None
        assert snap.seven_day_percent == 7.0

    def test_out_of_range_utilization_is_clamped_for_display(self):
        snap = parse_response(b'{"five_hour": {"utilization": 130.5}}')
        assert snap.five_hour_percent == 130.5
        assert snap.rows()[0].percent == 100.0

    @pytest.mark.parametrize("body", [
        b'{"five_hour": {"utilization": 1, "resets_at": "tomorrow"}}',
        b'{"five_hour": {"utilization": 1, "resets_at": "2025-01-01T10:00:00"}}',
        b'{"seven_day": {"utilization": "high"}}',
        b'{"seven_day": []}',
        b'[1, 2]',
        b'not json',
        b'{"five_hour": ',
        b'{"five_hour": {"utilization": NaN}}',
        b'{"five_hour": {"utilization": Infinity}}',
        b'{"seven_day": {"utilization": -Infinity}}',
        b'{"seven_day": {"utilization": 1e400}}',
        b'{"seven_day": {"utilization": 1' + b"0" * 400 + b'}}',
    ])
    def test_malformed_bodies(self, body):
        with pytest.raises(UsageError) as exc_info:
            parse_response(body)
        assert exc_info.value.kind is ErrorKind.MALFORMED
        assert exc_info.value.reason is MalformedReason.DECODE_FAILURE

    def test_oversized_body_is_truncated_and_fails(self, fake_urlopen):
        padding = "x" * (MAX_BODY_BYTES + 10)
        fake_urlopen.respond(('{"pad": "' + padding + '"}').encode())
        with pytest.raises(UsageError) as exc_info:
            fetch_usage(ctx(), TOKEN, DEFAULT_BETA_HEADER)
        assert exc_info.value.kind is ErrorKind.MALFORMED

    def test_round_trip(self):
        original = UsageSnapshot(
            five_hour=UsageWindow(12.345, datetime(2025, 1, 1, 10, 30, tzinfo=timezone.utc)),
            seven_day=UsageWindow(88.0, datetime(2025, 1, 6, 0, 0, 5, 250000, tzinfo=timezone.utc)),
        )
        decoded = parse_response(json.dumps(original.to_payload()).encode())

        assert decoded.five_hour_percent == pytest.approx(original.five_hour_percent)
        assert decoded.seven_day_percent == pytest.approx(original.seven_day_percent)
        assert decoded.five_hour_reset == original.five_hour_reset
        assert decoded.seven_day_reset == original.seven_day_reset


class TestClassification:
    def test_rate_limited_with_retry_after(self, fake_urlopen, http_error):
        fake_urlopen.fail(http_error(429, '{"error": {"message": "slow"}}', {"Retry-After": "30"}))
        with pytest.raises(UsageError) as exc_info:
            fetch_usage(ctx(), TOKEN, CUSTOM_BETA)
        err = exc_info.value
        assert err.kind is ErrorKind.HTTP_STATUS
        assert err.status == 429
        assert err.retry_after == 30
        assert err.body == '{"error": {"message": "slow"}}'

    def test_default_header_annotates_body(self, fake_urlopen, http_error):
        fake_urlopen.fail(http_error(400, "unknown beta"))
        with pytest.raises(UsageError) as exc_info:
            fetch_usage(ctx(), TOKEN, DEFAULT_BETA_HEADER)
        assert exc_info.value.body.startswith("unknown beta")
        assert "--beta-header" in exc_info.value.body

    def test_custom_header_leaves_body_alone(self, fake_urlopen, http_error):
        fake_urlopen.fail(http_error(400, "unknown beta"))
        with pytest.raises(UsageError) as exc_info:
            fetch_usage(ctx(), TOKEN, CUSTOM_BETA)
        assert exc_info.value.body == "unknown beta"
        assert exc_info.value.retry_after == 0

    def test_error_body_capped(self, fake_urlopen, http_error):
        fake_urlopen.fail(http_error(500, "e" * 10000))
        with pytest.raises(UsageError) as exc_info:
            fetch_usage(ctx(), TOKEN, CUSTOM_BETA)
        assert len(exc_info.value.body) == 4096

    def test_connection_refused_is_transport(self, fake_urlopen):
        fake_urlopen.fail(urllib.error.URLError(ConnectionRefusedError(111, "Connection refused")))
        with pytest.raises(UsageError) as exc_info:
            fetch_usage(ctx(), TOKEN, CUSTOM_BETA)
        assert exc_info.value.kind is ErrorKind.TRANSPORT

    def test_socket_timeout_is_timeout(self, fake_urlopen):
        fake_urlopen.fail(socket.timeout("timed out"))
        with pytest.raises(UsageError) as exc_info:
            fetch_usage(ctx(), TOKEN, CUSTOM_BETA)
        assert exc_info.value.kind is ErrorKind.TIMEOUT

    def test_wrapped_timeout_is_timeout(self, fake_urlopen):
        fake_urlopen.fail(urllib.error.URLError(socket.timeout("timed out")))
        with pytest.raises(UsageError) as exc_info:
            fetch_usage(ctx(), TOKEN, CUSTOM_BETA)
        assert exc_info.value.kind is ErrorKind.TIMEOUT

    def test_incomplete_read_is_transport(self, fake_urlopen):
        fake_urlopen.fail(http.client.IncompleteRead(b"{\"five", 40))
        with pytest.raises(UsageError) as exc_info:
            fetch_usage(ctx(), TOKEN, CUSTOM_BETA)
        assert exc_info.value.kind is ErrorKind.TRANSPORT
        assert exc_info.value.message.startswith("connection failed")

    def test_unfollowed_redirect_classified_like_error_status(self, fake_urlopen):
        fake_urlopen.respond(b"moved", status=307, headers={"Retry-After": "12"})
        with pytest.raises(UsageError) as exc_info:
            fetch_usage(ctx(), TOKEN, DEFAULT_BETA_HEADER)
        err = exc_info.value
        assert err.kind is ErrorKind.HTTP_STATUS
        assert err.status == 307
        assert err.retry_after == 12
        assert err.body.startswith("moved")
        assert "--beta-header" in err.body

    def test_cancel_during_call_is_canceled(self, monkeypatch):
        c = ctx()

        def cancel_then_respond(req, timeout=None, context=None):
            c.cancel()
            raise urllib.error.URLError(OSError("socket closed"))

        monkeypatch.setattr(usage_api.urllib.request, "urlopen", cancel_then_respond)
        with pytest.raises(UsageError) as exc_info:
            fetch_usage(c, TOKEN, CUSTOM_BETA)
        assert exc_info.value.kind is ErrorKind.CANCELED


class TestRetryAfter:
    @pytest.mark.parametrize("raw,expected", [
        (None, 0.0),
        ("", 0.0),
        ("30", 30.0),
        (" 12 ", 12.0),
        ("1.5", 1.5),
        ("0", 0.0),
        ("-4", 0.0),
        ("soon", 0.0),
        ("nan", 0.0),
        ("1e12", MAX_DELAY_SECONDS),
        ("inf", MAX_DELAY_SECONDS),
    ])
    def test_seconds(self, raw, expected):
        assert parse_retry_after(raw) == expected

    def test_http_date(self):
        now = datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        raw = format_datetime(now + timedelta(seconds=90), usegmt=True)
        assert parse_retry_after(raw, now=now) == pytest.approx(90.0)

    def test_far_future_http_date_is_capped(self):
        now = datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        assert parse_retry_after("Fri, 31 Dec 9999 23:59:59 GMT", now=now) == MAX_DELAY_SECONDS

    def test_http_date_in_past(self):
        now = datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        raw = format_datetime(now - timedelta(seconds=90), usegmt=True)
        assert parse_retry_after(raw, now=now) == 0.0
