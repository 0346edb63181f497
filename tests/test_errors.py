"""Tests for the error taxonomy and the one-line error formatter."""

import json

import pytest

from quotabar.errors import ErrorKind, MalformedReason, UsageError, format_error, truncate


class TestUsageError:
    def test_http_status_fields(self):
        err = UsageError.http_status(429, "slow down", retry_after=30)
        assert err.kind is ErrorKind.HTTP_STATUS
        assert err.status == 429
        assert err.retry_after == 30
        assert not err.is_soft

    def test_no_data_is_soft(self):
        assert UsageError.no_data().is_soft

    def test_malformed_reason(self):
        err = UsageError.malformed(MalformedReason.MISSING_TOKEN, "missing OAuth token")
        assert err.kind is ErrorKind.MALFORMED
        assert err.reason is MalformedReason.MISSING_TOKEN
        assert err.retry_after == 0

    def test_is_an_exception(self):
        with pytest.raises(UsageError):
            raise UsageError.transport("connection failed")


class TestFormatError:
    def test_timeout_and_canceled(self):
        assert format_error(UsageError.timeout()) == "request timed out"
        assert format_error(UsageError.canceled()) == "request canceled"

    def test_structured_nested_body(self):
        body = json.dumps({"error": {"type": "rate_limit", "message": "Rate limited", "error_code": "rl_1"}})
        msg = format_error(UsageError.http_status(429, body))
        assert msg == "http 429 · Rate limited · code: rl_1"

    def test_structured_top_level_body(self):
        body = json.dumps({"message": "Unauthorized", "error_code": "auth"})
        assert format_error(UsageError.http_status(401, body)) == "http 401 · Unauthorized · code: auth"

    def test_raw_body(self):
        assert format_error(UsageError.http_status(502, "Bad Gateway")) == "http 502 · Bad Gateway"

    def test_empty_body(self):
        assert format_error(UsageError.http_status(500, "")) == "http 500"

    def test_structured_prefers_message_over_raw(self):
        body = json.dumps({"error": {"message": "short"}, "padding": "x" * 500})
        assert format_error(UsageError.http_status(400, body)) == "http 400 · short"

    def test_transport_message(self):
        assert format_error(UsageError.transport("connection failed: refused")) == "connection failed: refused"

    def test_plain_exception(self):
        assert format_error(RuntimeError("boom")) == "boom"

    def test_bounded_length(self):
        msg = format_error(UsageError.http_status(500, "x" * 1000))
        assert len(msg) == 120
        assert msg.endswith("…")


class TestTruncate:
    @pytest.mark.parametrize("text,limit,expected", [
        ("hello", 10, "hello"),
        ("hello", 5, "hello"),
        ("hello", 4, "hel…"),
        ("hello", 1, "h"),
        ("hello", 0, ""),
        ("hello", -3, ""),
    ])
    def test_cases(self, text, limit, expected):
        assert truncate(text, limit) == expected
