"""Tests for registry error classification."""

from datetime import datetime, timedelta, timezone

import pytest

from workflow_patterns.errors import (
    RateLimitedError,
    RegistryError,
    RegistryErrorType,
    RegistryTransportError,
    classify_status,
    format_wait,
)


class TestClassifyStatus:

    @pytest.mark.parametrize("status,expected", [
        (429, RegistryErrorType.RATE_LIMITED),
        (404, RegistryErrorType.NOT_FOUND),
        (400, RegistryErrorType.CLIENT_ERROR),
        (401, RegistryErrorType.CLIENT_ERROR),
        (500, RegistryErrorType.SERVER_ERROR),
        (503, RegistryErrorType.SERVER_ERROR),
        (302, RegistryErrorType.UNKNOWN),
    ])
    def test_status_mapping(self, status, expected):
        assert classify_status(status) is expected


class TestShouldRetry:

    def test_server_error_is_retried(self):
        assert RegistryError("boom", RegistryErrorType.SERVER_ERROR, 502).should_retry

    def test_client_error_is_terminal(self):
        assert not RegistryError("bad", RegistryErrorType.CLIENT_ERROR, 400).should_retry

    def test_transport_errors_are_retried(self):
        assert RegistryTransportError("slow", timed_out=True).error_type is RegistryErrorType.TIMEOUT
        assert RegistryTransportError("down").error_type is RegistryErrorType.NETWORK
        assert RegistryTransportError("down").should_retry

    def test_rate_limit_is_never_retried(self):
        error = RateLimitedError("slow down")
        assert error.status_code == 429
        assert not error.should_retry


class TestRateLimitedError:

    def test_time_until_reset_in_minutes(self):
        now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        error = RateLimitedError("slow down", reset_at=now + timedelta(minutes=14, seconds=10))

        assert error.seconds_until_reset(now) == pytest.approx(850)
        assert error.time_until_reset(now) == "15 minutes"

    def test_unknown_reset(self):
        assert RateLimitedError("slow down").time_until_reset() == "unknown"

    def test_past_reset_is_now(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        error = RateLimitedError("slow down", reset_at=now - timedelta(seconds=5))

        assert error.seconds_until_reset(now) == 0.0
        assert error.time_until_reset(now) == "now"


class TestFormatWait:

    @pytest.mark.parametrize("seconds,expected", [
        (0, "now"),
        (1, "1 minute"),
        (60, "1 minute"),
        (61, "2 minutes"),
        (3600, "1 hour"),
        (3601, "2 hours"),
    ])
    def test_format(self, seconds, expected):
        assert format_wait(seconds) == expected
