"""Tests for :mod:`command_responder.durations`."""

import pytest

from command_responder.alerts.errors import ConfigParseError
from command_responder.durations import MAX_DURATION, format_duration, parse_duration, wait_timeout


class TestParseDuration:
    """Verify the duration grammar."""

    @pytest.mark.parametrize(
        "text, seconds",
        [
            ("30s", 30.0),
            ("2m", 120.0),
            ("1h30m", 5400.0),
            ("1.5s", 1.5),
            ("300ms", 0.3),
            ("250us", 0.00025),
            ("0", 0.0),
            ("-1s", -1.0),
        ],
    )
    def test_valid(self, text, seconds):
        """Well-formed durations convert to seconds."""
        assert parse_duration(text) == pytest.approx(seconds)

    @pytest.mark.parametrize(
        "text",
        ["", "30", "s", "1x", "1s2", "ten seconds", "1.5.2s", "3000000h", "-3000000h"],
    )
    def test_invalid(self, text):
        """Malformed durations raise ConfigParseError."""
        with pytest.raises(ConfigParseError):
            parse_duration(text)

    def test_error_is_value_error(self):
        """ConfigParseError can be caught as a ValueError."""
        with pytest.raises(ValueError):
            parse_duration("soon")

    def test_largest_duration_accepted(self):
        """2562047h still fits in a 64-bit nanosecond count."""
        assert parse_duration("2562047h") == pytest.approx(2562047 * 3600.0)
        assert parse_duration("2562047h") <= MAX_DURATION


class TestWaitTimeout:
    """Verify the clamp applied before blocking waits."""

    def test_small_values_unchanged(self):
        assert wait_timeout(2.5) == 2.5
        assert wait_timeout(-1.0) == -1.0

    def test_huge_values_clamped(self):
        assert wait_timeout(MAX_DURATION) < MAX_DURATION


class TestFormatDuration:
    """Verify duration rendering for logs."""

    def test_seconds(self):
        assert format_duration(30.0) == "30s"

    def test_sub_second(self):
        assert format_duration(0.25) == "250ms"

    def test_zero(self):
        assert format_duration(0) == "0s"
