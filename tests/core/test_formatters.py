"""
Tests for killlog_sync.core.formatters

These are pure functions with no external dependencies.
"""

from datetime import datetime, timezone


class TestParseApiDatetime:
    """Tests for parse_api_datetime."""

    def test_epoch(self):
        from killlog_sync.core import parse_api_datetime

        assert parse_api_datetime("1970-01-01 00:01:00") == 60

    def test_is_utc(self):
        from killlog_sync.core import parse_api_datetime

        expected = int(datetime(2015, 3, 1, 12, 0, 0, tzinfo=timezone.utc).timestamp())
        assert parse_api_datetime("2015-03-01 12:00:00") == expected

    def test_surrounding_whitespace(self):
        from killlog_sync.core import parse_api_datetime

        assert parse_api_datetime("  1970-01-01 00:00:10\n") == 10

    def test_missing_or_invalid(self):
        from killlog_sync.core import parse_api_datetime

        assert parse_api_datetime(None) is None
        assert parse_api_datetime("") is None
        assert parse_api_datetime("2015-03-01T12:00:00Z") is None


class TestFormatTimestamp:
    """Tests for format_timestamp."""

    def test_formats_iso(self):
        from killlog_sync.core import format_timestamp

        assert format_timestamp(0) == "1970-01-01T00:00:00Z"

    def test_none_passes_through(self):
        from killlog_sync.core import format_timestamp

        assert format_timestamp(None) is None


class TestFormatDuration:
    """Tests for format_duration."""

    def test_days_hours_minutes(self):
        from killlog_sync.core import format_duration

        assert format_duration(86400 + 3600 + 1800) == "1d 1h 30m"

    def test_seconds_only(self):
        from killlog_sync.core import format_duration

        assert format_duration(45) == "45s"

    def test_zero(self):
        from killlog_sync.core import format_duration

        assert format_duration(0) == "Complete"


class TestTimestamps:
    """Tests for current-time helpers."""

    def test_utc_timestamp_format(self):
        from killlog_sync.core import get_utc_timestamp

        ts = get_utc_timestamp()
        assert ts.endswith("Z")
        assert len(ts) == len("2026-01-15T12:30:00Z")

    def test_epoch_now_is_int(self):
        from killlog_sync.core import epoch_now, get_utc_now

        now = epoch_now()
        assert isinstance(now, int)
        assert abs(now - get_utc_now().timestamp()) < 5
