"""
Tests for utils.py functions.

Tests timestamp helpers and terminal formatting.
"""

from datetime import datetime, timezone

import pytest

from finance_tracker.utils import Colors, format_count, now_iso, parse_timestamp


class TestColors:
    """Tests for Colors class."""

    def test_colors_are_ansi_escape_codes(self):
        """Colors should be ANSI escape sequences."""
        for color in (Colors.HEADER, Colors.OKGREEN, Colors.WARNING, Colors.FAIL, Colors.BOLD):
            assert color.startswith("\033[")

    def test_endc_resets_formatting(self):
        assert Colors.ENDC == "\033[0m"


class TestNowIso:
    """Tests for now_iso function."""

    def test_format(self):
        """Should produce millisecond UTC timestamps ending in Z."""
        value = now_iso()
        assert value.endswith("Z")
        assert len(value) == len("2024-08-15T10:30:45.123Z")

    def test_parses_back(self):
        parsed = parse_timestamp(now_iso())
        assert abs((datetime.now(tz=timezone.utc) - parsed).total_seconds()) < 5


class TestParseTimestamp:
    """Tests for parse_timestamp function."""

    def test_iso_with_z(self):
        assert parse_timestamp("2024-08-15T10:30:45.000Z") == datetime(
            2024, 8, 15, 10, 30, 45, tzinfo=timezone.utc
        )

    def test_offset_converted_to_utc(self):
        """Should convert an offset timestamp to UTC."""
        result = parse_timestamp("2024-01-01T01:00:00+02:00")
        assert result == datetime(2023, 12, 31, 23, 0, tzinfo=timezone.utc)

    def test_naive_taken_as_utc(self):
        assert parse_timestamp("2024-08-15").tzinfo == timezone.utc

    def test_epoch_millis(self):
        assert parse_timestamp(86_400_000) == datetime(1970, 1, 2, tzinfo=timezone.utc)

    def test_datetime_passthrough(self):
        dt = datetime(2024, 8, 15, 12, 0, tzinfo=timezone.utc)
        assert parse_timestamp(dt) == dt

    @pytest.mark.parametrize("value", [None, "", "   ", "yesterday", True, [2024], {"$date": 1}])
    def test_unparseable(self, value):
        """Should return None for anything it cannot read."""
        assert parse_timestamp(value) is None


class TestFormatCount:
    """Tests for format_count function."""

    def test_small(self):
        assert format_count(0) == "0"
        assert format_count(999) == "999"

    def test_thousands(self):
        assert format_count(1234) == "1,234"

    def test_millions(self):
        assert format_count(1_234_567) == "1.2M"
