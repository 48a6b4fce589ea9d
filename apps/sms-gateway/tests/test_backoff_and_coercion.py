"""
Tests for retry backoff and model-output coercion helpers
"""

from datetime import timedelta

import pytest

from utils.backoff import backoff_delay
from utils.coercion import safe_number, safe_string, parse_kigali_timestamp


class TestBackoff:

    def test_default_schedule_in_minutes(self):
        delays = [backoff_delay(n) for n in range(7)]
        assert delays == [timedelta(minutes=m) for m in (1, 2, 4, 8, 16, 16, 16)]

    def test_non_decreasing_and_capped(self):
        delays = [backoff_delay(n) for n in range(20)]
        assert all(a <= b for a, b in zip(delays, delays[1:]))
        assert max(delays) == timedelta(minutes=16)

    def test_custom_base_and_cap(self):
        assert backoff_delay(3, base_delay=timedelta(seconds=5), max_exponent=2) == timedelta(seconds=20)

    def test_negative_attempts_use_base(self):
        assert backoff_delay(-1) == timedelta(seconds=60)


class TestSafeNumber:

    @pytest.mark.parametrize(
        "value,expected",
        [
            (5000, 5000.0),
            (12.5, 12.5),
            ("5,000", 5000.0),
            (" 1,234.50 ", 1234.5),
            ("abc", None),
            ("", None),
            (None, None),
            (True, None),
            (float("nan"), None),
            ("inf", None),
            ([1], None),
        ],
    )
    def test_coercion(self, value, expected):
        assert safe_number(value) == expected


class TestSafeString:

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("  JOHN DOE ", "JOHN DOE"),
            ("   ", None),
            ("", None),
            (1234567890, "1234567890"),
            (12.9, "12"),
            (None, None),
            (False, None),
            ({"a": 1}, None),
        ],
    )
    def test_coercion(self, value, expected):
        assert safe_string(value) == expected


class TestKigaliTimestamp:

    def test_local_time_gets_offset(self):
        assert parse_kigali_timestamp("2025-01-05 10:29:41") == "2025-01-05T10:29:41+02:00"

    def test_missing_seconds(self):
        assert parse_kigali_timestamp("2025-01-05 10:29") == "2025-01-05T10:29:00+02:00"

    def test_iso_passthrough(self):
        assert parse_kigali_timestamp("2025-01-05T10:29:41Z") == "2025-01-05T10:29:41Z"

    @pytest.mark.parametrize("value", ["05/01/2025 10:29", "yesterday", "", None, 20250105])
    def test_unparseable_is_none(self, value):
        assert parse_kigali_timestamp(value) is None

    @pytest.mark.parametrize(
        "value",
        ["2025-13-45 99:99", "2025-02-30 10:00:00", "2025-01-05 24:00", "2025-01-05 10:61:00"],
    )
    def test_impossible_calendar_values_are_none(self, value):
        assert parse_kigali_timestamp(value) is None

    @pytest.mark.parametrize(
        "value",
        ["2025-11-19T23:12:44 garbage", "2025-11-19T23:12:44+25:00", "2025-13-19T23:12:44Z"],
    )
    def test_invalid_iso_is_none(self, value):
        assert parse_kigali_timestamp(value) is None

    def test_iso_with_offset_passthrough(self):
        assert parse_kigali_timestamp("2025-11-19T23:12:44+02:00") == "2025-11-19T23:12:44+02:00"
