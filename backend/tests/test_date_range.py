"""Tests for preset resolution and previous periods."""

from datetime import datetime, timedelta, timezone

import pytest

from review_analytics.core.errors import InvalidQueryError
from review_analytics.services.analytics.date_range import (
    ALL_TIME_START,
    DateRange,
    isoformat_utc,
    previous_period,
    resolve_date_range,
)

# Wednesday 2024-05-15 10:30 UTC (12:30 in Paris)
NOW = datetime(2024, 5, 15, 10, 30, tzinfo=timezone.utc)


class TestPresets:
    """Named presets resolve to local-midnight bounds in UTC."""

    def test_this_month_starts_at_local_midnight(self):
        resolved = resolve_date_range("this_month", None, None, "Europe/Paris", now=NOW)
        # 2024-05-01 00:00 CEST is 2024-04-30 22:00 UTC
        assert resolved.range.start == datetime(2024, 4, 30, 22, 0, tzinfo=timezone.utc)
        assert resolved.range.end == NOW

    def test_default_preset_is_used_when_missing(self):
        resolved = resolve_date_range(None, None, None, "UTC", now=NOW)
        assert resolved.preset == "this_month"
        assert resolved.range.start == datetime(2024, 5, 1, tzinfo=timezone.utc)

    def test_this_week_starts_monday(self):
        resolved = resolve_date_range("this_week", None, None, "UTC", now=NOW)
        assert resolved.range.start == datetime(2024, 5, 13, tzinfo=timezone.utc)

    def test_rolling_presets(self):
        resolved = resolve_date_range("last_30_days", None, None, "UTC", now=NOW)
        assert resolved.range.end - resolved.range.start == timedelta(days=30)

    def test_this_quarter(self):
        resolved = resolve_date_range("this_quarter", None, None, "UTC", now=NOW)
        assert resolved.range.start == datetime(2024, 4, 1, tzinfo=timezone.utc)

    def test_last_quarter_is_closed(self):
        resolved = resolve_date_range("last_quarter", None, None, "UTC", now=NOW)
        assert resolved.range.start == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert resolved.range.end == datetime(2024, 4, 1, tzinfo=timezone.utc)

    def test_last_quarter_wraps_year(self):
        february = datetime(2024, 2, 10, tzinfo=timezone.utc)
        resolved = resolve_date_range("last_quarter", None, None, "UTC", now=february)
        assert resolved.range.start == datetime(2023, 10, 1, tzinfo=timezone.utc)
        assert resolved.range.end == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_last_year(self):
        resolved = resolve_date_range("last_year", None, None, "UTC", now=NOW)
        assert resolved.range.start == datetime(2023, 1, 1, tzinfo=timezone.utc)
        assert resolved.range.end == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_all_time_reports_null_lower_bound(self):
        resolved = resolve_date_range("all_time", None, None, "UTC", now=NOW)
        assert resolved.range.start == ALL_TIME_START
        assert resolved.reported_from is None
        assert resolved.reported_to == "2024-05-15T10:30:00.000Z"

    def test_unknown_preset_rejected(self):
        with pytest.raises(InvalidQueryError):
            resolve_date_range("next_decade", None, None, "UTC", now=NOW)

    def test_unknown_timezone_rejected(self):
        with pytest.raises(InvalidQueryError):
            resolve_date_range("this_month", None, None, "Mars/Olympus", now=NOW)


class TestCustomRange:
    """Explicit from/to bounds."""

    def test_date_only_upper_bound_covers_whole_day(self):
        resolved = resolve_date_range("custom", "2024-03-01", "2024-03-31", "UTC", now=NOW)
        assert resolved.range.start == datetime(2024, 3, 1, tzinfo=timezone.utc)
        assert resolved.range.end.date().isoformat() == "2024-03-31"
        assert resolved.range.end.hour == 23

    def test_explicit_utc_instants(self):
        resolved = resolve_date_range(
            "custom", "2024-03-01T00:00:00Z", "2024-03-02T12:00:00Z", "Europe/Paris", now=NOW
        )
        assert resolved.range.start == datetime(2024, 3, 1, tzinfo=timezone.utc)
        assert resolved.range.end == datetime(2024, 3, 2, 12, tzinfo=timezone.utc)

    def test_missing_bound_rejected(self):
        with pytest.raises(InvalidQueryError):
            resolve_date_range("custom", "2024-03-01", None, "UTC", now=NOW)

    def test_inverted_range_rejected(self):
        with pytest.raises(InvalidQueryError):
            resolve_date_range("custom", "2024-03-10", "2024-03-01", "UTC", now=NOW)

    def test_garbage_date_rejected(self):
        with pytest.raises(InvalidQueryError):
            resolve_date_range("custom", "yesterday", "2024-03-01", "UTC", now=NOW)


class TestPreviousPeriod:
    """The previous window has the same duration and ends where the current starts."""

    def test_31_day_window_shifts_exactly_31_days(self):
        current = DateRange(
            datetime(2024, 3, 1, tzinfo=timezone.utc),
            datetime(2024, 4, 1, tzinfo=timezone.utc),
        )
        previous = previous_period(current)
        assert previous.start == datetime(2024, 1, 30, tzinfo=timezone.utc)
        assert previous.end == current.start - timedelta(microseconds=1)

    def test_boundary_instant_belongs_to_current_only(self):
        current = DateRange(
            datetime(2024, 3, 1, tzinfo=timezone.utc),
            datetime(2024, 4, 1, tzinfo=timezone.utc),
        )
        previous = previous_period(current)
        assert current.contains(current.start)
        assert not previous.contains(current.start)
        assert previous.contains(current.start - timedelta(microseconds=1))

    def test_days_counts_both_ends(self):
        one_day = DateRange(NOW, NOW)
        assert one_day.days == 1
        assert DateRange(NOW - timedelta(days=30), NOW).days == 31


def test_isoformat_utc_uses_millis_and_z():
    moment = datetime(2024, 1, 2, 3, 4, 5, 678900, tzinfo=timezone.utc)
    assert isoformat_utc(moment) == "2024-01-02T03:04:05.678Z"
