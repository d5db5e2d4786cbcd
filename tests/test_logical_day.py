"""Tests for lifeplan.core.logical_day — timezone-aware day resolution."""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from lifeplan.core.logical_day import (
    days_in_range,
    format_logical_date,
    get_zone,
    is_valid_timezone,
    logical_day_bounds,
    parse_logical_date,
    resolve_logical_date,
    zoned_instant,
)


def _utc(raw: str) -> datetime:
    return datetime.fromisoformat(raw.replace("Z", "+00:00"))


class TestResolveLogicalDate:
    def test_utc_default(self):
        assert resolve_logical_date(_utc("2024-01-15T23:59:00Z"), "UTC") == date(2024, 1, 15)

    def test_line_islands_is_already_tomorrow(self):
        assert resolve_logical_date(_utc("2024-01-15T12:00:00Z"), "Pacific/Kiritimati") == date(2024, 1, 16)

    def test_utc_minus_12_is_still_today(self):
        assert resolve_logical_date(_utc("2024-01-15T12:00:00Z"), "Etc/GMT+12") == date(2024, 1, 15)

    def test_half_hour_offset(self):
        # 19:00 UTC + 5:30 = 00:30 next day
        assert resolve_logical_date(_utc("2024-01-15T19:00:00Z"), "Asia/Kolkata") == date(2024, 1, 16)

    def test_quarter_hour_offset(self):
        # 18:20 UTC + 5:45 = 00:05 next day
        assert resolve_logical_date(_utc("2024-01-15T18:20:00Z"), "Asia/Kathmandu") == date(2024, 1, 16)

    def test_late_night_before_spring_forward(self):
        # 04:30 UTC = 23:30 EST on March 9
        assert resolve_logical_date(_utc("2024-03-10T04:30:00Z"), "America/New_York") == date(2024, 3, 9)

    def test_both_sides_of_spring_forward_same_day(self):
        before = resolve_logical_date(_utc("2024-03-10T06:59:00Z"), "America/New_York")
        after = resolve_logical_date(_utc("2024-03-10T07:01:00Z"), "America/New_York")
        assert before == after == date(2024, 3, 10)

    def test_fall_back_repeated_hour(self):
        assert resolve_logical_date(_utc("2024-11-03T06:30:00Z"), "America/New_York") == date(2024, 11, 3)

    def test_naive_instant_read_as_utc(self):
        assert resolve_logical_date(datetime(2024, 1, 15, 20, 0), "Asia/Tokyo") == date(2024, 1, 16)

    def test_aware_non_utc_instant(self):
        tokyo_morning = datetime(2024, 1, 16, 1, 0, tzinfo=timezone(timedelta(hours=9)))
        assert resolve_logical_date(tokyo_morning, "UTC") == date(2024, 1, 15)

    @pytest.mark.parametrize("bad", ["Not/AZone", "", None, "   ", "../etc/passwd"])
    def test_invalid_timezone_falls_back_to_utc(self, bad):
        assert resolve_logical_date(_utc("2024-01-15T23:30:00Z"), bad) == date(2024, 1, 15)

    def test_monotonic_across_a_year(self):
        tz = "America/New_York"
        instant = _utc("2024-01-01T00:00:00Z")
        previous = resolve_logical_date(instant, tz)
        for _ in range(24 * 366 // 7):
            instant += timedelta(hours=7)
            current = resolve_logical_date(instant, tz)
            assert current >= previous
            previous = current


class TestGetZone:
    def test_valid_key(self):
        assert get_zone("Europe/Berlin").key == "Europe/Berlin"

    def test_invalid_key_is_utc(self):
        assert get_zone("Mars/Olympus_Mons").key == "UTC"

    def test_is_valid_timezone(self):
        assert is_valid_timezone("Asia/Jerusalem") is True
        assert is_valid_timezone("Asia/Atlantis") is False
        assert is_valid_timezone("") is False
        assert is_valid_timezone(None) is False


class TestFormatAndParse:
    def test_format(self):
        assert format_logical_date(date(2024, 3, 9)) == "2024-03-09"

    def test_format_datetime_drops_time(self):
        assert format_logical_date(datetime(2024, 3, 9, 22, 15)) == "2024-03-09"

    def test_format_pads_small_years(self):
        assert format_logical_date(date(9, 1, 2)) == "0009-01-02"

    def test_parse(self):
        assert parse_logical_date("2024-02-29") == date(2024, 2, 29)

    @pytest.mark.parametrize("raw", ["2024-1-5", "20240105", "2024-02-30", "", "yesterday", "2024-01-05T00:00"])
    def test_parse_rejects_malformed(self, raw):
        with pytest.raises(ValueError):
            parse_logical_date(raw)

    @pytest.mark.parametrize(
        "day", [date(2024, 2, 29), date(1999, 12, 31), date(2000, 1, 1), date(1, 1, 1), date(9999, 12, 31)],
    )
    def test_round_trip(self, day):
        assert parse_logical_date(format_logical_date(day)) == day


class TestZonedInstant:
    def test_plain_morning(self):
        result = zoned_instant(date(2024, 1, 15), "09:00", "Asia/Jerusalem")
        assert result == _utc("2024-01-15T07:00:00Z")
        assert result.tzinfo is not None

    def test_accepts_time_object(self):
        assert zoned_instant(date(2024, 1, 15), time(9, 30), "UTC") == _utc("2024-01-15T09:30:00Z")

    def test_accepts_seconds(self):
        assert zoned_instant(date(2024, 1, 15), "09:30:15", "UTC") == _utc("2024-01-15T09:30:15Z")

    def test_spring_forward_gap_does_not_raise(self):
        # 02:30 does not exist in New York on 2024-03-10
        result = zoned_instant(date(2024, 3, 10), "02:30", "America/New_York")
        assert result == _utc("2024-03-10T07:30:00Z")
        assert result.astimezone(get_zone("America/New_York")).strftime("%H:%M") == "03:30"

    def test_fall_back_ambiguity_picks_earlier(self):
        # 01:30 happens twice in New York on 2024-11-03: 05:30Z (EDT) and 06:30Z (EST)
        result = zoned_instant(date(2024, 11, 3), "01:30", "America/New_York")
        assert result == _utc("2024-11-03T05:30:00Z")

    def test_invalid_timezone_uses_utc(self):
        assert zoned_instant(date(2024, 1, 15), "09:00", "Nowhere/Town") == _utc("2024-01-15T09:00:00Z")

    @pytest.mark.parametrize("bad", ["9am", "25:00", "09:60", ""])
    def test_bad_local_time_raises(self, bad):
        with pytest.raises(ValueError):
            zoned_instant(date(2024, 1, 15), bad, "UTC")


class TestBoundsAndRanges:
    def test_day_bounds_regular_day(self):
        start, end = logical_day_bounds(date(2024, 1, 15), "Asia/Kolkata")
        assert start == _utc("2024-01-14T18:30:00Z")
        assert end == _utc("2024-01-15T18:30:00Z")

    def test_spring_forward_day_is_23_hours(self):
        start, end = logical_day_bounds(date(2024, 3, 10), "America/New_York")
        assert end - start == timedelta(hours=23)

    def test_fall_back_day_is_25_hours(self):
        start, end = logical_day_bounds(date(2024, 11, 3), "America/New_York")
        assert end - start == timedelta(hours=25)

    def test_days_in_range_inclusive(self):
        days = days_in_range(date(2024, 2, 27), date(2024, 3, 1))
        assert days == [date(2024, 2, 27), date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]

    def test_days_in_range_single_day(self):
        assert days_in_range(date(2024, 1, 1), date(2024, 1, 1)) == [date(2024, 1, 1)]

    def test_days_in_range_reversed_is_empty(self):
        assert days_in_range(date(2024, 1, 2), date(2024, 1, 1)) == []
