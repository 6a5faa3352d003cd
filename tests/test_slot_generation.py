"""Tests for slot generation and the time helpers it relies on."""

from datetime import date, datetime, timedelta, timezone as dt_timezone
from zoneinfo import ZoneInfo

import pytest

from apps.availability.utils import (
    filter_slots_to_window,
    generate_time_slots,
    get_day_bounds,
    get_open_ranges_for_date,
    get_week_bounds,
    parse_clock_time,
    validate_timezone,
    validate_weekly_hours,
)

NINE_TO_FIVE = [{"start": "09:00", "end": "17:00"}]
TUESDAY = date(2024, 6, 4)


class TestGenerateTimeSlots:
    """Slot generation for a single day."""

    def test_business_day_slots_step_by_fifteen_minutes(self):
        slots = generate_time_slots(TUESDAY, NINE_TO_FIVE, 30, step_minutes=15, timezone_name="UTC")

        starts = [slot.start.strftime("%H:%M") for slot in slots]
        assert starts[0] == "09:00"
        assert starts[1] == "09:15"
        assert starts[2] == "09:30"
        assert starts[-1] == "16:30"
        assert len(slots) == 31

    def test_slots_have_requested_duration_and_end_inside_range(self):
        slots = generate_time_slots(TUESDAY, NINE_TO_FIVE, 45, step_minutes=15, timezone_name="UTC")

        range_end = datetime(2024, 6, 4, 17, 0, tzinfo=dt_timezone.utc)
        assert all(slot.end - slot.start == timedelta(minutes=45) for slot in slots)
        assert all(slot.end <= range_end for slot in slots)
        assert slots[-1].start.strftime("%H:%M") == "16:15"

    def test_multiple_ranges_are_walked_in_order(self):
        ranges = [{"start": "09:00", "end": "10:00"}, {"start": "13:00", "end": "14:00"}]
        slots = generate_time_slots(TUESDAY, ranges, 30, step_minutes=30, timezone_name="UTC")

        assert [slot.start.strftime("%H:%M") for slot in slots] == ["09:00", "09:30", "13:00", "13:30"]

    def test_range_shorter_than_duration_yields_nothing(self):
        slots = generate_time_slots(TUESDAY, [{"start": "09:00", "end": "09:20"}], 30, timezone_name="UTC")
        assert slots == []

    def test_no_open_ranges_yields_nothing(self):
        assert generate_time_slots(TUESDAY, [], 30, timezone_name="UTC") == []

    def test_labels_and_timezone_follow_display_zone(self):
        slots = generate_time_slots(
            TUESDAY, NINE_TO_FIVE, 30, timezone_name="UTC", display_timezone="America/New_York"
        )

        first = slots[0]
        assert first.timezone == "America/New_York"
        assert first.label == "5:00 AM"
        assert first.start == datetime(2024, 6, 4, 9, 0, tzinfo=dt_timezone.utc)
        assert first.start.utcoffset() == timedelta(hours=-4)

    def test_afternoon_labels(self):
        slots = generate_time_slots(TUESDAY, [{"start": "12:00", "end": "13:00"}], 30,
                                    step_minutes=30, timezone_name="UTC")
        assert [slot.label for slot in slots] == ["12:00 PM", "12:30 PM"]

    def test_open_ranges_are_read_in_link_zone(self):
        slots = generate_time_slots(TUESDAY, NINE_TO_FIVE, 30, timezone_name="Europe/Berlin",
                                    display_timezone="UTC")
        assert slots[0].start == datetime(2024, 6, 4, 7, 0, tzinfo=dt_timezone.utc)
        assert slots[0].label == "7:00 AM"

    def test_spring_forward_day_keeps_real_durations(self):
        # 2024-03-10: New York clocks jump from 02:00 to 03:00
        slots = generate_time_slots(
            date(2024, 3, 10), [{"start": "00:00", "end": "04:00"}], 60,
            step_minutes=60, timezone_name="America/New_York"
        )

        assert [slot.label for slot in slots] == ["12:00 AM", "1:00 AM", "3:00 AM"]
        # Same-zone subtraction is wall-clock arithmetic, so measure in UTC
        assert all(
            slot.end.astimezone(dt_timezone.utc) - slot.start.astimezone(dt_timezone.utc) == timedelta(hours=1)
            for slot in slots
        )
        assert slots[2].start == datetime(2024, 3, 10, 7, 0, tzinfo=dt_timezone.utc)

    @pytest.mark.parametrize("duration,step", [(0, 15), (-30, 15), (30, 0)])
    def test_non_positive_duration_or_step_is_rejected(self, duration, step):
        with pytest.raises(ValueError):
            generate_time_slots(TUESDAY, NINE_TO_FIVE, duration, step_minutes=step, timezone_name="UTC")

    def test_unknown_timezone_is_rejected(self):
        with pytest.raises(ValueError):
            generate_time_slots(TUESDAY, NINE_TO_FIVE, 30, timezone_name="Mars/Olympus")


class TestWeeklyHours:
    """Validation of the weekday -> ranges description."""

    def test_normalizes_keys_and_sorts_ranges(self):
        hours = validate_weekly_hours({
            "Monday": [{"start": "13:00", "end": "17:00"}, {"start": "09:00", "end": "12:00"}],
        })
        assert list(hours) == ["monday"]
        assert hours["monday"][0]["start"] == "09:00"

    @pytest.mark.parametrize("weekly_hours", [
        {"funday": []},
        {"monday": "09:00-17:00"},
        {"monday": [{"start": "17:00", "end": "09:00"}]},
        {"monday": [{"start": "9am", "end": "17:00"}]},
        {"monday": [{"start": "09:00"}]},
        ["monday"],
    ])
    def test_invalid_descriptions_are_rejected(self, weekly_hours):
        with pytest.raises(ValueError):
            validate_weekly_hours(weekly_hours)

    def test_end_of_day_is_accepted(self):
        assert parse_clock_time("24:00") == 24 * 60
        with pytest.raises(ValueError):
            parse_clock_time("24:30")

    def test_open_ranges_for_weekday(self):
        hours = {"tuesday": NINE_TO_FIVE}
        assert get_open_ranges_for_date(hours, TUESDAY) == NINE_TO_FIVE
        assert get_open_ranges_for_date(hours, TUESDAY + timedelta(days=1)) == []


class TestBounds:
    """Day and week bounds in a named zone."""

    def test_day_bounds_in_zone(self):
        start, end = get_day_bounds(TUESDAY, "America/New_York")
        assert start == datetime(2024, 6, 4, tzinfo=ZoneInfo("America/New_York"))
        assert end - start == timedelta(days=1)

    def test_week_bounds_start_on_monday(self):
        thursday = datetime(2024, 6, 6, 15, 0, tzinfo=dt_timezone.utc)
        start, end = get_week_bounds(thursday, "UTC")
        assert start == datetime(2024, 6, 3, tzinfo=ZoneInfo("UTC"))
        assert end == datetime(2024, 6, 10, tzinfo=ZoneInfo("UTC"))

    def test_week_bounds_use_local_date(self):
        # Monday 02:00 UTC is still Sunday evening in New York
        moment = datetime(2024, 6, 10, 2, 0, tzinfo=dt_timezone.utc)
        start, _ = get_week_bounds(moment, "America/New_York")
        assert start.date() == date(2024, 6, 3)

    def test_window_filter_is_inclusive(self):
        slots = generate_time_slots(TUESDAY, NINE_TO_FIVE, 30, timezone_name="UTC")
        earliest = datetime(2024, 6, 4, 10, 0, tzinfo=dt_timezone.utc)
        latest = datetime(2024, 6, 4, 11, 0, tzinfo=dt_timezone.utc)

        kept = filter_slots_to_window(slots, earliest, latest)
        assert [slot.start.strftime("%H:%M") for slot in kept] == ["10:00", "10:15", "10:30", "10:45", "11:00"]

    def test_validate_timezone(self):
        assert validate_timezone("America/New_York")
        assert not validate_timezone("Not/AZone")
        assert not validate_timezone("")
        assert not validate_timezone(None)
