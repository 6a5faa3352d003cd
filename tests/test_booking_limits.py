"""Tests for daily and weekly booking caps."""

from datetime import date, datetime, timezone as dt_timezone

import pytest

from apps.availability.utils import generate_time_slots
from apps.events.utils import apply_booking_limits

pytestmark = pytest.mark.django_db

TUESDAY = date(2024, 6, 4)


def at(day, hour, minute=0):
    return datetime(2024, 6, day, hour, minute, tzinfo=dt_timezone.utc)


@pytest.fixture
def slots():
    return generate_time_slots(TUESDAY, [{"start": "09:00", "end": "17:00"}], 30, timezone_name="UTC")


class TestApplyBookingLimits:

    def test_no_caps_returns_slots_unchanged(self, booking_link, make_booking, slots):
        make_booking(booking_link, at(4, 9), assigned_to=booking_link.owner)
        assert apply_booking_limits(slots, booking_link, TUESDAY) is slots

    def test_day_cap_met_closes_the_whole_day(self, booking_link, make_booking, slots):
        booking_link.max_bookings_per_day = 1
        booking_link.save()
        make_booking(booking_link, at(4, 16), assigned_to=booking_link.owner)

        assert apply_booking_limits(slots, booking_link, TUESDAY) == []

    def test_day_cap_not_yet_met(self, booking_link, make_booking, slots):
        booking_link.max_bookings_per_day = 2
        booking_link.save()
        make_booking(booking_link, at(4, 9), assigned_to=booking_link.owner)

        assert apply_booking_limits(slots, booking_link, TUESDAY) == slots

    def test_cancelled_bookings_do_not_count(self, booking_link, make_booking, slots):
        booking_link.max_bookings_per_day = 1
        booking_link.save()
        make_booking(booking_link, at(4, 9), assigned_to=booking_link.owner, status="cancelled")

        assert apply_booking_limits(slots, booking_link, TUESDAY) == slots

    def test_bookings_on_other_days_do_not_count_toward_day_cap(self, booking_link, make_booking, slots):
        booking_link.max_bookings_per_day = 1
        booking_link.save()
        make_booking(booking_link, at(3, 23, 30), assigned_to=booking_link.owner)
        make_booking(booking_link, at(5, 0), assigned_to=booking_link.owner)

        assert apply_booking_limits(slots, booking_link, TUESDAY) == slots

    def test_bookings_on_other_links_do_not_count(self, booking_link, team_link, make_booking, slots):
        booking_link.max_bookings_per_day = 1
        booking_link.save()
        make_booking(team_link, at(4, 9))

        assert apply_booking_limits(slots, booking_link, TUESDAY) == slots

    def test_day_bounds_follow_link_zone(self, booking_link, make_booking, slots):
        booking_link.max_bookings_per_day = 1
        booking_link.timezone_name = "America/New_York"
        booking_link.save()
        # 02:00 UTC Wednesday is Tuesday evening in New York
        make_booking(booking_link, at(5, 2), assigned_to=booking_link.owner)

        assert apply_booking_limits(slots, booking_link, TUESDAY) == []

    def test_week_cap_met_closes_other_days_of_the_week(self, booking_link, make_booking):
        booking_link.max_bookings_per_week = 2
        booking_link.save()
        make_booking(booking_link, at(3, 9), assigned_to=booking_link.owner)
        make_booking(booking_link, at(5, 9), assigned_to=booking_link.owner)

        friday = date(2024, 6, 7)
        friday_slots = generate_time_slots(friday, [{"start": "09:00", "end": "10:00"}], 30, timezone_name="UTC")
        assert apply_booking_limits(friday_slots, booking_link, friday) == []

        next_monday = date(2024, 6, 10)
        monday_slots = generate_time_slots(next_monday, [{"start": "09:00", "end": "10:00"}], 30, timezone_name="UTC")
        assert apply_booking_limits(monday_slots, booking_link, next_monday) == monday_slots

    def test_day_cap_checked_before_week_cap(self, booking_link, make_booking, slots):
        booking_link.max_bookings_per_day = 1
        booking_link.max_bookings_per_week = 10
        booking_link.save()
        make_booking(booking_link, at(4, 9), assigned_to=booking_link.owner)

        assert apply_booking_limits(slots, booking_link, TUESDAY) == []

    def test_excluded_booking_is_not_counted(self, booking_link, make_booking, slots):
        booking_link.max_bookings_per_day = 1
        booking_link.save()
        existing = make_booking(booking_link, at(4, 9), assigned_to=booking_link.owner)

        assert apply_booking_limits(slots, booking_link, TUESDAY, exclude_booking_id=existing.id) == slots
