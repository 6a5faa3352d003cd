"""Pytest fixtures for booking engine tests."""

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.core.cache import cache
from freezegun import freeze_time
from rest_framework.test import APIClient

# Loaded before any clock is frozen: SimpleRateThrottle.timer binds time.time at import
import config.urls  # noqa: F401
from apps.availability.models import CalendarEvent
from apps.events.models import Booking, BookingLink, BookingLinkHost

# Monday 2024-06-03 06:00 UTC
FROZEN_NOW = datetime(2024, 6, 3, 6, 0, tzinfo=dt_timezone.utc)

WEEKDAY_HOURS = {
    day: [{"start": "09:00", "end": "17:00"}]
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
}


@pytest.fixture(autouse=True)
def clear_cache():
    """Availability results are cached; start every test cold."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def frozen_clock():
    """Freeze the clock at FROZEN_NOW; tests may tick() it forward."""
    with freeze_time(FROZEN_NOW) as frozen:
        yield frozen


@pytest.fixture
def owner(django_user_model):
    return django_user_model.objects.create_user(
        username="owner", email="owner@acme.test", password="pass1234", first_name="Olivia"
    )


@pytest.fixture
def members(django_user_model):
    """Three team members in priority order: alice, bob, carol."""
    return [
        django_user_model.objects.create_user(
            username=name, email=f"{name}@acme.test", password="pass1234", first_name=name.title()
        )
        for name in ("alice", "bob", "carol")
    ]


@pytest.fixture
def booking_link(owner):
    """Owner-assigned link: weekdays 09:00-17:00 UTC, 30 minutes, 15 minute step."""
    return BookingLink.objects.create(
        owner=owner,
        name="Intro Call",
        slug="intro-call",
        duration=30,
        slot_interval_minutes=15,
        timezone_name="UTC",
        weekly_hours=WEEKDAY_HOURS,
        min_notice_hours=24,
        max_advance_days=30,
    )


def add_hosts(link, users):
    for index, user in enumerate(users):
        BookingLinkHost.objects.create(booking_link=link, user=user, priority_order=index)


@pytest.fixture
def team_link(owner, members):
    link = BookingLink.objects.create(
        owner=owner,
        name="Sales Demo",
        slug="sales-demo",
        duration=30,
        slot_interval_minutes=15,
        timezone_name="UTC",
        weekly_hours=WEEKDAY_HOURS,
        min_notice_hours=24,
        max_advance_days=30,
        assignment_type="round_robin",
    )
    add_hosts(link, members)
    return link


@pytest.fixture
def make_event():
    """Create a calendar event blocking time for a user."""

    def _make_event(user, start, end, status="scheduled", title="Busy"):
        return CalendarEvent.objects.create(
            user=user, title=title, start_time=start, end_time=end, status=status
        )

    return _make_event


@pytest.fixture
def make_booking():
    """Insert a booking row directly, bypassing the commit path."""

    def _make_booking(link, scheduled_time, assigned_to=None, status="confirmed", created_at=None):
        booking = Booking.objects.create(
            booking_link=link,
            name="Existing Booker",
            email="existing@example.com",
            scheduled_time=scheduled_time,
            end_time=scheduled_time + timedelta(minutes=link.duration),
            assigned_to=assigned_to,
            status=status,
        )
        if created_at is not None:
            Booking.objects.filter(pk=booking.pk).update(created_at=created_at)
            booking.refresh_from_db()
        return booking

    return _make_booking


@pytest.fixture
def booking_data():
    """Booker details for a given start time."""

    def _booking_data(scheduled_time, **overrides):
        data = {
            "name": "Jane Doe",
            "email": "jane@example.com",
            "phone": "+1 555 0100",
            "company": "Example Corp",
            "scheduled_time": scheduled_time,
            "timezone": "UTC",
            "custom_responses": {"topic": "pricing"},
        }
        data.update(overrides)
        return data

    return _booking_data


@pytest.fixture
def api_client():
    return APIClient()
