"""
Team member selection for booking links.

Rotation state is derived from persisted bookings rather than kept in
memory, so every worker process sees the same "last assigned" member.
"""
from datetime import timedelta
from django.db.models import Count, Max
from django.utils import timezone
import logging

from apps.availability.models import CalendarEvent
from apps.availability.utils import get_week_bounds

logger = logging.getLogger(__name__)


def get_last_assignee_id(link):
    """Assignee of the most recently created booking for the link, any status."""
    from .models import Booking

    last_booking = (
        Booking.objects.filter(booking_link=link)
        .order_by('-created_at', '-id')
        .values('assigned_to_id')
        .first()
    )
    return last_booking['assigned_to_id'] if last_booking else None


def next_booking_timestamp(link):
    """
    Creation time for a new booking that sorts after every earlier one on the link.

    Must be called while holding the link's row lock. A host whose clock runs
    behind another's would otherwise stamp a newer booking as older and
    repeat a member in the rotation.
    """
    from .models import Booking

    now = timezone.now()
    latest = Booking.objects.filter(booking_link=link).aggregate(latest=Max('created_at'))['latest']
    if latest is not None and latest >= now:
        return latest + timedelta(microseconds=1)
    return now


def resolve_round_robin(link, member_ids, busy_member_ids=()):
    if not member_ids:
        return None

    previous = get_last_assignee_id(link)
    if previous in member_ids:
        start = (member_ids.index(previous) + 1) % len(member_ids)
    else:
        start = 0

    for offset in range(len(member_ids)):
        candidate = member_ids[(start + offset) % len(member_ids)]
        if candidate not in busy_member_ids:
            return candidate
    return None


def get_weekly_event_counts(member_ids, scheduled_time, timezone_name):
    """Active calendar events starting in the week of `scheduled_time`, per member."""
    week_start, week_end = get_week_bounds(scheduled_time, timezone_name)
    rows = (
        CalendarEvent.objects.active()
        .for_users(member_ids)
        .filter(start_time__gte=week_start, start_time__lt=week_end)
        .values('user_id')
        .annotate(event_count=Count('id'))
    )
    counts = {member_id: 0 for member_id in member_ids}
    for row in rows:
        counts[row['user_id']] = row['event_count']
    return counts


def resolve_load_balanced(link, member_ids, scheduled_time, busy_member_ids=()):
    if not member_ids:
        return None

    counts = get_weekly_event_counts(member_ids, scheduled_time, link.timezone_name)

    selected = None
    lowest = None
    for member_id in member_ids:
        if member_id in busy_member_ids:
            continue
        # Strict comparison keeps the first member on ties
        if lowest is None or counts[member_id] < lowest:
            selected = member_id
            lowest = counts[member_id]
    return selected


def resolve_assignee(link, scheduled_time, busy_member_ids=()):
    """
    Pick the user who receives a booking at `scheduled_time`.

    Args:
        link: BookingLink being booked
        scheduled_time: Aware datetime of the slot start
        busy_member_ids: Members already busy at the slot; they are skipped

    Returns:
        User id, or None when no eligible member is left
    """
    if link.assignment_type == 'owner':
        return link.owner_id

    member_ids = link.get_eligible_member_ids()
    busy_member_ids = set(busy_member_ids)

    if link.assignment_type == 'round_robin':
        assignee_id = resolve_round_robin(link, member_ids, busy_member_ids)
    elif link.assignment_type == 'load_balanced':
        assignee_id = resolve_load_balanced(link, member_ids, scheduled_time, busy_member_ids)
    else:
        logger.warning(f"Unknown assignment type {link.assignment_type} on booking link {link.slug}")
        assignee_id = None

    if assignee_id is None:
        logger.warning(
            f"No assignee for booking link {link.slug} at {scheduled_time.isoformat()} "
            f"({len(member_ids)} eligible, {len(busy_member_ids)} busy)"
        )
    return assignee_id
