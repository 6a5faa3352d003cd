from collections import namedtuple
from datetime import timedelta, timezone as dt_timezone
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone
from django.utils.crypto import get_random_string
from django.utils.text import slugify
from rest_framework.exceptions import ValidationError
import logging
import uuid

from apps.availability.intervals import busy_members_at, filter_available, filter_available_for_any
from apps.availability.models import CalendarEvent
from apps.availability.utils import (
    busy_intervals_from_events, filter_slots_to_window, generate_time_slots,
    get_day_bounds, get_open_ranges_for_date, get_week_bounds, get_zone, validate_timezone
)
from .assignment import next_booking_timestamp, resolve_assignee
from .exceptions import (
    AssignmentFailed, BookingLinkNotFound, InvalidTimezone, OutOfWindow,
    PartialCommitFailure, SlotUnavailable
)
from .models import Booking, BookingAuditLog, BookingLink

logger = logging.getLogger(__name__)


AvailabilityResult = namedtuple('AvailabilityResult', ['slots', 'date', 'timezone', 'reason', 'message'])

AVAILABILITY_MESSAGES = {
    'out_of_window': 'This date is outside the booking window',
    'closed': 'No availability is configured for this day',
    'no_eligible_members': 'No team members are available for this booking link',
    'limit_reached': 'The booking limit for this period has been reached',
}


# Slugs

def generate_unique_slug(name, max_attempts=10):
    """Slugified name plus a random suffix, checked against existing links."""
    base = slugify(name)[:100] or 'booking'
    alphabet = 'abcdefghijklmnopqrstuvwxyz0123456789'
    for _ in range(max_attempts):
        candidate = f"{base}-{get_random_string(6, alphabet)}"
        if not BookingLink.objects.filter(slug=candidate).exists():
            return candidate
    return f"{base}-{uuid.uuid4().hex[:12]}"


# Booker qualification

def get_email_domain(email):
    return email.rsplit('@', 1)[-1].strip().lower() if email and '@' in email else ''


def is_business_email(email):
    domain = get_email_domain(email)
    return bool(domain) and domain not in settings.BOOKING_FREE_EMAIL_DOMAINS


# Booking window

def add_business_days(moment, days, timezone_name):
    """Move `days` weekdays forward from a moment, counting in the given zone."""
    current = moment.astimezone(get_zone(timezone_name))
    added = 0
    while added < days:
        current += timedelta(days=1)
        if current.weekday() < 5:
            added += 1
    return current


def get_booking_window(link, now=None):
    """Earliest and latest bookable start times for a link."""
    now = now or timezone.now()
    earliest = now + timedelta(hours=link.min_notice_hours)
    if link.date_range_type == 'business_days':
        latest = add_business_days(now, link.max_advance_days, link.timezone_name)
    else:
        latest = now + timedelta(days=link.max_advance_days)
    return earliest, latest


def validate_booking_window(link, day, now=None):
    """Raise OutOfWindow when no part of `day` lies inside the booking window."""
    earliest, latest = get_booking_window(link, now)
    day_start, day_end = get_day_bounds(day, link.timezone_name)
    if day_end <= earliest or day_start > latest:
        raise OutOfWindow(f"{day.isoformat()} is outside the booking window")
    return earliest, latest


# Availability cache

def get_availability_version_key(link_id):
    return f"availability_version:{link_id}"


def get_availability_version(link_id):
    return cache.get_or_set(get_availability_version_key(link_id), lambda: uuid.uuid4().hex, timeout=None)


def invalidate_availability_cache(link_id):
    """Drop every cached availability entry for a link by rotating its version."""
    cache.set(get_availability_version_key(link_id), uuid.uuid4().hex, timeout=None)
    logger.debug(f"Invalidated availability cache for booking link {link_id}")


def invalidate_availability_for_user(user_id):
    """Invalidate links whose availability depends on this user's calendar."""
    link_ids = list(
        BookingLink.objects.filter(Q(owner_id=user_id) | Q(hosts__user_id=user_id))
        .values_list('id', flat=True)
        .distinct()
    )
    for link_id in link_ids:
        invalidate_availability_cache(link_id)
    return len(link_ids)


def invalidate_availability_for_booking(booking):
    """Invalidate the booked link and every link reading the assignee's calendar."""
    invalidate_availability_cache(booking.booking_link_id)
    if booking.assigned_to_id:
        invalidate_availability_for_user(booking.assigned_to_id)


def get_availability_cache_key(link, day, timezone_name):
    version = get_availability_version(link.id)
    return f"availability:{link.id}:{version}:{day.isoformat()}:{timezone_name}"


# Busy time

def get_busy_intervals(member_ids, start, end):
    """Busy intervals for the given users overlapping [start, end)."""
    events = (
        CalendarEvent.objects.active()
        .for_users(member_ids)
        .overlapping(start, end)
        .only('user_id', 'start_time', 'end_time')
    )
    return busy_intervals_from_events(events)


def get_padded_range(link, start, end):
    return (
        start - timedelta(minutes=link.buffer_before),
        end + timedelta(minutes=link.buffer_after),
    )


# Limits

def apply_booking_limits(slots, link, day, exclude_booking_id=None):
    """
    Close the whole day when a daily or weekly cap is already met.

    Counts non-cancelled bookings for the link within the day's and the
    Monday-based week's bounds in the link's zone. The day cap is checked
    first; either cap being reached returns an empty list. Slots are never
    partially trimmed.
    """
    if not link.max_bookings_per_day and not link.max_bookings_per_week:
        return slots

    bookings = Booking.objects.filter(booking_link=link).exclude(status='cancelled')
    if exclude_booking_id:
        bookings = bookings.exclude(id=exclude_booking_id)

    day_start, day_end = get_day_bounds(day, link.timezone_name)

    if link.max_bookings_per_day:
        day_count = bookings.filter(scheduled_time__gte=day_start, scheduled_time__lt=day_end).count()
        if day_count >= link.max_bookings_per_day:
            logger.info(f"Daily limit reached for {link.slug} on {day}: {day_count}/{link.max_bookings_per_day}")
            return []

    if link.max_bookings_per_week:
        week_start, week_end = get_week_bounds(day_start, link.timezone_name)
        week_count = bookings.filter(scheduled_time__gte=week_start, scheduled_time__lt=week_end).count()
        if week_count >= link.max_bookings_per_week:
            logger.info(f"Weekly limit reached for {link.slug} in week of {week_start.date()}: "
                        f"{week_count}/{link.max_bookings_per_week}")
            return []

    return slots


# Availability

def compute_day_slots(link, day, timezone_name):
    """
    Generated, overlap-filtered and limit-checked slots for one day.

    Returns a (slots, reason) pair; the booking window is not applied here.
    """
    member_ids = link.get_candidate_member_ids()
    if not member_ids:
        return [], 'no_eligible_members'

    open_ranges = get_open_ranges_for_date(link.weekly_hours, day)
    slots = generate_time_slots(
        day,
        open_ranges,
        link.duration,
        step_minutes=link.slot_interval_minutes or settings.BOOKING_DEFAULT_SLOT_INTERVAL,
        timezone_name=link.timezone_name,
        display_timezone=timezone_name,
    )
    if not slots:
        return [], 'closed'

    range_start, range_end = get_padded_range(
        link, min(slot.start for slot in slots), max(slot.end for slot in slots)
    )
    busy = get_busy_intervals(member_ids, range_start, range_end)

    if len(member_ids) == 1:
        slots = filter_available(slots, busy, link.buffer_before, link.buffer_after)
    else:
        slots = filter_available_for_any(slots, busy, member_ids, link.buffer_before, link.buffer_after)

    if not slots:
        return [], None

    limited = apply_booking_limits(slots, link, day)
    if not limited:
        return [], 'limit_reached'
    return limited, None


def get_available_slots(link, day, timezone_name=None, use_cache=True):
    """
    Bookable slots for a link on one day of its reference zone.

    Runs the window check, then slot generation, overlap filtering and
    booking limits. The window-independent part is cached per link version;
    the minimum-notice trim is applied on every call.

    Raises:
        InvalidTimezone: `timezone_name` is not an IANA zone
    """
    timezone_name = timezone_name or link.timezone_name
    if not validate_timezone(timezone_name):
        raise InvalidTimezone(f"Invalid timezone: {timezone_name}")

    try:
        earliest, latest = validate_booking_window(link, day)
    except OutOfWindow:
        return AvailabilityResult([], day, timezone_name, 'out_of_window', AVAILABILITY_MESSAGES['out_of_window'])

    cache_key = get_availability_cache_key(link, day, timezone_name)
    cached = cache.get(cache_key) if use_cache else None

    if cached is not None:
        logger.debug(f"Cache HIT for availability: {cache_key}")
        slots, reason = cached
    else:
        slots, reason = compute_day_slots(link, day, timezone_name)
        if use_cache:
            cache.set(cache_key, (slots, reason), timeout=settings.BOOKING_AVAILABILITY_CACHE_TIMEOUT)

    if slots:
        slots = filter_slots_to_window(slots, earliest, latest)
        if not slots:
            reason = 'out_of_window'

    return AvailabilityResult(slots, day, timezone_name, reason, AVAILABILITY_MESSAGES.get(reason, ''))


def get_availability_calendar(link, start_date, timezone_name=None, days=None):
    """Per-day slot counts for `days` consecutive days starting at `start_date`."""
    days = days or settings.BOOKING_CALENDAR_DAYS
    calendar = []
    for offset in range(days):
        day = start_date + timedelta(days=offset)
        result = get_available_slots(link, day, timezone_name)
        calendar.append({
            'date': day.isoformat(),
            'available_slots': len(result.slots),
            'reason': result.reason,
        })
    return calendar


# Booking commit

def get_active_link_for_update(link):
    try:
        return BookingLink.objects.select_for_update().get(pk=link.pk, is_active=True)
    except BookingLink.DoesNotExist:
        raise BookingLinkNotFound()


def validate_requested_slot(link, scheduled_time):
    """
    Check a requested start time against the link's window and slot grid.

    Returns the day (in the link's zone) the slot belongs to.
    """
    earliest, latest = get_booking_window(link)
    if not earliest <= scheduled_time <= latest:
        raise OutOfWindow()

    day = scheduled_time.astimezone(get_zone(link.timezone_name)).date()
    offered = generate_time_slots(
        day,
        get_open_ranges_for_date(link.weekly_hours, day),
        link.duration,
        step_minutes=link.slot_interval_minutes or settings.BOOKING_DEFAULT_SLOT_INTERVAL,
        timezone_name=link.timezone_name,
    )
    requested = scheduled_time.astimezone(dt_timezone.utc)
    # Compare in UTC; same-zone datetimes compare by wall clock across a DST fold
    if not any(slot.start.astimezone(dt_timezone.utc) == requested for slot in offered):
        raise SlotUnavailable('The requested time is not an offered slot for this booking link')
    return day


def assignee_has_conflict(assignee_id, start, end, exclude_booking=None):
    """Whether the assignee already has busy time overlapping [start, end)."""
    events = CalendarEvent.objects.active().filter(user_id=assignee_id).overlapping(start, end)
    bookings = Booking.objects.filter(
        assigned_to_id=assignee_id,
        status='confirmed',
        scheduled_time__lt=end,
        end_time__gt=start,
    )
    if exclude_booking is not None:
        bookings = bookings.exclude(id=exclude_booking.id)
        if exclude_booking.calendar_event_id:
            events = events.exclude(id=exclude_booking.calendar_event_id)
    return events.exists() or bookings.exists()


def lock_assignee(assignee_id):
    """Row lock on the assignee; serializes commits for one calendar."""
    return get_user_model().objects.select_for_update().get(pk=assignee_id)


def build_calendar_event(booking, link):
    return CalendarEvent(
        user_id=booking.assigned_to_id,
        title=f"{link.name} with {booking.name}",
        description=f"Booked via {link.slug} by {booking.name} <{booking.email}>",
        start_time=booking.scheduled_time,
        end_time=booking.end_time,
        timezone_name=booking.timezone,
        source='booking_link',
        booking_link=link,
    )


def _commit_booking(link, booking_data, scheduled_time, end_time, day):
    member_ids = link.get_candidate_member_ids()
    if not member_ids:
        logger.warning(f"Booking rejected for {link.slug}: no eligible members")
        raise AssignmentFailed()

    padded_start, padded_end = get_padded_range(link, scheduled_time, end_time)
    busy = get_busy_intervals(member_ids, padded_start, padded_end)
    busy_ids = busy_members_at(busy, member_ids, padded_start, padded_end)

    assignee_id = resolve_assignee(link, scheduled_time, busy_ids)
    if assignee_id is None:
        if busy_ids:
            raise SlotUnavailable()
        raise AssignmentFailed()

    if not apply_booking_limits([scheduled_time], link, day):
        raise SlotUnavailable('The booking limit for this period has been reached')

    lock_assignee(assignee_id)
    if assignee_has_conflict(assignee_id, padded_start, padded_end):
        logger.info(f"Slot {scheduled_time.isoformat()} on {link.slug} taken before commit for user {assignee_id}")
        raise SlotUnavailable()

    booking = Booking.objects.create(
        booking_link=link,
        name=booking_data['name'],
        email=booking_data['email'],
        phone=booking_data.get('phone', ''),
        company=booking_data.get('company', ''),
        custom_responses=booking_data.get('custom_responses') or {},
        scheduled_time=scheduled_time,
        end_time=end_time,
        timezone=booking_data.get('timezone') or link.timezone_name,
        assigned_to_id=assignee_id,
        created_at=next_booking_timestamp(link),
    )

    event = build_calendar_event(booking, link)
    event.save()
    booking.calendar_event = event
    booking.save(update_fields=['calendar_event', 'updated_at'])

    create_booking_audit_log(
        booking=booking,
        action='booking_created',
        description=f"Booking created by {booking.name} for {scheduled_time.isoformat()}",
        actor_type='invitee',
        actor_email=booking.email,
        actor_name=booking.name,
        metadata={
            'assigned_to': str(assignee_id),
            'assignment_type': link.assignment_type,
            'calendar_event': str(event.id),
        }
    )
    return booking, event


def create_booking(link, booking_data):
    """
    Book a slot on a link and write its calendar event.

    The link row is locked for the whole commit so round-robin rotation and
    booking limits see every earlier booking on the link. The assignee's row
    is locked before the final overlap check. The booking and its event are
    written in the same transaction; a concurrent insert that still slips
    through is rejected by the confirmed-slot unique constraint and reported
    as SlotUnavailable.

    Args:
        link: Active BookingLink
        booking_data: Validated booker fields plus `scheduled_time` and `timezone`

    Returns:
        tuple: (Booking, CalendarEvent)
    """
    scheduled_time = booking_data['scheduled_time']
    end_time = scheduled_time + timedelta(minutes=link.duration)
    day = validate_requested_slot(link, scheduled_time)

    try:
        with transaction.atomic():
            locked_link = get_active_link_for_update(link)
            booking, event = _commit_booking(locked_link, booking_data, scheduled_time, end_time, day)
            transaction.on_commit(lambda: _after_booking_created(booking))
    except IntegrityError as e:
        logger.warning(f"Concurrent booking rejected for {link.slug} at {scheduled_time.isoformat()}: {str(e)}")
        raise SlotUnavailable()

    invalidate_availability_for_booking(booking)
    logger.info(f"Booking {booking.id} created on {link.slug} for {scheduled_time.isoformat()}, "
                f"assigned to {booking.assigned_to_id}")
    return booking, event


def _after_booking_created(booking):
    from .tasks import process_booking_confirmation
    process_booking_confirmation.delay(str(booking.id))


def cancel_booking(booking, reason='', cancelled_by='invitee'):
    """
    Cancel a booking and its calendar event.

    Cancelling an already cancelled booking changes nothing and returns it
    as it is.
    """
    with transaction.atomic():
        locked = Booking.objects.select_for_update().get(pk=booking.pk)
        changed = locked.mark_cancelled(cancelled_by=cancelled_by, reason=reason)

        if locked.calendar_event_id:
            event = CalendarEvent.objects.select_for_update().get(pk=locked.calendar_event_id)
            event.cancel()

        if changed:
            create_booking_audit_log(
                booking=locked,
                action='booking_cancelled',
                description=f"Booking cancelled by {cancelled_by}",
                actor_type=cancelled_by,
                actor_email=locked.email if cancelled_by == 'invitee' else '',
                metadata={'reason': reason or ''}
            )
            transaction.on_commit(lambda: _after_booking_cancelled(locked))

    if changed:
        invalidate_availability_for_booking(locked)
        logger.info(f"Booking {locked.id} cancelled by {cancelled_by}")
    else:
        logger.debug(f"Booking {locked.id} was already cancelled")
    return locked


def _after_booking_cancelled(booking):
    from .tasks import send_booking_cancellation_to_invitee
    send_booking_cancellation_to_invitee.delay(str(booking.id))


def reschedule_booking(booking, new_time, actor_type='invitee'):
    """
    Move a confirmed booking to another offered slot, keeping its assignee.

    Uses the same locks and overlap check as `create_booking`.
    """
    if booking.is_cancelled:
        raise ValidationError('Cancelled bookings cannot be rescheduled')

    link = booking.booking_link
    new_end = new_time + timedelta(minutes=link.duration)
    day = validate_requested_slot(link, new_time)

    try:
        with transaction.atomic():
            locked_link = get_active_link_for_update(link)
            locked = Booking.objects.select_for_update().get(pk=booking.pk)
            if locked.is_cancelled:
                raise ValidationError('Cancelled bookings cannot be rescheduled')

            if not apply_booking_limits([new_time], locked_link, day, exclude_booking_id=locked.id):
                raise SlotUnavailable('The booking limit for this period has been reached')

            padded_start, padded_end = get_padded_range(locked_link, new_time, new_end)
            if locked.assigned_to_id:
                lock_assignee(locked.assigned_to_id)
                if assignee_has_conflict(locked.assigned_to_id, padded_start, padded_end, exclude_booking=locked):
                    raise SlotUnavailable()

            old_time = locked.scheduled_time
            locked.scheduled_time = new_time
            locked.end_time = new_end
            locked.rescheduled_at = timezone.now()
            locked.save(update_fields=['scheduled_time', 'end_time', 'rescheduled_at', 'updated_at'])

            if locked.calendar_event_id:
                CalendarEvent.objects.filter(pk=locked.calendar_event_id).update(
                    start_time=new_time, end_time=new_end, updated_at=timezone.now()
                )

            create_booking_audit_log(
                booking=locked,
                action='booking_rescheduled',
                description=f"Booking moved from {old_time.isoformat()} to {new_time.isoformat()}",
                actor_type=actor_type,
                actor_email=locked.email if actor_type == 'invitee' else '',
                metadata={'old_start_time': old_time.isoformat(), 'new_start_time': new_time.isoformat()}
            )
            transaction.on_commit(lambda: _after_booking_rescheduled(locked))
    except IntegrityError as e:
        logger.warning(f"Concurrent reschedule rejected for booking {booking.id}: {str(e)}")
        raise SlotUnavailable()

    invalidate_availability_for_booking(locked)
    logger.info(f"Booking {locked.id} rescheduled to {new_time.isoformat()}")
    return locked


def _after_booking_rescheduled(booking):
    from .tasks import send_booking_confirmation_to_invitee
    send_booking_confirmation_to_invitee.delay(str(booking.id), rescheduled=True)


# Repair

def ensure_calendar_event(booking):
    """
    Make sure a confirmed booking has its calendar event.

    Idempotent: an existing event is returned untouched and cancelled
    bookings are skipped.

    Raises:
        PartialCommitFailure: the event could not be written
    """
    if booking.calendar_event_id:
        return booking.calendar_event
    if booking.is_cancelled:
        return None

    if booking.assigned_to_id is None:
        message = f"Booking {booking.id} has no assignee to hold its calendar event"
        _record_event_failure(booking, message)
        raise PartialCommitFailure(message)

    try:
        with transaction.atomic():
            locked = Booking.objects.select_for_update().get(pk=booking.pk)
            if locked.calendar_event_id:
                return locked.calendar_event

            event = build_calendar_event(locked, locked.booking_link)
            event.save()
            locked.calendar_event = event
            locked.save(update_fields=['calendar_event', 'updated_at'])

            create_booking_audit_log(
                booking=locked,
                action='calendar_event_repaired',
                description='Calendar event created for booking that was missing one',
                actor_type='system',
                metadata={'calendar_event': str(event.id)}
            )
    except DatabaseError as e:
        message = f"Failed to create calendar event for booking {booking.id}: {str(e)}"
        _record_event_failure(booking, message)
        raise PartialCommitFailure(message) from e

    invalidate_availability_for_booking(locked)
    logger.info(f"Repaired calendar event {event.id} for booking {locked.id}")
    return event


def _record_event_failure(booking, message):
    logger.error(message)
    booking.mark_event_sync_failed(message)
    create_booking_audit_log(
        booking=booking,
        action='calendar_event_failed',
        description=message,
        actor_type='system',
        metadata={'attempts': booking.event_sync_attempts}
    )


# Audit

def create_booking_audit_log(booking, action, description, actor_type='system',
                             actor_email='', actor_name='', metadata=None):
    """Append an audit entry for a booking."""
    return BookingAuditLog.objects.create(
        booking=booking,
        action=action,
        description=description,
        actor_type=actor_type,
        actor_email=actor_email or '',
        actor_name=actor_name or '',
        metadata=metadata or {},
    )
