from celery import shared_task
from django.core.mail import send_mail
from django.conf import settings
from django.utils import timezone
from datetime import timedelta
from smtplib import SMTPException
from .exceptions import PartialCommitFailure
from .models import Booking
from .utils import create_booking_audit_log, ensure_calendar_event
import logging

logger = logging.getLogger(__name__)


def format_booking_time(booking):
    from apps.availability.utils import get_zone, validate_timezone

    zone_name = booking.timezone if validate_timezone(booking.timezone) else 'UTC'
    local = booking.scheduled_time.astimezone(get_zone(zone_name))
    return f"{local.strftime('%B %d, %Y at %I:%M %p')} ({zone_name})"


@shared_task
def process_booking_confirmation(booking_id):
    """Post-commit work for a new booking."""
    try:
        booking = Booking.objects.select_related('booking_link').get(id=booking_id)
    except Booking.DoesNotExist:
        return f"Booking {booking_id} not found"

    if booking.booking_link.send_confirmation_email:
        send_booking_confirmation_to_invitee.delay(booking_id)
    if booking.assigned_to_id:
        send_booking_notification_to_assignee.delay(booking_id)

    return f"Processed booking confirmation for {booking_id}"


@shared_task
def send_booking_confirmation_to_invitee(booking_id, rescheduled=False):
    """Send booking confirmation email to invitee."""
    try:
        booking = Booking.objects.select_related('booking_link').get(id=booking_id)
    except Booking.DoesNotExist:
        return f"Booking {booking_id} not found"

    link = booking.booking_link
    headline = 'Your booking has been rescheduled.' if rescheduled else 'Your booking has been confirmed!'
    subject = f"{'Booking Rescheduled' if rescheduled else 'Booking Confirmed'}: {link.name}"
    message = f"""
    Hi {booking.name},

    {headline}

    Meeting: {link.name}
    Date & Time: {format_booking_time(booking)}
    Duration: {booking.duration_minutes} minutes

    Best regards,
    {settings.SITE_NAME}
    """

    try:
        send_mail(subject, message, settings.DEFAULT_FROM_EMAIL, [booking.email], fail_silently=False)
    except (SMTPException, OSError) as e:
        logger.error(f"Failed to send confirmation email for booking {booking_id}: {str(e)}")
        return f"Failed to send confirmation email: {str(e)}"

    create_booking_audit_log(
        booking=booking,
        action='notification_sent',
        description=f"Confirmation email sent to {booking.email}",
        actor_type='system',
        metadata={'rescheduled': rescheduled}
    )
    return f"Confirmation email sent to {booking.email}"


@shared_task
def send_booking_notification_to_assignee(booking_id):
    """Send new-booking notification to the assigned team member."""
    try:
        booking = Booking.objects.select_related('booking_link', 'assigned_to').get(id=booking_id)
    except Booking.DoesNotExist:
        return f"Booking {booking_id} not found"

    assignee = booking.assigned_to
    if not assignee or not assignee.email:
        return f"Booking {booking_id} has no assignee email"

    subject = f"New Booking: {booking.booking_link.name}"
    message = f"""
    Hi {assignee.first_name or assignee.get_username()},

    You have a new booking!

    Meeting: {booking.booking_link.name}
    Invitee: {booking.name} ({booking.email})
    Date & Time: {format_booking_time(booking)}

    Best regards,
    {settings.SITE_NAME}
    """

    try:
        send_mail(subject, message, settings.DEFAULT_FROM_EMAIL, [assignee.email], fail_silently=False)
    except (SMTPException, OSError) as e:
        logger.error(f"Failed to send assignee notification for booking {booking_id}: {str(e)}")
        return f"Failed to send notification email: {str(e)}"

    return f"Notification email sent to {assignee.email}"


@shared_task
def send_booking_cancellation_to_invitee(booking_id):
    """Send cancellation email to invitee."""
    try:
        booking = Booking.objects.select_related('booking_link').get(id=booking_id)
    except Booking.DoesNotExist:
        return f"Booking {booking_id} not found"

    if not booking.booking_link.send_cancellation_email:
        return f"Cancellation emails disabled for {booking.booking_link.slug}"

    subject = f"Booking Cancelled: {booking.booking_link.name}"
    message = f"""
    Hi {booking.name},

    Your booking has been cancelled.

    Meeting: {booking.booking_link.name}
    Date & Time: {format_booking_time(booking)}

    {f"Reason: {booking.cancellation_reason}" if booking.cancellation_reason else ""}

    Best regards,
    {settings.SITE_NAME}
    """

    try:
        send_mail(subject, message, settings.DEFAULT_FROM_EMAIL, [booking.email], fail_silently=False)
    except (SMTPException, OSError) as e:
        logger.error(f"Failed to send cancellation email for booking {booking_id}: {str(e)}")
        return f"Failed to send cancellation email: {str(e)}"

    return f"Cancellation email sent to {booking.email}"


@shared_task
def repair_booking_calendar_event(booking_id, retry_count=0):
    """
    Create the missing calendar event for a booking, retrying with backoff.

    Args:
        booking_id: Booking UUID
        retry_count: Current retry attempt
    """
    max_retries = settings.BOOKING_RECONCILE_MAX_RETRIES
    retry_delays = [60, 300, 900]  # 1 min, 5 min, 15 min

    try:
        booking = Booking.objects.select_related('booking_link').get(id=booking_id)
    except Booking.DoesNotExist:
        return f"Booking {booking_id} not found"

    try:
        event = ensure_calendar_event(booking)
    except PartialCommitFailure as e:
        # ensure_calendar_event has already logged and audited the failure
        if retry_count < max_retries:
            delay = retry_delays[min(retry_count, len(retry_delays) - 1)]
            repair_booking_calendar_event.apply_async(args=[booking_id, retry_count + 1], countdown=delay)
            return f"Calendar event repair failed, scheduled retry {retry_count + 1} in {delay}s"
        logger.error(f"Giving up on calendar event for booking {booking_id} after {max_retries} retries")
        return f"Calendar event repair failed after {max_retries} retries: {e.detail}"

    if event is None:
        return f"Booking {booking_id} is cancelled, no calendar event needed"
    return f"Booking {booking_id} has calendar event {event.id}"


@shared_task
def reconcile_bookings_without_events():
    """Find confirmed bookings whose calendar event is missing and repair them."""
    grace_cutoff = timezone.now() - timedelta(seconds=settings.BOOKING_RECONCILE_GRACE_SECONDS)
    orphaned = list(Booking.objects.filter(
        status='confirmed',
        calendar_event__isnull=True,
        event_sync_attempts__lt=settings.BOOKING_RECONCILE_MAX_RETRIES,
        created_at__lte=grace_cutoff,
    ).values_list('id', flat=True))

    scheduled = 0
    for booking_id in orphaned:
        repair_booking_calendar_event.delay(str(booking_id))
        scheduled += 1

    if scheduled:
        logger.warning(f"Found {scheduled} bookings without calendar events; repairs scheduled")
    return f"Scheduled {scheduled} calendar event repairs"
