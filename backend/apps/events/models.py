from django.conf import settings
from django.db import models
from django.db.models import Q
from django.core.validators import MinValueValidator, MaxValueValidator
from django.core.exceptions import ValidationError
from django.utils import timezone
from django.utils.timezone import now as timezone_now
import uuid


def default_weekly_hours():
    business_day = [{'start': '09:00', 'end': '17:00'}]
    return {day: list(business_day) for day in ('monday', 'tuesday', 'wednesday', 'thursday', 'friday')}


class BookingLink(models.Model):
    """Shareable scheduling page tied to one owner or a team."""
    ASSIGNMENT_TYPE_CHOICES = [
        ('owner', 'Link Owner'),
        ('round_robin', 'Round Robin'),
        ('load_balanced', 'Load Balanced'),
    ]

    DATE_RANGE_TYPE_CHOICES = [
        ('calendar_days', 'Calendar Days'),
        ('business_days', 'Business Days'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='booking_links')
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=120, unique=True)
    description = models.TextField(blank=True)

    # Timing
    duration = models.IntegerField(
        default=30,
        validators=[MinValueValidator(5), MaxValueValidator(480)],
        help_text="Meeting duration (minutes)"
    )
    slot_interval_minutes = models.IntegerField(
        default=15,
        validators=[MinValueValidator(5), MaxValueValidator(120)],
        help_text="Distance between consecutive slot start times (minutes)"
    )
    timezone_name = models.CharField(
        max_length=50,
        default='America/New_York',
        help_text="Zone the weekly hours are expressed in"
    )
    weekly_hours = models.JSONField(
        default=default_weekly_hours,
        blank=True,
        help_text='Weekday name -> list of {"start": "HH:MM", "end": "HH:MM"}'
    )

    # Buffer times
    buffer_before = models.IntegerField(
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(120)],
        help_text="Buffer time before meeting (minutes)"
    )
    buffer_after = models.IntegerField(
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(120)],
        help_text="Buffer time after meeting (minutes)"
    )

    # Scheduling window
    min_notice_hours = models.IntegerField(
        default=1,
        validators=[MinValueValidator(0)],
        help_text="Minimum booking notice (hours)"
    )
    max_advance_days = models.IntegerField(
        default=14,
        validators=[MinValueValidator(1), MaxValueValidator(365)],
        help_text="Maximum booking advance"
    )
    date_range_type = models.CharField(
        max_length=20,
        choices=DATE_RANGE_TYPE_CHOICES,
        default='calendar_days',
        help_text="Whether max_advance_days counts calendar or business days"
    )

    # Limits
    max_bookings_per_day = models.IntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1)],
        help_text="Maximum bookings per day for this link"
    )
    max_bookings_per_week = models.IntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1)],
        help_text="Maximum bookings per week for this link"
    )

    # Team assignment
    assignment_type = models.CharField(max_length=20, choices=ASSIGNMENT_TYPE_CHOICES, default='owner')
    team_members = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        through='BookingLinkHost',
        related_name='hosted_booking_links',
        blank=True
    )

    # Qualification
    require_business_email = models.BooleanField(
        default=False,
        help_text="Reject bookings from free email providers"
    )

    # Notifications
    send_confirmation_email = models.BooleanField(default=True)
    send_cancellation_email = models.BooleanField(default=True)

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'booking_links'
        verbose_name = 'Booking Link'
        verbose_name_plural = 'Booking Links'
        indexes = [
            models.Index(fields=['owner', 'is_active']),
        ]

    def __str__(self):
        return f"{self.name} ({self.slug})"

    def clean(self):
        """Validate booking link configuration."""
        super().clean()
        from apps.availability.utils import validate_timezone, validate_weekly_hours

        if not validate_timezone(self.timezone_name):
            raise ValidationError({'timezone_name': f"Invalid timezone: {self.timezone_name}"})

        try:
            self.weekly_hours = validate_weekly_hours(self.weekly_hours or {})
        except ValueError as e:
            raise ValidationError({'weekly_hours': str(e)})

        total_buffer = self.buffer_before + self.buffer_after
        if total_buffer >= self.duration:
            raise ValidationError("Total buffer time cannot exceed meeting duration")

        if (self.max_bookings_per_day and self.max_bookings_per_week
                and self.max_bookings_per_week < self.max_bookings_per_day):
            raise ValidationError("Weekly booking limit cannot be lower than the daily limit")

    def save(self, *args, **kwargs):
        if not self.slug:
            from .utils import generate_unique_slug
            self.slug = generate_unique_slug(self.name)
        super().save(*args, **kwargs)

    @property
    def is_team_link(self):
        return self.assignment_type in ('round_robin', 'load_balanced')

    def get_eligible_member_ids(self):
        """Active team member ids in priority order."""
        return list(
            self.hosts.filter(is_active=True, user__is_active=True)
            .order_by('priority_order', 'created_at')
            .values_list('user_id', flat=True)
        )

    def get_candidate_member_ids(self):
        """Users whose calendars decide whether a slot can be offered."""
        if self.is_team_link:
            return self.get_eligible_member_ids()
        return [self.owner_id]

    def deactivate(self):
        self.is_active = False
        self.save(update_fields=['is_active', 'updated_at'])


class BookingLinkHost(models.Model):
    """Eligible team member for a team booking link."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    booking_link = models.ForeignKey(BookingLink, on_delete=models.CASCADE, related_name='hosts')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='booking_link_hosts')
    priority_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'booking_link_hosts'
        verbose_name = 'Booking Link Host'
        verbose_name_plural = 'Booking Link Hosts'
        ordering = ['priority_order', 'created_at']
        unique_together = ['booking_link', 'user']

    def __str__(self):
        return f"{self.booking_link.slug} - {self.user} (#{self.priority_order})"


class Booking(models.Model):
    """Confirmed reservation made through a booking link."""
    STATUS_CHOICES = [
        ('confirmed', 'Confirmed'),
        ('cancelled', 'Cancelled'),
    ]

    CANCELLED_BY_CHOICES = [
        ('owner', 'Owner'),
        ('invitee', 'Invitee'),
        ('system', 'System'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    booking_link = models.ForeignKey(BookingLink, on_delete=models.CASCADE, related_name='bookings')

    # Booker information
    name = models.CharField(max_length=200)
    email = models.EmailField()
    phone = models.CharField(max_length=30, blank=True)
    company = models.CharField(max_length=200, blank=True)
    custom_responses = models.JSONField(default=dict, blank=True)

    # Booking details
    scheduled_time = models.DateTimeField()
    end_time = models.DateTimeField()
    timezone = models.CharField(max_length=50, default='UTC')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='confirmed')

    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_bookings'
    )
    calendar_event = models.OneToOneField(
        'availability.CalendarEvent',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='booking'
    )

    # Repair tracking for bookings without a calendar event
    event_sync_attempts = models.IntegerField(default=0)
    event_sync_error = models.TextField(blank=True)

    # Set by the commit path under the link lock; see assignment.next_booking_timestamp
    created_at = models.DateTimeField(default=timezone_now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)

    # Cancellation details
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.CharField(max_length=20, choices=CANCELLED_BY_CHOICES, blank=True)
    cancellation_reason = models.TextField(blank=True)

    rescheduled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'bookings'
        verbose_name = 'Booking'
        verbose_name_plural = 'Bookings'
        indexes = [
            models.Index(fields=['booking_link', '-created_at']),
            models.Index(fields=['booking_link', 'status', 'scheduled_time']),
            models.Index(fields=['assigned_to', 'scheduled_time']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['assigned_to', 'scheduled_time'],
                condition=Q(status='confirmed'),
                name='uq_bookings_confirmed_assignee_slot',
            ),
        ]

    def __str__(self):
        return f"{self.name} - {self.booking_link.name} - {self.scheduled_time}"

    def clean(self):
        super().clean()
        if self.scheduled_time and self.end_time and self.scheduled_time >= self.end_time:
            raise ValidationError("End time must be after scheduled time")

    @property
    def duration_minutes(self):
        return int((self.end_time - self.scheduled_time).total_seconds() / 60)

    @property
    def is_cancelled(self):
        return self.status == 'cancelled'

    def mark_cancelled(self, cancelled_by='invitee', reason=''):
        """Set cancellation fields; returns False when already cancelled."""
        if self.is_cancelled:
            return False

        self.status = 'cancelled'
        self.cancelled_at = timezone.now()
        self.cancelled_by = cancelled_by
        self.cancellation_reason = reason or ''
        self.save(update_fields=[
            'status', 'cancelled_at', 'cancelled_by', 'cancellation_reason', 'updated_at'
        ])
        return True

    def mark_event_sync_failed(self, error_message):
        self.event_sync_attempts += 1
        self.event_sync_error = error_message
        self.save(update_fields=['event_sync_attempts', 'event_sync_error', 'updated_at'])


class BookingAuditLog(models.Model):
    """Append-only audit trail for booking actions."""
    ACTION_CHOICES = [
        ('booking_created', 'Booking Created'),
        ('booking_cancelled', 'Booking Cancelled'),
        ('booking_rescheduled', 'Booking Rescheduled'),
        ('calendar_event_repaired', 'Calendar Event Repaired'),
        ('calendar_event_failed', 'Calendar Event Failed'),
        ('notification_sent', 'Notification Sent'),
    ]

    ACTOR_TYPE_CHOICES = [
        ('owner', 'Owner'),
        ('invitee', 'Invitee'),
        ('system', 'System'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='audit_logs')

    action = models.CharField(max_length=30, choices=ACTION_CHOICES)
    description = models.TextField()

    actor_type = models.CharField(max_length=20, choices=ACTOR_TYPE_CHOICES)
    actor_email = models.EmailField(blank=True)
    actor_name = models.CharField(max_length=200, blank=True)

    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'booking_audit_logs'
        verbose_name = 'Booking Audit Log'
        verbose_name_plural = 'Booking Audit Logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['booking', '-created_at']),
            models.Index(fields=['action', '-created_at']),
        ]

    def __str__(self):
        return f"{self.booking_id} - {self.get_action_display()} by {self.actor_type}"
