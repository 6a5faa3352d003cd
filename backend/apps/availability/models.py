from django.conf import settings
from django.db import models
import uuid


class CalendarEventQuerySet(models.QuerySet):

    def active(self):
        """Events that still block time on the owner's calendar."""
        return self.exclude(status__in=CalendarEvent.INACTIVE_STATUSES)

    def for_users(self, user_ids):
        return self.filter(user_id__in=list(user_ids))

    def overlapping(self, start, end):
        """Half-open overlap with [start, end)."""
        return self.filter(start_time__lt=end, end_time__gt=start)


class CalendarEvent(models.Model):
    """Calendar commitments for a user; the source of busy intervals."""
    STATUS_CHOICES = [
        ('scheduled', 'Scheduled'),
        ('cancelled', 'Cancelled'),
        ('declined', 'Declined'),
    ]

    INACTIVE_STATUSES = ('cancelled', 'declined')

    SOURCE_CHOICES = [
        ('manual', 'Manual'),
        ('booking_link', 'Booking Link'),
        ('external_sync', 'External Sync'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='calendar_events')

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)

    # Event period
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    timezone_name = models.CharField(max_length=50, default='UTC')

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='scheduled')

    # Source tracking
    source = models.CharField(max_length=20, choices=SOURCE_CHOICES, default='manual')
    booking_link = models.ForeignKey(
        'events.BookingLink',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='calendar_events'
    )
    external_id = models.CharField(max_length=200, blank=True, help_text="ID from external calendar system")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = CalendarEventQuerySet.as_manager()

    class Meta:
        db_table = 'calendar_events'
        verbose_name = 'Calendar Event'
        verbose_name_plural = 'Calendar Events'
        ordering = ['start_time']
        indexes = [
            models.Index(fields=['user', 'start_time', 'end_time']),
            models.Index(fields=['user', 'status']),
        ]

    def __str__(self):
        return f"{self.user} - {self.title} ({self.start_time} to {self.end_time})"

    @property
    def is_active(self):
        return self.status not in self.INACTIVE_STATUSES

    def cancel(self):
        """Cancel this event; cancelling twice is a no-op."""
        if self.status == 'cancelled':
            return False
        self.status = 'cancelled'
        self.save(update_fields=['status', 'updated_at'])
        return True
