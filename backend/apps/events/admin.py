from django.contrib import admin
from .models import BookingLink, BookingLinkHost, Booking, BookingAuditLog


class BookingLinkHostInline(admin.TabularInline):
    model = BookingLinkHost
    extra = 0
    fields = ('user', 'priority_order', 'is_active')
    ordering = ['priority_order']


@admin.register(BookingLink)
class BookingLinkAdmin(admin.ModelAdmin):
    list_display = (
        'name', 'slug', 'owner', 'duration', 'assignment_type',
        'is_active', 'booking_count', 'created_at'
    )
    list_filter = ('assignment_type', 'date_range_type', 'is_active', 'created_at')
    search_fields = ('name', 'slug', 'owner__email')
    readonly_fields = ('id', 'created_at', 'updated_at')
    inlines = [BookingLinkHostInline]
    actions = ['deactivate_links']

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'owner', 'name', 'slug', 'description', 'is_active')
        }),
        ('Availability', {
            'fields': (
                'duration', 'slot_interval_minutes', 'timezone_name', 'weekly_hours',
                'buffer_before', 'buffer_after'
            )
        }),
        ('Booking Window', {
            'fields': ('min_notice_hours', 'max_advance_days', 'date_range_type')
        }),
        ('Limits & Assignment', {
            'fields': ('max_bookings_per_day', 'max_bookings_per_week', 'assignment_type')
        }),
        ('Qualification & Notifications', {
            'fields': ('require_business_email', 'send_confirmation_email', 'send_cancellation_email'),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def booking_count(self, obj):
        return obj.bookings.filter(status='confirmed').count()
    booking_count.short_description = 'Active Bookings'

    def deactivate_links(self, request, queryset):
        updated = queryset.update(is_active=False)
        self.message_user(request, f"Deactivated {updated} booking links.")
    deactivate_links.short_description = "Deactivate selected links"


class BookingAuditLogInline(admin.TabularInline):
    model = BookingAuditLog
    extra = 0
    fields = ('action', 'actor_type', 'actor_name', 'description', 'created_at')
    readonly_fields = ('action', 'actor_type', 'actor_name', 'description', 'created_at')
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        'name', 'email', 'booking_link', 'assigned_to',
        'scheduled_time', 'status', 'has_calendar_event', 'created_at'
    )
    list_filter = ('status', 'cancelled_by', 'booking_link__assignment_type', 'scheduled_time')
    search_fields = ('name', 'email', 'company', 'booking_link__slug', 'assigned_to__email')
    readonly_fields = (
        'id', 'duration_minutes', 'calendar_event', 'event_sync_attempts',
        'event_sync_error', 'created_at', 'updated_at'
    )
    date_hierarchy = 'scheduled_time'
    inlines = [BookingAuditLogInline]
    actions = ['repair_calendar_events']

    fieldsets = (
        ('Booking Information', {
            'fields': ('id', 'booking_link', 'assigned_to', 'status')
        }),
        ('Booker Details', {
            'fields': ('name', 'email', 'phone', 'company', 'timezone', 'custom_responses')
        }),
        ('Schedule', {
            'fields': ('scheduled_time', 'end_time', 'duration_minutes', 'rescheduled_at')
        }),
        ('Calendar Event', {
            'fields': ('calendar_event', 'event_sync_attempts', 'event_sync_error'),
            'classes': ('collapse',)
        }),
        ('Cancellation', {
            'fields': ('cancelled_at', 'cancelled_by', 'cancellation_reason'),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def has_calendar_event(self, obj):
        return obj.calendar_event_id is not None
    has_calendar_event.boolean = True
    has_calendar_event.short_description = 'Calendar Event'

    def repair_calendar_events(self, request, queryset):
        """Queue calendar event repair for bookings missing one."""
        from .tasks import repair_booking_calendar_event

        missing = queryset.filter(status='confirmed', calendar_event__isnull=True)
        for booking in missing:
            repair_booking_calendar_event.delay(str(booking.id))

        self.message_user(request, f"Queued {missing.count()} bookings for calendar event repair.")
    repair_calendar_events.short_description = "Repair missing calendar events"


@admin.register(BookingAuditLog)
class BookingAuditLogAdmin(admin.ModelAdmin):
    list_display = ('booking', 'action', 'actor_type', 'actor_email', 'description_short', 'created_at')
    list_filter = ('action', 'actor_type', 'created_at')
    search_fields = ('booking__name', 'booking__email', 'actor_email', 'description')
    readonly_fields = ('created_at',)
    date_hierarchy = 'created_at'

    def description_short(self, obj):
        return obj.description[:100] + '...' if len(obj.description) > 100 else obj.description
    description_short.short_description = 'Description'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
