from django.contrib import admin
from .models import CalendarEvent


@admin.register(CalendarEvent)
class CalendarEventAdmin(admin.ModelAdmin):
    list_display = ('title', 'user', 'start_time', 'end_time', 'status', 'source', 'booking_link')
    list_filter = ('status', 'source', 'start_time')
    search_fields = ('title', 'user__email', 'external_id')
    readonly_fields = ('id', 'created_at', 'updated_at')
    date_hierarchy = 'start_time'

    fieldsets = (
        ('Event', {
            'fields': ('id', 'user', 'title', 'description', 'status')
        }),
        ('Schedule', {
            'fields': ('start_time', 'end_time', 'timezone_name')
        }),
        ('Source', {
            'fields': ('source', 'booking_link', 'external_id'),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )
