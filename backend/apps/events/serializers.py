from rest_framework import serializers
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone
from apps.availability.serializers import CalendarEventSerializer
from apps.availability.utils import validate_timezone, validate_weekly_hours
from .models import BookingLink, BookingLinkHost, Booking, BookingAuditLog
from .utils import is_business_email


class BookingLinkHostSerializer(serializers.ModelSerializer):
    email = serializers.EmailField(source='user.email', read_only=True)
    name = serializers.CharField(source='user.get_full_name', read_only=True)

    class Meta:
        model = BookingLinkHost
        fields = ['id', 'user', 'email', 'name', 'priority_order', 'is_active']
        read_only_fields = ['id']


class BookingLinkSerializer(serializers.ModelSerializer):
    hosts = BookingLinkHostSerializer(many=True, read_only=True)
    team_member_ids = serializers.ListField(
        child=serializers.IntegerField(),
        write_only=True,
        required=False,
        help_text="Ordered user ids eligible for team assignment"
    )
    assignment_type_display = serializers.CharField(source='get_assignment_type_display', read_only=True)

    class Meta:
        model = BookingLink
        fields = [
            'id', 'name', 'slug', 'description', 'duration', 'slot_interval_minutes',
            'timezone_name', 'weekly_hours', 'buffer_before', 'buffer_after',
            'min_notice_hours', 'max_advance_days', 'date_range_type',
            'assignment_type', 'assignment_type_display', 'hosts', 'team_member_ids',
            'max_bookings_per_day', 'max_bookings_per_week', 'require_business_email',
            'send_confirmation_email', 'send_cancellation_email', 'is_active',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        extra_kwargs = {'slug': {'required': False}}

    def validate_timezone_name(self, value):
        if not validate_timezone(value):
            raise serializers.ValidationError(f"Invalid timezone: {value}")
        return value

    def validate_weekly_hours(self, value):
        try:
            return validate_weekly_hours(value)
        except ValueError as e:
            raise serializers.ValidationError(str(e))

    def validate_team_member_ids(self, value):
        if len(set(value)) != len(value):
            raise serializers.ValidationError("Team members must not repeat")
        found = set(get_user_model().objects.filter(id__in=value).values_list('id', flat=True))
        missing = [user_id for user_id in value if user_id not in found]
        if missing:
            raise serializers.ValidationError(f"Unknown users: {missing}")
        return value

    def _current(self, attrs, field):
        if field in attrs:
            return attrs[field]
        return getattr(self.instance, field, BookingLink._meta.get_field(field).get_default())

    def validate(self, attrs):
        duration = self._current(attrs, 'duration')
        total_buffer = self._current(attrs, 'buffer_before') + self._current(attrs, 'buffer_after')
        if total_buffer >= duration:
            raise serializers.ValidationError("Total buffer time cannot exceed meeting duration")

        per_day = self._current(attrs, 'max_bookings_per_day')
        per_week = self._current(attrs, 'max_bookings_per_week')
        if per_day and per_week and per_week < per_day:
            raise serializers.ValidationError("Weekly booking limit cannot be lower than the daily limit")

        return attrs

    def _set_team_members(self, link, member_ids):
        link.hosts.all().delete()
        BookingLinkHost.objects.bulk_create([
            BookingLinkHost(booking_link=link, user_id=user_id, priority_order=index)
            for index, user_id in enumerate(member_ids)
        ])

    @transaction.atomic
    def create(self, validated_data):
        member_ids = validated_data.pop('team_member_ids', None)
        link = super().create(validated_data)
        if member_ids is not None:
            self._set_team_members(link, member_ids)
        return link

    @transaction.atomic
    def update(self, instance, validated_data):
        member_ids = validated_data.pop('team_member_ids', None)
        link = super().update(instance, validated_data)
        if member_ids is not None:
            self._set_team_members(link, member_ids)
        return link


class PublicBookingLinkSerializer(serializers.ModelSerializer):
    """Booking link details safe to show invitees."""
    owner_name = serializers.CharField(source='owner.get_full_name', read_only=True)

    class Meta:
        model = BookingLink
        fields = [
            'name', 'slug', 'description', 'duration', 'timezone_name',
            'min_notice_hours', 'max_advance_days', 'owner_name'
        ]


class BookingSerializer(serializers.ModelSerializer):
    booking_link_slug = serializers.CharField(source='booking_link.slug', read_only=True)
    booking_link_name = serializers.CharField(source='booking_link.name', read_only=True)
    duration_minutes = serializers.ReadOnlyField()
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Booking
        fields = [
            'id', 'booking_link', 'booking_link_slug', 'booking_link_name',
            'name', 'email', 'phone', 'company', 'custom_responses',
            'scheduled_time', 'end_time', 'timezone', 'duration_minutes',
            'status', 'status_display', 'assigned_to', 'calendar_event',
            'cancelled_at', 'cancelled_by', 'cancellation_reason',
            'rescheduled_at', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class BookingCreateSerializer(serializers.Serializer):
    """Booker details for the public booking endpoint."""
    name = serializers.CharField(max_length=200)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True, default='')
    company = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    scheduled_time = serializers.DateTimeField()
    timezone = serializers.CharField(max_length=50, required=False)
    custom_responses = serializers.JSONField(required=False, default=dict)

    def validate_timezone(self, value):
        if not validate_timezone(value):
            raise serializers.ValidationError(f"Invalid timezone: {value}")
        return value

    def validate_scheduled_time(self, value):
        if value <= timezone.now():
            raise serializers.ValidationError("Scheduled time must be in the future")
        return value

    def validate_custom_responses(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Custom responses must be an object")
        return value

    def validate_email(self, value):
        link = self.context.get('booking_link')
        if link and link.require_business_email and not is_business_email(value):
            raise serializers.ValidationError("Please use your business email address")
        return value.lower()


class BookingRescheduleSerializer(serializers.Serializer):
    scheduled_time = serializers.DateTimeField()

    def validate_scheduled_time(self, value):
        if value <= timezone.now():
            raise serializers.ValidationError("Scheduled time must be in the future")
        return value


class BookingCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='', max_length=1000)


class BookingAuditLogSerializer(serializers.ModelSerializer):
    action_display = serializers.CharField(source='get_action_display', read_only=True)

    class Meta:
        model = BookingAuditLog
        fields = [
            'id', 'action', 'action_display', 'description', 'actor_type',
            'actor_email', 'actor_name', 'metadata', 'created_at'
        ]
        read_only_fields = fields


class AnalyticsQuerySerializer(serializers.Serializer):
    days = serializers.IntegerField(required=False, default=30, min_value=1, max_value=365)


class BookingCommitSerializer(serializers.Serializer):
    """Response body of a successful booking."""
    booking = BookingSerializer()
    event = CalendarEventSerializer()
