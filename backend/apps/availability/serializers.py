from rest_framework import serializers
from .models import CalendarEvent
from .utils import validate_timezone


class CalendarEventSerializer(serializers.ModelSerializer):
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    source_display = serializers.CharField(source='get_source_display', read_only=True)

    class Meta:
        model = CalendarEvent
        fields = [
            'id', 'user', 'title', 'description', 'start_time', 'end_time',
            'timezone_name', 'status', 'status_display', 'source', 'source_display',
            'booking_link', 'external_id', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'user', 'source', 'booking_link', 'created_at', 'updated_at']

    def validate_timezone_name(self, value):
        if not validate_timezone(value):
            raise serializers.ValidationError(f"Invalid timezone: {value}")
        return value

    def validate(self, attrs):
        start_time = attrs.get('start_time', getattr(self.instance, 'start_time', None))
        end_time = attrs.get('end_time', getattr(self.instance, 'end_time', None))

        if start_time and end_time and start_time >= end_time:
            raise serializers.ValidationError("End time must be after start time")

        return attrs


class AvailabilityQuerySerializer(serializers.Serializer):
    """Query parameters for a single day of availability."""
    date = serializers.DateField()
    timezone = serializers.CharField(required=False)


class AvailabilityCalendarQuerySerializer(serializers.Serializer):
    start_date = serializers.DateField()
    timezone = serializers.CharField(required=False)
    days = serializers.IntegerField(required=False, min_value=1, max_value=31)

