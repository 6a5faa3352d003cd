from rest_framework import generics, permissions, status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle
from django.shortcuts import get_object_or_404
from django.db.models import Count
from django.utils import timezone
from datetime import timedelta
from apps.availability.serializers import (
    AvailabilityCalendarQuerySerializer, AvailabilityQuerySerializer
)
from apps.availability.utils import serialize_slot
from .exceptions import BookingLinkNotFound
from .models import BookingLink, Booking
from .serializers import (
    BookingLinkSerializer, PublicBookingLinkSerializer, BookingSerializer,
    BookingCreateSerializer, BookingRescheduleSerializer, BookingCancelSerializer,
    BookingAuditLogSerializer, BookingCommitSerializer, AnalyticsQuerySerializer
)
from .utils import (
    get_available_slots, get_availability_calendar, create_booking,
    cancel_booking, reschedule_booking
)
import logging

logger = logging.getLogger(__name__)


def get_active_link(slug):
    try:
        return BookingLink.objects.select_related('owner').get(slug=slug, is_active=True)
    except BookingLink.DoesNotExist:
        raise BookingLinkNotFound()


class BookingLinkListCreateView(generics.ListCreateAPIView):
    serializer_class = BookingLinkSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return BookingLink.objects.filter(owner=self.request.user).prefetch_related('hosts__user').order_by('-created_at')

    def perform_create(self, serializer):
        link = serializer.save(owner=self.request.user)
        logger.info(f"Booking link {link.slug} created by user {self.request.user.id}")


class BookingLinkDetailView(generics.RetrieveUpdateDestroyAPIView):
    """Owner view of one link; DELETE deactivates instead of removing it."""
    serializer_class = BookingLinkSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return BookingLink.objects.filter(owner=self.request.user).prefetch_related('hosts__user')

    def perform_update(self, serializer):
        from .utils import invalidate_availability_cache
        link = serializer.save()
        invalidate_availability_cache(link.id)

    def perform_destroy(self, instance):
        instance.deactivate()
        logger.info(f"Booking link {instance.slug} deactivated by user {self.request.user.id}")


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
def public_booking_link(request, slug):
    """Public details of an active booking link."""
    link = get_active_link(slug)
    return Response(PublicBookingLinkSerializer(link).data)


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
def booking_link_availability(request, slug):
    """Bookable slots for one day of an active booking link."""
    link = get_active_link(slug)

    query = AvailabilityQuerySerializer(data=request.query_params)
    query.is_valid(raise_exception=True)

    result = get_available_slots(
        link,
        query.validated_data['date'],
        query.validated_data.get('timezone') or link.timezone_name
    )

    return Response({
        'booking_link': link.slug,
        'date': result.date.isoformat(),
        'timezone': result.timezone,
        'slots': [serialize_slot(slot) for slot in result.slots],
        'total_slots': len(result.slots),
        'reason': result.reason,
        'message': result.message,
    })


@api_view(['GET'])
@permission_classes([permissions.AllowAny])
def booking_link_calendar(request, slug):
    """Slot counts for consecutive days, for date pickers."""
    link = get_active_link(slug)

    query = AvailabilityCalendarQuerySerializer(data=request.query_params)
    query.is_valid(raise_exception=True)

    timezone_name = query.validated_data.get('timezone') or link.timezone_name
    days = get_availability_calendar(
        link,
        query.validated_data['start_date'],
        timezone_name,
        days=query.validated_data.get('days')
    )

    return Response({
        'booking_link': link.slug,
        'timezone': timezone_name,
        'days': days,
    })


class BookingThrottle(AnonRateThrottle):
    scope = 'booking'


@api_view(['POST'])
@permission_classes([permissions.AllowAny])
@throttle_classes([BookingThrottle])
def book_slot(request, slug):
    """Public endpoint that books a slot and writes the assignee's calendar event."""
    link = get_active_link(slug)

    serializer = BookingCreateSerializer(data=request.data, context={'booking_link': link})
    serializer.is_valid(raise_exception=True)

    booking, event = create_booking(link, serializer.validated_data)

    response = BookingCommitSerializer({'booking': booking, 'event': event})
    return Response(response.data, status=status.HTTP_201_CREATED)


def get_cancelled_by(request, booking):
    if request.user.is_authenticated and request.user.id == booking.booking_link.owner_id:
        return 'owner'
    return 'invitee'


@api_view(['POST'])
@permission_classes([permissions.AllowAny])
def cancel_booking_view(request, booking_id):
    """Cancel a booking; repeating the request returns the same cancelled booking."""
    booking = get_object_or_404(Booking.objects.select_related('booking_link'), id=booking_id)

    serializer = BookingCancelSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    booking = cancel_booking(
        booking,
        reason=serializer.validated_data['reason'],
        cancelled_by=get_cancelled_by(request, booking)
    )

    return Response(BookingSerializer(booking).data)


@api_view(['POST'])
@permission_classes([permissions.AllowAny])
@throttle_classes([BookingThrottle])
def reschedule_booking_view(request, booking_id):
    booking = get_object_or_404(Booking.objects.select_related('booking_link'), id=booking_id)

    serializer = BookingRescheduleSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    booking = reschedule_booking(
        booking,
        serializer.validated_data['scheduled_time'],
        actor_type=get_cancelled_by(request, booking)
    )

    return Response(BookingSerializer(booking).data)


class BookingListView(generics.ListAPIView):
    """Bookings on links owned by, or assigned to, the signed-in user."""
    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        user = self.request.user
        queryset = Booking.objects.filter(booking_link__owner=user) | Booking.objects.filter(assigned_to=user)
        queryset = queryset.select_related('booking_link').distinct()

        status_filter = self.request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        link_id = self.request.query_params.get('booking_link')
        if link_id:
            queryset = queryset.filter(booking_link_id=link_id)

        return queryset.order_by('-scheduled_time')


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def booking_link_analytics(request, pk):
    """Booking counts for one of the owner's links."""
    link = get_object_or_404(BookingLink, id=pk, owner=request.user)

    query = AnalyticsQuerySerializer(data=request.query_params)
    query.is_valid(raise_exception=True)

    days = query.validated_data['days']
    since = timezone.now() - timedelta(days=days)
    bookings = Booking.objects.filter(booking_link=link, created_at__gte=since)

    analytics = {
        'booking_link': link.slug,
        'days': days,
        'total_bookings': bookings.count(),
        'confirmed_bookings': bookings.filter(status='confirmed').count(),
        'cancelled_bookings': bookings.filter(status='cancelled').count(),
        'rescheduled_bookings': bookings.filter(rescheduled_at__isnull=False).count(),
        'missing_calendar_events': bookings.filter(status='confirmed', calendar_event__isnull=True).count(),

        'bookings_by_assignee': [
            {'assigned_to': row['assigned_to'], 'count': row['count']}
            for row in bookings.values('assigned_to').annotate(count=Count('id')).order_by('-count')
        ],

        'cancellations_by_actor': list(
            bookings.filter(status='cancelled')
            .values('cancelled_by')
            .annotate(count=Count('id'))
        ),
    }

    return Response(analytics)


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated])
def booking_audit_logs(request, booking_id):
    """Get audit logs for a booking on one of the owner's links."""
    booking = get_object_or_404(Booking, id=booking_id, booking_link__owner=request.user)

    audit_logs = booking.audit_logs.order_by('-created_at')
    logs_data = BookingAuditLogSerializer(audit_logs, many=True).data

    return Response({
        'booking_id': str(booking.id),
        'audit_logs': logs_data,
        'total_logs': len(logs_data)
    })
