from rest_framework import generics, permissions, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from django.utils.dateparse import parse_datetime
from .models import CalendarEvent
from .serializers import CalendarEventSerializer
from .tasks import clear_availability_cache
import logging

logger = logging.getLogger(__name__)


class CalendarEventListCreateView(generics.ListCreateAPIView):
    """The signed-in user's calendar; optional ?start=&end= range filter."""
    serializer_class = CalendarEventSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        queryset = CalendarEvent.objects.filter(user=self.request.user)
        start = parse_datetime(self.request.query_params.get('start', ''))
        end = parse_datetime(self.request.query_params.get('end', ''))
        if start and end:
            queryset = queryset.overlapping(start, end)
        if self.request.query_params.get('active') == 'true':
            queryset = queryset.active()
        return queryset

    def perform_create(self, serializer):
        serializer.save(user=self.request.user)
        clear_availability_cache.delay(self.request.user.id)


class CalendarEventDetailView(generics.RetrieveUpdateDestroyAPIView):
    serializer_class = CalendarEventSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return CalendarEvent.objects.filter(user=self.request.user)

    def perform_update(self, serializer):
        serializer.save()
        clear_availability_cache.delay(self.request.user.id)

    def perform_destroy(self, instance):
        if instance.source == 'booking_link':
            raise ValidationError("Booked events are removed by cancelling their booking")
        instance.delete()
        clear_availability_cache.delay(self.request.user.id)


@api_view(['POST'])
@permission_classes([permissions.IsAuthenticated])
def clear_availability_cache_manual(request):
    """Manually clear availability cache for the user's booking links."""
    clear_availability_cache.delay(request.user.id)

    return Response({'message': 'Cache clearing initiated'}, status=status.HTTP_202_ACCEPTED)
