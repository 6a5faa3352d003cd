from django.urls import path
from . import views

app_name = 'availability'

urlpatterns = [
    # Calendar events (busy time)
    path('events/', views.CalendarEventListCreateView.as_view(), name='calendar-event-list'),
    path('events/<uuid:pk>/', views.CalendarEventDetailView.as_view(), name='calendar-event-detail'),

    # Cache management
    path('cache/clear/', views.clear_availability_cache_manual, name='clear-cache'),
]
