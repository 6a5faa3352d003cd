"""
URL configuration for booking_engine project.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # API endpoints
    path('api/v1/', include('apps.events.urls')),
    path('api/v1/availability/', include('apps.availability.urls')),
]
