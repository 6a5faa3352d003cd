from django.urls import path
from . import views

app_name = 'events'

urlpatterns = [
    # Booking links (owner)
    path('booking-links/', views.BookingLinkListCreateView.as_view(), name='booking-link-list'),
    path('booking-links/<uuid:pk>/', views.BookingLinkDetailView.as_view(), name='booking-link-detail'),
    path('booking-links/<uuid:pk>/analytics/', views.booking_link_analytics, name='booking-link-analytics'),

    # Booking links (public)
    path('booking-links/<slug:slug>/', views.public_booking_link, name='public-booking-link'),
    path('booking-links/<slug:slug>/availability/', views.booking_link_availability, name='booking-link-availability'),
    path('booking-links/<slug:slug>/calendar/', views.booking_link_calendar, name='booking-link-calendar'),
    path('booking-links/<slug:slug>/book/', views.book_slot, name='book-slot'),

    # Bookings
    path('bookings/', views.BookingListView.as_view(), name='booking-list'),
    path('bookings/<uuid:booking_id>/cancel/', views.cancel_booking_view, name='cancel-booking'),
    path('bookings/<uuid:booking_id>/reschedule/', views.reschedule_booking_view, name='reschedule-booking'),
    path('bookings/<uuid:booking_id>/audit/', views.booking_audit_logs, name='booking-audit-logs'),
]
