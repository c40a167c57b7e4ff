"""
URL configuration for bookings app.
"""
from django.urls import path
from .views import BookingCreateView, MyBookingsView, BookingDetailView, BookingActionView

urlpatterns = [
    path('', BookingCreateView.as_view(), name='booking_create'),
    path('my/', MyBookingsView.as_view(), name='my_bookings'),
    path('<int:booking_id>/', BookingDetailView.as_view(), name='booking_detail'),
] + [
    path(f'<int:booking_id>/{action}/', BookingActionView.as_view(action=action), name=f'booking_{action.replace("-", "_")}')
    for action in BookingActionView.ACTIONS
]
