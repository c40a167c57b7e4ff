"""
URL configuration for per-service endpoints (/api/services/).
"""
from django.urls import path
from .views import ServiceOccupancyView, FareQuoteView

urlpatterns = [
    path('<int:timetable_id>/<str:service_date>/occupancy/', ServiceOccupancyView.as_view(), name='service_occupancy'),
    path('<int:timetable_id>/<str:service_date>/quote/', FareQuoteView.as_view(), name='fare_quote'),
]
