"""
URL configuration for cooperative app.
"""
from django.urls import path
from .views import ServiceCompleteView, SurplusAllocationView, SurplusSummaryView, RouteSurplusPoolView

urlpatterns = [
    path('services/<int:timetable_id>/<str:service_date>/complete/', ServiceCompleteView.as_view(), name='service_complete'),
    path('services/<int:timetable_id>/<str:service_date>/surplus/', SurplusAllocationView.as_view(), name='service_surplus'),
    path('summary/', SurplusSummaryView.as_view(), name='surplus_summary'),
    path('routes/<int:route_id>/pool/', RouteSurplusPoolView.as_view(), name='route_surplus_pool'),
]
