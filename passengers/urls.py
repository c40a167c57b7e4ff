"""
URL configuration for passengers app.
"""
from django.urls import path
from .views import AbsenceView, AbsenceCancelView

urlpatterns = [
    path('absences/', AbsenceView.as_view(), name='absences'),
    path('absences/<int:absence_id>/cancel/', AbsenceCancelView.as_view(), name='absence_cancel'),
]
