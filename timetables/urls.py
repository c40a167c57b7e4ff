"""
URL configuration for timetables app.
"""
from django.urls import path
from .views import TimetableManageView

urlpatterns = [
    path('', TimetableManageView.as_view(), name='timetable_manage'),
]
