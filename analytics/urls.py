"""
URL configuration for analytics app.
"""
from django.urls import path
from .views import QuoteDemandView, AuditTrailView

urlpatterns = [
    path('quote-demand/', QuoteDemandView.as_view(), name='quote_demand'),
    path('audit/', AuditTrailView.as_view(), name='audit_trail'),
]
