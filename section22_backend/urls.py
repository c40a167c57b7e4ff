"""
URL configuration for section22_backend project.
"""
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView


def api_root(request):
    """Root API endpoint showing available endpoints."""
    return JsonResponse({
        'message': 'Welcome to the Section 22 Fare Engine API',
        'version': '1.0',
        'documentation': {
            'swagger_ui': '/api/docs/',
            'redoc': '/api/docs/redoc/',
            'openapi_schema': '/api/schema/',
        },
        'endpoints': {
            'auth': '/api/token/, /api/token/refresh/',
            'services': '/api/services/<timetable_id>/<date>/occupancy/, /api/services/<timetable_id>/<date>/quote/',
            'timetables': '/api/timetables/',
            'bookings': '/api/bookings/, /api/bookings/<id>/',
            'passengers': '/api/passengers/absences/',
            'cooperative': '/api/cooperative/services/<timetable_id>/<date>/complete/, /api/cooperative/summary/',
            'analytics': '/api/analytics/quote-demand/, /api/analytics/audit/',
        }
    })


urlpatterns = [
    path('', api_root, name='api_root'),
    path('admin/', admin.site.urls),

    # API Documentation (Swagger UI)
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    path('api/docs/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),

    # Authentication
    path('api/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),

    # API Endpoints
    path('api/services/', include('bookings.service_urls')),
    path('api/timetables/', include('timetables.urls')),
    path('api/bookings/', include('bookings.urls')),
    path('api/passengers/', include('passengers.urls')),
    path('api/cooperative/', include('cooperative.urls')),
    path('api/analytics/', include('analytics.urls')),
]
