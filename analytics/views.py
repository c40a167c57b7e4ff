"""
Analytics views over the MongoDB audit store, with Swagger documentation.
"""
from datetime import datetime
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from drf_spectacular.utils import extend_schema, OpenApiParameter, inline_serializer
from rest_framework import serializers as drf_serializers

from utils.mongo import get_quote_demand, get_booking_events


# Response serializers for Swagger
class QuoteDemandSerializer(drf_serializers.Serializer):
    timetable_id = drf_serializers.IntegerField()
    service_date = drf_serializers.CharField()
    quote_count = drf_serializers.IntegerField()
    member_quotes = drf_serializers.IntegerField()


class QuoteDemandResponseSerializer(drf_serializers.Serializer):
    count = drf_serializers.IntegerField()
    results = QuoteDemandSerializer(many=True)


def _parse_int(value, default, low, high):
    try:
        return min(max(int(value), low), high)
    except (TypeError, ValueError):
        return default


def _parse_date(value):
    try:
        return datetime.fromisoformat(value) if value else None
    except ValueError:
        return None


class QuoteDemandView(APIView):
    """Services with the most fare-quote requests."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get most-quoted services",
        description="Returns the service dates with the most fare-quote requests, aggregated from MongoDB logs",
        parameters=[
            OpenApiParameter(name='limit', type=int, required=False, description='Number of services (default: 5, max: 20)'),
            OpenApiParameter(name='days', type=int, required=False, description='Days to look back (default: 30, max: 365)'),
        ],
        responses={200: QuoteDemandResponseSerializer},
        tags=["Analytics"]
    )
    def get(self, request):
        limit = _parse_int(request.query_params.get('limit', 5), 5, 1, 20)
        days = _parse_int(request.query_params.get('days', 30), 30, 1, 365)

        results = get_quote_demand(limit=limit, days=days)
        return Response({
            'count': len(results),
            'results': results
        })


class AuditTrailView(APIView):
    """Booking lifecycle events (Admin only)."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get booking audit trail (Admin only)",
        description="Query booking lifecycle events from MongoDB with filters, newest first.",
        parameters=[
            OpenApiParameter(name='reference', type=str, required=False, description='Filter by booking reference'),
            OpenApiParameter(name='timetable_id', type=int, required=False, description='Filter by timetable'),
            OpenApiParameter(name='service_date', type=str, required=False, description='Filter by service date (YYYY-MM-DD)'),
            OpenApiParameter(name='event', type=str, required=False, description='created / confirmed / cancelled / completed / no_show / paid / refunded'),
            OpenApiParameter(name='start_date', type=str, required=False, description='Start date (YYYY-MM-DD)'),
            OpenApiParameter(name='end_date', type=str, required=False, description='End date (YYYY-MM-DD)'),
            OpenApiParameter(name='limit', type=int, required=False, description='Results limit (default: 50, max: 500)'),
            OpenApiParameter(name='offset', type=int, required=False, description='Pagination offset'),
        ],
        responses={
            200: inline_serializer(name='AuditResponse', fields={
                'count': drf_serializers.IntegerField(),
                'limit': drf_serializers.IntegerField(),
                'offset': drf_serializers.IntegerField(),
                'results': drf_serializers.ListField()
            }),
            403: inline_serializer(name='Forbidden', fields={'error': drf_serializers.CharField()})
        },
        tags=["Analytics (Admin)"]
    )
    def get(self, request):
        if not request.user.is_staff:
            return Response({
                'error': 'Admin access required',
                'message': 'This endpoint is restricted to administrators only.'
            }, status=status.HTTP_403_FORBIDDEN)

        params = request.query_params
        filters = {
            'limit': _parse_int(params.get('limit', 50), 50, 1, 500),
            'offset': _parse_int(params.get('offset', 0), 0, 0, 10 ** 6),
            'booking_reference': params.get('reference'),
            'timetable_id': _parse_int(params.get('timetable_id'), None, 1, 2 ** 63 - 1),
            'service_date': params.get('service_date'),
            'event': params.get('event'),
            'start_date': _parse_date(params.get('start_date')),
            'end_date': _parse_date(params.get('end_date')),
        }

        events = get_booking_events(**filters)
        return Response({
            'count': len(events),
            'limit': filters['limit'],
            'offset': filters['offset'],
            'filters_applied': {
                k: str(v) for k, v in filters.items() if v is not None and k not in ['limit', 'offset']
            },
            'results': events
        })
