"""Views for service completion and cooperative surplus reporting."""
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAdminUser
from drf_spectacular.utils import OpenApiParameter, extend_schema, inline_serializer
from rest_framework import serializers as drf_serializers

from bookings.views import SERVICE_PARAMETERS, EngineErrorSerializer, get_service
from utils.errors import FareEngineError, error_response
from .serializers import RouteSurplusPoolSerializer, SurplusAllocationSerializer
from .surplus import complete_service, get_route_pool, get_surplus_allocation, surplus_pool_summary


class ServiceCompleteView(APIView):
    """Close a service and allocate its surplus (staff only)."""
    permission_classes = [IsAdminUser]

    @extend_schema(
        summary="Complete a service",
        description=(
            "Allocate the surplus of a finished service to reserves, member dividends and the "
            "cooperative commonwealth. Retrying returns the existing allocation."
        ),
        request=None,
        parameters=SERVICE_PARAMETERS,
        responses={
            201: SurplusAllocationSerializer,
            200: SurplusAllocationSerializer,
            409: EngineErrorSerializer,
        },
        tags=["Cooperative (Admin)"]
    )
    def post(self, request, timetable_id, service_date):
        timetable, service_date, error = get_service(timetable_id, service_date)
        if error is not None:
            return error

        try:
            allocation, created = complete_service(timetable, service_date)
        except FareEngineError as e:
            return error_response(e)

        return Response(
            SurplusAllocationSerializer(allocation).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )


class SurplusAllocationView(APIView):
    """Surplus split for one service (staff only)."""
    permission_classes = [IsAdminUser]

    @extend_schema(
        summary="Get service surplus",
        description="Returns the surplus allocation and dividend ledger entries for a completed service.",
        parameters=SERVICE_PARAMETERS,
        responses={
            200: SurplusAllocationSerializer,
            404: inline_serializer(name='SurplusNotFound', fields={'error': drf_serializers.CharField()}),
        },
        tags=["Cooperative (Admin)"]
    )
    def get(self, request, timetable_id, service_date):
        timetable, service_date, error = get_service(timetable_id, service_date)
        if error is not None:
            return error

        allocation = get_surplus_allocation(timetable, service_date)
        if allocation is None:
            return Response({'error': 'Surplus has not been allocated for this service'},
                            status=status.HTTP_404_NOT_FOUND)
        return Response(SurplusAllocationSerializer(allocation).data)


class SurplusSummaryView(APIView):
    """Totals across every allocation (staff only)."""
    permission_classes = [IsAdminUser]

    @extend_schema(
        summary="Get surplus pool summary",
        description="Total surplus allocated to reserves, member dividends and the cooperative commonwealth.",
        responses={200: inline_serializer(name='SurplusSummary', fields={
            'services': drf_serializers.IntegerField(),
            'total_surplus': drf_serializers.DecimalField(max_digits=12, decimal_places=2),
            'to_reserves': drf_serializers.DecimalField(max_digits=12, decimal_places=2),
            'to_dividends': drf_serializers.DecimalField(max_digits=12, decimal_places=2),
            'to_commonwealth': drf_serializers.DecimalField(max_digits=12, decimal_places=2),
            'total_shortfall': drf_serializers.DecimalField(max_digits=12, decimal_places=2),
            'subsidy_applied': drf_serializers.DecimalField(max_digits=12, decimal_places=2),
            'route_pool_balance': drf_serializers.DecimalField(max_digits=12, decimal_places=2),
        })},
        tags=["Cooperative (Admin)"]
    )
    def get(self, request):
        summary = surplus_pool_summary()
        return Response({
            key: value if key == 'services' else str(value)
            for key, value in summary.items()
        })


class RouteSurplusPoolView(APIView):
    """Surplus pool for one route (staff only)."""
    permission_classes = [IsAdminUser]

    @extend_schema(
        summary="Get route surplus pool",
        description=(
            "Balance retained on a route from profitable runs, the shortfalls it has covered "
            "and its lifetime revenue and costs, with the latest pool movements."
        ),
        parameters=[OpenApiParameter(name='route_id', type=int, location='path', description='Route ID')],
        responses={
            200: RouteSurplusPoolSerializer,
            404: inline_serializer(name='PoolNotFound', fields={'error': drf_serializers.CharField()}),
        },
        tags=["Cooperative (Admin)"]
    )
    def get(self, request, route_id):
        pool = get_route_pool(route_id)
        if pool is None:
            return Response({'error': 'No services on this route have been allocated yet'},
                            status=status.HTTP_404_NOT_FOUND)
        return Response(RouteSurplusPoolSerializer(pool).data)
