"""Views for timetable configuration."""
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAdminUser
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample

from .models import Timetable
from .serializers import TimetableSerializer, TimetableCreateSerializer


class TimetableManageView(APIView):
    """List and create timetables (staff only)."""
    permission_classes = [IsAdminUser]

    @extend_schema(
        summary="List timetables",
        description="Returns every timetable with its route, rate table and pricing configuration.",
        parameters=[
            OpenApiParameter(name='route', type=str, required=False, description='Filter by route number'),
        ],
        responses={200: TimetableSerializer(many=True)},
        tags=["Timetables (Admin)"]
    )
    def get(self, request):
        timetables = Timetable.objects.select_related('route__rates').order_by('route__route_number', 'departure_time')
        route = request.query_params.get('route')
        if route:
            timetables = timetables.filter(route__route_number=route.upper())

        return Response({
            'count': timetables.count(),
            'results': TimetableSerializer(timetables, many=True).data
        })

    @extend_schema(
        summary="Create a timetable",
        description=(
            "Create a recurring service on an existing route. For cooperative pricing the "
            "three surplus percentages must add up to 100."
        ),
        request=TimetableCreateSerializer,
        responses={201: TimetableSerializer},
        examples=[
            OpenApiExample(
                "Weekday cooperative service",
                value={
                    "route_number": "S22A",
                    "service_name": "Morning market run",
                    "departure_time": "09:30",
                    "monday": True, "tuesday": True, "wednesday": True, "thursday": True, "friday": True,
                    "valid_from": "2025-01-06",
                    "total_seats": 16,
                    "wheelchair_spaces": 2,
                    "pricing_model": "cooperative",
                    "minimum_fare_floor": "2.00",
                    "maximum_acceptable_fare": "8.00",
                    "surplus_reserves_percent": "40",
                    "surplus_business_percent": "20",
                    "surplus_dividend_percent": "40"
                },
                request_only=True
            )
        ],
        tags=["Timetables (Admin)"]
    )
    def post(self, request):
        serializer = TimetableCreateSerializer(data=request.data)
        if serializer.is_valid():
            timetable = serializer.save()
            return Response(TimetableSerializer(timetable).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
