"""Views for absence reporting."""
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample, inline_serializer
from rest_framework import serializers as drf_serializers

from bookings.lifecycle import cancel_absence
from utils.errors import FareEngineError, error_response
from .models import Absence
from .serializers import AbsenceSerializer, AbsenceCreateSerializer


class AbsenceResponseSerializer(drf_serializers.Serializer):
    message = drf_serializers.CharField()
    absence = AbsenceSerializer()


class AbsenceView(APIView):
    """Report absences and list them."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List absences",
        description="Staff see every absence; customers see their own.",
        parameters=[
            OpenApiParameter(name='date', type=str, required=False, description='Only this date (YYYY-MM-DD)'),
        ],
        responses={200: AbsenceSerializer(many=True)},
        tags=["Passengers"]
    )
    def get(self, request):
        absences = Absence.objects.select_related('customer').order_by('-absence_date', '-id')
        if not request.user.is_staff:
            absences = absences.filter(customer__user=request.user)
        absence_date = request.query_params.get('date')
        if absence_date:
            absences = absences.filter(absence_date=absence_date)

        return Response({
            'count': absences.count(),
            'results': AbsenceSerializer(absences, many=True).data
        })

    @extend_schema(
        summary="Report an absence",
        description=(
            "Record that a regular passenger will not ride on a date. Leave timetable_id "
            "empty to cover every service they would normally ride that day. Reporting the "
            "same absence twice returns the existing record."
        ),
        request=AbsenceCreateSerializer,
        responses={201: AbsenceResponseSerializer},
        examples=[
            OpenApiExample(
                "Sick for the whole day",
                value={"customer_id": 12, "absence_date": "2025-03-14", "reason": "sick"},
                request_only=True
            )
        ],
        tags=["Passengers"]
    )
    def post(self, request):
        serializer = AbsenceCreateSerializer(data=request.data, context={'request': request})
        if serializer.is_valid():
            absence = serializer.save()
            return Response({
                'message': 'Absence recorded',
                'absence': AbsenceSerializer(absence).data
            }, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class AbsenceCancelView(APIView):
    """Withdraw an absence."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Cancel an absence",
        description=(
            "Put the passenger back on the roster. Refused after the booking cutoff of an "
            "affected service, or when their seat has been given to someone else meanwhile."
        ),
        request=None,
        responses={
            200: AbsenceResponseSerializer,
            404: inline_serializer(name='AbsenceNotFound', fields={'error': drf_serializers.CharField()}),
            409: inline_serializer(name='AbsenceConflict', fields={
                'error': drf_serializers.CharField(),
                'message': drf_serializers.CharField(),
            }),
        },
        tags=["Passengers"]
    )
    def post(self, request, absence_id):
        absences = Absence.objects.all()
        if not request.user.is_staff:
            absences = absences.filter(customer__user=request.user)
        if not absences.filter(pk=absence_id).exists():
            return Response({'error': 'Absence not found'}, status=status.HTTP_404_NOT_FOUND)

        try:
            absence = cancel_absence(absence_id)
        except FareEngineError as e:
            return error_response(e)

        return Response({
            'message': 'Absence cancelled',
            'absence': AbsenceSerializer(absence).data
        })
