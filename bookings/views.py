"""Views for service occupancy, fare quotes and booking management."""
from datetime import date

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, IsAdminUser
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample, inline_serializer
from rest_framework import serializers as drf_serializers

from cooperative.models import CooperativeMember
from timetables.capacity import CapacityAllocator
from timetables.models import Timetable
from utils.errors import FareEngineError, ServiceNotRunning, error_response
from . import lifecycle
from .models import Booking
from .pricing import TIER_MULTIPLIERS
from .serializers import BookingSerializer, BookingCreateSerializer


# Response serializers for Swagger
class BookingResponseSerializer(drf_serializers.Serializer):
    message = drf_serializers.CharField()
    booking = BookingSerializer()


class BookingListResponseSerializer(drf_serializers.Serializer):
    count = drf_serializers.IntegerField()
    results = BookingSerializer(many=True)


EngineErrorSerializer = inline_serializer(name='EngineError', fields={
    'error': drf_serializers.CharField(),
    'message': drf_serializers.CharField(),
    'details': drf_serializers.DictField(required=False),
})

SERVICE_PARAMETERS = [
    OpenApiParameter(name='timetable_id', type=int, location='path', description='Timetable ID'),
    OpenApiParameter(name='service_date', type=str, location='path', description='Service date (YYYY-MM-DD)'),
]


def get_service(timetable_id, service_date):
    """
    Resolve the path parameters of a service endpoint.

    Returns:
        (timetable, date, None) or (None, None, error Response)
    """
    timetable = get_object_or_404(Timetable.objects.select_related('route__rates'), pk=timetable_id)
    try:
        parsed = date.fromisoformat(service_date)
    except ValueError:
        return None, None, Response(
            {'error': 'Invalid date format. Use YYYY-MM-DD.'}, status=status.HTTP_400_BAD_REQUEST
        )
    if not timetable.runs_on(parsed):
        return None, None, error_response(ServiceNotRunning(
            f"{timetable.service_name} does not run on {parsed}.", timetable_id=timetable.pk
        ))
    return timetable, parsed, None


class ServiceOccupancyView(APIView):
    """Roster for one service instance (staff only)."""
    permission_classes = [IsAdminUser]

    @extend_schema(
        summary="Resolve service occupancy",
        description=(
            "Merges regular registrations, absences and bookings into the roster for one "
            "service date. Bookings by customers who already ride as regulars are listed "
            "under duplicates."
        ),
        parameters=SERVICE_PARAMETERS + [
            OpenApiParameter(name='confirmed_only', type=bool, required=False,
                             description='Count only confirmed bookings (default: false)'),
        ],
        responses={200: inline_serializer(name='OccupancyResponse', fields={
            'occupancy': drf_serializers.DictField(),
            'capacity': drf_serializers.DictField(),
        }), 404: EngineErrorSerializer},
        tags=["Services"]
    )
    def get(self, request, timetable_id, service_date):
        timetable, service_date, error = get_service(timetable_id, service_date)
        if error is not None:
            return error

        confirmed_only = request.query_params.get('confirmed_only', 'false').lower() == 'true'
        occupancy = lifecycle.resolve_occupancy(timetable, service_date, confirmed_only=confirmed_only)
        capacity = CapacityAllocator(timetable, service_date).availability()
        return Response({
            'occupancy': occupancy.as_dict(),
            'capacity': capacity.as_dict(),
        })


class FareQuoteView(APIView):
    """Non-binding solidarity fare preview."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Quote a fare",
        description=(
            "Fare a new passenger would pay if they booked now, with the trip cost breakdown, "
            "break-even point and how the fare falls as more riders join. The quote is valid "
            "for 15 minutes and does not hold a seat."
        ),
        parameters=SERVICE_PARAMETERS + [
            OpenApiParameter(name='tier', type=str, required=False,
                             description='Passenger tier: adult, child, concessionary, wheelchair, companion'),
            OpenApiParameter(name='member', type=bool, required=False,
                             description='Quote at member price (defaults to your own membership)'),
        ],
        responses={200: drf_serializers.DictField(), 400: EngineErrorSerializer, 404: EngineErrorSerializer},
        tags=["Services"]
    )
    def get(self, request, timetable_id, service_date):
        timetable, service_date, error = get_service(timetable_id, service_date)
        if error is not None:
            return error

        tier = request.query_params.get('tier', 'adult').lower()
        if tier not in TIER_MULTIPLIERS:
            return Response({
                'error': 'Invalid tier',
                'message': f"Tier must be one of: {', '.join(TIER_MULTIPLIERS)}."
            }, status=status.HTTP_400_BAD_REQUEST)

        member = request.query_params.get('member')
        if member is not None:
            is_member = member.lower() == 'true'
        else:
            customer = getattr(request.user, 'customer', None)
            is_member = customer is not None and CooperativeMember.objects.is_active_member(customer, service_date)

        try:
            quote = lifecycle.quote_fare(timetable, service_date, tier=tier, is_member=is_member)
        except FareEngineError as e:
            return error_response(e)
        return Response(quote.as_dict())


class BookingCreateView(APIView):
    """Create a new booking."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Book a seat on a service",
        description=(
            "Reserve a seat (and a wheelchair space if needed) on a service date. The booking "
            "starts pending; the fare is fixed when it is confirmed."
        ),
        request=BookingCreateSerializer,
        responses={201: BookingResponseSerializer, 409: EngineErrorSerializer, 422: EngineErrorSerializer},
        examples=[
            OpenApiExample(
                "Book a concessionary seat",
                value={
                    "timetable_id": 1,
                    "service_date": "2025-03-14",
                    "passenger_tier": "concessionary"
                },
                request_only=True
            )
        ],
        tags=["Bookings"]
    )
    def post(self, request):
        serializer = BookingCreateSerializer(
            data=request.data,
            context={'request': request}
        )

        if serializer.is_valid():
            try:
                booking = serializer.save()
            except FareEngineError as e:
                return error_response(e)
            return Response({
                'message': 'Seat reserved. Confirm the booking to fix your fare.',
                'booking': BookingSerializer(booking).data
            }, status=status.HTTP_201_CREATED)

        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


class MyBookingsView(APIView):
    """Get the booking history of the logged-in customer."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get my bookings",
        description="Returns all bookings of the customer linked to the authenticated user",
        responses={200: BookingListResponseSerializer},
        tags=["Bookings"]
    )
    def get(self, request):
        bookings = Booking.objects.filter(
            customer__user=request.user
        ).select_related(
            'customer', 'instance__timetable__route', 'fare_snapshot'
        ).order_by('-created_at')

        serializer = BookingSerializer(bookings, many=True)

        return Response({
            'count': bookings.count(),
            'results': serializer.data
        })


def _visible_bookings(request):
    bookings = Booking.objects.select_related('customer', 'instance__timetable__route')
    if request.user.is_staff:
        return bookings
    return bookings.filter(customer__user=request.user)


class BookingDetailView(APIView):
    """Get booking by ID."""
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get booking",
        description="Returns booking details with its fare snapshot. Customers can only view their own bookings.",
        parameters=[
            OpenApiParameter(name='booking_id', type=int, location='path', description='Booking ID')
        ],
        responses={200: BookingSerializer, 404: inline_serializer(name='NotFound', fields={'error': drf_serializers.CharField()})},
        tags=["Bookings"]
    )
    def get(self, request, booking_id):
        try:
            booking = _visible_bookings(request).get(pk=booking_id)
        except Booking.DoesNotExist:
            return Response({'error': 'Booking not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(BookingSerializer(booking).data)


class BookingActionView(APIView):
    """
    Move a booking through its lifecycle. The action is fixed per URL:
    confirm and cancel are open to the booking's customer, the rest are staff only.
    """
    permission_classes = [IsAuthenticated]
    action = None

    ACTIONS = {
        'confirm': (lifecycle.confirm_booking, 'Booking confirmed'),
        'cancel': (lifecycle.cancel_booking, 'Booking cancelled'),
        'complete': (lifecycle.mark_completed, 'Passenger marked as carried'),
        'no-show': (lifecycle.mark_no_show, 'Booking marked as no-show'),
        'pay': (lifecycle.record_payment, 'Payment recorded'),
        'refund': (lifecycle.refund_payment, 'Payment refunded'),
    }
    STAFF_ACTIONS = {'complete', 'no-show', 'pay', 'refund'}

    @extend_schema(
        summary="Change booking state",
        description=(
            "confirm: fix the fare against the current roster. cancel: release the seat "
            "(refused inside the booking cutoff). complete / no-show / pay / refund: staff only."
        ),
        request=None,
        parameters=[
            OpenApiParameter(name='booking_id', type=int, location='path', description='Booking ID')
        ],
        responses={200: BookingResponseSerializer, 404: EngineErrorSerializer, 409: EngineErrorSerializer},
        tags=["Bookings"]
    )
    def post(self, request, booking_id):
        if self.action in self.STAFF_ACTIONS and not request.user.is_staff:
            return Response({
                'error': 'Admin access required',
                'message': 'This action is restricted to staff.'
            }, status=status.HTTP_403_FORBIDDEN)

        if not _visible_bookings(request).filter(pk=booking_id).exists():
            return Response({'error': 'Booking not found'}, status=status.HTTP_404_NOT_FOUND)

        operation, message = self.ACTIONS[self.action]
        try:
            booking = operation(booking_id)
        except FareEngineError as e:
            return error_response(e)

        booking = Booking.objects.select_related(
            'customer', 'instance__timetable__route'
        ).get(pk=booking.pk)
        return Response({
            'message': message,
            'booking': BookingSerializer(booking).data
        })
