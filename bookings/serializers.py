"""
Serializers for bookings and fare snapshots.
"""
from django.utils import timezone
from rest_framework import serializers

from passengers.serializers import CustomerSerializer, customer_for_request
from timetables.models import Timetable
from .lifecycle import create_booking
from .models import Booking, FareSnapshot
from .pricing import TIER_MULTIPLIERS


class FareSnapshotSerializer(serializers.ModelSerializer):
    """The fare locked in at confirmation."""

    class Meta:
        model = FareSnapshot
        fields = [
            'pricing_model', 'quoted_fare', 'passenger_tier', 'is_member',
            'total_trip_cost', 'trip_cost_breakdown', 'occupancy_at_quote', 'available_seats_at_quote',
            'current_fare_per_person', 'break_even_passengers', 'break_even_fare_per_person',
            'fare_at_capacity', 'surplus_amount_if_any', 'created_at'
        ]
        read_only_fields = fields


class BookingSerializer(serializers.ModelSerializer):
    """Serializer for viewing bookings."""
    customer = CustomerSerializer(read_only=True)
    fare_snapshot = serializers.SerializerMethodField()
    service_details = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            'id', 'reference', 'customer', 'passenger_tier', 'seat_number', 'wheelchair_required',
            'is_member', 'booking_status', 'payment_status', 'created_at', 'confirmed_at',
            'cancelled_at', 'completed_at', 'paid_at', 'refunded_at', 'fare_snapshot', 'service_details'
        ]

    def get_fare_snapshot(self, obj):
        try:
            return FareSnapshotSerializer(obj.fare_snapshot).data
        except FareSnapshot.DoesNotExist:
            return None

    def get_service_details(self, obj):
        """Get route and departure details."""
        instance = obj.instance
        timetable = instance.timetable
        route = timetable.route
        return {
            'timetable_id': timetable.pk,
            'route_number': route.route_number,
            'service_name': timetable.service_name,
            'origin': route.origin,
            'destination': route.destination,
            'service_date': str(instance.service_date),
            'departure_time': str(timetable.departure_time),
        }


class BookingCreateSerializer(serializers.Serializer):
    """Serializer for creating a booking."""
    timetable_id = serializers.IntegerField()
    service_date = serializers.DateField()
    customer_id = serializers.IntegerField(required=False)
    passenger_tier = serializers.ChoiceField(choices=list(TIER_MULTIPLIERS), default='adult')
    wheelchair_required = serializers.BooleanField(default=False)
    seat_number = serializers.CharField(max_length=10, required=False, allow_blank=True, default='')

    def validate_timetable_id(self, value):
        """Validate that timetable exists and is active."""
        try:
            return Timetable.objects.select_related('route__rates').get(id=value, is_active=True)
        except Timetable.DoesNotExist:
            raise serializers.ValidationError("Invalid or inactive timetable.")

    def validate_service_date(self, value):
        if value < timezone.localdate():
            raise serializers.ValidationError("Cannot book for past dates.")
        return value

    def validate(self, attrs):
        request = self.context['request']
        attrs['customer'] = customer_for_request(request, attrs.pop('customer_id', None))
        return attrs

    def create(self, validated_data):
        """Reserve a seat and create the pending booking."""
        return create_booking(
            timetable=validated_data['timetable_id'],
            service_date=validated_data['service_date'],
            customer=validated_data['customer'],
            passenger_tier=validated_data['passenger_tier'],
            wheelchair_required=validated_data['wheelchair_required'],
            seat_number=validated_data['seat_number'],
            created_by=self.context['request'].user,
        )
