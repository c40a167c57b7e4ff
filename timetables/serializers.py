"""
Serializers for route and timetable configuration.
"""
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from .models import BusRoute, CostRateTable, Timetable, WEEKDAY_FIELDS


class CostRateTableSerializer(serializers.ModelSerializer):

    class Meta:
        model = CostRateTable
        fields = [
            'id', 'name', 'driver_wage_per_hour', 'fuel_per_mile', 'depreciation_per_mile',
            'insurance_per_trip', 'maintenance_per_mile', 'overhead_per_trip'
        ]


class BusRouteSerializer(serializers.ModelSerializer):
    rates = CostRateTableSerializer(read_only=True)

    class Meta:
        model = BusRoute
        fields = [
            'id', 'route_number', 'name', 'origin', 'destination',
            'distance_miles', 'duration_hours', 'rates', 'is_active'
        ]


class TimetableSerializer(serializers.ModelSerializer):
    """Serializer for viewing timetables."""
    route = BusRouteSerializer(read_only=True)
    weekdays = serializers.ListField(child=serializers.CharField(), read_only=True)

    class Meta:
        model = Timetable
        fields = [
            'id', 'route', 'service_name', 'departure_time', 'weekdays',
            'valid_from', 'valid_until', 'total_seats', 'wheelchair_spaces',
            'pricing_model', 'minimum_fare_floor', 'maximum_acceptable_fare',
            'non_member_surcharge_percent', 'booking_opens_days_advance', 'booking_cutoff_hours',
            'surplus_reserves_percent', 'surplus_business_percent', 'surplus_dividend_percent',
            'is_active'
        ]


class TimetableCreateSerializer(serializers.ModelSerializer):
    """Serializer for creating timetables. Mirrors Timetable.clean()."""
    route_number = serializers.CharField(write_only=True)

    class Meta:
        model = Timetable
        fields = [
            'route_number', 'service_name', 'departure_time', *WEEKDAY_FIELDS,
            'valid_from', 'valid_until', 'total_seats', 'wheelchair_spaces',
            'pricing_model', 'minimum_fare_floor', 'maximum_acceptable_fare',
            'non_member_surcharge_percent', 'booking_opens_days_advance', 'booking_cutoff_hours',
            'surplus_reserves_percent', 'surplus_business_percent', 'surplus_dividend_percent',
            'is_active'
        ]

    def validate_route_number(self, value):
        """Validate that route exists."""
        try:
            return BusRoute.objects.get(route_number=value.upper(), is_active=True)
        except BusRoute.DoesNotExist:
            raise serializers.ValidationError(f"Route '{value}' does not exist.")

    def validate(self, attrs):
        attrs['route'] = attrs.pop('route_number')
        try:
            Timetable(**attrs).clean()
        except DjangoValidationError as e:
            raise serializers.ValidationError(e.message_dict)
        return attrs
