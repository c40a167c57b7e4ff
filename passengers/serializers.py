"""
Serializers for customers and absence reporting.
"""
from rest_framework import serializers

from bookings.lifecycle import report_absence
from timetables.models import Timetable
from .models import Customer, Absence


def customer_for_request(request, customer_id=None):
    """
    The customer an API call acts for. Staff name the customer explicitly;
    everyone else acts for the customer record linked to their login.
    """
    user = request.user
    if user.is_staff:
        if customer_id is None:
            raise serializers.ValidationError({'customer_id': "Staff must say which customer this is for."})
        try:
            return Customer.objects.get(pk=customer_id, is_active=True)
        except Customer.DoesNotExist:
            raise serializers.ValidationError({'customer_id': "Invalid or inactive customer."})

    customer = getattr(user, 'customer', None)
    if customer is None or not customer.is_active:
        raise serializers.ValidationError("No customer record is linked to this account.")
    if customer_id is not None and customer_id != customer.pk:
        raise serializers.ValidationError({'customer_id': "You can only act for your own customer record."})
    return customer


class CustomerSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = Customer
        fields = ['id', 'first_name', 'last_name', 'full_name', 'email', 'phone']


class AbsenceSerializer(serializers.ModelSerializer):
    """Serializer for viewing absences."""
    customer = CustomerSerializer(read_only=True)

    class Meta:
        model = Absence
        fields = [
            'id', 'customer', 'absence_date', 'reason', 'reason_notes', 'timetable',
            'reported_by', 'status', 'reported_at', 'cancelled_at'
        ]


class AbsenceCreateSerializer(serializers.Serializer):
    """Serializer for reporting an absence."""
    customer_id = serializers.IntegerField(required=False)
    absence_date = serializers.DateField()
    timetable_id = serializers.IntegerField(required=False, allow_null=True)
    reason = serializers.ChoiceField(choices=Absence.REASON_CHOICES, default='other')
    reason_notes = serializers.CharField(required=False, allow_blank=True, default='')
    reported_by = serializers.ChoiceField(choices=Absence.REPORTED_BY_CHOICES, required=False)

    def validate_timetable_id(self, value):
        """A null timetable means every service the passenger rides that day."""
        if value is None:
            return None
        try:
            return Timetable.objects.get(pk=value)
        except Timetable.DoesNotExist:
            raise serializers.ValidationError("Invalid timetable.")

    def validate(self, attrs):
        request = self.context['request']
        attrs['customer'] = customer_for_request(request, attrs.pop('customer_id', None))
        if 'reported_by' not in attrs:
            attrs['reported_by'] = 'staff' if request.user.is_staff else 'customer'
        return attrs

    def create(self, validated_data):
        return report_absence(
            customer=validated_data['customer'],
            absence_date=validated_data['absence_date'],
            reason=validated_data['reason'],
            timetable=validated_data.get('timetable_id'),
            reported_by=validated_data['reported_by'],
            reported_by_user=self.context['request'].user,
            reason_notes=validated_data.get('reason_notes', ''),
        )
