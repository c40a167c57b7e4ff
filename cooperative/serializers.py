"""
Serializers for surplus allocations and the dividend ledger.
"""
from drf_spectacular.utils import extend_schema_field
from rest_framework import serializers

from .models import SurplusAllocation, MemberDividendLedgerEntry, RouteSurplusPool, SurplusPoolTransaction


class DividendEntrySerializer(serializers.ModelSerializer):
    membership_number = serializers.CharField(source='member.membership_number', read_only=True)

    class Meta:
        model = MemberDividendLedgerEntry
        fields = ['membership_number', 'amount', 'patronage_trips', 'accrual_date']


class SurplusAllocationSerializer(serializers.ModelSerializer):
    """Serializer for viewing a service's surplus split."""
    timetable_id = serializers.IntegerField(source='instance.timetable_id', read_only=True)
    service_date = serializers.DateField(source='instance.service_date', read_only=True)
    dividend_entries = DividendEntrySerializer(many=True, read_only=True)

    class Meta:
        model = SurplusAllocation
        fields = [
            'id', 'timetable_id', 'service_date', 'pricing_model', 'total_trip_cost',
            'total_confirmed_fares', 'confirmed_passengers', 'total_surplus',
            'reserves_percent', 'business_percent', 'dividend_percent',
            'to_reserves', 'to_dividends', 'to_commonwealth', 'shortfall', 'subsidy_applied',
            'allocated_at', 'dividend_entries'
        ]


class SurplusPoolTransactionSerializer(serializers.ModelSerializer):
    timetable_id = serializers.IntegerField(source='allocation.instance.timetable_id', read_only=True)

    class Meta:
        model = SurplusPoolTransaction
        fields = [
            'transaction_type', 'amount', 'balance_before', 'balance_after',
            'service_date', 'timetable_id', 'created_at'
        ]


class RouteSurplusPoolSerializer(serializers.ModelSerializer):
    """Serializer for a route's surplus pool with its latest movements."""
    route_number = serializers.CharField(source='route.route_number', read_only=True)
    recent_transactions = serializers.SerializerMethodField()

    RECENT_LIMIT = 20

    class Meta:
        model = RouteSurplusPool
        fields = [
            'route_number', 'balance', 'lifetime_total_revenue', 'lifetime_total_costs',
            'lifetime_gross_surplus', 'total_subsidy_applied', 'total_unfunded_shortfall',
            'total_services_run', 'total_profitable_services', 'total_subsidised_services',
            'last_surplus_date', 'last_subsidy_date', 'recent_transactions'
        ]

    @extend_schema_field(SurplusPoolTransactionSerializer(many=True))
    def get_recent_transactions(self, obj):
        transactions = obj.transactions.select_related('allocation__instance')[:self.RECENT_LIMIT]
        return SurplusPoolTransactionSerializer(transactions, many=True).data
