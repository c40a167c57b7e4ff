from django.contrib import admin
from .models import (
    CooperativeMember, SurplusAllocation, MemberDividendLedgerEntry, RouteSurplusPool, SurplusPoolTransaction,
)


@admin.register(CooperativeMember)
class CooperativeMemberAdmin(admin.ModelAdmin):
    list_display = ['membership_number', 'customer', 'membership_type', 'joined_on', 'left_on', 'is_active', 'dividend_eligible']
    list_filter = ['is_active', 'membership_type', 'dividend_eligible']
    search_fields = ['membership_number', 'customer__last_name', 'customer__email']


class DividendEntryInline(admin.TabularInline):
    model = MemberDividendLedgerEntry
    extra = 0
    can_delete = False
    readonly_fields = ['member', 'amount', 'patronage_trips', 'accrual_date']


@admin.register(SurplusAllocation)
class SurplusAllocationAdmin(admin.ModelAdmin):
    list_display = ['instance', 'pricing_model', 'total_surplus', 'to_reserves', 'to_dividends', 'to_commonwealth', 'allocated_at']
    list_filter = ['pricing_model']
    readonly_fields = [
        'instance', 'pricing_model', 'total_trip_cost', 'total_confirmed_fares', 'confirmed_passengers',
        'total_surplus', 'reserves_percent', 'business_percent', 'dividend_percent',
        'to_reserves', 'to_dividends', 'to_commonwealth', 'shortfall', 'subsidy_applied', 'allocated_at'
    ]
    inlines = [DividendEntryInline]


class PoolTransactionInline(admin.TabularInline):
    model = SurplusPoolTransaction
    extra = 0
    can_delete = False
    readonly_fields = ['transaction_type', 'amount', 'balance_before', 'balance_after', 'service_date', 'allocation', 'created_at']


@admin.register(RouteSurplusPool)
class RouteSurplusPoolAdmin(admin.ModelAdmin):
    list_display = ['route', 'balance', 'total_services_run', 'total_profitable_services', 'total_subsidised_services', 'last_surplus_date']
    readonly_fields = [
        'route', 'balance', 'lifetime_total_revenue', 'lifetime_total_costs', 'lifetime_gross_surplus',
        'total_subsidy_applied', 'total_unfunded_shortfall', 'total_services_run',
        'total_profitable_services', 'total_subsidised_services', 'last_surplus_date', 'last_subsidy_date'
    ]
    inlines = [PoolTransactionInline]
