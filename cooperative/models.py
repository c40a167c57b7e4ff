"""
Cooperative membership, surplus allocations and the member dividend ledger.
"""
from decimal import Decimal

from django.db import models
from django.db.models import Q
from django.utils import timezone


class CooperativeMemberQuerySet(models.QuerySet):

    def active_on(self, on_date):
        return self.filter(
            Q(left_on__isnull=True) | Q(left_on__gte=on_date),
            is_active=True,
            joined_on__lte=on_date,
        )

    def is_active_member(self, customer, on_date):
        return self.active_on(on_date).filter(customer=customer).exists()


class CooperativeMember(models.Model):
    """
    A customer who holds membership of the cooperative.
    Maps to the 'cooperative_members' table.
    """
    TYPE_CHOICES = [
        ('founding', 'Founding'),
        ('standard', 'Standard'),
        ('associate', 'Associate'),
    ]

    customer = models.OneToOneField('passengers.Customer', on_delete=models.CASCADE, related_name='membership')
    membership_number = models.CharField(max_length=50, unique=True)
    membership_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='standard')
    joined_on = models.DateField(default=timezone.localdate)
    left_on = models.DateField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    dividend_eligible = models.BooleanField(default=True)
    share_capital = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))

    objects = CooperativeMemberQuerySet.as_manager()

    class Meta:
        db_table = 'cooperative_members'
        indexes = [
            models.Index(fields=['is_active'], name='coop_member_active_idx'),
        ]

    def __str__(self):
        return f"{self.membership_number} ({self.customer})"


class SurplusAllocation(models.Model):
    """
    The split of one completed service's surplus. Written once per instance.
    """
    instance = models.OneToOneField(
        'timetables.ServiceInstance', on_delete=models.PROTECT, related_name='surplus_allocation'
    )
    pricing_model = models.CharField(max_length=20)
    total_trip_cost = models.DecimalField(max_digits=10, decimal_places=2)
    total_confirmed_fares = models.DecimalField(max_digits=10, decimal_places=2)
    confirmed_passengers = models.PositiveSmallIntegerField(default=0)
    total_surplus = models.DecimalField(max_digits=10, decimal_places=2)
    reserves_percent = models.DecimalField(max_digits=5, decimal_places=2)
    business_percent = models.DecimalField(max_digits=5, decimal_places=2)
    dividend_percent = models.DecimalField(max_digits=5, decimal_places=2)
    to_reserves = models.DecimalField(max_digits=10, decimal_places=2)
    to_dividends = models.DecimalField(max_digits=10, decimal_places=2)
    to_commonwealth = models.DecimalField(max_digits=10, decimal_places=2)
    shortfall = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    subsidy_applied = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    allocated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'surplus_allocations'
        ordering = ['-allocated_at']

    def __str__(self):
        return f"Surplus £{self.total_surplus} for {self.instance}"


class MemberDividendLedgerEntry(models.Model):
    """A member's share of one allocation's dividend pool."""
    member = models.ForeignKey(CooperativeMember, on_delete=models.PROTECT, related_name='dividend_entries')
    allocation = models.ForeignKey(SurplusAllocation, on_delete=models.CASCADE, related_name='dividend_entries')
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    patronage_trips = models.PositiveIntegerField(default=0)
    accrual_date = models.DateField()

    class Meta:
        db_table = 'member_dividend_ledger'
        constraints = [
            models.UniqueConstraint(fields=['member', 'allocation'], name='unique_member_dividend_per_allocation'),
        ]
        indexes = [
            models.Index(fields=['member', 'accrual_date'], name='dividend_member_date_idx'),
        ]

    def __str__(self):
        return f"£{self.amount} to {self.member.membership_number} on {self.accrual_date}"


class RouteSurplusPool(models.Model):
    """
    Surplus retained on a route. Profitable runs pay their reserves share in;
    runs that collect less than their trip cost draw the shortfall back out.
    Maps to the 'route_surplus_pools' table.
    """
    route = models.OneToOneField('timetables.BusRoute', on_delete=models.CASCADE, related_name='surplus_pool')
    balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    lifetime_total_revenue = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    lifetime_total_costs = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    lifetime_gross_surplus = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_subsidy_applied = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_unfunded_shortfall = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_services_run = models.PositiveIntegerField(default=0)
    total_profitable_services = models.PositiveIntegerField(default=0)
    total_subsidised_services = models.PositiveIntegerField(default=0)
    last_surplus_date = models.DateField(null=True, blank=True)
    last_subsidy_date = models.DateField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'route_surplus_pools'

    def __str__(self):
        return f"Surplus pool £{self.balance} on {self.route}"


class SurplusPoolTransaction(models.Model):
    """One movement on a route pool, written alongside the allocation that caused it."""
    SURPLUS_ADDED = 'surplus_added'
    SUBSIDY_APPLIED = 'subsidy_applied'
    SHORTFALL_UNFUNDED = 'shortfall_unfunded'
    TYPE_CHOICES = [
        (SURPLUS_ADDED, 'Surplus added'),
        (SUBSIDY_APPLIED, 'Subsidy applied'),
        (SHORTFALL_UNFUNDED, 'Shortfall unfunded'),
    ]

    pool = models.ForeignKey(RouteSurplusPool, on_delete=models.CASCADE, related_name='transactions')
    allocation = models.ForeignKey(SurplusAllocation, on_delete=models.CASCADE, related_name='pool_transactions')
    transaction_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    balance_before = models.DecimalField(max_digits=12, decimal_places=2)
    balance_after = models.DecimalField(max_digits=12, decimal_places=2)
    service_date = models.DateField()
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'surplus_pool_transactions'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['pool', 'service_date'], name='pool_txn_service_date_idx'),
            models.Index(fields=['transaction_type'], name='pool_txn_type_idx'),
        ]

    def __str__(self):
        return f"{self.get_transaction_type_display()} £{self.amount} on {self.service_date}"
