"""
Route, timetable and service-instance models.
"""
from datetime import datetime, timedelta
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils import timezone


WEEKDAY_FIELDS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')

PERCENT_VALIDATORS = [MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100'))]


class WeekdayPattern(models.Model):
    """Day-of-week flags shared by timetables and regular registrations."""
    monday = models.BooleanField(default=False)
    tuesday = models.BooleanField(default=False)
    wednesday = models.BooleanField(default=False)
    thursday = models.BooleanField(default=False)
    friday = models.BooleanField(default=False)
    saturday = models.BooleanField(default=False)
    sunday = models.BooleanField(default=False)

    class Meta:
        abstract = True

    def runs_on_weekday(self, day):
        return getattr(self, WEEKDAY_FIELDS[day.weekday()])

    @property
    def weekdays(self):
        return [name for name in WEEKDAY_FIELDS if getattr(self, name)]


class CostRateTable(models.Model):
    """
    Operator cost rates used to price one run of a service.
    Maps to the 'cost_rate_tables' table.
    """
    name = models.CharField(max_length=100, unique=True)
    driver_wage_per_hour = models.DecimalField(max_digits=8, decimal_places=2)
    fuel_per_mile = models.DecimalField(max_digits=8, decimal_places=4)
    depreciation_per_mile = models.DecimalField(max_digits=8, decimal_places=4)
    insurance_per_trip = models.DecimalField(max_digits=8, decimal_places=2)
    maintenance_per_mile = models.DecimalField(max_digits=8, decimal_places=4)
    overhead_per_trip = models.DecimalField(max_digits=8, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'cost_rate_tables'

    def __str__(self):
        return self.name


class BusRoute(models.Model):
    """
    A registered Section 22 route.
    Maps to the 'bus_routes' table.
    """
    route_number = models.CharField(max_length=10, unique=True)
    name = models.CharField(max_length=255)
    origin = models.CharField(max_length=100)
    destination = models.CharField(max_length=100)
    distance_miles = models.DecimalField(max_digits=7, decimal_places=2)
    duration_hours = models.DecimalField(max_digits=5, decimal_places=2)
    rates = models.ForeignKey(CostRateTable, on_delete=models.PROTECT, related_name='routes')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'bus_routes'
        indexes = [
            models.Index(fields=['route_number'], name='bus_route_number_idx'),
            models.Index(fields=['is_active'], name='bus_route_active_idx'),
        ]

    def __str__(self):
        return f"{self.route_number} - {self.name}"


class Timetable(WeekdayPattern):
    """
    A recurring scheduled service on a route.

    Each calendar date on which the operating-day pattern runs is a separate
    service instance; those are materialised lazily as ServiceInstance rows.
    """
    PRICING_FIXED = 'fixed'
    PRICING_DYNAMIC = 'dynamic'
    PRICING_COOPERATIVE = 'cooperative'
    PRICING_CHOICES = [
        (PRICING_FIXED, 'Fixed'),
        (PRICING_DYNAMIC, 'Dynamic'),
        (PRICING_COOPERATIVE, 'Cooperative'),
    ]

    route = models.ForeignKey(BusRoute, on_delete=models.CASCADE, related_name='timetables')
    service_name = models.CharField(max_length=255)
    departure_time = models.TimeField()
    valid_from = models.DateField()
    valid_until = models.DateField(null=True, blank=True)
    total_seats = models.PositiveSmallIntegerField(validators=[MinValueValidator(1)])
    wheelchair_spaces = models.PositiveSmallIntegerField(default=0)

    pricing_model = models.CharField(max_length=20, choices=PRICING_CHOICES, default=PRICING_DYNAMIC)
    minimum_fare_floor = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal('1.00'))
    maximum_acceptable_fare = models.DecimalField(
        max_digits=8, decimal_places=2, default=Decimal('10.00'),
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    non_member_surcharge_percent = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal('0'), validators=PERCENT_VALIDATORS
    )
    booking_opens_days_advance = models.PositiveSmallIntegerField(default=14)
    booking_cutoff_hours = models.PositiveSmallIntegerField(default=48)

    surplus_reserves_percent = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal('40'), validators=PERCENT_VALIDATORS
    )
    surplus_business_percent = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal('20'), validators=PERCENT_VALIDATORS
    )
    surplus_dividend_percent = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal('40'), validators=PERCENT_VALIDATORS
    )

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'timetables'
        indexes = [
            models.Index(fields=['route', 'is_active'], name='timetable_route_active_idx'),
        ]

    def __str__(self):
        return f"{self.route.route_number} {self.service_name} @ {self.departure_time:%H:%M}"

    def clean(self):
        errors = {}
        if not any(getattr(self, name) for name in WEEKDAY_FIELDS):
            errors['monday'] = 'A timetable must operate on at least one day of the week.'
        if self.valid_until and self.valid_until < self.valid_from:
            errors['valid_until'] = 'valid_until cannot be before valid_from.'
        if self.wheelchair_spaces > self.total_seats:
            errors['wheelchair_spaces'] = 'Wheelchair spaces are part of total seats and cannot exceed them.'
        if self.minimum_fare_floor is not None and self.maximum_acceptable_fare is not None:
            if self.minimum_fare_floor > self.maximum_acceptable_fare:
                errors['minimum_fare_floor'] = 'Minimum fare cannot exceed the maximum acceptable fare.'
        if self.pricing_model == self.PRICING_COOPERATIVE and self.surplus_split_total != Decimal('100'):
            errors['surplus_reserves_percent'] = (
                f"Surplus percentages must add up to 100 for cooperative pricing "
                f"(currently {self.surplus_split_total})."
            )
        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        self.clean()
        super().save(*args, **kwargs)

    @property
    def surplus_split_total(self):
        return (
            Decimal(self.surplus_reserves_percent)
            + Decimal(self.surplus_business_percent)
            + Decimal(self.surplus_dividend_percent)
        )

    def runs_on(self, service_date):
        """Whether this timetable produces a service instance on the given date."""
        if not self.is_active or service_date < self.valid_from:
            return False
        if self.valid_until and service_date > self.valid_until:
            return False
        return self.runs_on_weekday(service_date)

    def departure_at(self, service_date):
        return timezone.make_aware(datetime.combine(service_date, self.departure_time))

    def cutoff_at(self, service_date):
        return self.departure_at(service_date) - timedelta(hours=self.booking_cutoff_hours)


class ServiceInstance(models.Model):
    """
    One dated run of a timetable.
    Holds the reservation counters guarded by CapacityAllocator; the version
    column is used for optimistic locking.
    """
    timetable = models.ForeignKey(Timetable, on_delete=models.CASCADE, related_name='instances')
    service_date = models.DateField()
    reserved_seats = models.PositiveSmallIntegerField(default=0)
    reserved_wheelchair_seats = models.PositiveSmallIntegerField(default=0)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'service_instances'
        constraints = [
            models.UniqueConstraint(fields=['timetable', 'service_date'], name='unique_service_instance'),
        ]
        indexes = [
            models.Index(fields=['service_date'], name='service_instance_date_idx'),
        ]

    def __str__(self):
        return f"{self.timetable} on {self.service_date}"

    @property
    def departure_at(self):
        return self.timetable.departure_at(self.service_date)


class SeatReservation(models.Model):
    """A seat held on a service instance. Released at most once."""
    instance = models.ForeignKey(ServiceInstance, on_delete=models.CASCADE, related_name='reservations')
    wheelchair = models.BooleanField(default=False)
    reserved_at = models.DateTimeField(default=timezone.now)
    released_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'seat_reservations'
        indexes = [
            models.Index(fields=['instance', 'released_at'], name='reservation_released_idx'),
        ]

    def __str__(self):
        kind = 'wheelchair space' if self.wheelchair else 'seat'
        return f"{kind} on {self.instance}"

    @property
    def is_active(self):
        return self.released_at is None
