"""Booking and fare snapshot models."""
import random
import string
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from utils.errors import SnapshotImmutableViolation


def generate_reference():
    return ''.join(random.choices(string.ascii_uppercase + string.digits, k=10))


class Booking(models.Model):
    TIER_CHOICES = [
        ('adult', 'Adult'),
        ('child', 'Child'),
        ('concessionary', 'Concessionary'),
        ('wheelchair', 'Wheelchair user'),
        ('companion', 'Companion'),
    ]

    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'
    NO_SHOW = 'no_show'
    COMPLETED = 'completed'
    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (CONFIRMED, 'Confirmed'),
        (CANCELLED, 'Cancelled'),
        (NO_SHOW, 'No show'),
        (COMPLETED, 'Completed'),
    ]

    UNPAID = 'unpaid'
    PAID = 'paid'
    REFUNDED = 'refunded'
    PAYMENT_CHOICES = [(UNPAID, 'Unpaid'), (PAID, 'Paid'), (REFUNDED, 'Refunded')]

    reference = models.CharField(max_length=10, unique=True, default=generate_reference)
    instance = models.ForeignKey('timetables.ServiceInstance', on_delete=models.PROTECT, related_name='bookings')
    customer = models.ForeignKey('passengers.Customer', on_delete=models.PROTECT, related_name='bookings')
    passenger_tier = models.CharField(max_length=15, choices=TIER_CHOICES, default='adult')
    seat_number = models.CharField(max_length=10, blank=True)
    wheelchair_required = models.BooleanField(default=False)
    is_member = models.BooleanField(default=False)
    booking_status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=PENDING)
    payment_status = models.CharField(max_length=10, choices=PAYMENT_CHOICES, default=UNPAID)
    reservation = models.OneToOneField(
        'timetables.SeatReservation', on_delete=models.SET_NULL,
        null=True, blank=True, related_name='booking'
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='created_bookings'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'bookings'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['instance', 'booking_status'], name='booking_instance_status_idx'),
            models.Index(fields=['customer', 'booking_status'], name='booking_customer_status_idx'),
        ]

    def __str__(self):
        return f"Ref: {self.reference} - {self.customer}"

    def save(self, *args, **kwargs):
        if not self.reference:
            while True:
                reference = generate_reference()
                if not Booking.objects.filter(reference=reference).exists():
                    self.reference = reference
                    break
        super().save(*args, **kwargs)

    @property
    def holds_seat(self):
        return self.reservation_id is not None and self.reservation.released_at is None


class FareSnapshotQuerySet(models.QuerySet):

    def update(self, **kwargs):
        raise SnapshotImmutableViolation("Fare snapshots cannot be bulk-updated.", fields=sorted(kwargs))

    def delete(self):
        raise SnapshotImmutableViolation("Fare snapshots cannot be deleted.")


class FareSnapshot(models.Model):
    """
    The fare quoted to a booking at confirmation. Written once and never
    changed afterwards; later occupancy changes never touch it.
    """
    booking = models.OneToOneField(Booking, on_delete=models.PROTECT, related_name='fare_snapshot')
    pricing_model = models.CharField(max_length=20)
    trip_cost_breakdown = models.JSONField()
    total_trip_cost = models.DecimalField(max_digits=10, decimal_places=2)
    occupancy_at_quote = models.PositiveSmallIntegerField()
    available_seats_at_quote = models.PositiveSmallIntegerField()
    passenger_tier = models.CharField(max_length=15)
    is_member = models.BooleanField(default=False)
    quoted_fare = models.DecimalField(max_digits=8, decimal_places=2, validators=[MinValueValidator(Decimal('0'))])
    current_fare_per_person = models.DecimalField(max_digits=8, decimal_places=2)
    break_even_passengers = models.PositiveSmallIntegerField()
    break_even_fare_per_person = models.DecimalField(max_digits=8, decimal_places=2)
    fare_at_capacity = models.DecimalField(max_digits=8, decimal_places=2)
    surplus_amount_if_any = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    created_at = models.DateTimeField(auto_now_add=True)

    objects = FareSnapshotQuerySet.as_manager()

    class Meta:
        db_table = 'fare_snapshots'

    def __str__(self):
        return f"£{self.quoted_fare} for {self.booking.reference}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise SnapshotImmutableViolation(
                "Fare snapshots are written once at confirmation.", snapshot_id=self.pk
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise SnapshotImmutableViolation("Fare snapshots cannot be deleted.", snapshot_id=self.pk)
