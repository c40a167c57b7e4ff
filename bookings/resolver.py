"""
Effective passenger resolver.

Merges standing registrations, one-off bookings and absences into the
roster for one service instance. Pure read: the same database state always
produces the same roster in the same order.
"""
from dataclasses import dataclass, field

from django.db.models import Q

from passengers.roster import regular_riders
from .models import Booking

CONFIRMED_STATUSES = (Booking.CONFIRMED, Booking.COMPLETED)

# A pending booking is on the roster only while it still holds a seat
HOLDING_PENDING = Q(
    booking_status=Booking.PENDING,
    reservation__isnull=False,
    reservation__released_at__isnull=True,
)


@dataclass(frozen=True)
class PassengerEntry:
    reference: str
    customer_id: int
    customer_name: str
    seat_number: str
    wheelchair_required: bool
    is_regular: bool
    booking_id: int = None
    passenger_tier: str = None

    def as_dict(self):
        return {
            'reference': self.reference,
            'customer_id': self.customer_id,
            'customer_name': self.customer_name,
            'seat_number': self.seat_number,
            'wheelchair_required': self.wheelchair_required,
            'is_regular': self.is_regular,
            'booking_id': self.booking_id,
            'passenger_tier': self.passenger_tier,
        }


@dataclass(frozen=True)
class DuplicateBooking:
    booking_id: int
    booking_reference: str
    customer_id: int
    reason: str = 'duplicate_registration'

    def as_dict(self):
        return {
            'booking_id': self.booking_id,
            'booking_reference': self.booking_reference,
            'customer_id': self.customer_id,
            'reason': self.reason,
        }


@dataclass(frozen=True)
class Occupancy:
    timetable_id: int
    service_date: object
    entries: tuple = field(default_factory=tuple)
    duplicates: tuple = field(default_factory=tuple)

    @property
    def occupied_seats(self):
        return len(self.entries)

    @property
    def occupied_wheelchair_seats(self):
        return sum(1 for entry in self.entries if entry.wheelchair_required)

    def includes_booking(self, booking_id):
        return any(entry.booking_id == booking_id for entry in self.entries)

    def as_dict(self):
        return {
            'timetable_id': self.timetable_id,
            'service_date': str(self.service_date),
            'occupied_seats': self.occupied_seats,
            'occupied_wheelchair_seats': self.occupied_wheelchair_seats,
            'entries': [entry.as_dict() for entry in self.entries],
            'duplicates': [duplicate.as_dict() for duplicate in self.duplicates],
        }


def riding_as_regular(customer, timetable, service_date):
    return any(r.customer_id == customer.pk for r in regular_riders(timetable, service_date))


def resolve_occupancy(timetable, service_date, confirmed_only=False):
    """
    Build the roster for one service instance.

    Args:
        timetable: Timetable the instance belongs to
        service_date: Date of the instance
        confirmed_only: Count only confirmed (or completed) bookings, used when
            finalising fares; by default pending bookings that still hold
            their seat count too.

    Returns:
        Occupancy with regular riders first (seat order), then bookings in
        creation order. Bookings by customers who already ride as regulars
        are left out of the roster and reported in `duplicates`.
    """
    entries = []
    regular_customers = set()
    for registration in regular_riders(timetable, service_date):
        regular_customers.add(registration.customer_id)
        entries.append(PassengerEntry(
            reference=f"regular:{registration.pk}",
            customer_id=registration.customer_id,
            customer_name=registration.customer.full_name,
            seat_number=registration.seat_number,
            wheelchair_required=registration.requires_wheelchair,
            is_regular=True,
        ))

    counted = Q(booking_status__in=CONFIRMED_STATUSES)
    if not confirmed_only:
        counted |= HOLDING_PENDING
    bookings = Booking.objects.filter(
        counted,
        instance__timetable=timetable,
        instance__service_date=service_date,
    ).select_related('customer').order_by('id')

    duplicates = []
    for booking in bookings:
        if booking.customer_id in regular_customers:
            duplicates.append(DuplicateBooking(
                booking_id=booking.pk,
                booking_reference=booking.reference,
                customer_id=booking.customer_id,
            ))
            continue
        entries.append(PassengerEntry(
            reference=f"booking:{booking.reference}",
            customer_id=booking.customer_id,
            customer_name=booking.customer.full_name,
            seat_number=booking.seat_number,
            wheelchair_required=booking.wheelchair_required,
            is_regular=False,
            booking_id=booking.pk,
            passenger_tier=booking.passenger_tier,
        ))

    return Occupancy(
        timetable_id=timetable.pk,
        service_date=service_date,
        entries=tuple(entries),
        duplicates=tuple(duplicates),
    )
