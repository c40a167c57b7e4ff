"""
Fare snapshot and booking lifecycle manager.

These are the mutating entry points of the engine. Booking state moves

    pending --confirm--> confirmed --complete--> completed
                         confirmed --no show--> no_show
    pending|confirmed --cancel--> cancelled

and payment state moves independently: unpaid -> paid -> refunded.
"""
import logging

from django.db import transaction
from django.utils import timezone

from cooperative.models import CooperativeMember
from passengers.models import Absence, RegularRegistration
from passengers.roster import registrations_on
from timetables.capacity import CapacityAllocator, instance_locks
from timetables.costing import trip_cost_for_timetable
from utils.errors import (
    CapacityExceeded, DuplicateRegistration, InvalidBookingTransition,
    OutsideBookingWindow, ServiceNotRunning,
)
from utils.mongo import log_booking_event
from .models import Booking, FareSnapshot
from .pricing import PricingConfig, compute_fare, quoted_fare, build_quote
from .resolver import resolve_occupancy, riding_as_regular

logger = logging.getLogger(__name__)

__all__ = [
    'resolve_occupancy', 'quote_fare', 'create_booking', 'confirm_booking', 'cancel_booking',
    'mark_completed', 'mark_no_show', 'expire_no_shows', 'release_pending_holds',
    'record_payment', 'refund_payment', 'report_absence', 'cancel_absence',
]


def _ensure_running(timetable, service_date):
    if not timetable.runs_on(service_date):
        raise ServiceNotRunning(
            f"{timetable.service_name} does not run on {service_date:%A %d %B %Y}.",
            timetable_id=timetable.pk, service_date=service_date
        )


def _get_booking(booking_id, for_update=False):
    queryset = Booking.objects.select_related('instance__timetable__route__rates', 'customer')
    if for_update:
        queryset = queryset.select_for_update()
    return queryset.get(pk=booking_id)


def _require_status(booking, allowed, action):
    if booking.booking_status not in allowed:
        raise InvalidBookingTransition(
            f"Cannot {action} a booking that is {booking.booking_status}.",
            booking=booking.reference, status=booking.booking_status
        )


def quote_fare(timetable, service_date, tier='adult', is_member=False, now=None):
    """
    Non-binding fare preview. The prospective passenger is counted as one of
    the riders, so the preview matches what confirming straight away would quote.
    """
    now = now or timezone.now()
    _ensure_running(timetable, service_date)
    occupancy = resolve_occupancy(timetable, service_date)
    return build_quote(
        PricingConfig.for_timetable(timetable),
        trip_cost_for_timetable(timetable),
        capacity=timetable.total_seats,
        current_passengers=occupancy.occupied_seats + 1,
        tier=tier,
        is_member=is_member,
        now=now,
        timetable_id=timetable.pk,
        service_date=service_date,
    )


def create_booking(timetable, service_date, customer, passenger_tier='adult', wheelchair_required=False,
                   seat_number='', created_by=None, now=None):
    """
    Reserve a seat and create a pending booking.

    Raises:
        ServiceNotRunning, DuplicateRegistration, OutsideBookingWindow, CapacityExceeded
    """
    now = now or timezone.now()
    _ensure_running(timetable, service_date)
    if passenger_tier == 'wheelchair':
        wheelchair_required = True

    allocator = CapacityAllocator(timetable, service_date)
    with allocator.lock():
        if riding_as_regular(customer, timetable, service_date):
            raise DuplicateRegistration(
                f"{customer} already rides this service as a regular passenger on {service_date}.",
                customer_id=customer.pk, timetable_id=timetable.pk
            )
        with transaction.atomic():
            reservation = allocator.try_reserve(wheelchair=wheelchair_required, now=now)
            booking = Booking.objects.create(
                instance=reservation.instance,
                customer=customer,
                passenger_tier=passenger_tier,
                seat_number=seat_number or '',
                wheelchair_required=wheelchair_required,
                is_member=CooperativeMember.objects.is_active_member(customer, service_date),
                reservation=reservation,
                created_by=created_by,
            )

    logger.info("Booking %s created for %s on %s", booking.reference, customer, reservation.instance)
    log_booking_event('created', booking, user_id=getattr(created_by, 'pk', None))
    return booking


def confirm_booking(booking_id, now=None):
    """
    Quote against the current roster, write the fare snapshot and confirm.

    The reservation, the occupancy read and the snapshot write all happen
    inside the instance's atomic section, so the quote always reflects the
    occupancy at the moment the seat is held.
    """
    now = now or timezone.now()
    booking = _get_booking(booking_id)
    if booking.booking_status == Booking.CONFIRMED:
        return booking
    _require_status(booking, (Booking.PENDING,), 'confirm')

    instance = booking.instance
    timetable = instance.timetable
    allocator = CapacityAllocator(timetable, instance.service_date)
    config = PricingConfig.for_timetable(timetable)
    trip_cost = trip_cost_for_timetable(timetable)

    with allocator.lock():
        with transaction.atomic():
            booking = _get_booking(booking_id, for_update=True)
            _require_status(booking, (Booking.PENDING,), 'confirm')
            if not booking.holds_seat:
                try:
                    booking.reservation = allocator.try_reserve(wheelchair=booking.wheelchair_required, now=now)
                except OutsideBookingWindow as exc:
                    raise CapacityExceeded(
                        "The seat held for this booking was released and can no longer be re-acquired.",
                        booking=booking.reference
                    ) from exc
                booking.save(update_fields=['reservation'])

            occupancy = resolve_occupancy(timetable, instance.service_date)
            if not occupancy.includes_booking(booking.pk):
                raise DuplicateRegistration(
                    f"{booking.customer} already rides this service as a regular passenger.",
                    booking=booking.reference
                )

            current = occupancy.occupied_seats
            structure = compute_fare(
                config, trip_cost.total_trip_cost, current, max(0, timetable.total_seats - current)
            )
            fare = quoted_fare(structure, booking.passenger_tier, booking.is_member,
                               config.non_member_surcharge_percent)
            FareSnapshot.objects.create(
                booking=booking,
                pricing_model=config.pricing_model,
                trip_cost_breakdown=trip_cost.as_dict(),
                total_trip_cost=structure.total_trip_cost,
                occupancy_at_quote=structure.current_passengers,
                available_seats_at_quote=structure.available_seats,
                passenger_tier=booking.passenger_tier,
                is_member=booking.is_member,
                quoted_fare=fare,
                current_fare_per_person=structure.current_fare_per_person,
                break_even_passengers=structure.break_even_passengers,
                break_even_fare_per_person=structure.break_even_fare_per_person,
                fare_at_capacity=structure.fare_at_capacity,
                surplus_amount_if_any=structure.projected_surplus,
            )
            booking.booking_status = Booking.CONFIRMED
            booking.confirmed_at = now
            booking.save(update_fields=['reservation', 'booking_status', 'confirmed_at'])

    logger.info("Booking %s confirmed at £%s (occupancy %s)", booking.reference, fare, current)
    log_booking_event('confirmed', booking, quoted_fare=str(fare), occupancy=current)
    return booking


def cancel_booking(booking_id, now=None):
    """
    Cancel a pending or confirmed booking and give its seat back.
    Other passengers' snapshots are never revised.

    Raises:
        OutsideBookingWindow: the service is past its cutoff, whether or not
            the booking still holds a seat.
    """
    now = now or timezone.now()
    booking = _get_booking(booking_id)
    _require_status(booking, (Booking.PENDING, Booking.CONFIRMED), 'cancel')
    allocator = CapacityAllocator(booking.instance.timetable, booking.instance.service_date)

    with allocator.lock():
        with transaction.atomic():
            booking = _get_booking(booking_id, for_update=True)
            _require_status(booking, (Booking.PENDING, Booking.CONFIRMED), 'cancel')
            allocator.check_cutoff(now)
            if booking.reservation_id is not None:
                allocator.release(booking.reservation, now=now)
            booking.booking_status = Booking.CANCELLED
            booking.cancelled_at = now
            booking.save(update_fields=['booking_status', 'cancelled_at'])

    logger.info("Booking %s cancelled", booking.reference)
    log_booking_event('cancelled', booking)
    return booking


def mark_completed(booking_id, now=None):
    """Driver marked the passenger as carried."""
    now = now or timezone.now()
    with transaction.atomic():
        booking = _get_booking(booking_id, for_update=True)
        _require_status(booking, (Booking.CONFIRMED,), 'complete')
        booking.booking_status = Booking.COMPLETED
        booking.completed_at = now
        booking.save(update_fields=['booking_status', 'completed_at'])
    log_booking_event('completed', booking)
    return booking


def mark_no_show(booking_id, now=None):
    now = now or timezone.now()
    with transaction.atomic():
        booking = _get_booking(booking_id, for_update=True)
        _require_status(booking, (Booking.CONFIRMED,), 'mark as no-show')
        if timezone.localdate(now) <= booking.instance.service_date:
            raise InvalidBookingTransition(
                "A booking can only be marked as a no-show once the service date has passed.",
                booking=booking.reference
            )
        booking.booking_status = Booking.NO_SHOW
        booking.save(update_fields=['booking_status'])
    logger.info("Booking %s marked as no-show", booking.reference)
    log_booking_event('no_show', booking)
    return booking


def expire_no_shows(timetable, service_date, now=None):
    """Mark every still-confirmed booking on a past service as a no-show."""
    now = now or timezone.now()
    if timezone.localdate(now) <= service_date:
        return 0
    booking_ids = list(Booking.objects.filter(
        instance__timetable=timetable,
        instance__service_date=service_date,
        booking_status=Booking.CONFIRMED,
    ).values_list('id', flat=True))
    for booking_id in booking_ids:
        mark_no_show(booking_id, now=now)
    return len(booking_ids)


def release_pending_holds(timetable, service_date, now=None):
    """
    Drop the seats held by bookings still pending at the cutoff. The bookings
    stay pending; confirming one later has to win a seat again.
    """
    now = now or timezone.now()
    allocator = CapacityAllocator(timetable, service_date)
    released = 0
    pending = Booking.objects.filter(
        instance__timetable=timetable,
        instance__service_date=service_date,
        booking_status=Booking.PENDING,
        reservation__isnull=False, reservation__released_at__isnull=True,
    ).select_related('reservation')
    for booking in pending:
        allocator.release(booking.reservation, now=now, enforce_cutoff=False)
        released += 1
    if released:
        logger.info("Released %s pending holds on timetable %s for %s", released, timetable.pk, service_date)
    return released


def record_payment(booking_id, now=None):
    now = now or timezone.now()
    with transaction.atomic():
        booking = _get_booking(booking_id, for_update=True)
        _require_status(booking, (Booking.CONFIRMED, Booking.COMPLETED, Booking.NO_SHOW), 'take payment for')
        if booking.payment_status != Booking.UNPAID:
            raise InvalidBookingTransition(
                f"Payment is already {booking.payment_status}.", booking=booking.reference
            )
        booking.payment_status = Booking.PAID
        booking.paid_at = now
        booking.save(update_fields=['payment_status', 'paid_at'])
    log_booking_event('paid', booking)
    return booking


def refund_payment(booking_id, now=None):
    now = now or timezone.now()
    with transaction.atomic():
        booking = _get_booking(booking_id, for_update=True)
        if booking.payment_status != Booking.PAID:
            raise InvalidBookingTransition(
                f"Only paid bookings can be refunded (payment is {booking.payment_status}).",
                booking=booking.reference
            )
        booking.payment_status = Booking.REFUNDED
        booking.refunded_at = now
        booking.save(update_fields=['payment_status', 'refunded_at'])
    log_booking_event('refunded', booking)
    return booking


def report_absence(customer, absence_date, reason='other', timetable=None, reported_by='staff',
                   reported_by_user=None, reason_notes='', now=None):
    """
    Record that a regular passenger will not ride. Does not take the
    instance lock: the next roster read simply sees it.
    """
    now = now or timezone.now()
    absence, created = Absence.objects.get_or_create(
        customer=customer,
        absence_date=absence_date,
        timetable=timetable,
        status=Absence.STATUS_CONFIRMED,
        defaults={
            'reason': reason,
            'reason_notes': reason_notes,
            'reported_by': reported_by,
            'reported_by_user': reported_by_user,
            'reported_at': now,
        }
    )
    if created:
        logger.info("Absence reported for %s on %s (%s)", customer, absence_date, timetable or 'all services')
    return absence


def _affected_timetables(absence):
    if absence.timetable_id is not None:
        return [absence.timetable]
    registrations = RegularRegistration.objects.filter(
        customer_id=absence.customer_id, status=RegularRegistration.STATUS_ACTIVE
    ).select_related('timetable')
    timetables = {r.timetable_id: r.timetable for r in registrations if r.covers(absence.absence_date)}
    return [timetables[key] for key in sorted(timetables)]


def cancel_absence(absence_id, now=None):
    """
    Withdraw an absence, putting the regular passenger back on the roster.

    Raises:
        OutsideBookingWindow: an affected service is past its booking cutoff.
        CapacityExceeded: the seat was resold while the passenger was absent.
    """
    now = now or timezone.now()
    absence = Absence.objects.select_related('timetable').get(pk=absence_id)
    if absence.status == Absence.STATUS_CANCELLED:
        return absence

    timetables = _affected_timetables(absence)
    with instance_locks([(timetable.pk, absence.absence_date) for timetable in timetables]):
        with transaction.atomic():
            for timetable in timetables:
                allocator = CapacityAllocator(timetable, absence.absence_date)
                allocator.check_cutoff(now)
                registration = registrations_on(timetable, absence.absence_date).filter(
                    customer_id=absence.customer_id
                ).first()
                if registration is not None:
                    allocator.ensure_room(wheelchair=registration.requires_wheelchair)
            absence.status = Absence.STATUS_CANCELLED
            absence.cancelled_at = now
            absence.save(update_fields=['status', 'cancelled_at'])

    logger.info("Absence %s cancelled", absence.pk)
    return absence
