"""
Seat and wheelchair capacity allocator.

The allocator is the only writer of ServiceInstance reservation counters.
Reservations for one (timetable, service_date) pair are serialised by one of
a fixed set of process-local locks, and the counter update itself is a
version-guarded conditional UPDATE inside a select_for_update() transaction,
so two concurrent requests can never both take the last seat.
"""
import logging
import threading
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from passengers.roster import regular_load
from utils.errors import CapacityExceeded, OutsideBookingWindow
from .models import ServiceInstance, SeatReservation

logger = logging.getLogger(__name__)

# Instances hash onto a fixed number of stripes; two instances may share one
LOCK_STRIPES = 256
_instance_locks = tuple(threading.RLock() for _ in range(LOCK_STRIPES))


def _stripe(timetable_id, service_date):
    return hash((timetable_id, service_date)) % LOCK_STRIPES


def _lock_for(timetable_id, service_date):
    return _instance_locks[_stripe(timetable_id, service_date)]


@contextmanager
def instance_lock(timetable_id, service_date):
    """Hold the atomic section for one service instance."""
    with _lock_for(timetable_id, service_date):
        yield


@contextmanager
def instance_locks(keys):
    """Hold several instances' atomic sections, taking their stripes in a fixed order."""
    with ExitStack() as stack:
        for stripe in sorted({_stripe(timetable_id, service_date) for timetable_id, service_date in keys}):
            stack.enter_context(_instance_locks[stripe])
        yield


@dataclass(frozen=True)
class CapacitySnapshot:
    total_seats: int
    wheelchair_spaces: int
    occupied_seats: int
    occupied_wheelchair_seats: int

    @property
    def available_seats(self):
        return max(0, self.total_seats - self.occupied_seats)

    @property
    def available_wheelchair_spaces(self):
        return max(0, min(self.wheelchair_spaces - self.occupied_wheelchair_seats, self.available_seats))

    def as_dict(self):
        return {
            'total_seats': self.total_seats,
            'wheelchair_spaces': self.wheelchair_spaces,
            'occupied_seats': self.occupied_seats,
            'occupied_wheelchair_seats': self.occupied_wheelchair_seats,
            'available_seats': self.available_seats,
            'available_wheelchair_spaces': self.available_wheelchair_spaces,
        }


class CapacityAllocator:
    """Reserve and release seats on one service instance."""

    def __init__(self, timetable, service_date, clock=None):
        self.timetable = timetable
        self.service_date = service_date
        self.clock = clock or timezone.now

    def lock(self):
        return instance_lock(self.timetable.pk, self.service_date)

    def get_instance(self):
        instance, _ = ServiceInstance.objects.get_or_create(
            timetable=self.timetable, service_date=self.service_date
        )
        return instance

    def check_cutoff(self, now=None):
        now = now or self.clock()
        cutoff = self.timetable.cutoff_at(self.service_date)
        if now >= cutoff:
            raise OutsideBookingWindow(
                f"Changes to this service closed {self.timetable.booking_cutoff_hours} hours before departure.",
                service_date=self.service_date, cutoff=cutoff.isoformat()
            )

    def check_booking_window(self, now=None):
        now = now or self.clock()
        days_ahead = (self.service_date - timezone.localdate(now)).days
        if days_ahead > self.timetable.booking_opens_days_advance:
            raise OutsideBookingWindow(
                f"Bookings open {self.timetable.booking_opens_days_advance} days before the service.",
                service_date=self.service_date, days_ahead=days_ahead
            )
        self.check_cutoff(now)

    def _occupancy(self, instance):
        load = regular_load(self.timetable, self.service_date)
        return CapacitySnapshot(
            total_seats=self.timetable.total_seats,
            wheelchair_spaces=self.timetable.wheelchair_spaces,
            occupied_seats=load.seats + instance.reserved_seats,
            occupied_wheelchair_seats=load.wheelchair_seats + instance.reserved_wheelchair_seats,
        )

    def availability(self):
        """Current occupancy as counted by the reservation gate."""
        return self._occupancy(self.get_instance())

    def ensure_room(self, wheelchair=False, snapshot=None):
        """Raise CapacityExceeded unless one more rider fits."""
        snapshot = snapshot or self.availability()
        if snapshot.occupied_seats + 1 > snapshot.total_seats:
            raise CapacityExceeded(
                f"All {snapshot.total_seats} seats on this service are taken.",
                service_date=self.service_date
            )
        if wheelchair and snapshot.occupied_wheelchair_seats + 1 > snapshot.wheelchair_spaces:
            raise CapacityExceeded(
                f"All {snapshot.wheelchair_spaces} wheelchair spaces on this service are taken.",
                service_date=self.service_date
            )

    def try_reserve(self, wheelchair=False, now=None):
        """
        Take one seat (and one wheelchair space if requested) as a single unit.

        Raises:
            OutsideBookingWindow: bookings are not open yet or have closed.
            CapacityExceeded: either bound would be exceeded. Nothing is reserved.
        """
        now = now or self.clock()
        self.check_booking_window(now)

        with self.lock():
            with transaction.atomic():
                instance = self.get_instance()
                # Re-fetch with lock to prevent race conditions across processes
                instance = ServiceInstance.objects.select_for_update().get(pk=instance.pk)
                self.ensure_room(wheelchair=wheelchair, snapshot=self._occupancy(instance))

                updated = ServiceInstance.objects.filter(
                    pk=instance.pk,
                    version=instance.version
                ).update(
                    reserved_seats=F('reserved_seats') + 1,
                    reserved_wheelchair_seats=F('reserved_wheelchair_seats') + (1 if wheelchair else 0),
                    version=F('version') + 1,
                    updated_at=now,
                )
                if updated == 0:
                    raise CapacityExceeded(
                        "Seat availability changed during booking. Please try again.",
                        service_date=self.service_date
                    )

                reservation = SeatReservation.objects.create(
                    instance=instance, wheelchair=wheelchair, reserved_at=now
                )

        logger.info(
            "Reserved %s on timetable %s for %s (reservation %s)",
            'wheelchair space' if wheelchair else 'seat',
            self.timetable.pk, self.service_date, reservation.pk
        )
        return reservation

    def release(self, reservation, now=None, enforce_cutoff=True):
        """
        Give a reservation's seat back. Releasing twice is a no-op.

        Raises:
            OutsideBookingWindow: the cutoff has passed and enforce_cutoff is set.
        """
        now = now or self.clock()
        with self.lock():
            with transaction.atomic():
                reservation = SeatReservation.objects.select_for_update().get(pk=reservation.pk)
                if reservation.released_at is not None:
                    return reservation
                if enforce_cutoff:
                    self.check_cutoff(now)

                instance = ServiceInstance.objects.select_for_update().get(pk=reservation.instance_id)
                updated = ServiceInstance.objects.filter(
                    pk=instance.pk,
                    version=instance.version,
                    reserved_seats__gt=0,
                ).update(
                    reserved_seats=F('reserved_seats') - 1,
                    reserved_wheelchair_seats=F('reserved_wheelchair_seats') - (1 if reservation.wheelchair else 0),
                    version=F('version') + 1,
                    updated_at=now,
                )
                if updated == 0:
                    raise CapacityExceeded(
                        "Seat counters changed during release. Please try again.",
                        service_date=self.service_date
                    )

                reservation.released_at = now
                reservation.save(update_fields=['released_at'])

        logger.info(
            "Released reservation %s on timetable %s for %s",
            reservation.pk, self.timetable.pk, self.service_date
        )
        return reservation
