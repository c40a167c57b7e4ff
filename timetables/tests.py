"""
Tests for timetables app.
Tests cover: Trip cost model, Timetable validation, Capacity allocation, Concurrency scenarios.
"""
import random
import threading
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

from django.core.exceptions import ValidationError
from django.db import connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase

from passengers.models import Absence
from timetables import capacity
from timetables.capacity import CapacityAllocator, instance_lock, instance_locks
from timetables.costing import calculate_trip_cost, trip_cost_for_timetable, to_money
from timetables.models import ServiceInstance, SeatReservation, Timetable
from utils.errors import CapacityExceeded, InvalidRateConfig, OutsideBookingWindow
from utils.testing import make_customer, make_registration, make_timetable, upcoming


def rates(**overrides):
    values = {
        'driver_wage_per_hour': Decimal('20'),
        'fuel_per_mile': Decimal('0.50'),
        'depreciation_per_mile': Decimal('0.25'),
        'insurance_per_trip': Decimal('10'),
        'maintenance_per_mile': Decimal('0.25'),
        'overhead_per_trip': Decimal('10'),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


# =============================================================================
# UNIT TESTS - Trip cost model
# =============================================================================

class TripCostModelTests(TestCase):
    """Test trip cost derivation from a rate table."""

    def test_components_and_total(self):
        cost = calculate_trip_cost(Decimal('40'), Decimal('3'), rates())

        self.assertEqual(cost.driver_wages, Decimal('60.00'))
        self.assertEqual(cost.fuel_cost, Decimal('20.00'))
        self.assertEqual(cost.vehicle_depreciation, Decimal('10.00'))
        self.assertEqual(cost.insurance_allocation, Decimal('10.00'))
        self.assertEqual(cost.maintenance_allocation, Decimal('10.00'))
        self.assertEqual(cost.overhead_allocation, Decimal('10.00'))
        self.assertEqual(cost.total_trip_cost, Decimal('120.00'))

    def test_total_is_sum_of_rounded_components(self):
        """Each component rounds half up to the penny before summing."""
        cost = calculate_trip_cost(Decimal('10.01'), Decimal('1'), rates(
            driver_wage_per_hour=Decimal('0'), fuel_per_mile=Decimal('0.125'),
            depreciation_per_mile=Decimal('0.125'), insurance_per_trip=Decimal('0'),
            maintenance_per_mile=Decimal('0'), overhead_per_trip=Decimal('0'),
        ))

        # 10.01 * 0.125 = 1.25125 -> 1.25, twice
        self.assertEqual(cost.fuel_cost, Decimal('1.25'))
        self.assertEqual(cost.total_trip_cost, Decimal('2.50'))

    def test_negative_rate_rejected(self):
        with self.assertRaises(InvalidRateConfig) as ctx:
            calculate_trip_cost(Decimal('40'), Decimal('3'), rates(fuel_per_mile=Decimal('-0.10')))
        self.assertEqual(ctx.exception.context['field'], 'fuel_per_mile')

    def test_missing_rate_rejected(self):
        with self.assertRaises(InvalidRateConfig):
            calculate_trip_cost(Decimal('40'), Decimal('3'), rates(overhead_per_trip=None))

    def test_non_positive_distance_or_duration_rejected(self):
        with self.assertRaises(InvalidRateConfig):
            calculate_trip_cost(Decimal('0'), Decimal('3'), rates())
        with self.assertRaises(InvalidRateConfig):
            calculate_trip_cost(Decimal('40'), Decimal('-1'), rates())

    def test_breakdown_serialises_as_strings(self):
        data = calculate_trip_cost(Decimal('40'), Decimal('3'), rates()).as_dict()
        self.assertEqual(data['total_trip_cost'], '120.00')
        self.assertEqual(data['driver_wages'], '60.00')

    def test_trip_cost_for_timetable(self):
        timetable = make_timetable()
        self.assertEqual(trip_cost_for_timetable(timetable).total_trip_cost, Decimal('120.00'))

    def test_to_money_rounds_half_up(self):
        self.assertEqual(to_money(Decimal('2.345')), Decimal('2.35'))
        self.assertEqual(to_money(Decimal('2.344')), Decimal('2.34'))


# =============================================================================
# UNIT TESTS - Timetable validation
# =============================================================================

class TimetableValidationTests(TestCase):
    """Test configuration-time checks on timetables."""

    def test_cooperative_split_must_total_100(self):
        with self.assertRaises(ValidationError):
            make_timetable(
                pricing_model=Timetable.PRICING_COOPERATIVE,
                surplus_reserves_percent=Decimal('50'),
                surplus_business_percent=Decimal('20'),
                surplus_dividend_percent=Decimal('40'),
            )

    def test_cooperative_split_of_100_accepted(self):
        timetable = make_timetable(pricing_model=Timetable.PRICING_COOPERATIVE)
        self.assertEqual(timetable.surplus_split_total, Decimal('100'))

    def test_split_not_checked_for_dynamic_pricing(self):
        timetable = make_timetable(surplus_reserves_percent=Decimal('90'))
        self.assertEqual(timetable.pricing_model, Timetable.PRICING_DYNAMIC)

    def test_wheelchair_spaces_cannot_exceed_seats(self):
        with self.assertRaises(ValidationError):
            make_timetable(total_seats=4, wheelchair_spaces=5)

    def test_floor_cannot_exceed_ceiling(self):
        with self.assertRaises(ValidationError):
            make_timetable(minimum_fare_floor=Decimal('9.00'), maximum_acceptable_fare=Decimal('8.00'))

    def test_at_least_one_operating_day(self):
        with self.assertRaises(ValidationError):
            make_timetable(**{day: False for day in (
                'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday'
            )})

    def test_runs_on_respects_weekday_and_validity(self):
        service_date = upcoming()
        timetable = make_timetable(valid_until=service_date)

        self.assertTrue(timetable.runs_on(service_date))
        self.assertFalse(timetable.runs_on(service_date + timedelta(days=1)))
        self.assertFalse(timetable.runs_on(timetable.valid_from - timedelta(days=1)))

        day_name = service_date.strftime('%A').lower()
        setattr(timetable, day_name, False)
        self.assertFalse(timetable.runs_on(service_date))

    def test_inactive_timetable_does_not_run(self):
        timetable = make_timetable(is_active=False)
        self.assertFalse(timetable.runs_on(upcoming()))


# =============================================================================
# UNIT TESTS - Capacity allocator
# =============================================================================

class CapacityAllocatorTests(TestCase):
    """Test seat and wheelchair-space reservation bounds."""

    def setUp(self):
        self.service_date = upcoming()
        self.timetable = make_timetable(total_seats=4, wheelchair_spaces=2)
        self.allocator = CapacityAllocator(self.timetable, self.service_date)

    def test_reserve_until_full(self):
        for _ in range(4):
            self.allocator.try_reserve()

        with self.assertRaises(CapacityExceeded):
            self.allocator.try_reserve()

        instance = ServiceInstance.objects.get(timetable=self.timetable, service_date=self.service_date)
        self.assertEqual(instance.reserved_seats, 4)
        self.assertEqual(SeatReservation.objects.filter(instance=instance).count(), 4)

    def test_wheelchair_space_is_also_a_seat(self):
        self.allocator.try_reserve(wheelchair=True)

        snapshot = self.allocator.availability()
        self.assertEqual(snapshot.occupied_seats, 1)
        self.assertEqual(snapshot.occupied_wheelchair_seats, 1)
        self.assertEqual(snapshot.available_seats, 3)
        self.assertEqual(snapshot.available_wheelchair_spaces, 1)

    def test_wheelchair_spaces_bounded_separately(self):
        self.allocator.try_reserve(wheelchair=True)
        self.allocator.try_reserve(wheelchair=True)

        with self.assertRaises(CapacityExceeded):
            self.allocator.try_reserve(wheelchair=True)

        # Standard seats are still available
        self.allocator.try_reserve()
        self.assertEqual(self.allocator.availability().occupied_seats, 3)

    def test_failed_wheelchair_request_reserves_nothing(self):
        for _ in range(4):
            self.allocator.try_reserve()
        before = self.allocator.availability()

        with self.assertRaises(CapacityExceeded):
            self.allocator.try_reserve(wheelchair=True)

        self.assertEqual(self.allocator.availability(), before)

    def test_release_is_idempotent(self):
        reservation = self.allocator.try_reserve(wheelchair=True)

        self.allocator.release(reservation)
        self.allocator.release(reservation)

        snapshot = self.allocator.availability()
        self.assertEqual(snapshot.occupied_seats, 0)
        self.assertEqual(snapshot.occupied_wheelchair_seats, 0)

    def test_regular_riders_count_against_capacity(self):
        for _ in range(3):
            make_registration(make_customer(), self.timetable, self.service_date)

        self.allocator.try_reserve()
        with self.assertRaises(CapacityExceeded):
            self.allocator.try_reserve()

    def test_absent_regular_frees_their_seat(self):
        customers = [make_customer() for _ in range(4)]
        for customer in customers:
            make_registration(customer, self.timetable, self.service_date)
        Absence.objects.create(customer=customers[0], absence_date=self.service_date)

        self.allocator.try_reserve()
        self.assertEqual(self.allocator.availability().available_seats, 0)

    def test_reserve_before_booking_window_opens(self):
        allocator = CapacityAllocator(self.timetable, upcoming(self.timetable.booking_opens_days_advance + 1))
        with self.assertRaises(OutsideBookingWindow):
            allocator.try_reserve()

    def test_reserve_after_cutoff(self):
        after_cutoff = self.timetable.cutoff_at(self.service_date) + timedelta(minutes=1)
        with self.assertRaises(OutsideBookingWindow):
            self.allocator.try_reserve(now=after_cutoff)

    def test_release_after_cutoff_rejected(self):
        reservation = self.allocator.try_reserve()
        after_cutoff = self.timetable.cutoff_at(self.service_date) + timedelta(minutes=1)

        with self.assertRaises(OutsideBookingWindow):
            self.allocator.release(reservation, now=after_cutoff)

        # Housekeeping can still release past the cutoff
        self.allocator.release(reservation, now=after_cutoff, enforce_cutoff=False)
        self.assertEqual(self.allocator.availability().occupied_seats, 0)

    def test_randomised_reserve_release_stays_in_bounds(self):
        """Random reserve/release sequences never exceed either bound."""
        timetable = make_timetable(total_seats=6, wheelchair_spaces=2)
        allocator = CapacityAllocator(timetable, self.service_date)
        rng = random.Random(22)
        held = []

        for _ in range(150):
            if held and rng.random() < 0.4:
                allocator.release(held.pop(rng.randrange(len(held))))
            else:
                try:
                    held.append(allocator.try_reserve(wheelchair=rng.random() < 0.3))
                except CapacityExceeded:
                    pass

            snapshot = allocator.availability()
            self.assertLessEqual(snapshot.occupied_seats, 6)
            self.assertLessEqual(snapshot.occupied_wheelchair_seats, 2)
            self.assertEqual(snapshot.occupied_seats, len(held))
            self.assertEqual(snapshot.occupied_wheelchair_seats, sum(1 for r in held if r.wheelchair))


class InstanceLockTests(SimpleTestCase):
    """Instance locks come from a fixed pool."""

    def setUp(self):
        self.service_date = upcoming()

    def test_same_instance_same_lock(self):
        self.assertIs(
            capacity._lock_for(3, self.service_date),
            capacity._lock_for(3, self.service_date),
        )

    def test_lock_pool_does_not_grow(self):
        locks = {
            id(capacity._lock_for(timetable_id, self.service_date + timedelta(days=day)))
            for timetable_id in range(1, 11)
            for day in range(365)
        }
        self.assertLessEqual(len(locks), capacity.LOCK_STRIPES)
        self.assertEqual(len(capacity._instance_locks), capacity.LOCK_STRIPES)

    def test_several_instances_locked_together(self):
        keys = [(timetable_id, self.service_date) for timetable_id in range(1, 40)]

        with instance_locks(keys + keys):
            # Re-entering any of them from the same thread must not block
            with instance_lock(7, self.service_date):
                pass


# =============================================================================
# CONCURRENCY TESTS
# =============================================================================

class CapacityConcurrencyTests(TransactionTestCase):
    """
    Test concurrent reservations.
    Uses TransactionTestCase for proper transaction isolation.
    """

    def setUp(self):
        self.service_date = upcoming()
        self.timetable = make_timetable(total_seats=5, wheelchair_spaces=1)

    def test_concurrent_reservations_dont_oversell(self):
        """Eight riders race for five seats; exactly five win."""
        results = {'success': 0, 'failed': 0}
        errors = []
        results_lock = threading.Lock()

        def reserve(wheelchair):
            try:
                CapacityAllocator(self.timetable, self.service_date).try_reserve(wheelchair=wheelchair)
                with results_lock:
                    results['success'] += 1
            except CapacityExceeded:
                with results_lock:
                    results['failed'] += 1
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=reserve, args=(i % 4 == 0,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(results['success'], 5)
        self.assertEqual(results['failed'], 3)

        instance = ServiceInstance.objects.get(timetable=self.timetable, service_date=self.service_date)
        self.assertEqual(instance.reserved_seats, 5)
        self.assertLessEqual(instance.reserved_wheelchair_seats, 1)

    def test_optimistic_locking_rejects_stale_version(self):
        """
        A counter update carrying a stale version touches no rows.
        """
        instance = CapacityAllocator(self.timetable, self.service_date).get_instance()
        initial_version = instance.version

        updated = ServiceInstance.objects.filter(
            id=instance.id,
            version=initial_version
        ).update(
            reserved_seats=2,
            version=initial_version + 1
        )
        self.assertEqual(updated, 1)

        stale_update = ServiceInstance.objects.filter(
            id=instance.id,
            version=initial_version
        ).update(
            reserved_seats=4,
            version=initial_version + 1
        )
        self.assertEqual(stale_update, 0)

        instance.refresh_from_db()
        self.assertEqual(instance.reserved_seats, 2)
        self.assertEqual(instance.version, initial_version + 1)
