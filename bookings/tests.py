"""
Comprehensive tests for bookings app.
Tests cover: Solidarity pricing, Occupancy resolution, Booking lifecycle,
Fare snapshot immutability, Booking and quote APIs.
"""
from decimal import Decimal
from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APITestCase
from rest_framework import status

from bookings import lifecycle
from bookings.models import Booking, FareSnapshot, generate_reference
from bookings.pricing import (
    PricingConfig, build_quote, break_even_passengers, community_impact_message,
    compute_fare, fare_ladder, fare_reduction_message, quoted_fare, surplus_amount,
)
from bookings.resolver import resolve_occupancy
from cooperative.models import CooperativeMember, SurplusAllocation
from timetables.capacity import CapacityAllocator
from timetables.costing import trip_cost_for_timetable
from utils.errors import (
    CapacityExceeded, DuplicateRegistration, InvalidBookingTransition, InvalidRateConfig,
    OutsideBookingWindow, ServiceNotRunning, SnapshotImmutableViolation,
)
from utils.testing import (
    make_customer, make_registration, make_timetable, make_user, upcoming,
)

CAP_AND_FLOOR = dict(minimum_fare_floor=Decimal('2.00'), maximum_acceptable_fare=Decimal('8.00'))


def dynamic_config(**overrides):
    return PricingConfig(pricing_model='dynamic', **{**CAP_AND_FLOOR, **overrides})


# =============================================================================
# UNIT TESTS - Models
# =============================================================================

class ReferenceGenerationTests(SimpleTestCase):
    """Test booking reference generation utility."""

    def test_reference_length(self):
        self.assertEqual(len(generate_reference()), 10)

    def test_reference_alphanumeric(self):
        reference = generate_reference()
        self.assertTrue(reference.isalnum())
        self.assertEqual(reference, reference.upper())

    def test_reference_uniqueness(self):
        references = set(generate_reference() for _ in range(100))
        self.assertEqual(len(references), 100)


# =============================================================================
# UNIT TESTS - Pricing
# =============================================================================

class SolidarityFareTests(SimpleTestCase):
    """Test the fare calculator."""

    def test_break_even_example(self):
        """£120 trip, £2-£8 bounds, 10 riders and 6 seats left."""
        structure = compute_fare(dynamic_config(), Decimal('120.00'), 10, 6)

        self.assertEqual(structure.break_even_passengers, 15)
        self.assertEqual(structure.break_even_fare_per_person, Decimal('8.00'))
        self.assertEqual(structure.current_fare_per_person, Decimal('8.00'))
        self.assertEqual(structure.fare_at_capacity, Decimal('7.50'))
        self.assertEqual(structure.savings_vs_break_even, Decimal('0.00'))
        self.assertEqual(structure.projected_surplus, Decimal('0.00'))
        self.assertEqual(quoted_fare(structure, 'adult', False), Decimal('8.00'))

    def test_fare_never_rises_with_occupancy(self):
        config = dynamic_config()
        fares = [
            compute_fare(config, Decimal('120.00'), riders, 16 - riders).current_fare_per_person
            for riders in range(0, 17)
        ]
        for earlier, later in zip(fares, fares[1:]):
            self.assertGreaterEqual(earlier, later)
        self.assertEqual(fares[-1], Decimal('7.50'))

    def test_fare_held_at_floor(self):
        structure = compute_fare(dynamic_config(), Decimal('20.00'), 16, 0)

        self.assertEqual(structure.current_fare_per_person, Decimal('2.00'))
        self.assertEqual(structure.projected_surplus, Decimal('12.00'))

    def test_fixed_model_ignores_occupancy(self):
        config = PricingConfig(pricing_model='fixed', **CAP_AND_FLOOR)

        alone = compute_fare(config, Decimal('60.00'), 1, 15)
        full = compute_fare(config, Decimal('60.00'), 16, 0)

        self.assertEqual(alone.break_even_passengers, 8)
        self.assertEqual(alone.current_fare_per_person, Decimal('7.50'))
        self.assertEqual(full.current_fare_per_person, Decimal('7.50'))

    def test_tier_multipliers(self):
        structure = compute_fare(dynamic_config(), Decimal('120.00'), 10, 6)

        self.assertEqual(quoted_fare(structure, 'child', True), Decimal('4.00'))
        self.assertEqual(quoted_fare(structure, 'concessionary', True), Decimal('4.00'))
        self.assertEqual(quoted_fare(structure, 'wheelchair', True), Decimal('8.00'))
        self.assertEqual(quoted_fare(structure, 'companion', False, Decimal('10')), Decimal('0.00'))

    def test_non_member_surcharge(self):
        structure = compute_fare(dynamic_config(), Decimal('120.00'), 10, 6)

        self.assertEqual(quoted_fare(structure, 'adult', False, Decimal('10')), Decimal('8.80'))
        self.assertEqual(quoted_fare(structure, 'adult', True, Decimal('10')), Decimal('8.00'))

    def test_unknown_tier_rejected(self):
        structure = compute_fare(dynamic_config(), Decimal('120.00'), 10, 6)
        with self.assertRaises(ValueError):
            quoted_fare(structure, 'pensioner', False)

    def test_invalid_configuration(self):
        with self.assertRaises(InvalidRateConfig):
            compute_fare(PricingConfig(pricing_model='auction', **CAP_AND_FLOOR), Decimal('120'), 1, 1)
        with self.assertRaises(InvalidRateConfig):
            compute_fare(
                dynamic_config(minimum_fare_floor=Decimal('9.00')), Decimal('120'), 1, 1
            )
        with self.assertRaises(InvalidRateConfig):
            break_even_passengers(Decimal('120'), Decimal('0'))

    def test_surplus_amount(self):
        self.assertEqual(surplus_amount(['8.00'] * 16, Decimal('120.00')), Decimal('8.00'))
        self.assertEqual(surplus_amount(['8.00'] * 15, Decimal('120.00')), Decimal('0.00'))
        self.assertEqual(surplus_amount([], Decimal('120.00')), Decimal('0.00'))

    def test_fare_ladder(self):
        ladder = fare_ladder(dynamic_config(), Decimal('120.00'), 16, 10)
        steps = {step.passenger_count: step for step in ladder}

        self.assertEqual(sorted(steps), [1, 2, 4, 6, 8, 10, 12, 14, 16])
        self.assertTrue(steps[10].is_current)
        self.assertFalse(steps[10].is_break_even)
        self.assertEqual(steps[16].fare_per_passenger, Decimal('7.50'))
        self.assertEqual(steps[16].total_revenue, Decimal('120.00'))
        self.assertTrue(steps[16].is_break_even)

    def test_fare_reduction_message(self):
        config = dynamic_config()

        structure = compute_fare(config, Decimal('120.00'), 15, 1)
        self.assertEqual(
            fare_reduction_message(config, structure, 'adult'),
            "Book now! Your fare drops to £7.50 when one more passenger joins"
        )
        self.assertIn('£3.75', fare_reduction_message(config, structure, 'child'))

        # One more rider still pays the ceiling
        structure = compute_fare(config, Decimal('120.00'), 10, 6)
        self.assertIsNone(fare_reduction_message(config, structure, 'adult'))

    def test_community_impact_message(self):
        cooperative = PricingConfig(pricing_model='cooperative', **CAP_AND_FLOOR)
        structure = compute_fare(cooperative, Decimal('20.00'), 16, 0)
        self.assertEqual(
            community_impact_message(cooperative, structure),
            "This trip is generating £2.40 for the cooperative commonwealth"
        )

        dynamic = dynamic_config()
        structure = compute_fare(dynamic, Decimal('20.00'), 16, 0)
        self.assertIn('£12.00', community_impact_message(dynamic, structure))

        structure = compute_fare(dynamic, Decimal('120.00'), 10, 6)
        self.assertIsNone(community_impact_message(dynamic, structure))


class FareQuoteTests(TestCase):
    """Test quotes built against a real timetable."""

    def setUp(self):
        self.timetable = make_timetable()
        self.service_date = upcoming()

    def test_quote_valid_for_fifteen_minutes(self):
        now = timezone.now()
        quote = build_quote(
            PricingConfig.for_timetable(self.timetable), trip_cost_for_timetable(self.timetable),
            capacity=16, current_passengers=10, tier='adult', is_member=False, now=now,
        )
        self.assertEqual(quote.valid_until, now + timedelta(minutes=15))
        self.assertEqual(quote.quoted_fare, Decimal('8.00'))
        self.assertEqual(quote.trip_cost.total_trip_cost, Decimal('120.00'))

    def test_quote_counts_prospective_passenger(self):
        for _ in range(15):
            lifecycle.create_booking(self.timetable, self.service_date, make_customer())

        quote = lifecycle.quote_fare(self.timetable, self.service_date)

        self.assertEqual(quote.fare.current_passengers, 16)
        self.assertEqual(quote.quoted_fare, Decimal('7.50'))

    def test_quote_on_non_running_date(self):
        timetable = make_timetable(valid_until=upcoming(3))
        with self.assertRaises(ServiceNotRunning):
            lifecycle.quote_fare(timetable, upcoming(7))


# =============================================================================
# UNIT TESTS - Occupancy resolution
# =============================================================================

class OccupancyResolverTests(TestCase):
    """Test the merged roster of regulars and bookings."""

    def setUp(self):
        self.timetable = make_timetable()
        self.service_date = upcoming()
        self.regular_b = make_customer('Bryn')
        self.regular_a = make_customer('Alys')
        make_registration(self.regular_b, self.timetable, self.service_date, seat_number='2A')
        make_registration(self.regular_a, self.timetable, self.service_date, seat_number='1A')

    def test_regulars_first_then_bookings(self):
        first = lifecycle.create_booking(self.timetable, self.service_date, make_customer())
        second = lifecycle.create_booking(self.timetable, self.service_date, make_customer())

        occupancy = resolve_occupancy(self.timetable, self.service_date)

        self.assertEqual(occupancy.occupied_seats, 4)
        self.assertEqual(
            [entry.customer_id for entry in occupancy.entries],
            [self.regular_a.pk, self.regular_b.pk, first.customer_id, second.customer_id]
        )
        self.assertTrue(occupancy.entries[0].is_regular)
        self.assertFalse(occupancy.entries[2].is_regular)

    def test_resolution_is_repeatable(self):
        lifecycle.create_booking(self.timetable, self.service_date, make_customer())

        self.assertEqual(
            resolve_occupancy(self.timetable, self.service_date),
            resolve_occupancy(self.timetable, self.service_date)
        )

    def test_booking_by_regular_reported_as_duplicate(self):
        instance = CapacityAllocator(self.timetable, self.service_date).get_instance()
        duplicate = Booking.objects.create(
            instance=instance, customer=self.regular_a, booking_status=Booking.CONFIRMED
        )

        occupancy = resolve_occupancy(self.timetable, self.service_date)

        self.assertEqual(occupancy.occupied_seats, 2)
        self.assertEqual([d.booking_id for d in occupancy.duplicates], [duplicate.pk])
        self.assertFalse(occupancy.includes_booking(duplicate.pk))

    def test_cancelled_and_pending_bookings(self):
        pending = lifecycle.create_booking(self.timetable, self.service_date, make_customer())
        cancelled = lifecycle.create_booking(self.timetable, self.service_date, make_customer())
        lifecycle.cancel_booking(cancelled.pk)

        occupancy = resolve_occupancy(self.timetable, self.service_date)
        self.assertTrue(occupancy.includes_booking(pending.pk))
        self.assertFalse(occupancy.includes_booking(cancelled.pk))

        confirmed_only = resolve_occupancy(self.timetable, self.service_date, confirmed_only=True)
        self.assertFalse(confirmed_only.includes_booking(pending.pk))
        self.assertEqual(confirmed_only.occupied_seats, 2)


# =============================================================================
# UNIT TESTS - Booking lifecycle
# =============================================================================

class BookingLifecycleTests(TestCase):
    """Test booking state changes and fare snapshots."""

    def setUp(self):
        self.timetable = make_timetable()
        self.service_date = upcoming()
        self.customer = make_customer()

    def book(self, customer=None, **kwargs):
        return lifecycle.create_booking(self.timetable, self.service_date, customer or make_customer(), **kwargs)

    def test_create_booking_holds_seat(self):
        booking = self.book(self.customer)

        self.assertEqual(booking.booking_status, Booking.PENDING)
        self.assertTrue(booking.holds_seat)
        self.assertEqual(booking.instance.reserved_seats, 1)
        self.assertFalse(FareSnapshot.objects.filter(booking=booking).exists())

    def test_wheelchair_tier_takes_wheelchair_space(self):
        booking = self.book(passenger_tier='wheelchair')
        self.assertTrue(booking.wheelchair_required)
        self.assertTrue(booking.reservation.wheelchair)

    def test_confirm_writes_snapshot(self):
        booking = self.book(self.customer)
        booking = lifecycle.confirm_booking(booking.pk)

        snapshot = booking.fare_snapshot
        self.assertEqual(booking.booking_status, Booking.CONFIRMED)
        self.assertEqual(snapshot.quoted_fare, Decimal('8.00'))
        self.assertEqual(snapshot.occupancy_at_quote, 1)
        self.assertEqual(snapshot.total_trip_cost, Decimal('120.00'))
        self.assertEqual(snapshot.trip_cost_breakdown['total_trip_cost'], '120.00')

    def test_confirm_is_idempotent(self):
        booking = self.book()
        lifecycle.confirm_booking(booking.pk)
        lifecycle.confirm_booking(booking.pk)

        self.assertEqual(FareSnapshot.objects.filter(booking=booking).count(), 1)

    def test_later_changes_do_not_touch_snapshot(self):
        booking = lifecycle.confirm_booking(self.book().pk)
        before = FareSnapshot.objects.get(booking=booking)

        others = [self.book() for _ in range(15)]
        for other in others[:5]:
            lifecycle.confirm_booking(other.pk)
        lifecycle.cancel_booking(others[0].pk)

        after = FareSnapshot.objects.get(booking=booking)
        self.assertEqual(after.quoted_fare, before.quoted_fare)
        self.assertEqual(after.occupancy_at_quote, before.occupancy_at_quote)
        self.assertEqual(after.created_at, before.created_at)

    def test_full_occupancy_cheaper_fare(self):
        bookings = [self.book() for _ in range(16)]
        last = lifecycle.confirm_booking(bookings[-1].pk)
        self.assertEqual(last.fare_snapshot.quoted_fare, Decimal('7.50'))

    def test_seventeenth_booking_refused(self):
        for _ in range(16):
            self.book()

        with self.assertRaises(CapacityExceeded):
            self.book()
        self.assertEqual(
            Booking.objects.filter(instance__timetable=self.timetable).count(), 16
        )

    def test_service_not_running(self):
        timetable = make_timetable(valid_until=upcoming(3))
        with self.assertRaises(ServiceNotRunning):
            lifecycle.create_booking(timetable, upcoming(7), self.customer)

    def test_regular_cannot_book_own_service(self):
        make_registration(self.customer, self.timetable, self.service_date)
        with self.assertRaises(DuplicateRegistration):
            self.book(self.customer)

    def test_confirm_refused_once_customer_became_regular(self):
        booking = self.book(self.customer)
        make_registration(self.customer, self.timetable, self.service_date)

        with self.assertRaises(DuplicateRegistration):
            lifecycle.confirm_booking(booking.pk)
        booking.refresh_from_db()
        self.assertEqual(booking.booking_status, Booking.PENDING)

    def test_cancel_releases_seat(self):
        booking = self.book()
        lifecycle.cancel_booking(booking.pk)

        booking.refresh_from_db()
        booking.instance.refresh_from_db()
        self.assertEqual(booking.booking_status, Booking.CANCELLED)
        self.assertEqual(booking.instance.reserved_seats, 0)

        with self.assertRaises(InvalidBookingTransition):
            lifecycle.cancel_booking(booking.pk)

    def test_cancel_inside_cutoff_refused(self):
        booking = self.book()
        after_cutoff = self.timetable.cutoff_at(self.service_date) + timedelta(minutes=1)

        with self.assertRaises(OutsideBookingWindow):
            lifecycle.cancel_booking(booking.pk, now=after_cutoff)
        booking.refresh_from_db()
        self.assertEqual(booking.booking_status, Booking.PENDING)

    def test_complete_and_no_show(self):
        carried = lifecycle.confirm_booking(self.book().pk)
        missing = lifecycle.confirm_booking(self.book().pk)
        next_day = self.timetable.departure_at(self.service_date) + timedelta(days=1)

        self.assertEqual(lifecycle.mark_completed(carried.pk).booking_status, Booking.COMPLETED)

        with self.assertRaises(InvalidBookingTransition):
            lifecycle.mark_no_show(missing.pk)
        self.assertEqual(lifecycle.expire_no_shows(self.timetable, self.service_date, now=next_day), 1)

        missing.refresh_from_db()
        self.assertEqual(missing.booking_status, Booking.NO_SHOW)

    def test_pending_booking_cannot_complete(self):
        booking = self.book()
        with self.assertRaises(InvalidBookingTransition):
            lifecycle.mark_completed(booking.pk)

    def test_payments(self):
        booking = self.book()
        with self.assertRaises(InvalidBookingTransition):
            lifecycle.record_payment(booking.pk)

        lifecycle.confirm_booking(booking.pk)
        with self.assertRaises(InvalidBookingTransition):
            lifecycle.refund_payment(booking.pk)

        self.assertEqual(lifecycle.record_payment(booking.pk).payment_status, Booking.PAID)
        with self.assertRaises(InvalidBookingTransition):
            lifecycle.record_payment(booking.pk)
        self.assertEqual(lifecycle.refund_payment(booking.pk).payment_status, Booking.REFUNDED)

    def test_released_hold_reacquired_on_confirm(self):
        booking = self.book()
        self.assertEqual(lifecycle.release_pending_holds(self.timetable, self.service_date), 1)

        booking.refresh_from_db()
        self.assertFalse(booking.holds_seat)

        booking = lifecycle.confirm_booking(booking.pk)
        self.assertTrue(booking.holds_seat)
        self.assertEqual(booking.booking_status, Booking.CONFIRMED)

    def test_released_hold_lost_when_service_fills(self):
        timetable = make_timetable(total_seats=1, wheelchair_spaces=0)
        booking = lifecycle.create_booking(timetable, self.service_date, make_customer())
        lifecycle.release_pending_holds(timetable, self.service_date)
        lifecycle.create_booking(timetable, self.service_date, make_customer())

        with self.assertRaises(CapacityExceeded):
            lifecycle.confirm_booking(booking.pk)

        occupancy = resolve_occupancy(timetable, self.service_date)
        self.assertLessEqual(occupancy.occupied_seats, timetable.total_seats)
        self.assertFalse(occupancy.includes_booking(booking.pk))

    def test_released_holds_leave_roster_within_capacity(self):
        timetable = make_timetable(total_seats=2, wheelchair_spaces=0)
        stale = [lifecycle.create_booking(timetable, self.service_date, make_customer()) for _ in range(2)]
        self.assertEqual(lifecycle.release_pending_holds(timetable, self.service_date), 2)
        fresh = [lifecycle.create_booking(timetable, self.service_date, make_customer()) for _ in range(2)]

        occupancy = resolve_occupancy(timetable, self.service_date)
        self.assertEqual(occupancy.occupied_seats, 2)
        self.assertLessEqual(occupancy.occupied_seats, timetable.total_seats)
        self.assertEqual(
            [entry.booking_id for entry in occupancy.entries], [booking.pk for booking in fresh]
        )
        self.assertFalse(any(occupancy.includes_booking(booking.pk) for booking in stale))

        # Fares are quoted against the real roster, not the stale holds
        confirmed = lifecycle.confirm_booking(fresh[0].pk)
        self.assertEqual(confirmed.fare_snapshot.occupancy_at_quote, 2)
        self.assertEqual(confirmed.fare_snapshot.available_seats_at_quote, 0)

    def test_cancel_released_hold_after_cutoff_refused(self):
        booking = self.book()
        after_cutoff = self.timetable.cutoff_at(self.service_date) + timedelta(minutes=1)
        lifecycle.release_pending_holds(self.timetable, self.service_date, now=after_cutoff)

        with self.assertRaises(OutsideBookingWindow):
            lifecycle.cancel_booking(booking.pk, now=after_cutoff)
        booking.refresh_from_db()
        self.assertEqual(booking.booking_status, Booking.PENDING)

    def test_member_pricing(self):
        timetable = make_timetable(non_member_surcharge_percent=Decimal('10'))
        CooperativeMember.objects.create(
            customer=self.customer, membership_number='S22-0001',
            joined_on=timezone.localdate() - timedelta(days=30)
        )

        member_booking = lifecycle.create_booking(timetable, self.service_date, self.customer)
        other_booking = lifecycle.create_booking(timetable, self.service_date, make_customer())
        self.assertTrue(member_booking.is_member)

        member_booking = lifecycle.confirm_booking(member_booking.pk)
        other_booking = lifecycle.confirm_booking(other_booking.pk)
        self.assertEqual(member_booking.fare_snapshot.quoted_fare, Decimal('8.00'))
        self.assertEqual(other_booking.fare_snapshot.quoted_fare, Decimal('8.80'))


class BookingSweepCommandTests(TestCase):
    """Test the periodic hold release and no-show sweep."""

    def setUp(self):
        self.timetable = make_timetable()

    def sweep(self, *args):
        out = StringIO()
        call_command('sweep_bookings', *args, stdout=out)
        return out.getvalue()

    def book_earlier(self, service_date, confirm=False):
        """Book as if it had happened an hour before the service's cutoff."""
        earlier = self.timetable.cutoff_at(service_date) - timedelta(hours=1)
        booking = lifecycle.create_booking(self.timetable, service_date, make_customer(), now=earlier)
        if confirm:
            booking = lifecycle.confirm_booking(booking.pk, now=earlier)
        return booking

    def test_releases_holds_past_cutoff(self):
        closed = timezone.localdate() + timedelta(days=1)
        stale = self.book_earlier(closed)
        still_open = lifecycle.create_booking(self.timetable, upcoming(), make_customer())

        output = self.sweep()

        self.assertIn('Released 1 pending seat holds', output)
        stale.refresh_from_db()
        still_open.refresh_from_db()
        self.assertFalse(stale.holds_seat)
        self.assertEqual(stale.booking_status, Booking.PENDING)
        self.assertTrue(still_open.holds_seat)

        # A second run has nothing left to do
        self.assertIn('Released 0 pending seat holds', self.sweep())

    def test_marks_no_shows_on_past_services(self):
        yesterday = timezone.localdate() - timedelta(days=1)
        missed = self.book_earlier(yesterday, confirm=True)
        carried = lifecycle.mark_completed(self.book_earlier(yesterday, confirm=True).pk)
        upcoming_booking = lifecycle.confirm_booking(
            lifecycle.create_booking(self.timetable, upcoming(), make_customer()).pk
        )

        output = self.sweep()

        self.assertIn('Marked 1 bookings as no-shows', output)
        missed.refresh_from_db()
        carried.refresh_from_db()
        upcoming_booking.refresh_from_db()
        self.assertEqual(missed.booking_status, Booking.NO_SHOW)
        self.assertEqual(carried.booking_status, Booking.COMPLETED)
        self.assertEqual(upcoming_booking.booking_status, Booking.CONFIRMED)

    def test_complete_services_option(self):
        finished = timezone.localdate() - timedelta(days=3)
        self.book_earlier(finished, confirm=True)

        self.assertNotIn('Allocated surplus', self.sweep())
        self.assertFalse(SurplusAllocation.objects.exists())

        output = self.sweep('--complete-services')
        self.assertIn('Allocated surplus for 1 services', output)
        allocation = SurplusAllocation.objects.get()
        self.assertEqual(allocation.instance.service_date, finished)
        self.assertEqual(allocation.confirmed_passengers, 1)

        self.assertIn('Allocated surplus for 0 services', self.sweep('--complete-services'))


class FareSnapshotImmutabilityTests(TestCase):
    """Snapshots are written once and refuse every later change."""

    def setUp(self):
        timetable = make_timetable()
        booking = lifecycle.create_booking(timetable, upcoming(), make_customer())
        self.booking = lifecycle.confirm_booking(booking.pk)
        self.snapshot = FareSnapshot.objects.get(booking=self.booking)

    def test_save_refused(self):
        self.snapshot.quoted_fare = Decimal('0.01')
        with self.assertLogs('utils.errors', level='CRITICAL'):
            with self.assertRaises(SnapshotImmutableViolation):
                self.snapshot.save()
        self.assertEqual(FareSnapshot.objects.get(pk=self.snapshot.pk).quoted_fare, Decimal('8.00'))

    def test_delete_refused(self):
        with self.assertLogs('utils.errors', level='CRITICAL'):
            with self.assertRaises(SnapshotImmutableViolation):
                self.snapshot.delete()
        with self.assertRaises(SnapshotImmutableViolation):
            FareSnapshot.objects.filter(pk=self.snapshot.pk).delete()
        self.assertTrue(FareSnapshot.objects.filter(pk=self.snapshot.pk).exists())

    def test_bulk_update_refused(self):
        with self.assertRaises(SnapshotImmutableViolation):
            FareSnapshot.objects.filter(booking=self.booking).update(quoted_fare=Decimal('0.01'))


# =============================================================================
# INTEGRATION TESTS - API Endpoints
# =============================================================================

class BookingAPITests(APITestCase):
    """Integration tests for booking API."""

    def setUp(self):
        self.timetable = make_timetable()
        self.service_date = upcoming()
        self.user = make_user('margaret')
        self.customer = make_customer('Margaret', 'Hughes', user=self.user)
        self.staff = make_user('staff', is_staff=True)
        self.client.force_authenticate(user=self.user)

    def booking_payload(self, **overrides):
        return {
            'timetable_id': self.timetable.pk,
            'service_date': str(self.service_date),
            **overrides,
        }

    def test_create_and_confirm_booking(self):
        response = self.client.post('/api/bookings/', self.booking_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        booking = response.data['booking']
        self.assertEqual(booking['booking_status'], 'pending')
        self.assertIsNone(booking['fare_snapshot'])
        self.assertEqual(booking['service_details']['route_number'], self.timetable.route.route_number)

        response = self.client.post(f"/api/bookings/{booking['id']}/confirm/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['booking']['fare_snapshot']['quoted_fare'], '8.00')

    def test_booking_for_past_date_rejected(self):
        response = self.client.post(
            '/api/bookings/', self.booking_payload(service_date=str(timezone.localdate() - timedelta(days=1))),
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_full_service_returns_conflict(self):
        for _ in range(16):
            lifecycle.create_booking(self.timetable, self.service_date, make_customer())

        response = self.client.post('/api/bookings/', self.booking_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'capacity_exceeded')

    def test_regular_booking_own_service_unprocessable(self):
        make_registration(self.customer, self.timetable, self.service_date)
        response = self.client.post('/api/bookings/', self.booking_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)

    def test_my_bookings(self):
        lifecycle.create_booking(self.timetable, self.service_date, self.customer)
        lifecycle.create_booking(self.timetable, self.service_date, make_customer())

        response = self.client.get('/api/bookings/my/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

    def test_other_customers_booking_hidden(self):
        other = lifecycle.create_booking(self.timetable, self.service_date, make_customer())

        self.assertEqual(self.client.get(f'/api/bookings/{other.pk}/').status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(
            self.client.post(f'/api/bookings/{other.pk}/cancel/').status_code, status.HTTP_404_NOT_FOUND
        )

    def test_staff_only_actions(self):
        booking = lifecycle.confirm_booking(
            lifecycle.create_booking(self.timetable, self.service_date, self.customer).pk
        )

        response = self.client.post(f'/api/bookings/{booking.pk}/pay/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.staff)
        response = self.client.post(f'/api/bookings/{booking.pk}/pay/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['booking']['payment_status'], 'paid')

    def test_invalid_transition_conflict(self):
        booking = lifecycle.create_booking(self.timetable, self.service_date, self.customer)
        lifecycle.cancel_booking(booking.pk)

        response = self.client.post(f'/api/bookings/{booking.pk}/confirm/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'invalid_booking_transition')

    def test_booking_unauthenticated(self):
        self.client.force_authenticate(user=None)
        response = self.client.post('/api/bookings/', self.booking_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_token_login_flow(self):
        self.client.force_authenticate(user=None)
        response = self.client.post('/api/token/', {
            'username': 'margaret',
            'password': 'TestPass123!'
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
        response = self.client.get('/api/bookings/my/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)


class ServiceAPITests(APITestCase):
    """Integration tests for per-service quote and occupancy endpoints."""

    def setUp(self):
        self.timetable = make_timetable()
        self.service_date = upcoming()
        self.user = make_user()
        make_customer(user=self.user)
        self.staff = make_user(is_staff=True)
        self.base = f'/api/services/{self.timetable.pk}/{self.service_date}'

    def test_quote(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get(f'{self.base}/quote/', {'tier': 'child'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['quoted_fare'], '4.00')
        self.assertEqual(response.data['fare']['break_even_passengers'], 15)
        self.assertEqual(response.data['trip_cost_breakdown']['total_trip_cost'], '120.00')
        self.assertTrue(response.data['fare_ladder'])

    def test_quote_invalid_tier(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get(f'{self.base}/quote/', {'tier': 'pensioner'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_quote_invalid_date(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get(f'/api/services/{self.timetable.pk}/14-03-2025/quote/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_quote_service_not_running(self):
        timetable = make_timetable(valid_until=upcoming(3))
        self.client.force_authenticate(user=self.user)

        response = self.client.get(f'/api/services/{timetable.pk}/{self.service_date}/quote/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'service_not_running')

    def test_occupancy_staff_only(self):
        lifecycle.create_booking(self.timetable, self.service_date, make_customer())

        self.client.force_authenticate(user=self.user)
        self.assertEqual(self.client.get(f'{self.base}/occupancy/').status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=self.staff)
        response = self.client.get(f'{self.base}/occupancy/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['occupancy']['occupied_seats'], 1)
        self.assertEqual(response.data['capacity']['available_seats'], 15)
