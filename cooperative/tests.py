"""
Tests for cooperative app.
Tests cover: Surplus split, Dividend apportionment, Surplus allocation, Route surplus pools,
Completion API.
"""
from decimal import Decimal
from datetime import timedelta
from types import SimpleNamespace

from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APITestCase
from rest_framework import status

from bookings.models import Booking, FareSnapshot
from bookings.pricing import PricingConfig
from cooperative.models import (
    CooperativeMember, SurplusAllocation, MemberDividendLedgerEntry, RouteSurplusPool, SurplusPoolTransaction,
)
from cooperative.surplus import (
    allocate_surplus, apportion_dividends, complete_service, member_patronage,
    split_surplus, surplus_pool_summary,
)
from timetables.capacity import CapacityAllocator
from utils.errors import AlreadyAllocated, ServiceNotComplete
from utils.testing import make_customer, make_timetable, make_user, upcoming


def cooperative_config(**overrides):
    values = {
        'pricing_model': 'cooperative',
        'minimum_fare_floor': Decimal('2.00'),
        'maximum_acceptable_fare': Decimal('8.00'),
    }
    values.update(overrides)
    return PricingConfig(**values)


def confirmed_booking(instance, customer, fare='8.00', booking_status=Booking.CONFIRMED):
    """A booking with the snapshot confirmation would have written."""
    booking = Booking.objects.create(instance=instance, customer=customer, booking_status=booking_status)
    FareSnapshot.objects.create(
        booking=booking,
        pricing_model='cooperative',
        trip_cost_breakdown={'total_trip_cost': '120.00'},
        total_trip_cost=Decimal('120.00'),
        occupancy_at_quote=16,
        available_seats_at_quote=0,
        passenger_tier='adult',
        quoted_fare=Decimal(fare),
        current_fare_per_person=Decimal(fare),
        break_even_passengers=15,
        break_even_fare_per_person=Decimal('8.00'),
        fare_at_capacity=Decimal('7.50'),
    )
    return booking


def make_member(customer, number, **extra):
    return CooperativeMember.objects.create(
        customer=customer,
        membership_number=number,
        joined_on=timezone.localdate() - timedelta(days=365),
        **extra
    )


# =============================================================================
# UNIT TESTS - Surplus split
# =============================================================================

class SurplusSplitTests(SimpleTestCase):

    def test_cooperative_split(self):
        split = split_surplus(Decimal('8.00'), cooperative_config())

        self.assertEqual(split.to_reserves, Decimal('3.20'))
        self.assertEqual(split.to_dividends, Decimal('3.20'))
        self.assertEqual(split.to_commonwealth, Decimal('1.60'))

    def test_non_cooperative_keeps_surplus_in_reserves(self):
        split = split_surplus(Decimal('8.00'), cooperative_config(pricing_model='dynamic'))

        self.assertEqual(split.to_reserves, Decimal('8.00'))
        self.assertEqual(split.to_dividends, Decimal('0.00'))
        self.assertEqual(split.to_commonwealth, Decimal('0.00'))

    def test_parts_always_add_up(self):
        config = cooperative_config(
            surplus_reserves_percent=Decimal('33'),
            surplus_business_percent=Decimal('33'),
            surplus_dividend_percent=Decimal('34'),
        )
        for amount in ('0.01', '1.00', '7.77', '123.45'):
            split = split_surplus(Decimal(amount), config)
            self.assertEqual(split.to_reserves + split.to_dividends + split.to_commonwealth, Decimal(amount))


class DividendApportionmentTests(SimpleTestCase):

    def setUp(self):
        self.a, self.b, self.c = (SimpleNamespace(pk=pk) for pk in (1, 2, 3))

    def test_pro_rata_by_trips(self):
        shares = apportion_dividends(Decimal('10.00'), [(self.a, 1), (self.b, 3), (self.c, 0)])

        self.assertEqual(shares, [(self.b, 3, Decimal('7.50')), (self.a, 1, Decimal('2.50'))])

    def test_equal_split_when_nobody_travelled(self):
        shares = apportion_dividends(Decimal('10.00'), [(self.a, 0), (self.b, 0), (self.c, 0)])

        self.assertEqual([amount for _, _, amount in shares], [Decimal('3.34'), Decimal('3.33'), Decimal('3.33')])
        self.assertIs(shares[0][0], self.a)

    def test_leftover_pennies(self):
        shares = apportion_dividends(Decimal('0.05'), [(self.a, 1), (self.b, 1), (self.c, 1)])

        self.assertEqual([amount for _, _, amount in shares], [Decimal('0.02'), Decimal('0.02'), Decimal('0.01')])
        self.assertEqual(sum(amount for _, _, amount in shares), Decimal('0.05'))

    def test_nothing_to_share(self):
        self.assertEqual(apportion_dividends(Decimal('0.00'), [(self.a, 3)]), [])
        self.assertEqual(apportion_dividends(Decimal('5.00'), []), [])


# =============================================================================
# INTEGRATION TESTS - Surplus allocation
# =============================================================================

class SurplusAllocationTests(TestCase):
    """£120 trip on a 16-seat cooperative service."""

    def setUp(self):
        self.timetable = make_timetable(pricing_model='cooperative')
        self.service_date = upcoming()
        self.instance = CapacityAllocator(self.timetable, self.service_date).get_instance()
        self.after_grace = self.timetable.departure_at(self.service_date) + timedelta(hours=25)

        self.frequent = make_customer('Frequent')
        self.occasional = make_customer('Occasional')
        self.stay_at_home = make_customer('Stay')
        self.member_frequent = make_member(self.frequent, 'S22-0001')
        self.member_occasional = make_member(self.occasional, 'S22-0002')
        make_member(self.stay_at_home, 'S22-0003')

    def fill(self, riders):
        confirmed_booking(self.instance, self.frequent)
        confirmed_booking(self.instance, self.occasional)
        for _ in range(riders - 2):
            confirmed_booking(self.instance, make_customer())

    def test_no_surplus_at_break_even(self):
        self.fill(15)
        allocation = allocate_surplus(self.timetable, self.service_date, now=self.after_grace)

        self.assertEqual(allocation.total_confirmed_fares, Decimal('120.00'))
        self.assertEqual(allocation.total_surplus, Decimal('0.00'))
        self.assertFalse(allocation.dividend_entries.exists())

    def test_surplus_split_and_dividends(self):
        self.fill(16)
        # An earlier trip in the trailing period
        earlier = CapacityAllocator(self.timetable, self.service_date - timedelta(days=7)).get_instance()
        confirmed_booking(earlier, self.frequent, booking_status=Booking.COMPLETED)

        allocation = allocate_surplus(self.timetable, self.service_date, now=self.after_grace)

        self.assertEqual(allocation.confirmed_passengers, 16)
        self.assertEqual(allocation.total_surplus, Decimal('8.00'))
        self.assertEqual(allocation.to_reserves, Decimal('3.20'))
        self.assertEqual(allocation.to_dividends, Decimal('3.20'))
        self.assertEqual(allocation.to_commonwealth, Decimal('1.60'))

        entries = {e.member_id: e for e in allocation.dividend_entries.all()}
        self.assertEqual(set(entries), {self.member_frequent.pk, self.member_occasional.pk})
        self.assertEqual(entries[self.member_frequent.pk].patronage_trips, 2)
        self.assertEqual(entries[self.member_frequent.pk].amount, Decimal('2.14'))
        self.assertEqual(entries[self.member_occasional.pk].amount, Decimal('1.06'))
        self.assertEqual(sum(e.amount for e in entries.values()), allocation.to_dividends)
        self.assertEqual(entries[self.member_frequent.pk].accrual_date, self.service_date)

    def test_only_chargeable_bookings_counted(self):
        self.fill(16)
        confirmed_booking(self.instance, make_customer(), booking_status=Booking.CANCELLED)
        confirmed_booking(self.instance, make_customer(), booking_status=Booking.NO_SHOW)

        allocation = allocate_surplus(self.timetable, self.service_date, now=self.after_grace)

        self.assertEqual(allocation.confirmed_passengers, 17)
        self.assertEqual(allocation.total_surplus, Decimal('16.00'))

    def test_ineligible_member_gets_no_dividend(self):
        self.member_occasional.dividend_eligible = False
        self.member_occasional.save()

        patronage = dict((member.pk, trips) for member, trips in member_patronage(self.service_date))
        self.assertNotIn(self.member_occasional.pk, patronage)

    def test_allocated_once(self):
        self.fill(16)
        first = allocate_surplus(self.timetable, self.service_date, now=self.after_grace)

        with self.assertRaises(AlreadyAllocated):
            allocate_surplus(self.timetable, self.service_date, now=self.after_grace)

        allocation, created = complete_service(self.timetable, self.service_date, now=self.after_grace)
        self.assertFalse(created)
        self.assertEqual(allocation.pk, first.pk)
        self.assertEqual(SurplusAllocation.objects.count(), 1)
        self.assertEqual(MemberDividendLedgerEntry.objects.count(), 2)

    def test_open_service_not_complete(self):
        self.fill(16)
        departure = self.timetable.departure_at(self.service_date)

        with self.assertRaises(ServiceNotComplete):
            allocate_surplus(self.timetable, self.service_date, now=departure - timedelta(hours=1))
        with self.assertRaises(ServiceNotComplete):
            allocate_surplus(self.timetable, self.service_date, now=departure + timedelta(hours=2))

    def test_service_complete_once_every_booking_settled(self):
        self.fill(16)
        Booking.objects.filter(instance=self.instance).update(booking_status=Booking.COMPLETED)
        departure = self.timetable.departure_at(self.service_date)

        allocation, created = complete_service(
            self.timetable, self.service_date, now=departure + timedelta(hours=2)
        )
        self.assertTrue(created)
        self.assertEqual(allocation.total_surplus, Decimal('8.00'))

    def test_rate_change_after_confirmation_ignored(self):
        self.fill(16)
        rates = self.timetable.route.rates
        rates.overhead_per_trip = Decimal('0.00')
        rates.save()

        allocation = allocate_surplus(self.timetable, self.service_date, now=self.after_grace)

        self.assertEqual(allocation.total_trip_cost, Decimal('120.00'))
        self.assertEqual(allocation.total_surplus, Decimal('8.00'))

    def test_rate_change_after_confirmation_no_phantom_surplus(self):
        """Sixteen riders at £7.50 exactly covered the £120 they were quoted against."""
        for _ in range(16):
            confirmed_booking(self.instance, make_customer(), fare='7.50')
        rates = self.timetable.route.rates
        rates.overhead_per_trip = Decimal('0.00')
        rates.save()

        allocation = allocate_surplus(self.timetable, self.service_date, now=self.after_grace)

        self.assertEqual(allocation.total_confirmed_fares, Decimal('120.00'))
        self.assertEqual(allocation.total_trip_cost, Decimal('120.00'))
        self.assertEqual(allocation.total_surplus, Decimal('0.00'))
        self.assertEqual(allocation.shortfall, Decimal('0.00'))

    def test_live_rates_used_when_nothing_sold(self):
        allocation = allocate_surplus(self.timetable, self.service_date, now=self.after_grace)

        self.assertEqual(allocation.confirmed_passengers, 0)
        self.assertEqual(allocation.total_trip_cost, Decimal('120.00'))
        self.assertEqual(allocation.total_surplus, Decimal('0.00'))
        self.assertEqual(allocation.shortfall, Decimal('120.00'))

    def test_pool_summary(self):
        self.fill(16)
        allocate_surplus(self.timetable, self.service_date, now=self.after_grace)

        summary = surplus_pool_summary()
        self.assertEqual(summary['services'], 1)
        self.assertEqual(summary['total_surplus'], Decimal('8.00'))
        self.assertEqual(summary['to_commonwealth'], Decimal('1.60'))
        self.assertEqual(summary['route_pool_balance'], Decimal('3.20'))
        self.assertEqual(summary['total_shortfall'], Decimal('0.00'))

    def test_empty_pool_summary(self):
        summary = surplus_pool_summary()
        self.assertEqual(summary['services'], 0)
        self.assertEqual(summary['to_dividends'], Decimal('0.00'))
        self.assertEqual(summary['route_pool_balance'], Decimal('0.00'))


class RouteSurplusPoolTests(TestCase):
    """Profitable runs pay into their route's pool; short runs draw on it."""

    def setUp(self):
        self.timetable = make_timetable(pricing_model='cooperative')
        self.afternoon = make_timetable(
            route=self.timetable.route, pricing_model='cooperative', service_name='Afternoon service'
        )
        self.service_date = upcoming()
        self.after_grace = self.timetable.departure_at(self.service_date) + timedelta(hours=25)

    def run_service(self, timetable, riders, fare='8.00'):
        instance = CapacityAllocator(timetable, self.service_date).get_instance()
        for _ in range(riders):
            confirmed_booking(instance, make_customer(), fare=fare)
        return allocate_surplus(timetable, self.service_date, now=self.after_grace)

    def test_profitable_run_pays_reserves_share_in(self):
        allocation = self.run_service(self.timetable, 16)

        pool = RouteSurplusPool.objects.get(route=self.timetable.route)
        self.assertEqual(pool.balance, Decimal('3.20'))
        self.assertEqual(pool.lifetime_total_revenue, Decimal('128.00'))
        self.assertEqual(pool.lifetime_total_costs, Decimal('120.00'))
        self.assertEqual(pool.lifetime_gross_surplus, Decimal('8.00'))
        self.assertEqual(pool.total_services_run, 1)
        self.assertEqual(pool.total_profitable_services, 1)
        self.assertEqual(pool.last_surplus_date, self.service_date)

        entry = pool.transactions.get()
        self.assertEqual(entry.transaction_type, SurplusPoolTransaction.SURPLUS_ADDED)
        self.assertEqual(entry.allocation, allocation)
        self.assertEqual((entry.balance_before, entry.balance_after), (Decimal('0.00'), Decimal('3.20')))

    def test_short_run_draws_on_pool(self):
        self.run_service(self.timetable, 16)
        allocation = self.run_service(self.afternoon, 14)

        self.assertEqual(allocation.total_surplus, Decimal('0.00'))
        self.assertEqual(allocation.shortfall, Decimal('8.00'))
        self.assertEqual(allocation.subsidy_applied, Decimal('3.20'))

        pool = RouteSurplusPool.objects.get(route=self.timetable.route)
        self.assertEqual(pool.balance, Decimal('0.00'))
        self.assertEqual(pool.total_subsidy_applied, Decimal('3.20'))
        self.assertEqual(pool.total_unfunded_shortfall, Decimal('4.80'))
        self.assertEqual(pool.total_services_run, 2)
        self.assertEqual(pool.total_subsidised_services, 1)
        self.assertEqual(pool.lifetime_gross_surplus, Decimal('0.00'))

        movements = list(allocation.pool_transactions.order_by('id'))
        self.assertEqual(
            [(m.transaction_type, m.amount) for m in movements],
            [(SurplusPoolTransaction.SUBSIDY_APPLIED, Decimal('3.20')),
             (SurplusPoolTransaction.SHORTFALL_UNFUNDED, Decimal('4.80'))]
        )
        self.assertEqual(movements[0].balance_after, Decimal('0.00'))

    def test_shortfall_with_empty_pool_unfunded(self):
        allocation = self.run_service(self.timetable, 10)

        self.assertEqual(allocation.shortfall, Decimal('40.00'))
        self.assertEqual(allocation.subsidy_applied, Decimal('0.00'))
        pool = RouteSurplusPool.objects.get(route=self.timetable.route)
        self.assertEqual(pool.balance, Decimal('0.00'))
        self.assertEqual(pool.lifetime_gross_surplus, Decimal('-40.00'))
        self.assertEqual(pool.transactions.get().transaction_type, SurplusPoolTransaction.SHORTFALL_UNFUNDED)

    def test_pools_are_per_route(self):
        self.run_service(self.timetable, 16)
        other = make_timetable(pricing_model='cooperative')
        allocation = self.run_service(other, 14)

        self.assertEqual(allocation.subsidy_applied, Decimal('0.00'))
        self.assertEqual(RouteSurplusPool.objects.get(route=self.timetable.route).balance, Decimal('3.20'))
        self.assertEqual(RouteSurplusPool.objects.count(), 2)

    def test_non_cooperative_surplus_all_to_pool(self):
        timetable = make_timetable()
        self.run_service(timetable, 16)

        self.assertEqual(RouteSurplusPool.objects.get(route=timetable.route).balance, Decimal('8.00'))


# =============================================================================
# INTEGRATION TESTS - API Endpoints
# =============================================================================

class ServiceCompletionAPITests(APITestCase):
    """Integration tests for service completion and surplus reports."""

    def setUp(self):
        self.timetable = make_timetable(pricing_model='cooperative')
        self.service_date = timezone.localdate() - timedelta(days=3)
        instance = CapacityAllocator(self.timetable, self.service_date).get_instance()
        for _ in range(16):
            confirmed_booking(instance, make_customer())
        self.staff = make_user('staff', is_staff=True)
        self.base = f'/api/cooperative/services/{self.timetable.pk}/{self.service_date}'

    def test_complete_service(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.post(f'{self.base}/complete/')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['total_surplus'], '8.00')
        self.assertEqual(response.data['to_commonwealth'], '1.60')

        # Retrying returns the same allocation
        response = self.client.post(f'{self.base}/complete/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.get(f'{self.base}/surplus/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['to_dividends'], '3.20')

        response = self.client.get('/api/cooperative/summary/')
        self.assertEqual(response.data['services'], 1)
        self.assertEqual(response.data['total_surplus'], '8.00')

    def test_route_pool(self):
        self.client.force_authenticate(user=self.staff)
        pool_url = f'/api/cooperative/routes/{self.timetable.route_id}/pool/'

        response = self.client.get(pool_url)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        self.client.post(f'{self.base}/complete/')
        response = self.client.get(pool_url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['balance'], '3.20')
        self.assertEqual(response.data['total_services_run'], 1)
        self.assertEqual(len(response.data['recent_transactions']), 1)
        self.assertEqual(response.data['recent_transactions'][0]['transaction_type'], 'surplus_added')
        self.assertEqual(response.data['recent_transactions'][0]['timetable_id'], self.timetable.pk)

        response = self.client.get('/api/cooperative/summary/')
        self.assertEqual(response.data['route_pool_balance'], '3.20')

    def test_surplus_not_yet_allocated(self):
        self.client.force_authenticate(user=self.staff)
        response = self.client.get(f'{self.base}/surplus/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_staff_only(self):
        self.client.force_authenticate(user=make_user())
        response = self.client.post(f'{self.base}/complete/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
