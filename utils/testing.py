"""
Factories shared by the test suites.

The default rate table and route give a £120 trip:
wages 20 x 3h + fuel 0.50 x 40mi + depreciation 0.25 x 40mi + insurance 10
+ maintenance 0.25 x 40mi + overhead 10.
"""
import itertools
from datetime import time, timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone

from passengers.models import Customer, RegularRegistration
from timetables.models import CostRateTable, BusRoute, Timetable, WEEKDAY_FIELDS

User = get_user_model()

_sequence = itertools.count(1)

EVERY_DAY = dict.fromkeys(WEEKDAY_FIELDS, True)


def make_rates(**overrides):
    values = {
        'name': f'Rates {next(_sequence)}',
        'driver_wage_per_hour': Decimal('20.00'),
        'fuel_per_mile': Decimal('0.50'),
        'depreciation_per_mile': Decimal('0.25'),
        'insurance_per_trip': Decimal('10.00'),
        'maintenance_per_mile': Decimal('0.25'),
        'overhead_per_trip': Decimal('10.00'),
    }
    values.update(overrides)
    return CostRateTable.objects.create(**values)


def make_route(rates=None, **overrides):
    number = next(_sequence)
    values = {
        'route_number': f'T{number}',
        'name': f'Test route {number}',
        'origin': 'Llanfair',
        'destination': 'Market Town',
        'distance_miles': Decimal('40'),
        'duration_hours': Decimal('3'),
        'rates': rates or make_rates(),
    }
    values.update(overrides)
    return BusRoute.objects.create(**values)


def make_timetable(route=None, **overrides):
    """A 16-seat service running every day, priced between £2 and £8."""
    values = {
        'route': route or make_route(),
        'service_name': 'Morning service',
        'departure_time': time(9, 30),
        'valid_from': timezone.localdate() - timedelta(days=30),
        'total_seats': 16,
        'wheelchair_spaces': 2,
        'pricing_model': Timetable.PRICING_DYNAMIC,
        'minimum_fare_floor': Decimal('2.00'),
        'maximum_acceptable_fare': Decimal('8.00'),
        **EVERY_DAY,
    }
    values.update(overrides)
    return Timetable.objects.create(**values)


def make_user(username=None, password='TestPass123!', **extra):
    username = username or f'user{next(_sequence)}'
    return User.objects.create_user(username=username, password=password, **extra)


def make_customer(first_name=None, last_name='Passenger', user=None):
    return Customer.objects.create(
        first_name=first_name or f'Rider{next(_sequence)}',
        last_name=last_name,
        user=user,
    )


def make_registration(customer, timetable, service_date, seat_number=None, **overrides):
    """A regular registration that covers the weekday of service_date."""
    values = {
        'customer': customer,
        'timetable': timetable,
        'seat_number': seat_number or str(next(_sequence)),
        'valid_from': timetable.valid_from,
        WEEKDAY_FIELDS[service_date.weekday()]: True,
    }
    values.update(overrides)
    return RegularRegistration.objects.create(**values)


def upcoming(days=7):
    """A service date inside the booking window and before the cutoff."""
    return timezone.localdate() + timedelta(days=days)
