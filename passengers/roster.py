"""
Regular riders for a service date: standing registrations minus absences.
"""
from dataclasses import dataclass

from django.db.models import Q

from timetables.models import WEEKDAY_FIELDS
from .models import RegularRegistration, Absence


@dataclass(frozen=True)
class RegularLoad:
    seats: int
    wheelchair_seats: int


def registrations_on(timetable, service_date):
    """Active registrations whose weekday flag and validity window cover the date."""
    return RegularRegistration.objects.filter(
        Q(valid_until__isnull=True) | Q(valid_until__gte=service_date),
        timetable=timetable,
        status=RegularRegistration.STATUS_ACTIVE,
        valid_from__lte=service_date,
        **{WEEKDAY_FIELDS[service_date.weekday()]: True}
    )


def absent_customer_ids(timetable, service_date):
    return set(
        Absence.objects.filter(
            Q(timetable__isnull=True) | Q(timetable=timetable),
            absence_date=service_date,
            status=Absence.STATUS_CONFIRMED,
        ).values_list('customer_id', flat=True)
    )


def regular_riders(timetable, service_date):
    """Registrations that actually ride on the date, in seat order."""
    absent = absent_customer_ids(timetable, service_date)
    registrations = registrations_on(timetable, service_date).select_related('customer').order_by(
        'seat_number', 'customer_id', 'id'
    )
    return [registration for registration in registrations if registration.customer_id not in absent]


def regular_load(timetable, service_date):
    riders = regular_riders(timetable, service_date)
    return RegularLoad(
        seats=len(riders),
        wheelchair_seats=sum(1 for rider in riders if rider.requires_wheelchair),
    )
