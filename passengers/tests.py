"""
Tests for passengers app.
Tests cover: Registration coverage, Absence handling in the roster, Absence API.
"""
from datetime import timedelta

from django.core.exceptions import ValidationError
from django.test import TestCase
from rest_framework.test import APITestCase
from rest_framework import status

from bookings.lifecycle import cancel_absence, create_booking, report_absence
from bookings.resolver import resolve_occupancy
from passengers.models import Absence, RegularRegistration
from passengers.roster import regular_load, regular_riders
from timetables.models import WEEKDAY_FIELDS
from utils.errors import CapacityExceeded, OutsideBookingWindow
from utils.testing import (
    make_customer, make_registration, make_timetable, make_user, upcoming,
)


# =============================================================================
# UNIT TESTS - Models
# =============================================================================

class RegularRegistrationTests(TestCase):
    """Test which dates a registration covers."""

    def setUp(self):
        self.service_date = upcoming()
        self.timetable = make_timetable()
        self.customer = make_customer()

    def test_covers_flagged_weekday_only(self):
        registration = make_registration(self.customer, self.timetable, self.service_date)

        self.assertTrue(registration.covers(self.service_date))
        self.assertFalse(registration.covers(self.service_date + timedelta(days=1)))
        self.assertTrue(registration.covers(self.service_date + timedelta(days=7)))

    def test_suspended_registration_covers_nothing(self):
        registration = make_registration(
            self.customer, self.timetable, self.service_date, status=RegularRegistration.STATUS_SUSPENDED
        )
        self.assertFalse(registration.covers(self.service_date))

    def test_validity_window(self):
        registration = make_registration(
            self.customer, self.timetable, self.service_date, valid_until=self.service_date
        )
        self.assertTrue(registration.covers(self.service_date))
        self.assertFalse(registration.covers(self.service_date + timedelta(days=7)))

    def test_registrations_cannot_exceed_seats(self):
        timetable = make_timetable(total_seats=1, wheelchair_spaces=0)
        make_registration(self.customer, timetable, self.service_date)

        with self.assertRaises(ValidationError) as ctx:
            make_registration(make_customer(), timetable, self.service_date)
        self.assertIn('timetable', ctx.exception.message_dict)

        occupancy = resolve_occupancy(timetable, self.service_date)
        self.assertEqual(occupancy.occupied_seats, 1)
        self.assertEqual(RegularRegistration.objects.filter(timetable=timetable).count(), 1)

    def test_registrations_cannot_exceed_wheelchair_spaces(self):
        timetable = make_timetable(total_seats=4, wheelchair_spaces=1)
        make_registration(self.customer, timetable, self.service_date, requires_wheelchair=True)

        with self.assertRaises(ValidationError) as ctx:
            make_registration(make_customer(), timetable, self.service_date, requires_wheelchair=True)
        self.assertIn('requires_wheelchair', ctx.exception.message_dict)

        # A standard seat is still available
        make_registration(make_customer(), timetable, self.service_date)

    def test_full_seat_count_only_on_shared_weekdays(self):
        timetable = make_timetable(total_seats=1, wheelchair_spaces=0)
        make_registration(self.customer, timetable, self.service_date)
        other_day = WEEKDAY_FIELDS[(self.service_date.weekday() + 1) % 7]

        make_registration(
            make_customer(), timetable, self.service_date,
            **{WEEKDAY_FIELDS[self.service_date.weekday()]: False, other_day: True}
        )

    def test_non_overlapping_validity_windows_share_a_seat(self):
        timetable = make_timetable(total_seats=1, wheelchair_spaces=0)
        make_registration(self.customer, timetable, self.service_date, valid_until=self.service_date)

        make_registration(
            make_customer(), timetable, self.service_date,
            valid_from=self.service_date + timedelta(days=1)
        )

    def test_inactive_registrations_leave_room(self):
        timetable = make_timetable(total_seats=1, wheelchair_spaces=0)
        make_registration(self.customer, timetable, self.service_date, status=RegularRegistration.STATUS_ENDED)

        make_registration(make_customer(), timetable, self.service_date)


# =============================================================================
# UNIT TESTS - Roster
# =============================================================================

class RosterTests(TestCase):
    """Test regular riders after absences."""

    def setUp(self):
        self.service_date = upcoming()
        self.morning = make_timetable(service_name='Morning')
        self.afternoon = make_timetable(route=self.morning.route, service_name='Afternoon')
        self.customer = make_customer('Margaret', 'Hughes')
        make_registration(self.customer, self.morning, self.service_date, seat_number='1A')
        make_registration(self.customer, self.afternoon, self.service_date, seat_number='1A')

    def test_registered_customer_rides(self):
        riders = regular_riders(self.morning, self.service_date)
        self.assertEqual([r.customer_id for r in riders], [self.customer.pk])

    def test_day_wide_absence_removes_from_every_service(self):
        """An absence without a timetable applies to all services that day."""
        report_absence(self.customer, self.service_date, reason='sick')

        self.assertEqual(regular_riders(self.morning, self.service_date), [])
        self.assertEqual(regular_riders(self.afternoon, self.service_date), [])

        # Registration itself is untouched for other dates
        next_week = self.service_date + timedelta(days=7)
        self.assertEqual(len(regular_riders(self.morning, next_week)), 1)
        self.assertEqual(
            RegularRegistration.objects.filter(customer=self.customer, status='active').count(), 2
        )

    def test_service_specific_absence(self):
        report_absence(self.customer, self.service_date, timetable=self.morning)

        self.assertEqual(regular_riders(self.morning, self.service_date), [])
        self.assertEqual(len(regular_riders(self.afternoon, self.service_date)), 1)

    def test_cancelled_absence_is_ignored(self):
        Absence.objects.create(
            customer=self.customer, absence_date=self.service_date, status=Absence.STATUS_CANCELLED
        )
        self.assertEqual(len(regular_riders(self.morning, self.service_date)), 1)

    def test_riders_ordered_by_seat(self):
        other = make_customer('Aileen', 'Ross')
        make_registration(other, self.morning, self.service_date, seat_number='0Z', requires_wheelchair=True)

        riders = regular_riders(self.morning, self.service_date)
        self.assertEqual([r.seat_number for r in riders], ['0Z', '1A'])

        load = regular_load(self.morning, self.service_date)
        self.assertEqual(load.seats, 2)
        self.assertEqual(load.wheelchair_seats, 1)

    def test_registration_on_other_weekday_not_counted(self):
        other_day = WEEKDAY_FIELDS[(self.service_date.weekday() + 1) % 7]
        customer = make_customer()
        make_registration(
            customer, self.morning, self.service_date,
            **{WEEKDAY_FIELDS[self.service_date.weekday()]: False, other_day: True}
        )
        self.assertEqual(len(regular_riders(self.morning, self.service_date)), 1)


# =============================================================================
# UNIT TESTS - Absence lifecycle
# =============================================================================

class AbsenceLifecycleTests(TestCase):
    """Test reporting and withdrawing absences."""

    def setUp(self):
        self.service_date = upcoming()
        self.timetable = make_timetable(total_seats=2, wheelchair_spaces=0)
        self.regular = make_customer()
        make_registration(self.regular, self.timetable, self.service_date)

    def test_reporting_twice_returns_same_absence(self):
        first = report_absence(self.regular, self.service_date)
        second = report_absence(self.regular, self.service_date)
        self.assertEqual(first.pk, second.pk)

    def test_cancel_absence_restores_regular(self):
        absence = report_absence(self.regular, self.service_date)
        cancel_absence(absence.pk)

        absence.refresh_from_db()
        self.assertEqual(absence.status, Absence.STATUS_CANCELLED)
        self.assertEqual(len(regular_riders(self.timetable, self.service_date)), 1)

        # Cancelling again is a no-op
        self.assertEqual(cancel_absence(absence.pk).status, Absence.STATUS_CANCELLED)

    def test_cancel_absence_refused_when_seat_resold(self):
        absence = report_absence(self.regular, self.service_date)
        create_booking(self.timetable, self.service_date, make_customer())
        create_booking(self.timetable, self.service_date, make_customer())

        with self.assertRaises(CapacityExceeded):
            cancel_absence(absence.pk)

        absence.refresh_from_db()
        self.assertEqual(absence.status, Absence.STATUS_CONFIRMED)

    def test_cancel_absence_refused_after_cutoff(self):
        absence = report_absence(self.regular, self.service_date)
        after_cutoff = self.timetable.cutoff_at(self.service_date) + timedelta(hours=1)

        with self.assertRaises(OutsideBookingWindow):
            cancel_absence(absence.pk, now=after_cutoff)


# =============================================================================
# INTEGRATION TESTS - Absence API
# =============================================================================

class AbsenceAPITests(APITestCase):
    """Integration tests for absence reporting."""

    def setUp(self):
        self.service_date = upcoming()
        self.timetable = make_timetable()
        self.user = make_user('margaret')
        self.customer = make_customer('Margaret', 'Hughes', user=self.user)
        make_registration(self.customer, self.timetable, self.service_date)
        self.staff = make_user('staff', is_staff=True)

    def test_customer_reports_own_absence(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post('/api/passengers/absences/', {
            'absence_date': str(self.service_date),
            'reason': 'holiday',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['absence']['reported_by'], 'customer')
        self.assertIsNone(response.data['absence']['timetable'])

    def test_staff_must_name_customer(self):
        self.client.force_authenticate(user=self.staff)
        response = self.client.post('/api/passengers/absences/', {
            'absence_date': str(self.service_date),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post('/api/passengers/absences/', {
            'customer_id': self.customer.pk,
            'absence_date': str(self.service_date),
            'timetable_id': self.timetable.pk,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['absence']['reported_by'], 'staff')

    def test_customer_cannot_report_for_someone_else(self):
        other = make_customer()
        self.client.force_authenticate(user=self.user)
        response = self.client.post('/api/passengers/absences/', {
            'customer_id': other.pk,
            'absence_date': str(self.service_date),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancel_absence(self):
        absence = report_absence(self.customer, self.service_date)
        self.client.force_authenticate(user=self.user)

        response = self.client.post(f'/api/passengers/absences/{absence.pk}/cancel/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['absence']['status'], 'cancelled')

    def test_cannot_cancel_someone_elses_absence(self):
        absence = report_absence(make_customer(), self.service_date)
        self.client.force_authenticate(user=self.user)

        response = self.client.post(f'/api/passengers/absences/{absence.pk}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_list_own_absences(self):
        report_absence(self.customer, self.service_date)
        report_absence(make_customer(), self.service_date)
        self.client.force_authenticate(user=self.user)

        response = self.client.get('/api/passengers/absences/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)

    def test_unauthenticated(self):
        response = self.client.post('/api/passengers/absences/', {
            'absence_date': str(self.service_date),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
