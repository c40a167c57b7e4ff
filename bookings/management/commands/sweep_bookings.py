"""
Management command for the periodic booking housekeeping.

Usage:
    python manage.py sweep_bookings                      # Release holds and mark no-shows
    python manage.py sweep_bookings --complete-services  # Also allocate surplus for finished services

Run it from cron (every few minutes is plenty).
"""
from django.core.management.base import BaseCommand
from django.utils import timezone

from bookings.lifecycle import expire_no_shows, release_pending_holds
from bookings.models import Booking
from cooperative.surplus import CHARGEABLE_STATUSES, complete_service
from timetables.models import ServiceInstance
from utils.errors import ServiceNotComplete


class Command(BaseCommand):
    help = 'Release pending seat holds past the cutoff and mark no-shows on past services'

    def add_arguments(self, parser):
        parser.add_argument(
            '--complete-services',
            action='store_true',
            help='Allocate surplus for past services that have finished',
        )

    def handle(self, *args, **options):
        now = timezone.now()

        released = self.release_holds(now)
        self.stdout.write(f'  Released {released} pending seat holds')

        no_shows = self.expire_no_shows(now)
        self.stdout.write(f'  Marked {no_shows} bookings as no-shows')

        if options['complete_services']:
            completed = self.complete_services(now)
            self.stdout.write(f'  Allocated surplus for {completed} services')

        self.stdout.write(self.style.SUCCESS('✓ Sweep finished'))

    def release_holds(self, now):
        instances = ServiceInstance.objects.filter(
            bookings__booking_status=Booking.PENDING,
            bookings__reservation__isnull=False,
            bookings__reservation__released_at__isnull=True,
        ).select_related('timetable').distinct()

        released = 0
        for instance in instances:
            if now >= instance.timetable.cutoff_at(instance.service_date):
                released += release_pending_holds(instance.timetable, instance.service_date, now=now)
        return released

    def expire_no_shows(self, now):
        instances = ServiceInstance.objects.filter(
            service_date__lt=timezone.localdate(now),
            bookings__booking_status=Booking.CONFIRMED,
        ).select_related('timetable').distinct()

        return sum(
            expire_no_shows(instance.timetable, instance.service_date, now=now)
            for instance in instances
        )

    def complete_services(self, now):
        instances = ServiceInstance.objects.filter(
            service_date__lt=timezone.localdate(now),
            surplus_allocation__isnull=True,
            bookings__booking_status__in=CHARGEABLE_STATUSES,
        ).select_related('timetable').distinct()

        completed = 0
        for instance in instances:
            try:
                _, created = complete_service(instance.timetable, instance.service_date, now=now)
            except ServiceNotComplete:
                self.stdout.write(f'  Skipped {instance}: still inside its grace period')
                continue
            completed += int(created)
        return completed
