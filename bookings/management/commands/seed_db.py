"""
Management command to seed the database with sample data.

Usage:
    python manage.py seed_db           # Seed with default data
    python manage.py seed_db --clear   # Clear existing data first
"""
from datetime import time, timedelta
from decimal import Decimal
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import connection, transaction
from django.utils import timezone

from bookings.models import Booking, FareSnapshot
from cooperative.models import CooperativeMember, SurplusAllocation, MemberDividendLedgerEntry
from passengers.models import Customer, RegularRegistration, Absence
from timetables.models import CostRateTable, BusRoute, Timetable, ServiceInstance, SeatReservation

User = get_user_model()


class Command(BaseCommand):
    help = 'Seed the database with sample data for testing'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self.clear_data()

        self.stdout.write('Seeding database...')

        with transaction.atomic():
            users = self.create_users()
            customers = self.create_customers(users)
            timetables = self.create_timetables()
            self.create_members(customers)
            self.create_registrations(customers, timetables)

        self.stdout.write(self.style.SUCCESS('✓ Database seeded successfully!'))
        self.print_summary()

    def clear_data(self):
        # Snapshots refuse queryset deletes, so truncate their table directly
        with connection.cursor() as cursor:
            cursor.execute(f'DELETE FROM {FareSnapshot._meta.db_table}')
        MemberDividendLedgerEntry.objects.all().delete()
        SurplusAllocation.objects.all().delete()
        Booking.objects.all().delete()
        SeatReservation.objects.all().delete()
        ServiceInstance.objects.all().delete()
        Absence.objects.all().delete()
        RegularRegistration.objects.all().delete()
        CooperativeMember.objects.all().delete()
        Customer.objects.all().delete()
        Timetable.objects.all().delete()
        BusRoute.objects.all().delete()
        CostRateTable.objects.all().delete()
        User.objects.filter(is_superuser=False).delete()
        self.stdout.write(self.style.WARNING('  Cleared all non-superuser data'))

    def create_users(self):
        users = []

        # Staff user
        admin, created = User.objects.get_or_create(
            username='admin',
            defaults={'email': 'admin@section22.coop', 'is_staff': True}
        )
        if created:
            admin.set_password('Admin@123')
            admin.save()
            self.stdout.write('  Created staff user: admin / Admin@123')
        users.append(admin)

        test_users = [
            ('margaret', 'margaret@example.com', 'User@123'),
            ('dev', 'dev@example.com', 'User@123'),
            ('aileen', 'aileen@example.com', 'User@123'),
        ]

        for username, email, password in test_users:
            user, created = User.objects.get_or_create(
                username=username,
                defaults={'email': email}
            )
            if created:
                user.set_password(password)
                user.save()
                self.stdout.write(f'  Created user: {username} / {password}')
            users.append(user)

        return users

    def create_customers(self, users):
        customers_data = [
            ('Margaret', 'Hughes', users[1]),
            ('Dev', 'Patel', users[2]),
            ('Aileen', 'Ross', users[3]),
            ('Tom', 'Evans', None),
            ('Sian', 'Jones', None),
        ]

        customers = []
        for first_name, last_name, user in customers_data:
            customer, _ = Customer.objects.get_or_create(
                first_name=first_name,
                last_name=last_name,
                defaults={'user': user, 'email': user.email if user else ''}
            )
            customers.append(customer)

        self.stdout.write(f'  Created {len(customers)} customers')
        return customers

    def create_timetables(self):
        rates, _ = CostRateTable.objects.get_or_create(
            name='Community minibus 2025',
            defaults={
                'driver_wage_per_hour': Decimal('20.00'),
                'fuel_per_mile': Decimal('0.5000'),
                'depreciation_per_mile': Decimal('0.2500'),
                'insurance_per_trip': Decimal('10.00'),
                'maintenance_per_mile': Decimal('0.2500'),
                'overhead_per_trip': Decimal('10.00'),
            }
        )

        routes_data = [
            ('S22A', 'Llanfair to Market Town', 'Llanfair', 'Market Town', Decimal('40'), Decimal('3')),
            ('S22B', 'Glen Valley Hospital Link', 'Glen Valley', 'District Hospital', Decimal('25'), Decimal('2')),
        ]
        weekdays = dict.fromkeys(['monday', 'tuesday', 'wednesday', 'thursday', 'friday'], True)

        timetables = []
        for number, name, origin, destination, miles, hours in routes_data:
            route, created = BusRoute.objects.get_or_create(
                route_number=number,
                defaults={
                    'name': name, 'origin': origin, 'destination': destination,
                    'distance_miles': miles, 'duration_hours': hours, 'rates': rates,
                }
            )
            if created:
                self.stdout.write(f'  Created route: {number} - {name}')

            timetable, _ = Timetable.objects.get_or_create(
                route=route,
                service_name=f'{origin} morning service',
                defaults={
                    'departure_time': time(9, 30),
                    'valid_from': timezone.localdate() - timedelta(days=30),
                    'total_seats': 16,
                    'wheelchair_spaces': 2,
                    'pricing_model': Timetable.PRICING_COOPERATIVE,
                    'minimum_fare_floor': Decimal('2.00'),
                    'maximum_acceptable_fare': Decimal('8.00'),
                    'non_member_surcharge_percent': Decimal('10'),
                    **weekdays,
                }
            )
            timetables.append(timetable)

        self.stdout.write(f'  Created {len(timetables)} timetables')
        return timetables

    def create_members(self, customers):
        for i, customer in enumerate(customers[:3], start=1):
            CooperativeMember.objects.get_or_create(
                customer=customer,
                defaults={
                    'membership_number': f'S22-{i:04d}',
                    'membership_type': 'founding' if i == 1 else 'standard',
                    'joined_on': timezone.localdate() - timedelta(days=365),
                    'share_capital': Decimal('25.00'),
                }
            )

    def create_registrations(self, customers, timetables):
        registrations = [
            (customers[0], timetables[0], '1A', False),
            (customers[3], timetables[0], '1B', True),
            (customers[4], timetables[1], '2A', False),
        ]
        for customer, timetable, seat, wheelchair in registrations:
            RegularRegistration.objects.get_or_create(
                customer=customer,
                timetable=timetable,
                seat_number=seat,
                defaults={
                    'requires_wheelchair': wheelchair,
                    'valid_from': timetable.valid_from,
                    'tuesday': True,
                    'thursday': True,
                }
            )
        self.stdout.write(f'  Created {len(registrations)} regular registrations')

    def print_summary(self):
        self.stdout.write('\n' + '='*50)
        self.stdout.write('Database Summary:')
        self.stdout.write(f'  Users: {User.objects.count()}')
        self.stdout.write(f'  Customers: {Customer.objects.count()}')
        self.stdout.write(f'  Members: {CooperativeMember.objects.count()}')
        self.stdout.write(f'  Timetables: {Timetable.objects.count()}')
        self.stdout.write(f'  Regular registrations: {RegularRegistration.objects.count()}')
        self.stdout.write('='*50)
        self.stdout.write('\nTest Credentials:')
        self.stdout.write('  Staff: admin / Admin@123')
        self.stdout.write('  User:  margaret / User@123')
        self.stdout.write('='*50 + '\n')
