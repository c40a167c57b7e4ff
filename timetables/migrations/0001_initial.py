from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='CostRateTable',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, unique=True)),
                ('driver_wage_per_hour', models.DecimalField(decimal_places=2, max_digits=8)),
                ('fuel_per_mile', models.DecimalField(decimal_places=4, max_digits=8)),
                ('depreciation_per_mile', models.DecimalField(decimal_places=4, max_digits=8)),
                ('insurance_per_trip', models.DecimalField(decimal_places=2, max_digits=8)),
                ('maintenance_per_mile', models.DecimalField(decimal_places=4, max_digits=8)),
                ('overhead_per_trip', models.DecimalField(decimal_places=2, max_digits=8)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'cost_rate_tables',
            },
        ),
        migrations.CreateModel(
            name='BusRoute',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('route_number', models.CharField(max_length=10, unique=True)),
                ('name', models.CharField(max_length=255)),
                ('origin', models.CharField(max_length=100)),
                ('destination', models.CharField(max_length=100)),
                ('distance_miles', models.DecimalField(decimal_places=2, max_digits=7)),
                ('duration_hours', models.DecimalField(decimal_places=2, max_digits=5)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('rates', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='routes', to='timetables.costratetable')),
            ],
            options={
                'db_table': 'bus_routes',
                'indexes': [
                    models.Index(fields=['route_number'], name='bus_route_number_idx'),
                    models.Index(fields=['is_active'], name='bus_route_active_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Timetable',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('monday', models.BooleanField(default=False)),
                ('tuesday', models.BooleanField(default=False)),
                ('wednesday', models.BooleanField(default=False)),
                ('thursday', models.BooleanField(default=False)),
                ('friday', models.BooleanField(default=False)),
                ('saturday', models.BooleanField(default=False)),
                ('sunday', models.BooleanField(default=False)),
                ('service_name', models.CharField(max_length=255)),
                ('departure_time', models.TimeField()),
                ('valid_from', models.DateField()),
                ('valid_until', models.DateField(blank=True, null=True)),
                ('total_seats', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('wheelchair_spaces', models.PositiveSmallIntegerField(default=0)),
                ('pricing_model', models.CharField(choices=[('fixed', 'Fixed'), ('dynamic', 'Dynamic'), ('cooperative', 'Cooperative')], default='dynamic', max_length=20)),
                ('minimum_fare_floor', models.DecimalField(decimal_places=2, default=Decimal('1.00'), max_digits=8)),
                ('maximum_acceptable_fare', models.DecimalField(decimal_places=2, default=Decimal('10.00'), max_digits=8, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('non_member_surcharge_percent', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=5, validators=[django.core.validators.MinValueValidator(Decimal('0')), django.core.validators.MaxValueValidator(Decimal('100'))])),
                ('booking_opens_days_advance', models.PositiveSmallIntegerField(default=14)),
                ('booking_cutoff_hours', models.PositiveSmallIntegerField(default=48)),
                ('surplus_reserves_percent', models.DecimalField(decimal_places=2, default=Decimal('40'), max_digits=5, validators=[django.core.validators.MinValueValidator(Decimal('0')), django.core.validators.MaxValueValidator(Decimal('100'))])),
                ('surplus_business_percent', models.DecimalField(decimal_places=2, default=Decimal('20'), max_digits=5, validators=[django.core.validators.MinValueValidator(Decimal('0')), django.core.validators.MaxValueValidator(Decimal('100'))])),
                ('surplus_dividend_percent', models.DecimalField(decimal_places=2, default=Decimal('40'), max_digits=5, validators=[django.core.validators.MinValueValidator(Decimal('0')), django.core.validators.MaxValueValidator(Decimal('100'))])),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('route', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='timetables', to='timetables.busroute')),
            ],
            options={
                'db_table': 'timetables',
                'indexes': [
                    models.Index(fields=['route', 'is_active'], name='timetable_route_active_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ServiceInstance',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('service_date', models.DateField()),
                ('reserved_seats', models.PositiveSmallIntegerField(default=0)),
                ('reserved_wheelchair_seats', models.PositiveSmallIntegerField(default=0)),
                ('version', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('timetable', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='instances', to='timetables.timetable')),
            ],
            options={
                'db_table': 'service_instances',
                'indexes': [
                    models.Index(fields=['service_date'], name='service_instance_date_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('timetable', 'service_date'), name='unique_service_instance'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SeatReservation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('wheelchair', models.BooleanField(default=False)),
                ('reserved_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('released_at', models.DateTimeField(blank=True, null=True)),
                ('instance', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reservations', to='timetables.serviceinstance')),
            ],
            options={
                'db_table': 'seat_reservations',
                'indexes': [
                    models.Index(fields=['instance', 'released_at'], name='reservation_released_idx'),
                ],
            },
        ),
    ]
