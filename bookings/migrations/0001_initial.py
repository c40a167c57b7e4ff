from decimal import Decimal

import bookings.models
import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('passengers', '0001_initial'),
        ('timetables', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Booking',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reference', models.CharField(default=bookings.models.generate_reference, max_length=10, unique=True)),
                ('passenger_tier', models.CharField(choices=[('adult', 'Adult'), ('child', 'Child'), ('concessionary', 'Concessionary'), ('wheelchair', 'Wheelchair user'), ('companion', 'Companion')], default='adult', max_length=15)),
                ('seat_number', models.CharField(blank=True, max_length=10)),
                ('wheelchair_required', models.BooleanField(default=False)),
                ('is_member', models.BooleanField(default=False)),
                ('booking_status', models.CharField(choices=[('pending', 'Pending'), ('confirmed', 'Confirmed'), ('cancelled', 'Cancelled'), ('no_show', 'No show'), ('completed', 'Completed')], default='pending', max_length=10)),
                ('payment_status', models.CharField(choices=[('unpaid', 'Unpaid'), ('paid', 'Paid'), ('refunded', 'Refunded')], default='unpaid', max_length=10)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('confirmed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('paid_at', models.DateTimeField(blank=True, null=True)),
                ('refunded_at', models.DateTimeField(blank=True, null=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_bookings', to=settings.AUTH_USER_MODEL)),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='bookings', to='passengers.customer')),
                ('instance', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='bookings', to='timetables.serviceinstance')),
                ('reservation', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='booking', to='timetables.seatreservation')),
            ],
            options={
                'db_table': 'bookings',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['instance', 'booking_status'], name='booking_instance_status_idx'),
                    models.Index(fields=['customer', 'booking_status'], name='booking_customer_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='FareSnapshot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('pricing_model', models.CharField(max_length=20)),
                ('trip_cost_breakdown', models.JSONField()),
                ('total_trip_cost', models.DecimalField(decimal_places=2, max_digits=10)),
                ('occupancy_at_quote', models.PositiveSmallIntegerField()),
                ('available_seats_at_quote', models.PositiveSmallIntegerField()),
                ('passenger_tier', models.CharField(max_length=15)),
                ('is_member', models.BooleanField(default=False)),
                ('quoted_fare', models.DecimalField(decimal_places=2, max_digits=8, validators=[django.core.validators.MinValueValidator(Decimal('0'))])),
                ('current_fare_per_person', models.DecimalField(decimal_places=2, max_digits=8)),
                ('break_even_passengers', models.PositiveSmallIntegerField()),
                ('break_even_fare_per_person', models.DecimalField(decimal_places=2, max_digits=8)),
                ('fare_at_capacity', models.DecimalField(decimal_places=2, max_digits=8)),
                ('surplus_amount_if_any', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('booking', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='fare_snapshot', to='bookings.booking')),
            ],
            options={
                'db_table': 'fare_snapshots',
            },
        ),
    ]
