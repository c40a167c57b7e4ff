import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('timetables', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Customer',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('first_name', models.CharField(max_length=100)),
                ('last_name', models.CharField(max_length=100)),
                ('email', models.EmailField(blank=True, max_length=254)),
                ('phone', models.CharField(blank=True, max_length=20)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('user', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='customer', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'customers',
                'ordering': ['last_name', 'first_name'],
            },
        ),
        migrations.CreateModel(
            name='RegularRegistration',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('monday', models.BooleanField(default=False)),
                ('tuesday', models.BooleanField(default=False)),
                ('wednesday', models.BooleanField(default=False)),
                ('thursday', models.BooleanField(default=False)),
                ('friday', models.BooleanField(default=False)),
                ('saturday', models.BooleanField(default=False)),
                ('sunday', models.BooleanField(default=False)),
                ('seat_number', models.CharField(max_length=10)),
                ('requires_wheelchair', models.BooleanField(default=False)),
                ('valid_from', models.DateField(default=django.utils.timezone.localdate)),
                ('valid_until', models.DateField(blank=True, null=True)),
                ('status', models.CharField(choices=[('active', 'Active'), ('suspended', 'Suspended'), ('ended', 'Ended')], default='active', max_length=10)),
                ('notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='registrations', to='passengers.customer')),
                ('timetable', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='registrations', to='timetables.timetable')),
            ],
            options={
                'db_table': 'regular_registrations',
                'indexes': [
                    models.Index(fields=['timetable', 'status'], name='registration_status_idx'),
                    models.Index(fields=['valid_from', 'valid_until'], name='registration_validity_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('timetable', 'seat_number', 'valid_from'), name='unique_regular_seat_assignment'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Absence',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('absence_date', models.DateField()),
                ('reason', models.CharField(choices=[('sick', 'Sick'), ('holiday', 'Holiday'), ('appointment', 'Appointment'), ('other', 'Other')], default='other', max_length=20)),
                ('reason_notes', models.TextField(blank=True)),
                ('reported_by', models.CharField(choices=[('customer', 'Customer'), ('staff', 'Staff'), ('carer', 'Carer')], default='staff', max_length=10)),
                ('status', models.CharField(choices=[('confirmed', 'Confirmed'), ('cancelled', 'Cancelled')], default='confirmed', max_length=10)),
                ('reported_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('customer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='absences', to='passengers.customer')),
                ('reported_by_user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='reported_absences', to=settings.AUTH_USER_MODEL)),
                ('timetable', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='absences', to='timetables.timetable')),
            ],
            options={
                'db_table': 'passenger_absences',
                'indexes': [
                    models.Index(fields=['absence_date', 'status'], name='absence_date_status_idx'),
                    models.Index(fields=['customer', 'absence_date'], name='absence_customer_date_idx'),
                ],
            },
        ),
    ]
