from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('passengers', '0001_initial'),
        ('timetables', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='CooperativeMember',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('membership_number', models.CharField(max_length=50, unique=True)),
                ('membership_type', models.CharField(choices=[('founding', 'Founding'), ('standard', 'Standard'), ('associate', 'Associate')], default='standard', max_length=10)),
                ('joined_on', models.DateField(default=django.utils.timezone.localdate)),
                ('left_on', models.DateField(blank=True, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('dividend_eligible', models.BooleanField(default=True)),
                ('share_capital', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('customer', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='membership', to='passengers.customer')),
            ],
            options={
                'db_table': 'cooperative_members',
                'indexes': [
                    models.Index(fields=['is_active'], name='coop_member_active_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SurplusAllocation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('pricing_model', models.CharField(max_length=20)),
                ('total_trip_cost', models.DecimalField(decimal_places=2, max_digits=10)),
                ('total_confirmed_fares', models.DecimalField(decimal_places=2, max_digits=10)),
                ('confirmed_passengers', models.PositiveSmallIntegerField(default=0)),
                ('total_surplus', models.DecimalField(decimal_places=2, max_digits=10)),
                ('reserves_percent', models.DecimalField(decimal_places=2, max_digits=5)),
                ('business_percent', models.DecimalField(decimal_places=2, max_digits=5)),
                ('dividend_percent', models.DecimalField(decimal_places=2, max_digits=5)),
                ('to_reserves', models.DecimalField(decimal_places=2, max_digits=10)),
                ('to_dividends', models.DecimalField(decimal_places=2, max_digits=10)),
                ('to_commonwealth', models.DecimalField(decimal_places=2, max_digits=10)),
                ('allocated_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('instance', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='surplus_allocation', to='timetables.serviceinstance')),
            ],
            options={
                'db_table': 'surplus_allocations',
                'ordering': ['-allocated_at'],
            },
        ),
        migrations.CreateModel(
            name='MemberDividendLedgerEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=10)),
                ('patronage_trips', models.PositiveIntegerField(default=0)),
                ('accrual_date', models.DateField()),
                ('allocation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='dividend_entries', to='cooperative.surplusallocation')),
                ('member', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='dividend_entries', to='cooperative.cooperativemember')),
            ],
            options={
                'db_table': 'member_dividend_ledger',
                'indexes': [
                    models.Index(fields=['member', 'accrual_date'], name='dividend_member_date_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('member', 'allocation'), name='unique_member_dividend_per_allocation'),
                ],
            },
        ),
    ]
