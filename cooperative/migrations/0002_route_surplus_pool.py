from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('cooperative', '0001_initial'),
        ('timetables', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='surplusallocation',
            name='shortfall',
            field=models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10),
        ),
        migrations.AddField(
            model_name='surplusallocation',
            name='subsidy_applied',
            field=models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10),
        ),
        migrations.CreateModel(
            name='RouteSurplusPool',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('balance', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('lifetime_total_revenue', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('lifetime_total_costs', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('lifetime_gross_surplus', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('total_subsidy_applied', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('total_unfunded_shortfall', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('total_services_run', models.PositiveIntegerField(default=0)),
                ('total_profitable_services', models.PositiveIntegerField(default=0)),
                ('total_subsidised_services', models.PositiveIntegerField(default=0)),
                ('last_surplus_date', models.DateField(blank=True, null=True)),
                ('last_subsidy_date', models.DateField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('route', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='surplus_pool', to='timetables.busroute')),
            ],
            options={
                'db_table': 'route_surplus_pools',
            },
        ),
        migrations.CreateModel(
            name='SurplusPoolTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('transaction_type', models.CharField(choices=[('surplus_added', 'Surplus added'), ('subsidy_applied', 'Subsidy applied'), ('shortfall_unfunded', 'Shortfall unfunded')], max_length=20)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=10)),
                ('balance_before', models.DecimalField(decimal_places=2, max_digits=12)),
                ('balance_after', models.DecimalField(decimal_places=2, max_digits=12)),
                ('service_date', models.DateField()),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('allocation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='pool_transactions', to='cooperative.surplusallocation')),
                ('pool', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='transactions', to='cooperative.routesurpluspool')),
            ],
            options={
                'db_table': 'surplus_pool_transactions',
                'ordering': ['-created_at', '-id'],
                'indexes': [
                    models.Index(fields=['pool', 'service_date'], name='pool_txn_service_date_idx'),
                    models.Index(fields=['transaction_type'], name='pool_txn_type_idx'),
                ],
            },
        ),
    ]
