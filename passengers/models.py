"""
Customer records, standing registrations and absences.
"""
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from timetables.models import WEEKDAY_FIELDS, WeekdayPattern


class Customer(models.Model):
    """
    A passenger on the operator's books.
    Maps to the 'customers' table.
    """
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='customer'
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'customers'
        ordering = ['last_name', 'first_name']

    def __str__(self):
        return self.full_name

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()


class RegularRegistration(WeekdayPattern):
    """
    A standing reservation on a timetable for the flagged days of the week.
    Not a per-date row: absences suppress it for single dates.
    """
    STATUS_ACTIVE = 'active'
    STATUS_SUSPENDED = 'suspended'
    STATUS_ENDED = 'ended'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_SUSPENDED, 'Suspended'),
        (STATUS_ENDED, 'Ended'),
    ]

    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='registrations')
    timetable = models.ForeignKey('timetables.Timetable', on_delete=models.CASCADE, related_name='registrations')
    seat_number = models.CharField(max_length=10)
    requires_wheelchair = models.BooleanField(default=False)
    valid_from = models.DateField(default=timezone.localdate)
    valid_until = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'regular_registrations'
        constraints = [
            models.UniqueConstraint(
                fields=['timetable', 'seat_number', 'valid_from'], name='unique_regular_seat_assignment'
            ),
        ]
        indexes = [
            models.Index(fields=['timetable', 'status'], name='registration_status_idx'),
            models.Index(fields=['valid_from', 'valid_until'], name='registration_validity_idx'),
        ]

    def __str__(self):
        return f"{self.customer} seat {self.seat_number} on {self.timetable}"

    def clean(self):
        errors = {}
        if not any(getattr(self, name) for name in WEEKDAY_FIELDS):
            errors['monday'] = 'A registration must cover at least one day of the week.'
        if self.valid_until and self.valid_until < self.valid_from:
            errors['valid_until'] = 'valid_until cannot be before valid_from.'
        if not errors and self.status == self.STATUS_ACTIVE and self.timetable_id is not None:
            errors.update(self._capacity_errors())
        if errors:
            raise ValidationError(errors)

    def _capacity_errors(self):
        """
        Standing registrations alone must fit the vehicle on every weekday
        they share with this one, wherever their validity windows overlap.
        """
        timetable = self.timetable
        overlapping = RegularRegistration.objects.filter(
            Q(valid_until__isnull=True) | Q(valid_until__gte=self.valid_from),
            timetable_id=self.timetable_id,
            status=self.STATUS_ACTIVE,
        ).exclude(pk=self.pk)
        if self.valid_until:
            overlapping = overlapping.filter(valid_from__lte=self.valid_until)

        for name in self.weekdays:
            same_day = overlapping.filter(**{name: True})
            if same_day.count() >= timetable.total_seats:
                return {'timetable': (
                    f"All {timetable.total_seats} seats on {timetable} are already taken by "
                    f"regular passengers on {name.title()}s."
                )}
            if self.requires_wheelchair and (
                same_day.filter(requires_wheelchair=True).count() >= timetable.wheelchair_spaces
            ):
                return {'requires_wheelchair': (
                    f"All {timetable.wheelchair_spaces} wheelchair spaces on {timetable} are already "
                    f"taken by regular passengers on {name.title()}s."
                )}
        return {}

    def save(self, *args, **kwargs):
        self.clean()
        super().save(*args, **kwargs)

    def covers(self, service_date):
        if self.status != self.STATUS_ACTIVE or service_date < self.valid_from:
            return False
        if self.valid_until and service_date > self.valid_until:
            return False
        return self.runs_on_weekday(service_date)


class Absence(models.Model):
    """
    A passenger will not ride on a date. A null timetable means every
    service they would normally ride that day.
    """
    REASON_CHOICES = [
        ('sick', 'Sick'),
        ('holiday', 'Holiday'),
        ('appointment', 'Appointment'),
        ('other', 'Other'),
    ]
    REPORTED_BY_CHOICES = [
        ('customer', 'Customer'),
        ('staff', 'Staff'),
        ('carer', 'Carer'),
    ]
    STATUS_CONFIRMED = 'confirmed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='absences')
    absence_date = models.DateField()
    reason = models.CharField(max_length=20, choices=REASON_CHOICES, default='other')
    reason_notes = models.TextField(blank=True)
    timetable = models.ForeignKey(
        'timetables.Timetable', on_delete=models.CASCADE,
        null=True, blank=True, related_name='absences'
    )
    reported_by = models.CharField(max_length=10, choices=REPORTED_BY_CHOICES, default='staff')
    reported_by_user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='reported_absences'
    )
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_CONFIRMED)
    reported_at = models.DateTimeField(default=timezone.now)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'passenger_absences'
        indexes = [
            models.Index(fields=['absence_date', 'status'], name='absence_date_status_idx'),
            models.Index(fields=['customer', 'absence_date'], name='absence_customer_date_idx'),
        ]

    def __str__(self):
        scope = self.timetable or 'all services'
        return f"{self.customer} absent {self.absence_date} ({scope})"

    def applies_to(self, timetable):
        return self.timetable_id is None or self.timetable_id == timetable.pk
