from django.contrib import admin
from .models import Customer, RegularRegistration, Absence


class RegularRegistrationInline(admin.TabularInline):
    model = RegularRegistration
    extra = 0


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['last_name', 'first_name', 'email', 'phone', 'is_active']
    list_filter = ['is_active']
    search_fields = ['first_name', 'last_name', 'email']
    inlines = [RegularRegistrationInline]


@admin.register(RegularRegistration)
class RegularRegistrationAdmin(admin.ModelAdmin):
    list_display = ['customer', 'timetable', 'seat_number', 'requires_wheelchair', 'valid_from', 'valid_until', 'status']
    list_filter = ['status', 'requires_wheelchair']
    search_fields = ['customer__last_name', 'timetable__service_name']


@admin.register(Absence)
class AbsenceAdmin(admin.ModelAdmin):
    list_display = ['customer', 'absence_date', 'timetable', 'reason', 'reported_by', 'status']
    list_filter = ['status', 'reason', 'absence_date']
    search_fields = ['customer__last_name', 'customer__first_name']
    readonly_fields = ['reported_at', 'cancelled_at']
    ordering = ['-absence_date']
