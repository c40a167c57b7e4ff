from django.contrib import admin
from .models import CostRateTable, BusRoute, Timetable, ServiceInstance


@admin.register(CostRateTable)
class CostRateTableAdmin(admin.ModelAdmin):
    list_display = ['name', 'driver_wage_per_hour', 'fuel_per_mile', 'insurance_per_trip', 'overhead_per_trip']
    search_fields = ['name']


@admin.register(BusRoute)
class BusRouteAdmin(admin.ModelAdmin):
    list_display = ['route_number', 'name', 'origin', 'destination', 'distance_miles', 'duration_hours', 'is_active']
    list_filter = ['is_active']
    search_fields = ['route_number', 'name', 'origin', 'destination']
    ordering = ['route_number']


@admin.register(Timetable)
class TimetableAdmin(admin.ModelAdmin):
    list_display = ['service_name', 'route', 'departure_time', 'pricing_model', 'total_seats', 'wheelchair_spaces', 'is_active']
    list_filter = ['is_active', 'pricing_model']
    search_fields = ['service_name', 'route__route_number']
    ordering = ['route__route_number', 'departure_time']


@admin.register(ServiceInstance)
class ServiceInstanceAdmin(admin.ModelAdmin):
    list_display = ['timetable', 'service_date', 'reserved_seats', 'reserved_wheelchair_seats', 'updated_at']
    list_filter = ['service_date']
    search_fields = ['timetable__service_name', 'timetable__route__route_number']
    # Counters are owned by CapacityAllocator
    readonly_fields = ['reserved_seats', 'reserved_wheelchair_seats', 'version']
