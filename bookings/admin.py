from django.contrib import admin
from .models import Booking, FareSnapshot


class FareSnapshotInline(admin.StackedInline):
    model = FareSnapshot
    extra = 0
    can_delete = False

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in FareSnapshot._meta.fields]

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ['reference', 'customer', 'instance', 'passenger_tier', 'booking_status', 'payment_status', 'created_at']
    list_filter = ['booking_status', 'payment_status', 'passenger_tier']
    search_fields = ['reference', 'customer__last_name', 'customer__email']
    readonly_fields = ['reference', 'reservation', 'created_at', 'confirmed_at', 'cancelled_at',
                       'completed_at', 'paid_at', 'refunded_at']
    inlines = [FareSnapshotInline]
    ordering = ['-created_at']


@admin.register(FareSnapshot)
class FareSnapshotAdmin(admin.ModelAdmin):
    """Snapshots are written once at confirmation and are read-only here."""
    list_display = ['booking', 'pricing_model', 'quoted_fare', 'occupancy_at_quote', 'created_at']
    list_filter = ['pricing_model', 'passenger_tier']
    search_fields = ['booking__reference']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
