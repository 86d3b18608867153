from django.contrib import admin

from payments.models import Payment

from .models import Booking


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    readonly_fields = ("stripe_checkout_session", "stripe_payment_intent", "amount_cents", "currency", "status", "created_at")
    can_delete = False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("id", "hotel", "user", "check_in", "check_out", "room_number", "status", "payment_status")
    list_filter = ("status", "payment_status")
    search_fields = ("hotel__name", "user__email", "payment_session_id")
    readonly_fields = ("payment_session_id", "created_at", "updated_at")
    inlines = [PaymentInline]
