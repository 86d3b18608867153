from django.contrib import admin

from .models import Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("stripe_checkout_session", "booking", "amount_cents", "currency", "status", "created_at")
    list_filter = ("status", "currency")
    search_fields = ("stripe_checkout_session", "stripe_payment_intent", "booking__id")
