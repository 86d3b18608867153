from django.db import models


class Payment(models.Model):
    """One Stripe checkout session created for a booking."""

    SUPERSEDED = "superseded"

    booking = models.ForeignKey("bookings.Booking", on_delete=models.CASCADE, related_name="payments")
    amount_cents = models.PositiveIntegerField()
    currency = models.CharField(max_length=10, default="usd")
    stripe_checkout_session = models.CharField(max_length=255, unique=True)
    stripe_payment_intent = models.CharField(max_length=200, blank=True)
    status = models.CharField(max_length=30)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.stripe_checkout_session} ({self.status})"
