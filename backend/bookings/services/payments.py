from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

import stripe
from django.conf import settings

from bookings.models import Booking
from core.exceptions import PaymentProviderError, SignatureInvalid

logger = logging.getLogger(__name__)

# (stripe error class, HTTP status, code, message override)
STRIPE_ERROR_CATEGORIES = (
    (stripe.CardError, 402, "card_error", None),
    (stripe.RateLimitError, 429, "rate_limit_error", "Too many requests were made to the payment provider."),
    (stripe.InvalidRequestError, 400, "invalid_request_error", None),
    (stripe.AuthenticationError, 401, "authentication_error", "The payment provider rejected our credentials."),
    (stripe.APIConnectionError, 503, "connection_error", "Could not reach the payment provider."),
    (stripe.APIError, 500, "api_error", "The payment provider reported an internal error."),
)


@dataclass
class CheckoutSessionStub:
    """Offline checkout session: `cs_test_` ids and a frontend preview link instead of a Stripe page."""

    id: str
    payment_intent: str
    payment_status: str
    url: str


def booking_amount_cents(booking: Booking) -> int:
    return booking.hotel.price_cents * booking.nights


def build_checkout_preview_url(*, booking: Booking, amount_cents: int, session_id: str) -> str:
    frontend_url = settings.FRONTEND_URL.rstrip("/")
    return f"{frontend_url}/payments/preview?booking={booking.id}&amount={amount_cents}&session={session_id}"


def _stub_checkout_session(*, booking: Booking, amount_cents: int) -> CheckoutSessionStub:
    token = uuid4().hex
    session_id = f"cs_test_{token}"
    return CheckoutSessionStub(
        id=session_id,
        payment_intent=f"pi_test_{token}",
        payment_status="unpaid",
        url=build_checkout_preview_url(booking=booking, amount_cents=amount_cents, session_id=session_id),
    )


def stripe_enabled() -> bool:
    """Stripe is called only with a secret key configured and stub mode switched off."""

    return bool(settings.STRIPE_SECRET_KEY) and not settings.STRIPE_USE_STUB


def configure_stripe() -> None:
    if not settings.STRIPE_SECRET_KEY:
        raise PaymentProviderError(
            "Stripe secret key is not configured.",
            code="authentication_error",
            status_code=500,
        )
    stripe.api_key = settings.STRIPE_SECRET_KEY
    stripe.max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES
    stripe.default_http_client = stripe.RequestsClient(timeout=settings.STRIPE_TIMEOUT_SECONDS)


def translate_stripe_error(exc: Exception) -> PaymentProviderError:
    for error_class, status_code, code, message in STRIPE_ERROR_CATEGORIES:
        if isinstance(exc, error_class):
            detail = message or getattr(exc, "user_message", None) or str(exc) or None
            return PaymentProviderError(detail, code=code, status_code=status_code)
    return PaymentProviderError(
        getattr(exc, "user_message", None) or "An unexpected payment error occurred.",
        code="unknown_error",
        status_code=500,
    )


def _line_items(booking: Booking, amount_cents: int) -> list[dict]:
    hotel = booking.hotel
    if hotel.stripe_price_id:
        return [{"price": hotel.stripe_price_id, "quantity": booking.nights}]
    return [
        {
            "quantity": 1,
            "price_data": {
                "currency": settings.STRIPE_CURRENCY,
                "unit_amount": amount_cents,
                "product_data": {
                    "name": hotel.name,
                    "description": (
                        f"{booking.nights} night(s), {booking.check_in:%Y-%m-%d} to "
                        f"{booking.check_out:%Y-%m-%d}, room {booking.room_number}"
                    ),
                },
            },
        }
    ]


def create_checkout_session(*, booking: Booking, amount_cents: int):
    """
    Create a Stripe Checkout session (or stub equivalent) for a booking.

    The booking id is written into the session metadata; it is the only key
    webhook events are reconciled against. Returns an object with the subset of
    attributes (`id`, `payment_intent`, `payment_status`, `url`) consumed by the
    booking workflow, or raises PaymentProviderError.
    """

    if not stripe_enabled():
        return _stub_checkout_session(booking=booking, amount_cents=amount_cents)

    configure_stripe()
    frontend_url = settings.FRONTEND_URL.rstrip("/")
    session_kwargs = {}
    if booking.user.email:
        session_kwargs["customer_email"] = booking.user.email

    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            payment_method_types=["card"],
            line_items=_line_items(booking, amount_cents),
            client_reference_id=str(booking.id),
            success_url=f"{frontend_url}/booking/complete?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{frontend_url}/booking/cancel?booking={booking.id}",
            metadata={
                "booking_id": str(booking.id),
                "hotel_id": str(booking.hotel_id),
                "user_id": str(booking.user_id),
            },
            **session_kwargs,
        )
    except stripe.StripeError as exc:
        logger.warning("Stripe checkout session creation failed for booking %s: %s", booking.id, exc)
        raise translate_stripe_error(exc) from exc
    return session


def expire_checkout_session(session_id: str) -> bool:
    """
    Close a superseded checkout session so it can no longer be paid.

    Returns False when Stripe could not expire it; sessions that already
    completed or expired are reported by Stripe as invalid requests.
    """

    if not stripe_enabled():
        return False

    configure_stripe()
    try:
        stripe.checkout.Session.expire(session_id)
    except stripe.InvalidRequestError as exc:
        logger.info("Checkout session %s could not be expired: %s", session_id, exc)
        return False
    except stripe.StripeError:
        logger.exception("Stripe failed to expire checkout session %s", session_id)
        return False
    logger.info("Expired checkout session %s", session_id)
    return True


def verify_webhook_signature(payload: bytes, signature_header: str, secret: str):
    """Return the verified Stripe event as a plain dict or raise SignatureInvalid."""

    try:
        event = stripe.Webhook.construct_event(payload, signature_header, secret)
    except ValueError as exc:
        raise SignatureInvalid("Invalid webhook payload.") from exc
    except stripe.SignatureVerificationError as exc:
        raise SignatureInvalid() from exc
    return event.to_dict()
