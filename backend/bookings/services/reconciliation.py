"""
Apply verified Stripe checkout events to bookings.

Each event maps to plain assignments keyed by the booking id found in the
session metadata, so redelivered or reordered events converge on the same
row state without a deduplication ledger. `status` is only ever moved from
PENDING to PAID here; a failure reported after a success touches
`payment_status` alone. Events for a superseded checkout session never
change the booking.
"""

from __future__ import annotations

import logging
from typing import Optional

import stripe
from django.db import DatabaseError, models, transaction
from django.db.models import Case, F, Value, When
from django.utils import timezone

from bookings.models import Booking
from payments.models import Payment

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"
HANDLED_EVENT_TYPES = {CHECKOUT_COMPLETED, ASYNC_PAYMENT_SUCCEEDED, ASYNC_PAYMENT_FAILED}

APPLIED = "applied"
IGNORED = "ignored"
DISCARDED = "discarded"
NOT_FOUND = "not_found"
FAILED = "failed"


def _booking_id_from(session) -> Optional[int]:
    metadata = session.get("metadata") or {}
    raw_id = metadata.get("booking_id")
    if raw_id in (None, ""):
        return None
    try:
        return int(raw_id)
    except (TypeError, ValueError):
        logger.warning("Checkout session %s carries a malformed booking_id %r", session.get("id"), raw_id)
        return None


def _session_superseded(session_id: Optional[str]) -> bool:
    if not session_id:
        return False
    return Payment.objects.filter(stripe_checkout_session=session_id, status=Payment.SUPERSEDED).exists()


def mark_booking_paid(booking_id: int, session_id: Optional[str]) -> int:
    with transaction.atomic():
        updated = Booking.objects.filter(pk=booking_id).update(
            payment_status=Booking.PAYMENT_PAID,
            status=Case(
                When(status=Booking.PENDING, then=Value(Booking.PAID)),
                default=F("status"),
                output_field=models.CharField(),
            ),
            updated_at=timezone.now(),
        )
        if updated and session_id:
            Payment.objects.filter(stripe_checkout_session=session_id).update(status="paid")
    return updated


def mark_payment_failed(booking_id: int, session_id: Optional[str]) -> int:
    with transaction.atomic():
        updated = Booking.objects.filter(pk=booking_id).update(
            payment_status=Booking.PAYMENT_FAILED,
            updated_at=timezone.now(),
        )
        if updated and session_id:
            Payment.objects.filter(stripe_checkout_session=session_id).update(status="failed")
    return updated


def reconcile_event(event) -> str:
    """Apply one verified Stripe event and return the outcome label."""

    if isinstance(event, stripe.StripeObject):
        event = event.to_dict()
    event_type = event.get("type")
    event_id = event.get("id")
    if event_type not in HANDLED_EVENT_TYPES:
        logger.info("Ignoring Stripe event %s of type %s", event_id, event_type)
        return IGNORED

    session = event["data"]["object"]
    session_id = session.get("id")
    booking_id = _booking_id_from(session)
    if booking_id is None:
        logger.warning("Stripe event %s (%s) has no booking_id in session metadata; discarding.", event_id, event_type)
        return DISCARDED

    payment_status = session.get("payment_status")
    if event_type == CHECKOUT_COMPLETED and payment_status != "paid":
        logger.info(
            "Checkout session %s completed for booking %s without payment (payment_status=%s)",
            session_id,
            booking_id,
            payment_status,
        )
        return IGNORED

    try:
        if _session_superseded(session_id):
            logger.error(
                "Stripe event %s (%s) is for superseded checkout session %s of booking %s; needs manual reconciliation.",
                event_id,
                event_type,
                session_id,
                booking_id,
            )
            return IGNORED
        if event_type == ASYNC_PAYMENT_FAILED:
            updated = mark_payment_failed(booking_id, session_id)
        else:
            updated = mark_booking_paid(booking_id, session_id)
    except DatabaseError:
        logger.exception("Failed to apply Stripe event %s to booking %s", event_id, booking_id)
        return FAILED

    if not updated:
        logger.warning("Stripe event %s references missing booking %s", event_id, booking_id)
        return NOT_FOUND

    logger.info("Applied Stripe event %s (%s) to booking %s", event_id, event_type, booking_id)
    return APPLIED
