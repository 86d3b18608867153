"""
Synchronous booking state transitions.

Every status write is a single conditional UPDATE so that a concurrent
webhook or a second request cannot be lost between a read and a write. When
an UPDATE matches no row the booking is re-read only to pick the error to
report.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from bookings.models import Booking
from bookings.services.payments import booking_amount_cents, create_checkout_session, expire_checkout_session
from core.exceptions import PaymentProviderError
from hotels.models import Hotel
from payments.models import Payment

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("check_in", "check_out", "room_number")
CANCELLABLE_STATUSES = (Booking.PENDING, Booking.PAID)
CONFIRMABLE_STATUSES = (Booking.PENDING, Booking.PAID)


@dataclass
class CheckoutResult:
    booking: Booking
    session_id: Optional[str] = None
    checkout_url: Optional[str] = None
    payment_error: Optional[PaymentProviderError] = None


def _validate_stay(check_in, check_out, room_number) -> None:
    errors = {}
    if check_in is None:
        errors["check_in"] = "This field is required."
    if check_out is None:
        errors["check_out"] = "This field is required."
    elif check_in is not None and check_out <= check_in:
        errors["check_out"] = "Check-out must be after check-in."
    if room_number is None or room_number < 1:
        errors["room_number"] = "Room number must be a positive integer."
    if errors:
        raise ValidationError(errors)


def _get_booking(booking_id) -> Booking:
    try:
        return Booking.objects.select_related("hotel", "user").get(pk=booking_id)
    except Booking.DoesNotExist:
        raise NotFound("Booking not found.")


def _ensure_owner(booking: Booking, user, message: str) -> None:
    if booking.user_id != user.pk:
        raise PermissionDenied(message)


def _start_checkout(booking: Booking, *, previous_session_id: Optional[str] = None):
    """
    Open a new checkout session and make it the booking's correlation id.

    The swap only happens while the booking is still pending and still points
    at `previous_session_id`; returns None when that condition no longer holds.
    Whichever session loses is expired at Stripe so it cannot be paid.
    """

    amount_cents = booking_amount_cents(booking)
    session = create_checkout_session(booking=booking, amount_cents=amount_cents)

    with transaction.atomic():
        swapped = Booking.objects.filter(
            pk=booking.pk,
            status=Booking.PENDING,
            payment_session_id=previous_session_id,
        ).update(payment_session_id=session.id, updated_at=timezone.now())
        if swapped:
            Payment.objects.create(
                booking=booking,
                amount_cents=amount_cents,
                currency=settings.STRIPE_CURRENCY,
                stripe_checkout_session=session.id,
                stripe_payment_intent=getattr(session, "payment_intent", None) or "",
                status=getattr(session, "payment_status", None) or "unpaid",
            )
            if previous_session_id:
                Payment.objects.filter(stripe_checkout_session=previous_session_id).update(
                    status=Payment.SUPERSEDED
                )

    if not swapped:
        logger.warning(
            "Booking %s changed while opening checkout session %s; session left unused.",
            booking.pk,
            session.id,
        )
        expire_checkout_session(session.id)
        return None

    if previous_session_id:
        expire_checkout_session(previous_session_id)
    booking.payment_session_id = session.id
    return session


def create_booking(*, user, hotel_id, check_in, check_out, room_number) -> CheckoutResult:
    """
    Persist a pending booking, then open its checkout session.

    The booking row is committed before Stripe is contacted so a webhook can
    always resolve the id embedded in the session metadata. A provider failure
    leaves the booking pending without a session; the caller may retry through
    `restart_checkout`.
    """

    _validate_stay(check_in, check_out, room_number)
    try:
        hotel = Hotel.objects.get(pk=hotel_id)
    except Hotel.DoesNotExist:
        raise NotFound("Hotel not found.")

    booking = Booking.objects.create(
        user=user,
        hotel=hotel,
        check_in=check_in,
        check_out=check_out,
        room_number=room_number,
        status=Booking.PENDING,
        payment_status=Booking.PAYMENT_UNSET,
    )
    logger.info("Created booking %s for user %s at hotel %s", booking.pk, user.pk, hotel.pk)

    result = CheckoutResult(booking=booking)
    try:
        session = _start_checkout(booking)
    except PaymentProviderError as exc:
        logger.warning("Booking %s saved without a checkout session: %s", booking.pk, exc.detail)
        result.payment_error = exc
        return result

    if session is not None:
        result.session_id = session.id
        result.checkout_url = getattr(session, "url", None)
    return result


def restart_checkout(*, booking_id, user) -> CheckoutResult:
    """Open a fresh checkout session for a pending booking, superseding the current one."""

    booking = _get_booking(booking_id)
    _ensure_owner(booking, user, "You can only pay for your own bookings.")
    if booking.status != Booking.PENDING:
        raise ValidationError({"detail": "Only pending bookings can be checked out."})

    session = _start_checkout(booking, previous_session_id=booking.payment_session_id)
    if session is None:
        raise ValidationError({"detail": "Booking changed while starting checkout. Please retry."})
    logger.info("Booking %s checkout restarted with session %s", booking.pk, session.id)
    return CheckoutResult(booking=booking, session_id=session.id, checkout_url=getattr(session, "url", None))


def get_booking(*, booking_id, user) -> Booking:
    booking = _get_booking(booking_id)
    if booking.user_id != user.pk and not getattr(user, "is_booking_admin", False):
        raise PermissionDenied("You do not have access to this booking.")
    return booking


def list_bookings():
    return Booking.objects.select_related("hotel").all()


def list_user_bookings(user):
    return Booking.objects.select_related("hotel").filter(user=user)


def get_booking_by_session(session_id: str) -> Booking:
    """Resolve a booking from a checkout session id, current or superseded."""

    queryset = Booking.objects.select_related("hotel")
    booking = queryset.filter(payment_session_id=session_id).first()
    if booking is None:
        booking = queryset.filter(payments__stripe_checkout_session=session_id).first()
    if booking is None:
        raise NotFound("No booking found for this payment session.")
    return booking


def cancel_booking(*, booking_id, user) -> Booking:
    cancelled = Booking.objects.filter(
        pk=booking_id,
        user=user,
        status__in=CANCELLABLE_STATUSES,
    ).update(status=Booking.CANCELLED, updated_at=timezone.now())

    booking = _get_booking(booking_id)
    if cancelled:
        logger.info("Booking %s cancelled by user %s", booking.pk, user.pk)
        return booking

    _ensure_owner(booking, user, "You can only cancel your own bookings.")
    if booking.status == Booking.CANCELLED:
        raise ValidationError({"detail": "Booking is already cancelled."})
    raise ValidationError({"detail": f"A {booking.get_status_display().lower()} booking cannot be cancelled."})


def update_booking(*, booking_id, user, patch: dict) -> Booking:
    """
    Change the stay of a pending booking.

    A checkout session was priced for the old dates, so changing `check_in` or
    `check_out` releases it: the correlation id is cleared in the same UPDATE,
    its Payment row is superseded and the session is expired at Stripe. The
    guest then opens a new session through `restart_checkout`.
    """

    unexpected = sorted(set(patch) - set(EDITABLE_FIELDS))
    if unexpected:
        raise ValidationError({field: "This field cannot be changed." for field in unexpected})

    booking = _get_booking(booking_id)
    _ensure_owner(booking, user, "You can only update your own bookings.")
    if booking.status != Booking.PENDING:
        raise ValidationError({"detail": "Only pending bookings can be updated."})
    if not patch:
        return booking

    _validate_stay(
        patch.get("check_in", booking.check_in),
        patch.get("check_out", booking.check_out),
        patch.get("room_number", booking.room_number),
    )

    stale_session_id = None
    changes = dict(patch)
    dates_changed = any(
        field in patch and patch[field] != getattr(booking, field) for field in ("check_in", "check_out")
    )
    if dates_changed and booking.payment_session_id:
        stale_session_id = booking.payment_session_id
        changes["payment_session_id"] = None

    with transaction.atomic():
        updated = Booking.objects.filter(
            pk=booking.pk,
            status=Booking.PENDING,
            payment_session_id=booking.payment_session_id,
        ).update(updated_at=timezone.now(), **changes)
        if not updated:
            raise ValidationError({"detail": "Booking changed while updating. Please retry."})
        if stale_session_id:
            Payment.objects.filter(stripe_checkout_session=stale_session_id).update(status=Payment.SUPERSEDED)

    if stale_session_id:
        expire_checkout_session(stale_session_id)
        logger.info("Booking %s dates changed; checkout session %s released", booking.pk, stale_session_id)

    booking.refresh_from_db()
    logger.info("Booking %s updated: %s", booking.pk, ", ".join(sorted(patch)))
    return booking


def confirm_booking(*, booking_id) -> Booking:
    """Force a booking to PAID without a payment event (manual reconciliation)."""

    confirmed = Booking.objects.filter(pk=booking_id, status__in=CONFIRMABLE_STATUSES).update(
        status=Booking.PAID,
        updated_at=timezone.now(),
    )
    booking = _get_booking(booking_id)
    if not confirmed:
        raise ValidationError({"detail": f"A {booking.get_status_display().lower()} booking cannot be confirmed."})
    logger.info("Booking %s confirmed manually", booking.pk)
    return booking


def set_booking_status(*, booking_id, status: str) -> Booking:
    allowed = [value for value, _ in Booking.STATUSES]
    if status not in allowed:
        raise ValidationError({"status": f"Status must be one of: {', '.join(allowed)}."})

    queryset = Booking.objects.filter(pk=booking_id)
    if status == Booking.PENDING:
        queryset = queryset.exclude(status=Booking.PAID)
    changed = queryset.update(status=status, updated_at=timezone.now())

    booking = _get_booking(booking_id)
    if not changed:
        raise ValidationError({"status": "A paid booking cannot be returned to pending."})
    logger.info("Booking %s status set to %s by an administrator", booking.pk, status)
    return booking
