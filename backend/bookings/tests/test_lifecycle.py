import types
from datetime import date
from decimal import Decimal

import pytest
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from accounts.models import User
from bookings.models import Booking
from bookings.services import lifecycle, reconciliation
from core.exceptions import PaymentProviderError
from hotels.models import Hotel
from payments.models import Payment


@pytest.fixture
def guest(db):
    return User.objects.create_user(
        username="guest@example.com",
        email="guest@example.com",
        password="password123",
        first_name="Greta",
        last_name="Guest",
    )


@pytest.fixture
def other_guest(db):
    return User.objects.create_user(
        username="other@example.com",
        email="other@example.com",
        password="password123",
    )


@pytest.fixture
def operator(db):
    return User.objects.create_user(
        username="ops@example.com",
        email="ops@example.com",
        password="password123",
        is_staff=True,
    )


@pytest.fixture
def hotel(db):
    return Hotel.objects.create(
        name="Harbor Lights Inn",
        location="Lisbon",
        price=Decimal("120.00"),
        rating=Decimal("4.5"),
        amenities=["WiFi"],
    )


@pytest.fixture
def booking(guest, hotel):
    result = lifecycle.create_booking(
        user=guest,
        hotel_id=hotel.id,
        check_in=date(2025, 6, 1),
        check_out=date(2025, 6, 3),
        room_number=12,
    )
    return result.booking


@pytest.mark.django_db
def test_create_booking_is_pending_with_checkout_session(guest, hotel):
    result = lifecycle.create_booking(
        user=guest,
        hotel_id=hotel.id,
        check_in=date(2025, 6, 1),
        check_out=date(2025, 6, 3),
        room_number=12,
    )

    booking = Booking.objects.get(pk=result.booking.pk)
    assert booking.status == Booking.PENDING
    assert booking.payment_status == Booking.PAYMENT_UNSET
    assert booking.payment_session_id == result.session_id
    assert result.session_id.startswith("cs_test_")
    assert f"booking={booking.id}" in result.checkout_url
    assert result.payment_error is None

    payment = booking.payments.get()
    assert payment.stripe_checkout_session == result.session_id
    assert payment.amount_cents == 24000
    assert payment.status == "unpaid"


@pytest.mark.django_db
def test_booking_is_committed_before_session_is_requested(monkeypatch, guest, hotel):
    seen = {}

    def fake_create(*, booking, amount_cents):
        seen["persisted"] = Booking.objects.filter(pk=booking.pk, payment_session_id__isnull=True).exists()
        seen["amount_cents"] = amount_cents
        return types.SimpleNamespace(id="sess_abc", payment_intent=None, payment_status="unpaid", url="https://stripe.test/c")

    monkeypatch.setattr("bookings.services.lifecycle.create_checkout_session", fake_create)

    result = lifecycle.create_booking(
        user=guest,
        hotel_id=hotel.id,
        check_in=date(2025, 6, 1),
        check_out=date(2025, 6, 3),
        room_number=12,
    )

    assert seen == {"persisted": True, "amount_cents": 24000}
    assert result.session_id == "sess_abc"
    assert Payment.objects.get(stripe_checkout_session="sess_abc").stripe_payment_intent == ""


@pytest.mark.django_db
@pytest.mark.parametrize(
    "check_in, check_out",
    [
        (date(2025, 6, 3), date(2025, 6, 1)),
        (date(2025, 6, 3), date(2025, 6, 3)),
    ],
)
def test_create_rejects_inverted_or_empty_stay(guest, hotel, check_in, check_out):
    with pytest.raises(ValidationError) as excinfo:
        lifecycle.create_booking(
            user=guest,
            hotel_id=hotel.id,
            check_in=check_in,
            check_out=check_out,
            room_number=1,
        )

    assert "check_out" in excinfo.value.detail
    assert Booking.objects.count() == 0


@pytest.mark.django_db
def test_create_with_unknown_hotel_is_not_found(guest):
    with pytest.raises(NotFound):
        lifecycle.create_booking(
            user=guest,
            hotel_id=999,
            check_in=date(2025, 6, 1),
            check_out=date(2025, 6, 3),
            room_number=1,
        )
    assert Booking.objects.count() == 0


@pytest.mark.django_db
def test_provider_failure_keeps_pending_booking_without_session(monkeypatch, guest, hotel):
    def failing_create(**kwargs):
        raise PaymentProviderError("Could not reach the payment provider.", code="connection_error", status_code=503)

    monkeypatch.setattr("bookings.services.lifecycle.create_checkout_session", failing_create)

    result = lifecycle.create_booking(
        user=guest,
        hotel_id=hotel.id,
        check_in=date(2025, 6, 1),
        check_out=date(2025, 6, 3),
        room_number=4,
    )

    booking = Booking.objects.get(pk=result.booking.pk)
    assert booking.status == Booking.PENDING
    assert booking.payment_session_id is None
    assert result.session_id is None
    assert result.payment_error.get_codes() == "connection_error"
    assert Payment.objects.count() == 0


@pytest.mark.django_db
def test_restart_checkout_supersedes_previous_session(guest, booking):
    first_session = booking.payment_session_id

    result = lifecycle.restart_checkout(booking_id=booking.id, user=guest)

    booking.refresh_from_db()
    assert result.session_id != first_session
    assert booking.payment_session_id == result.session_id
    assert Payment.objects.get(stripe_checkout_session=first_session).status == Payment.SUPERSEDED
    assert Payment.objects.get(stripe_checkout_session=result.session_id).status == "unpaid"
    # the old redirect still resolves to the booking
    assert lifecycle.get_booking_by_session(first_session).pk == booking.pk


@pytest.mark.django_db
def test_restart_checkout_after_failed_creation_attaches_session(monkeypatch, guest, hotel):
    def failing_create(**kwargs):
        raise PaymentProviderError(code="api_error", status_code=500)

    monkeypatch.setattr("bookings.services.lifecycle.create_checkout_session", failing_create)
    created = lifecycle.create_booking(
        user=guest,
        hotel_id=hotel.id,
        check_in=date(2025, 6, 1),
        check_out=date(2025, 6, 2),
        room_number=3,
    )
    monkeypatch.undo()

    result = lifecycle.restart_checkout(booking_id=created.booking.id, user=guest)

    assert result.session_id.startswith("cs_test_")
    assert Booking.objects.get(pk=created.booking.id).payment_session_id == result.session_id


@pytest.mark.django_db
def test_restart_checkout_rejects_paid_and_foreign_bookings(guest, other_guest, booking):
    with pytest.raises(PermissionDenied):
        lifecycle.restart_checkout(booking_id=booking.id, user=other_guest)

    Booking.objects.filter(pk=booking.pk).update(status=Booking.PAID)
    with pytest.raises(ValidationError):
        lifecycle.restart_checkout(booking_id=booking.id, user=guest)


@pytest.mark.django_db
def test_get_booking_by_session(booking):
    Booking.objects.filter(pk=booking.pk).update(status=Booking.CANCELLED)

    found = lifecycle.get_booking_by_session(booking.payment_session_id)
    assert found.pk == booking.pk
    assert found.status == Booking.CANCELLED

    with pytest.raises(NotFound):
        lifecycle.get_booking_by_session("cs_unknown")


@pytest.mark.django_db
def test_get_booking_checks_ownership(guest, other_guest, operator, booking):
    assert lifecycle.get_booking(booking_id=booking.id, user=guest).pk == booking.pk
    assert lifecycle.get_booking(booking_id=booking.id, user=operator).pk == booking.pk
    with pytest.raises(PermissionDenied):
        lifecycle.get_booking(booking_id=booking.id, user=other_guest)
    with pytest.raises(NotFound):
        lifecycle.get_booking(booking_id=booking.id + 100, user=guest)


@pytest.mark.django_db
def test_cancel_by_non_owner_is_forbidden(other_guest, booking):
    with pytest.raises(PermissionDenied):
        lifecycle.cancel_booking(booking_id=booking.id, user=other_guest)

    booking.refresh_from_db()
    assert booking.status == Booking.PENDING


@pytest.mark.django_db
def test_cancel_twice_fails_on_second_attempt(guest, booking):
    cancelled = lifecycle.cancel_booking(booking_id=booking.id, user=guest)
    assert cancelled.status == Booking.CANCELLED

    with pytest.raises(ValidationError):
        lifecycle.cancel_booking(booking_id=booking.id, user=guest)


@pytest.mark.django_db
def test_cancel_paid_booking_keeps_payment_status(guest, booking):
    Booking.objects.filter(pk=booking.pk).update(status=Booking.PAID, payment_status=Booking.PAYMENT_PAID)

    cancelled = lifecycle.cancel_booking(booking_id=booking.id, user=guest)

    assert cancelled.status == Booking.CANCELLED
    assert cancelled.payment_status == Booking.PAYMENT_PAID


@pytest.mark.django_db
def test_cancel_refunded_or_missing_booking(guest, booking):
    Booking.objects.filter(pk=booking.pk).update(status=Booking.REFUNDED)
    with pytest.raises(ValidationError):
        lifecycle.cancel_booking(booking_id=booking.id, user=guest)
    with pytest.raises(NotFound):
        lifecycle.cancel_booking(booking_id=booking.id + 100, user=guest)


@pytest.mark.django_db
def test_update_pending_booking(guest, booking):
    updated = lifecycle.update_booking(
        booking_id=booking.id,
        user=guest,
        patch={"check_out": date(2025, 6, 5), "room_number": 14},
    )

    assert updated.check_in == date(2025, 6, 1)
    assert updated.check_out == date(2025, 6, 5)
    assert updated.room_number == 14
    assert updated.status == Booking.PENDING


@pytest.mark.django_db
def test_update_after_payment_is_rejected(guest, booking):
    Booking.objects.filter(pk=booking.pk).update(status=Booking.PAID)

    with pytest.raises(ValidationError):
        lifecycle.update_booking(booking_id=booking.id, user=guest, patch={"room_number": 2})

    booking.refresh_from_db()
    assert booking.room_number == 12


@pytest.mark.django_db
def test_update_rejects_owner_or_hotel_change(guest, hotel, booking):
    with pytest.raises(ValidationError) as excinfo:
        lifecycle.update_booking(booking_id=booking.id, user=guest, patch={"hotel_id": hotel.id})
    assert "hotel_id" in excinfo.value.detail

    with pytest.raises(ValidationError):
        lifecycle.update_booking(booking_id=booking.id, user=guest, patch={"user": guest.id})


@pytest.mark.django_db
def test_update_rejects_invalid_range_against_stored_dates(guest, booking):
    with pytest.raises(ValidationError) as excinfo:
        lifecycle.update_booking(booking_id=booking.id, user=guest, patch={"check_in": date(2025, 6, 3)})
    assert "check_out" in excinfo.value.detail


@pytest.mark.django_db
def test_update_by_non_owner_is_forbidden(other_guest, booking):
    with pytest.raises(PermissionDenied):
        lifecycle.update_booking(booking_id=booking.id, user=other_guest, patch={"room_number": 2})


@pytest.mark.django_db
def test_confirm_booking(booking):
    confirmed = lifecycle.confirm_booking(booking_id=booking.id)
    assert confirmed.status == Booking.PAID
    # confirming again is a no-op
    assert lifecycle.confirm_booking(booking_id=booking.id).status == Booking.PAID


@pytest.mark.django_db
def test_confirm_cancelled_booking_is_rejected(booking):
    Booking.objects.filter(pk=booking.pk).update(status=Booking.CANCELLED)
    with pytest.raises(ValidationError):
        lifecycle.confirm_booking(booking_id=booking.id)
    with pytest.raises(NotFound):
        lifecycle.confirm_booking(booking_id=booking.id + 100)


@pytest.mark.django_db
def test_set_status_overrides_and_guards_paid(booking):
    refunded = lifecycle.set_booking_status(booking_id=booking.id, status=Booking.REFUNDED)
    assert refunded.status == Booking.REFUNDED

    lifecycle.set_booking_status(booking_id=booking.id, status=Booking.PAID)
    with pytest.raises(ValidationError):
        lifecycle.set_booking_status(booking_id=booking.id, status=Booking.PENDING)
    booking.refresh_from_db()
    assert booking.status == Booking.PAID

    with pytest.raises(ValidationError):
        lifecycle.set_booking_status(booking_id=booking.id, status="ARCHIVED")


@pytest.fixture
def expired_sessions(monkeypatch):
    expired = []

    def record_expire(session_id):
        expired.append(session_id)
        return True

    monkeypatch.setattr("bookings.services.lifecycle.expire_checkout_session", record_expire)
    return expired


@pytest.mark.django_db
def test_restart_checkout_expires_previous_session(guest, booking, expired_sessions):
    first_session = booking.payment_session_id

    result = lifecycle.restart_checkout(booking_id=booking.id, user=guest)

    assert expired_sessions == [first_session]
    assert result.session_id not in expired_sessions


@pytest.mark.django_db
def test_restart_checkout_expires_new_session_when_booking_changed(monkeypatch, guest, booking, expired_sessions):
    def create_while_cancelled(**kwargs):
        Booking.objects.filter(pk=booking.pk).update(status=Booking.CANCELLED)
        return types.SimpleNamespace(id="cs_test_late", payment_intent="", payment_status="unpaid", url="u")

    monkeypatch.setattr("bookings.services.lifecycle.create_checkout_session", create_while_cancelled)

    with pytest.raises(ValidationError):
        lifecycle.restart_checkout(booking_id=booking.id, user=guest)

    assert expired_sessions == ["cs_test_late"]
    assert not Payment.objects.filter(stripe_checkout_session="cs_test_late").exists()


@pytest.mark.django_db
def test_date_change_releases_checkout_session(guest, booking, expired_sessions):
    old_session = booking.payment_session_id
    assert Payment.objects.get(stripe_checkout_session=old_session).amount_cents == 24000

    updated = lifecycle.update_booking(
        booking_id=booking.id,
        user=guest,
        patch={"check_out": date(2025, 6, 20)},
    )

    assert updated.nights == 19
    assert updated.payment_session_id is None
    assert Payment.objects.get(stripe_checkout_session=old_session).status == Payment.SUPERSEDED
    assert expired_sessions == [old_session]

    late_payment = {
        "id": "evt_late",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": old_session,
                "payment_status": "paid",
                "metadata": {"booking_id": str(booking.id)},
            }
        },
    }
    assert reconciliation.reconcile_event(late_payment) == reconciliation.IGNORED
    assert Booking.objects.get(pk=booking.pk).status == Booking.PENDING

    result = lifecycle.restart_checkout(booking_id=booking.id, user=guest)
    assert Payment.objects.get(stripe_checkout_session=result.session_id).amount_cents == 19 * 12000


@pytest.mark.django_db
def test_room_change_keeps_checkout_session(guest, booking, expired_sessions):
    session_id = booking.payment_session_id

    updated = lifecycle.update_booking(booking_id=booking.id, user=guest, patch={"room_number": 30})

    assert updated.payment_session_id == session_id
    assert expired_sessions == []
    assert Payment.objects.get(stripe_checkout_session=session_id).status == "unpaid"
