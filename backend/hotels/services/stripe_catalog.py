from __future__ import annotations

import logging

import stripe
from django.conf import settings

from bookings.services.payments import configure_stripe, translate_stripe_error
from hotels.models import Hotel

logger = logging.getLogger(__name__)


def hotels_missing_stripe_price():
    return Hotel.objects.filter(stripe_price_id="")


def sync_hotel_with_stripe(hotel: Hotel) -> Hotel:
    """
    Create the Stripe product (if needed) and a nightly price for a hotel.

    Checkout sessions for hotels with a price id bill `nights` units of that
    price instead of an inline amount.
    """

    configure_stripe()
    try:
        if not hotel.stripe_product_id:
            product = stripe.Product.create(
                name=hotel.name,
                description=hotel.description or None,
                metadata={"type": "hotel", "hotel_id": str(hotel.id)},
            )
            hotel.stripe_product_id = product.id
        price = stripe.Price.create(
            product=hotel.stripe_product_id,
            unit_amount=hotel.price_cents,
            currency=settings.STRIPE_CURRENCY,
            metadata={"type": "per_night", "hotel_id": str(hotel.id)},
        )
    except stripe.StripeError as exc:
        logger.warning("Stripe catalog sync failed for hotel %s: %s", hotel.id, exc)
        raise translate_stripe_error(exc) from exc

    hotel.stripe_price_id = price.id
    hotel.save(update_fields=["stripe_product_id", "stripe_price_id"])
    logger.info("Hotel %s linked to Stripe product %s / price %s", hotel.id, hotel.stripe_product_id, price.id)
    return hotel
