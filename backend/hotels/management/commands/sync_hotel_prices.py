from django.core.management.base import BaseCommand, CommandError

from core.exceptions import PaymentProviderError
from hotels.services.stripe_catalog import hotels_missing_stripe_price, sync_hotel_with_stripe


class Command(BaseCommand):
    help = "Create Stripe products and nightly prices for hotels that do not have one yet."

    def handle(self, *args, **options):
        hotels = list(hotels_missing_stripe_price())
        if not hotels:
            self.stdout.write(self.style.SUCCESS("All hotels already have Stripe prices."))
            return

        synced = 0
        failed = 0
        for hotel in hotels:
            try:
                sync_hotel_with_stripe(hotel)
            except PaymentProviderError as exc:
                if exc.get_codes() == "authentication_error":
                    raise CommandError(str(exc.detail))
                failed += 1
                self.stderr.write(self.style.ERROR(f"{hotel.name}: {exc.detail}"))
                continue
            synced += 1
            self.stdout.write(f"{hotel.name}: {hotel.stripe_price_id}")

        self.stdout.write(self.style.SUCCESS(f"Synced {synced} hotel(s), {failed} failed."))
