from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from accounts.models import User
from bookings.models import Booking
from hotels.models import Hotel, Review


SEED_PASSWORD = "Staybook123!"
SUPERUSER_EMAIL = "admin@staybook.test"
SUPERUSER_PASSWORD = "AdminStaybook123!"

SEED_HOTELS = [
    {
        "name": "Harbor Lights Inn",
        "location": "Lisbon, Portugal",
        "price": Decimal("145.00"),
        "rating": Decimal("4.5"),
        "amenities": ["WiFi", "Breakfast", "Rooftop Bar"],
    },
    {
        "name": "Alpine Lodge",
        "location": "Zermatt, Switzerland",
        "price": Decimal("310.00"),
        "rating": Decimal("4.8"),
        "amenities": ["WiFi", "Spa", "Ski Storage"],
    },
    {
        "name": "Desert Palms Resort",
        "location": "Marrakesh, Morocco",
        "price": Decimal("98.50"),
        "rating": Decimal("4.1"),
        "amenities": ["Pool", "Breakfast"],
    },
]


class Command(BaseCommand):
    help = "Populate the local development database with sample hotels, users and bookings."

    def handle(self, *args, **options):
        if not settings.DEBUG:
            raise CommandError("Refusing to seed data while DEBUG is False.")

        with transaction.atomic():
            self.stdout.write(self.style.MIGRATE_HEADING("Creating hotels"))
            hotels = [self._ensure_hotel(**data) for data in SEED_HOTELS]

            self.stdout.write(self.style.MIGRATE_HEADING("Creating users"))
            guest = self._ensure_user(
                email="guest@staybook.test",
                first_name="Greta",
                last_name="Guest",
            )
            self._ensure_superuser()

            self.stdout.write(self.style.MIGRATE_HEADING("Creating reviews & bookings"))
            Review.objects.get_or_create(
                hotel=hotels[0],
                user=guest,
                defaults={"user_name": "Greta", "rating": 5, "comment": "Lovely view of the river."},
            )
            check_in = timezone.localdate() + timedelta(days=14)
            Booking.objects.get_or_create(
                user=guest,
                hotel=hotels[0],
                check_in=check_in,
                defaults={
                    "check_out": check_in + timedelta(days=2),
                    "room_number": 12,
                },
            )

        self.stdout.write(self.style.SUCCESS("Development data ready."))
        self.stdout.write(f"Guest login: guest@staybook.test / {SEED_PASSWORD}")
        self.stdout.write(f"Admin login: {SUPERUSER_EMAIL} / {SUPERUSER_PASSWORD}")

    def _ensure_hotel(self, *, name: str, location: str, price, rating, amenities) -> Hotel:
        hotel, created = Hotel.objects.update_or_create(
            name=name,
            defaults={
                "location": location,
                "price": price,
                "rating": rating,
                "amenities": amenities,
                "description": f"Sample stay at {name}.",
            },
        )
        if created:
            self.stdout.write(self.style.NOTICE(f"Added hotel {hotel.name}"))
        return hotel

    def _ensure_user(self, *, email: str, first_name: str, last_name: str) -> User:
        user, created = User.objects.get_or_create(
            email=email,
            defaults={
                "username": email,
                "first_name": first_name,
                "last_name": last_name,
                "display_name": f"{first_name} {last_name}",
            },
        )
        if created or not user.has_usable_password():
            user.set_password(SEED_PASSWORD)
            user.save(update_fields=["password"])
        return user

    def _ensure_superuser(self) -> User:
        user, created = User.objects.get_or_create(
            email=SUPERUSER_EMAIL,
            defaults={
                "username": SUPERUSER_EMAIL,
                "first_name": "Admin",
                "last_name": "User",
                "display_name": "Admin User",
                "is_staff": True,
                "is_superuser": True,
            },
        )
        if not (user.is_staff and user.is_superuser):
            user.is_staff = True
            user.is_superuser = True
            user.save(update_fields=["is_staff", "is_superuser"])
        if created or not user.has_usable_password():
            user.set_password(SUPERUSER_PASSWORD)
            user.save(update_fields=["password"])
        return user
