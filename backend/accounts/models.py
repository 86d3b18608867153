from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Guest or operator account. Operators are flagged with `is_staff`."""

    display_name = models.CharField(max_length=120, blank=True)

    @property
    def is_booking_admin(self) -> bool:
        return bool(self.is_active and (self.is_staff or self.is_superuser))
