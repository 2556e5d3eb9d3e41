import re
import uuid

from django.contrib.auth.models import AbstractUser, UserManager
from django.db import models


class Role(models.TextChoices):
    SITE_ADMIN = "site_admin", "Site admin"
    VENUE_ADMIN = "venue_admin", "Venue admin"
    SUB_ADMIN = "sub_admin", "Sub admin"
    ORGANISER = "organiser", "Organiser"
    SCANNER = "scanner", "Scanner"
    USER = "user", "User"


class BoxOfficeUserQueryset(models.QuerySet["BoxOfficeUser"]):
    """Queryset for BoxOfficeUser."""

    def scanners(self) -> "BoxOfficeUserQueryset":
        """Users allowed to redeem tickets at the door."""
        return self.filter(
            role__in=[Role.SCANNER, Role.SUB_ADMIN, Role.VENUE_ADMIN, Role.SITE_ADMIN],
            role_active=True,
        )


class BoxOfficeUserManager(UserManager["BoxOfficeUser"]):
    def get_queryset(self) -> BoxOfficeUserQueryset:
        """Get queryset for BoxOfficeUser."""
        return BoxOfficeUserQueryset(self.model)


class BoxOfficeUser(AbstractUser):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    preferred_name = models.CharField(db_index=True, max_length=255, blank=True, help_text="Preferred name")
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.USER, db_index=True)
    venue = models.ForeignKey(
        "events.Venue",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="staff",
        help_text="Venue this role is scoped to. Empty means all venues.",
    )
    role_active = models.BooleanField(default=True, help_text="Inactive staff keep their role but cannot act on it.")
    stripe_customer_id = models.CharField(max_length=255, null=True, blank=True, editable=False)

    objects = BoxOfficeUserManager()  # type: ignore[misc]

    class Meta:
        ordering = ["username"]

    @property
    def display_name(self) -> str:
        """Display name."""
        return self.get_display_name()

    def get_display_name(self) -> str:
        """Returns the user's preferred name, or their full name as a fallback."""
        return (
            self.preferred_name or self.get_full_name() or re.sub(r"(\W|_)+", " ", self.username.split("@")[0]).title()
        )
