import zoneinfo

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from common.models import TimeStampedModel


def validate_timezone(value: str) -> None:
    """Reject names the IANA database does not know."""
    try:
        zoneinfo.ZoneInfo(value)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"{value!r} is not a valid IANA time zone.") from e


class Venue(TimeStampedModel):
    name = models.CharField(max_length=255, db_index=True)
    address = models.CharField(max_length=512, blank=True)
    timezone = models.CharField(
        max_length=64,
        default=settings.TIME_ZONE,
        validators=[validate_timezone],
        help_text="IANA time zone used to decide which calendar day an event falls on.",
    )
    active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name

    @property
    def tzinfo(self) -> zoneinfo.ZoneInfo:
        return zoneinfo.ZoneInfo(self.timezone)
