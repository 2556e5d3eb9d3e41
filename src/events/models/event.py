import typing as t
import zoneinfo
from datetime import date
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from common.models import TimeStampedModel

from .venue import Venue


class EventQuerySet(models.QuerySet["Event"]):
    def upcoming(self) -> t.Self:
        """Events that have not started yet."""
        return self.filter(start_time__gt=timezone.now())

    def with_venue(self) -> t.Self:
        return self.select_related("venue")


class EventManager(models.Manager["Event"]):
    def get_queryset(self) -> EventQuerySet:
        """Get base queryset."""
        return EventQuerySet(self.model, using=self._db)

    def upcoming(self) -> EventQuerySet:
        return self.get_queryset().upcoming()

    def with_venue(self) -> EventQuerySet:
        return self.get_queryset().with_venue()


class Event(TimeStampedModel):
    """An event with a fixed ticket capacity.

    ``tickets_sold`` is only ever changed with a conditional update against the
    value read earlier in the same transaction (see ``events.service.ticket_issuer``),
    never by saving the instance.
    """

    name = models.CharField(max_length=255, db_index=True)
    venue = models.ForeignKey(Venue, on_delete=models.SET_NULL, null=True, blank=True, related_name="events")
    venue_name = models.CharField(max_length=255, blank=True, help_text="Venue name as displayed on the ticket.")
    price = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0"), validators=[MinValueValidator(Decimal("0"))]
    )
    currency = models.CharField(max_length=3, default=settings.DEFAULT_CURRENCY)
    max_tickets = models.PositiveIntegerField()
    tickets_sold = models.PositiveIntegerField(default=0, editable=False)
    start_time = models.DateTimeField(db_index=True)

    objects = EventManager()

    class Meta:
        ordering = ["start_time"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(tickets_sold__lte=models.F("max_tickets")),
                name="event_tickets_sold_within_capacity",
            ),
        ]

    def __str__(self) -> str:
        return self.name

    @property
    def remaining_tickets(self) -> int:
        return self.max_tickets - self.tickets_sold

    @property
    def is_free(self) -> bool:
        return self.price <= 0

    def has_started(self) -> bool:
        return self.start_time <= timezone.now()

    @property
    def tzinfo(self) -> zoneinfo.ZoneInfo:
        """Time zone of the venue, falling back to the site default."""
        if self.venue_id and self.venue:
            return self.venue.tzinfo
        return zoneinfo.ZoneInfo(settings.TIME_ZONE)

    def local_start_date(self) -> date:
        """Calendar date the event starts on, in the venue's local time."""
        return self.start_time.astimezone(self.tzinfo).date()

    def display_venue_name(self) -> str:
        if self.venue_name:
            return self.venue_name
        return self.venue.name if self.venue_id and self.venue else ""
