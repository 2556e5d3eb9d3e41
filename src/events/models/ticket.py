import typing as t

from django.conf import settings
from django.db import models
from django.utils import timezone

from common.models import TimeStampedModel

from .event import Event
from .venue import Venue

# ValidationError code raised by full_clean() for a second held ticket.
HELD_TICKET_VIOLATION = "duplicate_ticket"


class TicketQuerySet(models.QuerySet["Ticket"]):
    """Custom queryset for Ticket model with common prefetch patterns."""

    def held(self) -> t.Self:
        """Tickets that count towards the one-per-user-per-event rule."""
        return self.filter(status__in=Ticket.HELD_STATUSES)

    def with_event(self) -> t.Self:
        """Select the related event and its venue."""
        return self.select_related("event", "event__venue")

    def full(self) -> t.Self:
        """Select everything the ticket and scanner views render."""
        return self.select_related("event", "event__venue", "user", "scanned_by", "transferred_from")


class TicketManager(models.Manager["Ticket"]):
    """Custom manager for Ticket with convenience methods for related object selection."""

    def get_queryset(self) -> TicketQuerySet:
        """Get base queryset."""
        return TicketQuerySet(self.model, using=self._db)

    def held(self) -> TicketQuerySet:
        return self.get_queryset().held()

    def with_event(self) -> TicketQuerySet:
        return self.get_queryset().with_event()

    def full(self) -> TicketQuerySet:
        return self.get_queryset().full()


class Ticket(TimeStampedModel):
    """A ticket for a specific user to a specific event.

    Lifecycle: ``confirmed`` is the only live state. It moves to ``used`` exactly
    once on a successful scan, or to ``cancelled``/``refunded``. None of those
    ever go back to ``confirmed``; buying again creates a new row.
    """

    class TicketStatus(models.TextChoices):
        CONFIRMED = "confirmed", "Confirmed"
        USED = "used", "Used"
        CANCELLED = "cancelled", "Cancelled"
        REFUNDED = "refunded", "Refunded"
        DELETED = "deleted", "Deleted"

    HELD_STATUSES: t.ClassVar[tuple[str, ...]] = (TicketStatus.CONFIRMED, TicketStatus.USED)
    VOID_STATUSES: t.ClassVar[tuple[str, ...]] = (
        TicketStatus.CANCELLED,
        TicketStatus.REFUNDED,
        TicketStatus.DELETED,
    )

    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="tickets")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="tickets")
    # Not unique: numbers come from the clock plus three random digits and are not re-checked on write.
    ticket_number = models.CharField(max_length=14, db_index=True, editable=False)
    qr_code_payload = models.TextField(editable=False)
    status = models.CharField(
        max_length=20, choices=TicketStatus.choices, default=TicketStatus.CONFIRMED, db_index=True
    )
    payment_intent_id = models.CharField(max_length=255, null=True, blank=True, db_index=True)
    payment_method_details = models.JSONField(null=True, blank=True)
    customer_email = models.EmailField(blank=True)
    venue = models.ForeignKey(Venue, on_delete=models.SET_NULL, null=True, blank=True, related_name="tickets")
    total_price = models.DecimalField(max_digits=10, decimal_places=2)
    purchase_date = models.DateTimeField(default=timezone.now)
    used_at = models.DateTimeField(null=True, blank=True, editable=False)
    scanned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="scanned_tickets",
        editable=False,
    )
    transferred_from = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transferred_tickets",
        editable=False,
    )
    transferred_at = models.DateTimeField(null=True, blank=True, editable=False)

    objects = TicketManager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "event"],
                condition=models.Q(status__in=["confirmed", "used"]),
                name="unique_held_ticket_per_user_event",
                violation_error_code=HELD_TICKET_VIOLATION,
                violation_error_message="This user already holds a ticket for this event.",
            ),
        ]
        ordering = ["-purchase_date"]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.ticket_number} for {self.event.name}"

    @property
    def is_held(self) -> bool:
        return self.status in self.HELD_STATUSES
