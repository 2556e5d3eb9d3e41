"""Ticket issuance.

``issue_ticket`` writes the confirmed ticket and bumps the event's
``tickets_sold`` by one. Both writes happen in the caller's transaction: the
increment is a conditional update against the ``tickets_sold`` value the
inventory check read, so a concurrent sale makes it match zero rows, which
raises ``TransactionConflict`` and rolls the ticket insert back with it.
"""

import typing as t
from dataclasses import dataclass
from uuid import UUID

import structlog
from django.core.exceptions import NON_FIELD_ERRORS
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from accounts.models import BoxOfficeUser
from events.exceptions import DuplicateTicketError, TransactionConflict
from events.models import HELD_TICKET_VIOLATION, Event, Ticket

from .qr import build_qr_payload, generate_ticket_number

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class IssuedTicket:
    ticket_id: UUID
    ticket_number: str
    qr_code_payload: str


def increment_tickets_sold(event: Event) -> None:
    """Move ``tickets_sold`` from the snapshot value to snapshot + 1.

    Raises:
        TransactionConflict: If another writer changed the counter since ``event`` was read.
    """
    updated = Event.objects.filter(pk=event.pk, tickets_sold=event.tickets_sold).update(
        tickets_sold=F("tickets_sold") + 1, updated_at=timezone.now()
    )
    if updated != 1:
        raise TransactionConflict(f"tickets_sold for event {event.pk} changed since it was read")
    event.tickets_sold += 1


def issue_ticket(
    *,
    event: Event,
    user: BoxOfficeUser,
    payment_intent_id: str | None = None,
    payment_method_details: dict[str, t.Any] | None = None,
    customer_email: str | None = None,
) -> IssuedTicket:
    """Create a confirmed ticket for ``user`` and take one seat off the event.

    Must be called inside the ``transaction.atomic`` block that ran
    ``validate_ticket_availability(..., atomic=True)`` and with the event it returned.
    """
    if not transaction.get_connection().in_atomic_block:
        raise RuntimeError("issue_ticket() must run inside transaction.atomic().")

    ticket = Ticket(
        event=event,
        user=user,
        venue_id=event.venue_id,
        ticket_number=generate_ticket_number(),
        status=Ticket.TicketStatus.CONFIRMED,
        payment_intent_id=payment_intent_id,
        payment_method_details=payment_method_details,
        customer_email=customer_email or user.email or "",
        total_price=event.price,
        purchase_date=timezone.now(),
    )
    ticket.qr_code_payload = build_qr_payload(ticket.id, event.id, user.id, ticket.ticket_number)

    increment_tickets_sold(event)
    try:
        ticket.save()
    except DjangoValidationError as e:
        if any(err.code == HELD_TICKET_VIOLATION for err in e.error_dict.get(NON_FIELD_ERRORS, [])):
            raise DuplicateTicketError() from e
        raise

    logger.info(
        "ticket_issued",
        ticket_id=str(ticket.id),
        ticket_number=ticket.ticket_number,
        event_id=str(event.id),
        user_id=str(user.id),
        payment_intent_id=payment_intent_id,
        tickets_sold=event.tickets_sold,
    )
    return IssuedTicket(ticket_id=ticket.id, ticket_number=ticket.ticket_number, qr_code_payload=ticket.qr_code_payload)
