import typing as t
from uuid import UUID

import structlog
from django.db import IntegrityError, transaction
from django.db.models import F, QuerySet
from django.utils import timezone

from accounts.models import BoxOfficeUser
from accounts.service.identity import Identity, has_venue_access, require_admin
from events.exceptions import (
    FailedPreconditionError,
    InternalError,
    PermissionDeniedError,
    RecipientHasTicketError,
    RecipientNotFoundError,
    TicketNotFoundError,
    TicketNotTransferableError,
)
from events.models import Event, Ticket

from .qr import build_qr_payload

logger = structlog.get_logger(__name__)


def check_user_ticket(user: BoxOfficeUser, event_id: UUID) -> tuple[bool, UUID | None]:
    """Whether the user holds a confirmed ticket for the event, and its id."""
    ticket_id = (
        Ticket.objects.filter(user=user, event_id=event_id, status=Ticket.TicketStatus.CONFIRMED)
        .values_list("id", flat=True)
        .first()
    )
    return ticket_id is not None, ticket_id


def list_user_tickets(user: BoxOfficeUser) -> QuerySet[Ticket]:
    """The user's tickets, newest first. Soft-deleted tickets are hidden."""
    return (
        Ticket.objects.with_event()
        .filter(user=user)
        .exclude(status=Ticket.TicketStatus.DELETED)
        .order_by("-purchase_date")
    )


@transaction.atomic
def transfer_ticket(user: BoxOfficeUser, ticket_id: UUID, recipient_email: str) -> Ticket:
    """Hand a confirmed, unused ticket over to another registered user.

    The QR payload is re-issued because its signature covers the holder's id.

    Raises:
        TicketNotFoundError: If the ticket does not exist or is not the caller's.
        TicketNotTransferableError: If the ticket is not confirmed or was already used.
        RecipientNotFoundError: If no user has that email.
        FailedPreconditionError: If the recipient is the caller.
        RecipientHasTicketError: If the recipient already holds a ticket for the event.
    """
    ticket = Ticket.objects.with_event().filter(pk=ticket_id, user=user).first()
    if ticket is None:
        raise TicketNotFoundError()
    if ticket.status != Ticket.TicketStatus.CONFIRMED or ticket.used_at is not None:
        raise TicketNotTransferableError("Only confirmed, unused tickets can be transferred.")

    recipient = BoxOfficeUser.objects.filter(email__iexact=recipient_email.strip()).first()
    if recipient is None:
        raise RecipientNotFoundError()
    if recipient.pk == user.pk:
        raise FailedPreconditionError("You cannot transfer a ticket to yourself.")
    if Ticket.objects.held().filter(user=recipient, event_id=ticket.event_id).exists():
        raise RecipientHasTicketError()

    now = timezone.now()
    try:
        with transaction.atomic():
            updated = Ticket.objects.filter(pk=ticket.pk, user=user, status=Ticket.TicketStatus.CONFIRMED).update(
                user=recipient,
                customer_email=recipient.email,
                qr_code_payload=build_qr_payload(ticket.id, ticket.event_id, recipient.id, ticket.ticket_number),
                transferred_from=user,
                transferred_at=now,
                updated_at=now,
            )
    except IntegrityError as e:
        # The recipient got a ticket for the event after the check above.
        logger.info("ticket_transfer_recipient_race", ticket_id=str(ticket.id), to_user_id=str(recipient.id))
        raise RecipientHasTicketError() from e
    if not updated:
        raise TicketNotTransferableError("The ticket changed while it was being transferred.")

    logger.info(
        "ticket_transferred",
        ticket_id=str(ticket.id),
        event_id=str(ticket.event_id),
        from_user_id=str(user.id),
        to_user_id=str(recipient.id),
    )
    return Ticket.objects.with_event().get(pk=ticket.pk)


def cancel_ticket(identity: Identity, ticket_id: UUID) -> Ticket:
    """Cancel a confirmed ticket and give its seat back to the event.

    Requires a sub admin or above whose venue scope covers the ticket.

    Raises:
        PermissionDeniedError: If the identity is not an admin for the ticket's venue.
        TicketNotFoundError: If the ticket does not exist.
        FailedPreconditionError: If the ticket is not confirmed.
    """
    require_admin(identity)

    with transaction.atomic():
        ticket = Ticket.objects.with_event().filter(pk=ticket_id).first()
        if ticket is None:
            raise TicketNotFoundError()
        if not has_venue_access(identity, ticket.venue_id):
            raise PermissionDeniedError("You do not have access to this venue.")

        now = timezone.now()
        updated = Ticket.objects.filter(pk=ticket.pk, status=Ticket.TicketStatus.CONFIRMED).update(
            status=Ticket.TicketStatus.CANCELLED, updated_at=now
        )
        if not updated:
            raise FailedPreconditionError(f"Only confirmed tickets can be cancelled. Status: {ticket.status}")
        released = Event.objects.filter(pk=ticket.event_id, tickets_sold__gt=0).update(
            tickets_sold=F("tickets_sold") - 1, updated_at=now
        )
        if not released:
            logger.error("ticket_cancel_counter_underflow", ticket_id=str(ticket.id), event_id=str(ticket.event_id))
            raise InternalError()

    logger.info(
        "ticket_cancelled",
        ticket_id=str(ticket.id),
        event_id=str(ticket.event_id),
        cancelled_by=str(identity.uid),
    )
    return t.cast(Ticket, Ticket.objects.with_event().get(pk=ticket.pk))
