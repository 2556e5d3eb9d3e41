"""Ticket availability checks and the optimistic transaction runner.

``validate_ticket_availability`` is called twice per purchase: once as a soft
check when the payment intent is created, purely so the buyer gets fast
feedback, and once inside the confirmation transaction, where its result is
authoritative. The event it returns is the snapshot the issuer's
compare-and-swap increment is conditioned on.
"""

import typing as t
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction

from accounts.models import BoxOfficeUser
from events.exceptions import DuplicateTicketError, EventNotFoundError, SoldOutError, TransactionConflict
from events.models import Event, Ticket

logger = structlog.get_logger(__name__)

T = t.TypeVar("T")


def validate_ticket_availability(user: BoxOfficeUser, event_id: UUID | str, *, atomic: bool = False) -> Event:
    """Check that ``user`` may buy a ticket for the event and that one is left.

    Args:
        user: The buyer.
        event_id: The event's id.
        atomic: Whether this is the authoritative check. It must then run inside
            the ``transaction.atomic`` block that issues the ticket.

    Returns:
        The event as read by this check.

    Raises:
        RuntimeError: If ``atomic`` is set outside a transaction.
        DuplicateTicketError: If the user already holds a ticket for the event.
        EventNotFoundError: If the event does not exist.
        SoldOutError: If no tickets are left.
    """
    if atomic and not transaction.get_connection().in_atomic_block:
        raise RuntimeError("validate_ticket_availability(atomic=True) must run inside transaction.atomic().")

    if Ticket.objects.held().filter(user=user, event_id=event_id).exists():
        logger.info("ticket_availability_duplicate", user_id=str(user.id), event_id=str(event_id), atomic=atomic)
        raise DuplicateTicketError()

    event = Event.objects.with_venue().filter(pk=event_id).first()
    if event is None:
        raise EventNotFoundError()

    if event.remaining_tickets < 1:
        logger.info(
            "ticket_availability_sold_out",
            event_id=str(event.id),
            max_tickets=event.max_tickets,
            tickets_sold=event.tickets_sold,
            atomic=atomic,
        )
        raise SoldOutError()

    return event


def run_in_transaction(fn: t.Callable[[], T], *, max_attempts: int | None = None) -> T:
    """Run ``fn`` inside ``transaction.atomic()``, retrying lost compare-and-swap writes.

    Each attempt is a fresh transaction, so ``fn`` re-reads every snapshot it
    depends on. Domain errors raised by ``fn`` roll the attempt back and
    propagate immediately; only ``TransactionConflict`` is retried.

    Raises:
        TransactionConflict: If every attempt lost its conditional write.
    """
    attempts = max_attempts or settings.PURCHASE_TRANSACTION_MAX_ATTEMPTS
    attempt = 1
    while True:
        try:
            with transaction.atomic():
                return fn()
        except TransactionConflict:
            logger.warning("transaction_conflict", attempt=attempt, max_attempts=attempts)
            if attempt >= attempts:
                raise
            attempt += 1
