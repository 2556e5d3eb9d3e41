"""Payment intents with Stripe.

Creates the processor-side intent for a ticket purchase and records it as a
``PendingPayment``; the purchase workflow later reconciles it into a ticket.
Nothing here runs inside a database transaction that is held across a
network call.
"""

import typing as t
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

import stripe
import structlog
from django.conf import settings
from django.db import IntegrityError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from accounts.models import BoxOfficeUser
from events.exceptions import (
    DuplicateTicketError,
    EventAlreadyStartedError,
    InternalError,
    InvalidArgumentError,
    PaymentSetupFailedError,
    TransactionConflict,
)
from events.models import PendingPayment

from .inventory import run_in_transaction, validate_ticket_availability
from .ticket_issuer import IssuedTicket, issue_ticket

logger = structlog.get_logger(__name__)

stripe.api_key = settings.STRIPE_SECRET_KEY


class RefundReason:
    DUPLICATE = "duplicate"
    REQUESTED_BY_CUSTOMER = "requested_by_customer"


@dataclass(frozen=True)
class PaymentIntentResult:
    client_secret: str
    payment_intent_id: str
    amount: Decimal
    currency: str


def to_minor_units(amount: Decimal) -> int:
    """Convert a decimal amount into the processor's minor units (pence, cents)."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def get_or_create_customer(user: BoxOfficeUser) -> str:
    """Return the user's Stripe customer id, creating the customer on first use."""
    if user.stripe_customer_id:
        return user.stripe_customer_id

    customer = stripe.Customer.create(
        email=user.email,
        name=user.get_display_name(),
        metadata={"user_id": str(user.id)},
    )
    user.stripe_customer_id = customer.id
    user.save(update_fields=["stripe_customer_id"])
    logger.info("stripe_customer_created", user_id=str(user.id), customer_id=customer.id)
    return t.cast(str, customer.id)


def create_payment_intent(user: BoxOfficeUser, event_id: UUID | str) -> PaymentIntentResult:
    """Create a Stripe PaymentIntent for one ticket to the event.

    The availability check here is advisory and may race; the confirmation
    step re-checks inside a transaction. The ``PendingPayment`` is only
    written once Stripe has accepted the intent.

    Raises:
        DuplicateTicketError, EventNotFoundError, SoldOutError: From the availability check.
        EventAlreadyStartedError: If the event has already started.
        InvalidArgumentError: If the event is free.
        PaymentSetupFailedError: If Stripe rejects the customer or the intent.
    """
    event = validate_ticket_availability(user, event_id)
    if event.has_started():
        raise EventAlreadyStartedError()
    if event.is_free:
        raise InvalidArgumentError("This event is free. Claim the ticket instead of paying for it.")

    try:
        customer_id = get_or_create_customer(user)
        intent = stripe.PaymentIntent.create(
            amount=to_minor_units(event.price),
            currency=event.currency.lower(),
            customer=customer_id,
            metadata={
                "event_id": str(event.id),
                "user_id": str(user.id),
                "event_name": event.name,
            },
            automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
        )
    except stripe.StripeError as e:
        logger.error(
            "payment_intent_creation_failed",
            user_id=str(user.id),
            event_id=str(event.id),
            stripe_error=type(e).__name__,
            exc_info=True,
        )
        raise PaymentSetupFailedError() from e

    PendingPayment.objects.create(
        payment_intent_id=intent.id,
        user=user,
        event=event,
        amount=event.price,
        currency=event.currency,
        status=PendingPayment.Status.PENDING,
        metadata={
            "event_name": event.name,
            "customer_email": user.email,
            "customer_id": customer_id,
        },
    )
    logger.info(
        "payment_intent_created",
        payment_intent_id=intent.id,
        user_id=str(user.id),
        event_id=str(event.id),
        amount=str(event.price),
        currency=event.currency,
    )
    return PaymentIntentResult(
        client_secret=intent.client_secret,
        payment_intent_id=intent.id,
        amount=event.price,
        currency=event.currency,
    )


@retry(
    wait=wait_exponential(multiplier=settings.STRIPE_RETRIEVE_BACKOFF_SECONDS, max=8),
    stop=stop_after_attempt(settings.STRIPE_RETRIEVE_MAX_ATTEMPTS),
    retry=retry_if_exception_type(stripe.APIConnectionError),
    reraise=True,
)
def retrieve_payment_intent(payment_intent_id: str) -> stripe.PaymentIntent:
    """Fetch the current state of a PaymentIntent.

    Retried with exponential backoff on connection errors only: a GET is
    idempotent, charge and refund calls are not and are never retried.
    """
    return stripe.PaymentIntent.retrieve(payment_intent_id)


def refund_payment(payment_intent_id: str, reason: str = RefundReason.REQUESTED_BY_CUSTOMER) -> stripe.Refund:
    """Issue a full refund for the intent. Single attempt."""
    refund = stripe.Refund.create(payment_intent=payment_intent_id, reason=reason)
    logger.info("refund_created", payment_intent_id=payment_intent_id, refund_id=refund.id, reason=reason)
    return refund


def claim_free_ticket(user: BoxOfficeUser, event_id: UUID | str) -> IssuedTicket:
    """Issue a ticket for a free event without going through the processor.

    Raises:
        DuplicateTicketError, EventNotFoundError, SoldOutError: From the availability check.
        EventAlreadyStartedError: If the event has already started.
        InvalidArgumentError: If the event is not free.
    """

    def _claim() -> IssuedTicket:
        event = validate_ticket_availability(user, event_id, atomic=True)
        if event.has_started():
            raise EventAlreadyStartedError()
        if not event.is_free:
            raise InvalidArgumentError("This event requires payment.")
        return issue_ticket(event=event, user=user, customer_email=user.email)

    try:
        issued = run_in_transaction(_claim)
    except IntegrityError as e:
        raise DuplicateTicketError() from e
    except TransactionConflict as e:
        logger.error("free_ticket_claim_conflict", user_id=str(user.id), event_id=str(event_id))
        raise InternalError() from e
    logger.info("free_ticket_claimed", user_id=str(user.id), event_id=str(event_id), ticket_id=str(issued.ticket_id))
    return issued
