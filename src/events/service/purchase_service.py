"""Purchase confirmation: from a captured payment to an issued ticket.

Payment capture and inventory live in two systems of record that cannot share
a transaction. The workflow therefore checks the payment with Stripe first,
outside any transaction, then validates inventory and issues the ticket in a
single optimistic transaction. When that validation fails after the money
has been taken, the ``RefundCompensation`` branch refunds the payment and
records a ``FailedPurchase`` before the original error reaches the caller.

States, logged on every transition::

    intent_created -> payment_captured -> confirming -> ticket_issued
                                                     -> refunding -> refunded | refund_failed
"""

import typing as t
from dataclasses import dataclass
from enum import StrEnum
from uuid import UUID

import stripe
import structlog
from django.db import DatabaseError, IntegrityError

from accounts.models import BoxOfficeUser
from events.exceptions import (
    AlreadyProcessedError,
    DuplicateTicketError,
    EventNotFoundError,
    InternalError,
    PaymentNotCompletedError,
    PaymentRecordNotFoundError,
    SoldOutError,
    TicketingError,
    UnauthorizedPaymentError,
)
from events.models import FailedPurchase, PendingPayment, Ticket

from .inventory import run_in_transaction, validate_ticket_availability
from .payment_service import RefundReason, refund_payment, retrieve_payment_intent
from .ticket_issuer import IssuedTicket, issue_ticket

logger = structlog.get_logger(__name__)

SUCCEEDED = "succeeded"

# Validation failures that can only be discovered after payment and are compensated by a refund.
COMPENSABLE_ERRORS: tuple[type[TicketingError], ...] = (DuplicateTicketError, SoldOutError, EventNotFoundError)


class PurchaseState(StrEnum):
    INTENT_CREATED = "intent_created"
    PAYMENT_CAPTURED = "payment_captured"
    CONFIRMING = "confirming"
    TICKET_ISSUED = "ticket_issued"
    REFUNDING = "refunding"
    REFUNDED = "refunded"
    REFUND_FAILED = "refund_failed"


@dataclass(frozen=True)
class PurchaseConfirmation:
    success: bool
    ticket_id: UUID
    ticket_number: str
    message: str


def _payment_method_details(intent: stripe.PaymentIntent) -> dict[str, t.Any]:
    payment_method = getattr(intent, "payment_method", None)
    return {
        "payment_method": getattr(payment_method, "id", payment_method),
        "payment_method_types": list(getattr(intent, "payment_method_types", None) or []),
    }


class RefundCompensation:
    """Refund a captured payment whose ticket could not be issued.

    Writes the ``FailedPurchase`` audit record before talking to Stripe, so a
    crash mid-refund still leaves a trace, then moves it to ``refunded`` or
    ``refund_failed``. Failed refunds are not retried; they are left for
    manual reconciliation. Either way the pending payment is marked completed
    so that a repeated confirm cannot refund twice.
    """

    def __init__(self, workflow: "PurchaseReconciliation", pending: PendingPayment) -> None:
        self.workflow = workflow
        self.pending = pending

    @staticmethod
    def refund_reason_for(error: TicketingError) -> str:
        if isinstance(error, DuplicateTicketError):
            return RefundReason.DUPLICATE
        return RefundReason.REQUESTED_BY_CUSTOMER

    def run(self, error: TicketingError) -> FailedPurchase:
        pending = self.pending
        self.workflow.transition(PurchaseState.REFUNDING, error=type(error).__name__)

        record = FailedPurchase.objects.create(
            user=self.workflow.user,
            event_id=None if isinstance(error, EventNotFoundError) else pending.event_id,
            payment_intent_id=pending.payment_intent_id,
            amount=pending.amount,
            reason=error.message,
            error_code=type(error).__name__,
            status=FailedPurchase.Status.REFUND_INITIATED,
        )

        try:
            refund = refund_payment(pending.payment_intent_id, reason=self.refund_reason_for(error))
        except stripe.StripeError:
            logger.exception(
                "compensating_refund_failed",
                payment_intent_id=pending.payment_intent_id,
                failed_purchase_id=str(record.id),
            )
            record.status = FailedPurchase.Status.REFUND_FAILED
            record.save(update_fields=["status", "updated_at"])
            self.workflow.transition(PurchaseState.REFUND_FAILED, failed_purchase_id=str(record.id))
        else:
            record.status = FailedPurchase.Status.REFUNDED
            record.refund_id = refund.id
            record.save(update_fields=["status", "refund_id", "updated_at"])
            self.workflow.transition(PurchaseState.REFUNDED, refund_id=refund.id)

        PendingPayment.objects.filter(pk=pending.pk).update(status=PendingPayment.Status.COMPLETED)
        return record


class PurchaseReconciliation:
    """Confirm a payment intent on behalf of ``user`` and issue their ticket.

    Usage:
        confirmation = PurchaseReconciliation(request.user).confirm("pi_123")
    """

    def __init__(self, user: BoxOfficeUser) -> None:
        self.user = user
        self.state: PurchaseState | None = None
        self.log = logger.bind(user_id=str(user.id))

    def transition(self, state: PurchaseState, **context: t.Any) -> None:
        self.log.info("purchase_state_changed", from_state=self.state, to_state=state.value, **context)
        self.state = state

    def confirm(self, payment_intent_id: str) -> PurchaseConfirmation:
        """Reconcile a payment intent into a ticket.

        Raises:
            PaymentRecordNotFoundError: No pending payment exists for the intent.
            AlreadyProcessedError: The intent already produced a ticket or was refunded.
            PaymentNotCompletedError: Stripe does not report the intent as succeeded.
            UnauthorizedPaymentError: The intent belongs to another user.
            DuplicateTicketError, SoldOutError, EventNotFoundError: After the payment was refunded.
            InternalError: Anything unexpected; the details are only logged.
        """
        self.log = self.log.bind(payment_intent_id=payment_intent_id)
        try:
            return self._confirm(payment_intent_id)
        except TicketingError as e:
            self.log.info("purchase_confirmation_rejected", error=type(e).__name__, state=self.state)
            raise
        except Exception as e:
            self.log.exception("purchase_confirmation_failed", state=self.state)
            self._record_unexpected_failure(payment_intent_id, e)
            raise InternalError() from e

    def _confirm(self, payment_intent_id: str) -> PurchaseConfirmation:
        pending = PendingPayment.objects.filter(pk=payment_intent_id).first()
        if pending is None:
            if Ticket.objects.filter(payment_intent_id=payment_intent_id).exists():
                raise AlreadyProcessedError()
            raise PaymentRecordNotFoundError()
        if pending.status == PendingPayment.Status.COMPLETED:
            raise AlreadyProcessedError()
        self.transition(PurchaseState.INTENT_CREATED, event_id=str(pending.event_id))

        intent = retrieve_payment_intent(payment_intent_id)
        if intent.status != SUCCEEDED:
            raise PaymentNotCompletedError(intent.status)
        self.transition(PurchaseState.PAYMENT_CAPTURED)

        metadata = intent.metadata or {}
        if metadata.get("user_id") != str(self.user.id) or pending.user_id != self.user.id:
            self.log.warning("purchase_confirmation_user_mismatch", intent_user_id=metadata.get("user_id"))
            raise UnauthorizedPaymentError()

        self.transition(PurchaseState.CONFIRMING)
        try:
            issued = run_in_transaction(lambda: self._issue(pending, intent))
        except COMPENSABLE_ERRORS as e:
            self._compensate(pending, e)
            raise
        except IntegrityError as e:
            # A concurrent purchase by the same user won the held-ticket unique constraint.
            duplicate = DuplicateTicketError()
            self._compensate(pending, duplicate)
            raise duplicate from e

        self.transition(PurchaseState.TICKET_ISSUED, ticket_id=str(issued.ticket_id))
        return PurchaseConfirmation(
            success=True,
            ticket_id=issued.ticket_id,
            ticket_number=issued.ticket_number,
            message="Ticket purchased successfully.",
        )

    def _issue(self, pending: PendingPayment, intent: stripe.PaymentIntent) -> IssuedTicket:
        """Authoritative validation, issuance and pending cleanup. Runs inside one transaction."""
        event = validate_ticket_availability(self.user, pending.event_id, atomic=True)
        issued = issue_ticket(
            event=event,
            user=self.user,
            payment_intent_id=pending.payment_intent_id,
            payment_method_details=_payment_method_details(intent),
            customer_email=pending.metadata.get("customer_email") or self.user.email,
        )
        deleted, _ = PendingPayment.objects.filter(
            pk=pending.pk, status=PendingPayment.Status.PENDING
        ).delete()
        if not deleted:
            # A concurrent confirm of the same intent finished first; roll our ticket back.
            raise AlreadyProcessedError()
        return issued

    def _compensate(self, pending: PendingPayment, error: TicketingError) -> None:
        if Ticket.objects.filter(payment_intent_id=pending.payment_intent_id).exists():
            # The "duplicate" is the ticket this very intent already paid for.
            raise AlreadyProcessedError() from error
        RefundCompensation(self, pending).run(error)

    def _record_unexpected_failure(self, payment_intent_id: str, error: Exception) -> None:
        """Best-effort ``FailedPurchase(status=error)``, at most one per intent."""
        try:
            if FailedPurchase.objects.filter(payment_intent_id=payment_intent_id).exists():
                return
            pending = PendingPayment.objects.filter(pk=payment_intent_id).first()
            FailedPurchase.objects.create(
                user=self.user,
                event_id=pending.event_id if pending else None,
                payment_intent_id=payment_intent_id,
                amount=pending.amount if pending else None,
                reason=f"{type(error).__name__}: {error}",
                error_code=type(error).__name__,
                status=FailedPurchase.Status.ERROR,
            )
        except DatabaseError:
            self.log.exception("failed_purchase_record_failed")
