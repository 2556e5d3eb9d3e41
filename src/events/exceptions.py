"""Domain errors for ticket purchase and redemption.

Every error carries a stable ``code`` from the error taxonomy and the HTTP
status it maps to; ``api.exception_handlers`` renders them as
``{"code": ..., "detail": ...}``.
"""

import typing as t

from ninja_extra import status


class TicketingError(Exception):
    """Base class for errors surfaced to the caller with a stable code."""

    code: t.ClassVar[str] = "internal"
    status_code: t.ClassVar[int] = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: t.ClassVar[str] = "An internal error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# Taxonomy roots


class UnauthenticatedError(TicketingError):
    code = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required."


class PermissionDeniedError(TicketingError):
    code = "permission_denied"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Permission denied."


class InvalidArgumentError(TicketingError):
    code = "invalid_argument"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid argument."


class NotFoundError(TicketingError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found."


class FailedPreconditionError(TicketingError):
    code = "failed_precondition"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "The operation cannot be performed in the current state."


class AlreadyExistsError(TicketingError):
    code = "already_exists"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Already exists."


class InternalError(TicketingError):
    code = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "An unexpected error occurred. Please try again later."


# Inventory


class EventNotFoundError(NotFoundError):
    default_message = "Event not found."


class DuplicateTicketError(FailedPreconditionError):
    default_message = "You already have a ticket for this event."


class SoldOutError(FailedPreconditionError):
    default_message = "This event is sold out."


class EventAlreadyStartedError(FailedPreconditionError):
    default_message = "This event has already started."


class TransactionConflict(Exception):
    """Raised when a compare-and-swap write lost against a concurrent writer.

    Not a ``TicketingError``: ``run_in_transaction`` catches it and retries,
    and only wraps it into ``InternalError`` at the workflow boundary once the
    retries are exhausted.
    """


# Payments


class PaymentSetupFailedError(InternalError):
    default_message = "Failed to create payment intent."


class PaymentRecordNotFoundError(NotFoundError):
    default_message = "Payment record not found."


class AlreadyProcessedError(AlreadyExistsError):
    default_message = "This payment has already been processed."


class PaymentNotCompletedError(FailedPreconditionError):
    default_message = "Payment not completed."

    def __init__(self, payment_status: str) -> None:
        self.payment_status = payment_status
        super().__init__(f"Payment not completed. Status: {payment_status}")


class UnauthorizedPaymentError(PermissionDeniedError):
    default_message = "Unauthorized access to payment."


# Tickets


class TicketNotFoundError(NotFoundError):
    default_message = "Ticket not found."


class RecipientNotFoundError(NotFoundError):
    default_message = "Recipient user not found."


class TicketNotTransferableError(FailedPreconditionError):
    default_message = "This ticket cannot be transferred."


class RecipientHasTicketError(AlreadyExistsError):
    default_message = "Recipient already has a ticket for this event."


# Scanning. ``reason`` is the machine-readable value reported in ``ScanResult.reason``.


class ScanError(TicketingError):
    reason: t.ClassVar[str] = "error"


class ScanPermissionDeniedError(ScanError, PermissionDeniedError):
    reason = "permission_denied"
    default_message = "Only active scanners and admins can scan tickets."


class InvalidFormatError(ScanError, InvalidArgumentError):
    reason = "invalid_format"
    default_message = "Invalid QR code format."


class InvalidSignatureError(ScanError, InvalidArgumentError):
    reason = "invalid_signature"
    default_message = "Invalid ticket signature."


class ScanTicketNotFoundError(ScanError, TicketNotFoundError):
    reason = "not_found"


class WrongEventError(ScanError, FailedPreconditionError):
    reason = "wrong_event"
    default_message = "This ticket is for a different event."


class VenueMismatchError(ScanError, PermissionDeniedError):
    reason = "venue_mismatch"
    default_message = "This ticket is for an event at a different venue."


class NotEventDayError(ScanError, FailedPreconditionError):
    reason = "not_event_day"
    default_message = "This ticket is not valid today."


class TicketCancelledError(ScanError, FailedPreconditionError):
    reason = "ticket_cancelled"
    default_message = "This ticket has been cancelled."
