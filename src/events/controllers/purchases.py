from ninja_extra import api_controller, route

from common.authentication import IdentityJWTAuth
from common.controllers import IdentityAwareController
from common.schema import ErrorResponse
from common.throttling import PurchaseThrottle
from events import schema
from events.service import payment_service
from events.service.payment_service import PaymentIntentResult
from events.service.purchase_service import PurchaseConfirmation, PurchaseReconciliation
from events.service.ticket_issuer import IssuedTicket

ERROR_RESPONSES = {400: ErrorResponse, 403: ErrorResponse, 404: ErrorResponse, 409: ErrorResponse}


@api_controller("/purchases", auth=IdentityJWTAuth(), tags=["Purchases"], throttle=PurchaseThrottle())
class PurchaseController(IdentityAwareController):
    @route.post(
        "/payment-intent",
        url_name="create_payment_intent",
        response={200: schema.PaymentIntentSchema, **ERROR_RESPONSES},
    )
    def create_payment_intent(self, payload: schema.PaymentIntentCreateSchema) -> PaymentIntentResult:
        """Start a ticket purchase.

        Creates a Stripe PaymentIntent for one ticket and returns its client secret.
        The client completes the payment with Stripe and then calls `/purchases/confirm`.
        Fails early if the caller already holds a ticket or the event is sold out, but
        those checks are only repeated authoritatively at confirmation time.
        """
        return payment_service.create_payment_intent(self.user(), payload.event_id)

    @route.post(
        "/confirm",
        url_name="confirm_purchase",
        response={200: schema.PurchaseConfirmationSchema, **ERROR_RESPONSES},
    )
    def confirm_purchase(self, payload: schema.PurchaseConfirmSchema) -> PurchaseConfirmation:
        """Turn a succeeded payment into a ticket.

        Idempotent: a second call for the same intent returns 409 `already_exists` and
        never creates a second ticket. If the ticket can no longer be issued (sold out,
        duplicate) the payment is refunded automatically and the original error is returned.
        """
        return PurchaseReconciliation(self.user()).confirm(payload.payment_intent_id)

    @route.post(
        "/free",
        url_name="claim_free_ticket",
        response={200: schema.IssuedTicketSchema, **ERROR_RESPONSES},
    )
    def claim_free_ticket(self, payload: schema.FreeTicketClaimSchema) -> IssuedTicket:
        """Claim a ticket for a free event."""
        return payment_service.claim_free_ticket(self.user(), payload.event_id)
