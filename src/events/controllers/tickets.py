import typing as t
from uuid import UUID

from django.db.models import QuerySet
from ninja_extra import api_controller, route

from common.authentication import IdentityJWTAuth
from common.controllers import IdentityAwareController
from common.schema import ErrorResponse
from common.throttling import UserDefaultThrottle
from events import models, schema
from events.service import ticket_service


@api_controller("/tickets", auth=IdentityJWTAuth(), tags=["Tickets"], throttle=UserDefaultThrottle())
class TicketController(IdentityAwareController):
    @route.get("/", url_name="list_tickets", response=list[schema.TicketSchema])
    def list_tickets(self) -> QuerySet[models.Ticket]:
        """List the caller's tickets, newest first."""
        return ticket_service.list_user_tickets(self.user())

    @route.get("/events/{event_id}", url_name="check_event_ticket", response=schema.UserTicketStatusSchema)
    def check_event_ticket(self, event_id: UUID) -> schema.UserTicketStatusSchema:
        """Whether the caller holds a confirmed ticket for the event."""
        has_ticket, ticket_id = ticket_service.check_user_ticket(self.user(), event_id)
        return schema.UserTicketStatusSchema(has_ticket=has_ticket, ticket_id=ticket_id)

    @route.post(
        "/{ticket_id}/transfer",
        url_name="transfer_ticket",
        response={200: schema.TicketSchema, 400: ErrorResponse, 404: ErrorResponse, 409: ErrorResponse},
    )
    def transfer_ticket(self, ticket_id: UUID, payload: schema.TicketTransferSchema) -> models.Ticket:
        """Transfer one of the caller's confirmed tickets to another registered user.

        The ticket gets a fresh QR payload; the old one stops scanning.
        """
        return ticket_service.transfer_ticket(self.user(), ticket_id, payload.recipient_email)

    @route.post(
        "/{ticket_id}/cancel",
        url_name="cancel_ticket",
        response={200: schema.TicketSchema, 400: ErrorResponse, 403: ErrorResponse, 404: ErrorResponse},
    )
    def cancel_ticket(self, ticket_id: UUID) -> models.Ticket:
        """Cancel a confirmed ticket and release its seat. Admins only."""
        return t.cast(models.Ticket, ticket_service.cancel_ticket(self.identity(), ticket_id))
