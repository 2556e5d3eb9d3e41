import typing as t
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from ninja import Field, ModelSchema, Schema
from pydantic import EmailStr, model_validator

from events import models
from events.service.scan_service import ScanOutcome

# Purchases


class PaymentIntentCreateSchema(Schema):
    event_id: UUID


class PaymentIntentSchema(Schema):
    client_secret: str
    payment_intent_id: str
    amount: Decimal
    currency: str


class PurchaseConfirmSchema(Schema):
    payment_intent_id: t.Annotated[str, Field(min_length=1, max_length=255)]


class PurchaseConfirmationSchema(Schema):
    success: bool
    ticket_id: UUID
    ticket_number: str
    message: str


class FreeTicketClaimSchema(Schema):
    event_id: UUID


class IssuedTicketSchema(Schema):
    ticket_id: UUID
    ticket_number: str
    qr_code_payload: str


# Tickets


class MinimalEventSchema(ModelSchema):
    venue_name: str

    class Meta:
        model = models.Event
        fields = ["id", "name", "start_time", "price", "currency"]

    @staticmethod
    def resolve_venue_name(obj: models.Event) -> str:
        return obj.display_venue_name()


class TicketSchema(ModelSchema):
    event: MinimalEventSchema

    class Meta:
        model = models.Ticket
        fields = [
            "id",
            "ticket_number",
            "qr_code_payload",
            "status",
            "total_price",
            "purchase_date",
            "used_at",
            "transferred_at",
        ]


class UserTicketStatusSchema(Schema):
    has_ticket: bool
    ticket_id: UUID | None = None


class TicketTransferSchema(Schema):
    recipient_email: EmailStr


# Scanner


class ScanRequestSchema(Schema):
    event_id: UUID | None = None
    ticket_id: str | None = None
    ticket_number: str | None = None
    qr_code_data: str | None = None

    @model_validator(mode="after")
    def require_code(self) -> "ScanRequestSchema":
        """At least one way of identifying the ticket must be given."""
        if not (self.qr_code_data or self.ticket_number or self.ticket_id):
            raise ValueError("One of qr_code_data, ticket_number or ticket_id is required.")
        return self

    @property
    def raw_code(self) -> str:
        return t.cast(str, self.qr_code_data or self.ticket_number or self.ticket_id)


class ScanResultSchema(Schema):
    outcome: ScanOutcome
    success: bool
    message: str
    reason: str | None = None
    ticket_id: UUID | None = None
    ticket_number: str | None = None
    event_id: UUID | None = None
    event_name: str | None = None
    holder_name: str | None = None
    scanned_by_id: UUID | None = None
    scanned_by_name: str | None = None
    used_at: datetime | None = None


class ScanHistoryFilterSchema(Schema):
    limit: int | None = Field(None, ge=1)
    start: datetime | None = None
    end: datetime | None = None
    event_id: UUID | None = None
    scanner_id: UUID | None = None


class ScannedTicketSchema(ModelSchema):
    event: MinimalEventSchema
    holder_name: str

    class Meta:
        model = models.Ticket
        fields = ["id", "ticket_number", "status", "used_at"]

    @staticmethod
    def resolve_holder_name(obj: models.Ticket) -> str:
        return obj.user.get_display_name()
