import typing as t
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.utils import timezone

from accounts.models import BoxOfficeUser, Role
from conftest import BoxOfficeUserFactory
from events.models import Event, PendingPayment, Ticket, Venue
from events.service.qr import build_qr_payload, generate_ticket_number


@pytest.fixture
def venue() -> Venue:
    return Venue.objects.create(name="The Roundhouse", address="Chalk Farm Rd, London", timezone="Europe/London")


@pytest.fixture
def other_venue() -> Venue:
    return Venue.objects.create(name="Brooklyn Steel", address="319 Frost St, Brooklyn", timezone="America/New_York")


@pytest.fixture
def event(venue: Venue) -> Event:
    """A paid event next week with plenty of capacity."""
    return Event.objects.create(
        name="Burner Summer Opening",
        venue=venue,
        price=Decimal("10.00"),
        currency="GBP",
        max_tickets=100,
        start_time=timezone.now() + timedelta(days=7),
    )


@pytest.fixture
def last_ticket_event(venue: Venue) -> Event:
    """A paid event with a single seat left."""
    return Event.objects.create(
        name="Intimate Acoustic Set",
        venue=venue,
        price=Decimal("25.00"),
        currency="GBP",
        max_tickets=1,
        start_time=timezone.now() + timedelta(days=7),
    )


@pytest.fixture
def free_event(venue: Venue) -> Event:
    return Event.objects.create(
        name="Open Rehearsal",
        venue=venue,
        price=Decimal("0"),
        max_tickets=50,
        start_time=timezone.now() + timedelta(days=3),
    )


@pytest.fixture
def venue_scanner(user_factory: BoxOfficeUserFactory, venue: Venue) -> BoxOfficeUser:
    """A scanner restricted to ``venue``."""
    return user_factory(username="door@roundhouse.example.com", role=Role.SCANNER, venue=venue)


@pytest.fixture
def venue_admin(user_factory: BoxOfficeUserFactory, venue: Venue) -> BoxOfficeUser:
    return user_factory(username="manager@roundhouse.example.com", role=Role.VENUE_ADMIN, venue=venue)


class TicketFactory(t.Protocol):
    def __call__(self, user: BoxOfficeUser, event: Event, **kwargs: t.Any) -> Ticket: ...


@pytest.fixture
def make_ticket() -> TicketFactory:
    """Create a ticket directly, bumping the event's counter the way issuance does."""

    def _make(user: BoxOfficeUser, event: Event, **kwargs: t.Any) -> Ticket:
        ticket = Ticket(
            event=event,
            user=user,
            venue_id=event.venue_id,
            ticket_number=kwargs.pop("ticket_number", generate_ticket_number()),
            total_price=event.price,
            customer_email=user.email,
            **kwargs,
        )
        ticket.qr_code_payload = build_qr_payload(ticket.id, event.id, user.id, ticket.ticket_number)
        ticket.save()
        Event.objects.filter(pk=event.pk).update(tickets_sold=event.tickets_sold + 1)
        event.refresh_from_db()
        return ticket

    return _make


@pytest.fixture
def pending_payment(user: BoxOfficeUser, event: Event) -> PendingPayment:
    return PendingPayment.objects.create(
        payment_intent_id="pi_test_123",
        user=user,
        event=event,
        amount=event.price,
        currency=event.currency,
        status=PendingPayment.Status.PENDING,
        metadata={"event_name": event.name, "customer_email": user.email, "customer_id": "cus_123"},
    )


class IntentFactory(t.Protocol):
    def __call__(self, status: str = ..., user: BoxOfficeUser | None = ..., **kwargs: t.Any) -> MagicMock: ...


@pytest.fixture
def stripe_intent(user: BoxOfficeUser, event: Event) -> IntentFactory:
    """Build a mock Stripe PaymentIntent as returned by ``PaymentIntent.retrieve``."""

    def _make(status: str = "succeeded", user: BoxOfficeUser | None = user, **kwargs: t.Any) -> MagicMock:
        intent = MagicMock()
        intent.id = kwargs.pop("id", "pi_test_123")
        intent.status = status
        intent.metadata = kwargs.pop(
            "metadata", {"event_id": str(event.id), "user_id": str(user.id) if user else "", "event_name": event.name}
        )
        intent.payment_method = "pm_123"
        intent.payment_method_types = ["card"]
        intent.client_secret = f"{intent.id}_secret_abc"
        return intent

    return _make
