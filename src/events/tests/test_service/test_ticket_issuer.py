import orjson
import pytest
from django.db import transaction

from accounts.models import BoxOfficeUser
from events.exceptions import DuplicateTicketError, TransactionConflict
from events.models import Event, Ticket
from events.service.qr import verify_security_hash
from events.service.ticket_issuer import increment_tickets_sold, issue_ticket
from events.tests.conftest import TicketFactory

pytestmark = pytest.mark.django_db


class TestIncrementTicketsSold:
    def test_increments_from_snapshot(self, event: Event) -> None:
        increment_tickets_sold(event)

        assert event.tickets_sold == 1
        event.refresh_from_db()
        assert event.tickets_sold == 1

    def test_stale_snapshot_conflicts(self, event: Event) -> None:
        stale = Event.objects.get(pk=event.pk)
        increment_tickets_sold(event)

        with pytest.raises(TransactionConflict):
            increment_tickets_sold(stale)

        event.refresh_from_db()
        assert event.tickets_sold == 1


class TestIssueTicket:
    def test_issues_confirmed_ticket(self, user: BoxOfficeUser, event: Event) -> None:
        with transaction.atomic():
            issued = issue_ticket(
                event=event,
                user=user,
                payment_intent_id="pi_123",
                payment_method_details={"payment_method": "pm_123", "payment_method_types": ["card"]},
                customer_email="receipts@example.com",
            )

        ticket = Ticket.objects.get(pk=issued.ticket_id)
        assert ticket.status == Ticket.TicketStatus.CONFIRMED
        assert ticket.ticket_number == issued.ticket_number
        assert ticket.payment_intent_id == "pi_123"
        assert ticket.customer_email == "receipts@example.com"
        assert ticket.venue_id == event.venue_id
        assert ticket.total_price == event.price
        event.refresh_from_db()
        assert event.tickets_sold == 1

    def test_qr_payload_is_signed_for_the_holder(self, user: BoxOfficeUser, event: Event) -> None:
        with transaction.atomic():
            issued = issue_ticket(event=event, user=user)

        data = orjson.loads(issued.qr_code_payload)
        assert data["ticketId"] == str(issued.ticket_id)
        assert verify_security_hash(data["hash"], issued.ticket_id, event.id, user.id)

    def test_customer_email_defaults_to_user(self, user: BoxOfficeUser, event: Event) -> None:
        with transaction.atomic():
            issued = issue_ticket(event=event, user=user)

        assert Ticket.objects.get(pk=issued.ticket_id).customer_email == user.email

    @pytest.mark.django_db(transaction=True)
    def test_requires_transaction(self, user: BoxOfficeUser, event: Event) -> None:
        with pytest.raises(RuntimeError):
            issue_ticket(event=event, user=user)

    def test_duplicate_rolls_back_increment(
        self, user: BoxOfficeUser, event: Event, make_ticket: TicketFactory
    ) -> None:
        make_ticket(user, event)

        with pytest.raises(DuplicateTicketError), transaction.atomic():
            issue_ticket(event=event, user=user)

        event.refresh_from_db()
        assert event.tickets_sold == 1
        assert Ticket.objects.filter(user=user, event=event).count() == 1

    def test_lost_race_writes_nothing(self, user: BoxOfficeUser, event: Event) -> None:
        stale = Event.objects.get(pk=event.pk)
        Event.objects.filter(pk=event.pk).update(tickets_sold=5)

        with pytest.raises(TransactionConflict), transaction.atomic():
            issue_ticket(event=stale, user=user)

        assert not Ticket.objects.filter(user=user).exists()
