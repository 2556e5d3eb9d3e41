"""Tests for ticket redemption at the door."""

import typing as t
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch
from zoneinfo import ZoneInfo

import orjson
import pytest
from freezegun import freeze_time
from pytest_django.fixtures import SettingsWrapper

from accounts.models import BoxOfficeUser, Role
from accounts.service.identity import Identity, resolve_identity
from conftest import BoxOfficeUserFactory
from events.exceptions import InvalidFormatError, InvalidSignatureError, ScanPermissionDeniedError, TicketCancelledError
from events.models import Event, Ticket, Venue
from events.service.qr import build_legacy_payload
from events.service.scan_service import (
    ScanOutcome,
    TicketScanner,
    extract_ticket_reference,
    get_scan_history,
)
from events.tests.conftest import TicketFactory

pytestmark = pytest.mark.django_db

LONDON = ZoneInfo("Europe/London")


@pytest.fixture
def show_day() -> t.Iterator[None]:
    """18:00 in London on the day of the show."""
    with freeze_time("2026-06-12 17:00:00"):
        yield


@pytest.fixture
def show(show_day: None, venue: Venue) -> Event:
    return Event.objects.create(
        name="Burner Summer Opening",
        venue=venue,
        price=Decimal("10.00"),
        max_tickets=100,
        start_time=datetime(2026, 6, 12, 19, 30, tzinfo=LONDON),
    )


@pytest.fixture
def ticket(show: Event, user: BoxOfficeUser, make_ticket: TicketFactory) -> Ticket:
    return make_ticket(user, show)


@pytest.fixture
def scanner(scanner_user: BoxOfficeUser) -> TicketScanner:
    return TicketScanner(resolve_identity(scanner_user))


class TestExtractTicketReference:
    def test_url(self) -> None:
        ticket_id = str(uuid.uuid4())

        reference = extract_ticket_reference(f"https://burnerapp.com/ticket/{ticket_id}?utm_source=wallet")

        assert reference.value == ticket_id
        assert reference.payload is None

    def test_relative_url(self) -> None:
        ticket_id = str(uuid.uuid4())

        assert extract_ticket_reference(f"/ticket/{ticket_id}/").value == ticket_id

    def test_url_on_foreign_host_is_rejected(self) -> None:
        with pytest.raises(InvalidFormatError):
            extract_ticket_reference(f"https://evil.example.com/ticket/{uuid.uuid4()}")

    @pytest.mark.parametrize("host", ["evil.example", "burnerapp.com"])
    def test_url_without_scheme_is_rejected(self, host: str) -> None:
        with pytest.raises(InvalidFormatError):
            extract_ticket_reference(f"{host}/ticket/{uuid.uuid4()}")

    def test_scheme_relative_url_on_foreign_host_is_rejected(self) -> None:
        with pytest.raises(InvalidFormatError):
            extract_ticket_reference(f"//evil.example/ticket/{uuid.uuid4()}")

    def test_any_host_when_allowlist_is_empty(self, settings: SettingsWrapper) -> None:
        settings.TICKET_URL_HOSTS = []
        ticket_id = str(uuid.uuid4())

        assert extract_ticket_reference(f"https://tickets.example.com/ticket/{ticket_id}").value == ticket_id

    def test_raw_ticket_number(self) -> None:
        reference = extract_ticket_reference("  TKT12345678901 ")

        assert reference.value == "TKT12345678901"
        assert reference.is_ticket_number

    def test_raw_uuid(self) -> None:
        ticket_id = str(uuid.uuid4())

        reference = extract_ticket_reference(ticket_id)

        assert reference.value == ticket_id
        assert not reference.is_ticket_number

    def test_tampered_envelope(self) -> None:
        envelope = orjson.dumps(
            {"type": "EVENT_TICKET", "ticketId": str(uuid.uuid4()), "eventId": "e", "userId": "u", "hash": "0" * 16}
        ).decode()

        with pytest.raises(InvalidSignatureError):
            extract_ticket_reference(envelope)

    @pytest.mark.parametrize("raw", [None, "", "   ", "short", "hello world!!", "DROP TABLE tickets;"])
    def test_malformed(self, raw: str | None) -> None:
        with pytest.raises(InvalidFormatError):
            extract_ticket_reference(raw)


class TestScan:
    def test_success_then_already_used(
        self, scanner: TicketScanner, scanner_user: BoxOfficeUser, ticket: Ticket, user: BoxOfficeUser
    ) -> None:
        first = scanner.scan(ticket.qr_code_payload)

        assert first.outcome == ScanOutcome.SUCCESS
        assert first.success
        assert first.message == "Welcome to Burner Summer Opening!"
        assert first.ticket_id == ticket.id
        assert first.holder_name == user.get_display_name()
        assert first.scanned_by_id == scanner_user.id
        ticket.refresh_from_db()
        assert ticket.status == Ticket.TicketStatus.USED
        assert ticket.scanned_by == scanner_user
        assert ticket.used_at is not None

        second = scanner.scan(ticket.qr_code_payload)

        assert second.outcome == ScanOutcome.ALREADY_USED
        assert not second.success
        assert second.reason == "already_used"
        assert second.message == f"Ticket already used at 18:00 by {scanner_user.get_display_name()}."
        assert second.scanned_by_name == scanner_user.get_display_name()
        assert second.used_at == ticket.used_at

    def test_by_ticket_number(self, scanner: TicketScanner, show: Event, user: BoxOfficeUser, make_ticket: TicketFactory) -> None:
        ticket = make_ticket(user, show, ticket_number="TKT60000012345")

        result = scanner.scan("tkt60000012345")

        assert result.success
        assert result.ticket_id == ticket.id

    def test_ticket_number_prefers_requested_event(
        self,
        scanner: TicketScanner,
        show: Event,
        venue: Venue,
        user: BoxOfficeUser,
        make_ticket: TicketFactory,
    ) -> None:
        matinee = Event.objects.create(
            name="Matinee", venue=venue, price=Decimal("5.00"), max_tickets=10, start_time=show.start_time
        )
        evening_ticket = make_ticket(user, show, ticket_number="TKT60000012345")
        make_ticket(user, matinee, ticket_number="TKT60000012345")

        result = scanner.scan("TKT60000012345", event_id=show.id)

        assert result.success
        assert result.ticket_id == evening_ticket.id

    def test_by_ticket_id_and_url(self, scanner: TicketScanner, ticket: Ticket) -> None:
        result = scanner.scan(f"https://www.burnerapp.com/ticket/{ticket.id}")

        assert result.success

    def test_legacy_payload(self, scanner: TicketScanner, ticket: Ticket, show: Event, user: BoxOfficeUser) -> None:
        legacy = build_legacy_payload(ticket.id, show.id, user.id, ticket.ticket_number)

        assert scanner.scan(legacy).success

    def test_legacy_payload_for_another_holder(
        self, scanner: TicketScanner, ticket: Ticket, show: Event, other_user: BoxOfficeUser
    ) -> None:
        legacy = build_legacy_payload(ticket.id, show.id, other_user.id, ticket.ticket_number)

        result = scanner.scan(legacy)

        assert result.outcome == ScanOutcome.ERROR
        assert result.reason == "invalid_signature"

    def test_tampered_hash(self, scanner: TicketScanner, ticket: Ticket) -> None:
        data = orjson.loads(ticket.qr_code_payload)
        data["hash"] = "f" * 16

        result = scanner.scan(orjson.dumps(data).decode())

        assert result.reason == "invalid_signature"
        ticket.refresh_from_db()
        assert ticket.status == Ticket.TicketStatus.CONFIRMED

    def test_malformed_code_never_queries_tickets(self, scanner: TicketScanner) -> None:
        with patch.object(Ticket.objects, "full") as mock_full:
            result = scanner.scan("<script>alert(1)</script>")

        assert result.reason == "invalid_format"
        mock_full.assert_not_called()

    def test_unknown_ticket(self, scanner: TicketScanner, show_day: None) -> None:
        result = scanner.scan(str(uuid.uuid4()))

        assert result.reason == "not_found"

    def test_wrong_event(self, scanner: TicketScanner, ticket: Ticket) -> None:
        result = scanner.scan(ticket.qr_code_payload, event_id=uuid.uuid4())

        assert result.reason == "wrong_event"

    def test_venue_mismatch(
        self, user_factory: BoxOfficeUserFactory, other_venue: Venue, ticket: Ticket
    ) -> None:
        door = user_factory(role=Role.SCANNER, venue=other_venue)

        result = TicketScanner(resolve_identity(door)).scan(ticket.qr_code_payload)

        assert result.reason == "venue_mismatch"

    def test_venue_scanner_at_own_venue(self, venue_scanner: BoxOfficeUser, ticket: Ticket) -> None:
        assert TicketScanner(resolve_identity(venue_scanner)).scan(ticket.qr_code_payload).success

    def test_inactive_scanner(self, user_factory: BoxOfficeUserFactory, ticket: Ticket) -> None:
        door = user_factory(role=Role.SCANNER, role_active=False)

        result = TicketScanner(resolve_identity(door)).scan(ticket.qr_code_payload)

        assert result.reason == "permission_denied"
        ticket.refresh_from_db()
        assert ticket.status == Ticket.TicketStatus.CONFIRMED

    def test_buyer_cannot_scan(self, user: BoxOfficeUser, ticket: Ticket) -> None:
        result = TicketScanner(resolve_identity(user)).scan(ticket.qr_code_payload)

        assert result.reason == "permission_denied"

    @pytest.mark.parametrize(
        "status", [Ticket.TicketStatus.CANCELLED, Ticket.TicketStatus.REFUNDED, Ticket.TicketStatus.DELETED]
    )
    def test_void_ticket(self, scanner: TicketScanner, ticket: Ticket, status: str) -> None:
        Ticket.objects.filter(pk=ticket.pk).update(status=status)

        result = scanner.scan(ticket.qr_code_payload)

        assert result.reason == "ticket_cancelled"

    def test_day_before_the_show(self, scanner: TicketScanner, ticket: Ticket) -> None:
        with freeze_time("2026-06-11 17:00:00"):
            result = scanner.scan(ticket.qr_code_payload)

        assert result.reason == "not_event_day"
        assert result.message == "This ticket is for 12 Jun 2026, not today."

    def test_event_day_is_judged_in_venue_timezone(
        self, user: BoxOfficeUser, other_venue: Venue, scanner: TicketScanner, make_ticket: TicketFactory
    ) -> None:
        # 22:00 in New York on the 12th is 02:00 UTC on the 13th.
        late_show = Event.objects.create(
            name="Late Show",
            venue=other_venue,
            price=Decimal("15.00"),
            max_tickets=10,
            start_time=datetime(2026, 6, 12, 22, 0, tzinfo=ZoneInfo("America/New_York")),
        )
        ticket = make_ticket(user, late_show)

        with freeze_time("2026-06-13 01:00:00"):
            assert scanner.scan(ticket.qr_code_payload).success

    def test_lost_race_reports_already_used(
        self, scanner: TicketScanner, other_scanner: TicketScanner, ticket: Ticket
    ) -> None:
        stale = Ticket.objects.full().get(pk=ticket.pk)
        assert other_scanner.scan(ticket.qr_code_payload).success

        result = scanner._redeem(stale)

        assert result.outcome == ScanOutcome.ALREADY_USED
        assert Ticket.objects.get(pk=ticket.pk).scanned_by_id == other_scanner.identity.uid

    def test_lost_race_to_cancellation(self, scanner: TicketScanner, ticket: Ticket) -> None:
        stale = Ticket.objects.full().get(pk=ticket.pk)
        Ticket.objects.filter(pk=ticket.pk).update(status=Ticket.TicketStatus.CANCELLED)

        with pytest.raises(TicketCancelledError):
            scanner._redeem(stale)


@pytest.fixture
def other_scanner(user_factory: BoxOfficeUserFactory) -> TicketScanner:
    return TicketScanner(resolve_identity(user_factory(role=Role.SUB_ADMIN)))


class TestScanHistory:
    def test_lists_own_scans_newest_first(
        self,
        scanner: TicketScanner,
        other_scanner: TicketScanner,
        show: Event,
        user: BoxOfficeUser,
        other_user: BoxOfficeUser,
        user_factory: BoxOfficeUserFactory,
        make_ticket: TicketFactory,
    ) -> None:
        early = make_ticket(user, show)
        late = make_ticket(other_user, show)
        someone_elses = make_ticket(user_factory(), show)
        scanner.scan(early.qr_code_payload)
        with freeze_time("2026-06-12 17:05:00"):
            scanner.scan(late.qr_code_payload)
        other_scanner.scan(someone_elses.qr_code_payload)

        history = list(get_scan_history(scanner.identity))

        assert history == [late, early]

    def test_filters(self, scanner: TicketScanner, show: Event, user: BoxOfficeUser, make_ticket: TicketFactory) -> None:
        ticket = make_ticket(user, show)
        scanner.scan(ticket.qr_code_payload)

        assert list(get_scan_history(scanner.identity, event_id=show.id)) == [ticket]
        assert list(get_scan_history(scanner.identity, event_id=uuid.uuid4())) == []
        assert list(get_scan_history(scanner.identity, start=datetime(2026, 6, 13, tzinfo=LONDON))) == []
        assert list(get_scan_history(scanner.identity, end=datetime(2026, 6, 13, tzinfo=LONDON))) == [ticket]

    def test_limit(
        self,
        scanner: TicketScanner,
        show: Event,
        user_factory: BoxOfficeUserFactory,
        make_ticket: TicketFactory,
        settings: SettingsWrapper,
    ) -> None:
        for minute in range(3):
            ticket = make_ticket(user_factory(), show)
            with freeze_time(datetime(2026, 6, 12, 17, minute)):
                scanner.scan(ticket.qr_code_payload)

        assert len(get_scan_history(scanner.identity, limit=2)) == 2
        settings.SCAN_HISTORY_MAX_LIMIT = 1
        assert len(get_scan_history(scanner.identity, limit=50)) == 1

    def test_site_admin_can_view_another_scanner(
        self, scanner: TicketScanner, site_admin: BoxOfficeUser, ticket: Ticket
    ) -> None:
        scanner.scan(ticket.qr_code_payload)
        admin = resolve_identity(site_admin)

        assert list(get_scan_history(admin, scanner_id=scanner.identity.uid)) == [ticket]

    def test_scanner_id_is_ignored_for_non_admins(
        self, scanner: TicketScanner, other_scanner: TicketScanner, ticket: Ticket
    ) -> None:
        scanner.scan(ticket.qr_code_payload)

        assert list(get_scan_history(other_scanner.identity, scanner_id=scanner.identity.uid)) == []

    def test_buyers_have_no_history(self, user: BoxOfficeUser) -> None:
        with pytest.raises(ScanPermissionDeniedError):
            get_scan_history(resolve_identity(user))


def test_identity_is_bound_to_scanner(scanner: TicketScanner, scanner_user: BoxOfficeUser) -> None:
    assert scanner.identity == Identity(uid=scanner_user.id, role=Role.SCANNER, venue_id=None, active=True)
