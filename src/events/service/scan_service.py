"""Ticket redemption at the door.

A scan moves a ticket from ``confirmed`` to ``used`` exactly once. The checks
run in a fixed order (scanner permission, code format, lookup, event filter,
venue scope, event day, status) and the final transition is a conditional
update on ``status='confirmed'``, so of two simultaneous scans only one
reports success and the other reports the ticket as already used.
"""

import re
import typing as t
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from urllib.parse import urlsplit
from uuid import UUID

import structlog
from django.conf import settings
from django.db.models import QuerySet
from django.utils import timezone

from accounts.service.identity import Identity, has_venue_access, require_scanner
from events.exceptions import (
    InvalidFormatError,
    InvalidSignatureError,
    NotEventDayError,
    ScanError,
    ScanTicketNotFoundError,
    TicketCancelledError,
    VenueMismatchError,
    WrongEventError,
)
from events.models import Ticket

from .qr import LegacyPayload, QRPayload, StructuredPayload, parse_qr_payload

logger = structlog.get_logger(__name__)

MIN_REFERENCE_LENGTH = 11
RAW_REFERENCE_PATTERN = re.compile(r"^[A-Za-z0-9-]+$")


class ScanOutcome(StrEnum):
    SUCCESS = "success"
    ALREADY_USED = "already_used"
    ERROR = "error"


@dataclass(frozen=True)
class TicketReference:
    """What a scanned code points at: a ticket id or number, plus the payload it came from."""

    value: str
    payload: QRPayload | None = None

    @property
    def is_ticket_number(self) -> bool:
        return self.value.upper().startswith(settings.TICKET_NUMBER_PREFIX)


@dataclass(frozen=True)
class ScanResult:
    outcome: ScanOutcome
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

    @property
    def success(self) -> bool:
        return self.outcome == ScanOutcome.SUCCESS

    @classmethod
    def error(cls, exc: ScanError) -> "ScanResult":
        return cls(outcome=ScanOutcome.ERROR, reason=exc.reason, message=exc.message)

    @classmethod
    def for_ticket(cls, outcome: ScanOutcome, ticket: Ticket, message: str) -> "ScanResult":
        scanner = ticket.scanned_by
        return cls(
            outcome=outcome,
            message=message,
            reason=ScanOutcome.ALREADY_USED.value if outcome == ScanOutcome.ALREADY_USED else None,
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            event_id=ticket.event_id,
            event_name=ticket.event.name,
            holder_name=ticket.user.get_display_name(),
            scanned_by_id=scanner.id if scanner else None,
            scanned_by_name=scanner.get_display_name() if scanner else None,
            used_at=ticket.used_at,
        )


def _reference_from_url(raw: str) -> TicketReference | None:
    if "/ticket/" not in raw:
        return None
    parts = urlsplit(raw)
    if not parts.scheme and not parts.netloc and not raw.startswith("/"):
        # "host/ticket/..." without a scheme parses as a bare path and would bypass the host check.
        return None
    allowed_hosts = [host.lower() for host in settings.TICKET_URL_HOSTS]
    if parts.hostname and allowed_hosts and parts.hostname.lower() not in allowed_hosts:
        return None
    if "/ticket/" not in parts.path:
        return None
    ticket_id = parts.path.split("/ticket/", 1)[1].split("/", 1)[0]
    if len(ticket_id) < MIN_REFERENCE_LENGTH:
        return None
    return TicketReference(value=ticket_id)


def _reference_from_payload(raw: str) -> TicketReference | None:
    payload = parse_qr_payload(raw)
    if payload is None:
        return None
    if isinstance(payload, StructuredPayload) and not payload.has_valid_hash():
        raise InvalidSignatureError()
    return TicketReference(value=payload.ticket_id, payload=payload)


def _reference_from_raw(raw: str) -> TicketReference | None:
    if not RAW_REFERENCE_PATTERN.match(raw):
        return None
    if len(raw) >= MIN_REFERENCE_LENGTH or raw.upper().startswith(settings.TICKET_NUMBER_PREFIX):
        return TicketReference(value=raw)
    return None


def extract_ticket_reference(raw_code: str | None) -> TicketReference:
    """Work out which ticket a scanned code refers to.

    Tried in order: a ``.../ticket/{id}`` URL, a QR payload (structured
    envelope, then the legacy colon format), and finally the raw value if it
    looks like a ticket id or number.

    Raises:
        InvalidSignatureError: If a structured envelope's hash does not verify.
        InvalidFormatError: If nothing plausible could be extracted.
    """
    raw = (raw_code or "").strip()
    if raw:
        for extract in (_reference_from_url, _reference_from_payload, _reference_from_raw):
            reference = extract(raw)
            if reference is not None:
                return reference
    raise InvalidFormatError()


def _payload_matches(payload: QRPayload, ticket: Ticket) -> bool:
    return payload.event_id == str(ticket.event_id) and payload.user_id == str(ticket.user_id)


class TicketScanner:
    """Redeem tickets on behalf of a scanning identity.

    Usage:
        result = TicketScanner(request.identity).scan(qr_code_data, event_id=event_id)
    """

    def __init__(self, identity: Identity) -> None:
        self.identity = identity
        self.log = logger.bind(scanner_id=str(identity.uid), scanner_venue_id=str(identity.venue_id))

    def scan(self, raw_code: str | None, *, event_id: UUID | None = None) -> ScanResult:
        """Scan a code and report the outcome instead of raising for rejected tickets."""
        try:
            return self.scan_or_raise(raw_code, event_id=event_id)
        except ScanError as e:
            self.log.info("ticket_scan_rejected", reason=e.reason, event_id=str(event_id) if event_id else None)
            return ScanResult.error(e)

    def scan_or_raise(self, raw_code: str | None, *, event_id: UUID | None = None) -> ScanResult:
        """Scan a code.

        Returns:
            A ``success`` or ``already_used`` result.

        Raises:
            ScanError: For every rejected scan.
        """
        require_scanner(self.identity)
        reference = extract_ticket_reference(raw_code)
        ticket = self._lookup(reference, event_id)

        if event_id is not None and ticket.event_id != event_id:
            raise WrongEventError()
        if not has_venue_access(self.identity, ticket.venue_id):
            raise VenueMismatchError()
        self._check_event_day(ticket)

        if ticket.status in Ticket.VOID_STATUSES:
            raise TicketCancelledError()
        if ticket.status == Ticket.TicketStatus.USED:
            return self._already_used(ticket)
        return self._redeem(ticket)

    def _lookup(self, reference: TicketReference, event_id: UUID | None) -> Ticket:
        tickets = Ticket.objects.full()
        ticket: Ticket | None
        if reference.payload is None and reference.is_ticket_number:
            # Ticket numbers are not unique-constrained; prefer the requested event, then the latest.
            candidates = tickets.filter(ticket_number=reference.value.upper())
            if event_id is not None and candidates.filter(event_id=event_id).exists():
                candidates = candidates.filter(event_id=event_id)
            ticket = candidates.order_by("-purchase_date").first()
        else:
            try:
                ticket_id = UUID(reference.value)
            except ValueError:
                ticket = None
            else:
                ticket = tickets.filter(pk=ticket_id).first()

        if ticket is None:
            raise ScanTicketNotFoundError()
        if reference.payload is not None and not _payload_matches(reference.payload, ticket):
            self.log.warning(
                "ticket_scan_payload_mismatch",
                ticket_id=str(ticket.id),
                legacy=isinstance(reference.payload, LegacyPayload),
            )
            raise InvalidSignatureError()
        return ticket

    def _check_event_day(self, ticket: Ticket) -> None:
        event = ticket.event
        today = timezone.now().astimezone(event.tzinfo).date()
        if event.local_start_date() != today:
            raise NotEventDayError(
                f"This ticket is for {event.local_start_date():%d %b %Y}, not today."
            )

    def _already_used(self, ticket: Ticket) -> ScanResult:
        self.log.info(
            "ticket_scan_already_used",
            ticket_id=str(ticket.id),
            original_scanner_id=str(ticket.scanned_by_id) if ticket.scanned_by_id else None,
        )
        used_at = timezone.localtime(ticket.used_at, ticket.event.tzinfo) if ticket.used_at else None
        when = f" at {used_at:%H:%M}" if used_at else ""
        by = f" by {ticket.scanned_by.get_display_name()}" if ticket.scanned_by else ""
        return ScanResult.for_ticket(ScanOutcome.ALREADY_USED, ticket, f"Ticket already used{when}{by}.")

    def _redeem(self, ticket: Ticket) -> ScanResult:
        now = timezone.now()
        updated = Ticket.objects.filter(pk=ticket.pk, status=Ticket.TicketStatus.CONFIRMED).update(
            status=Ticket.TicketStatus.USED,
            used_at=now,
            scanned_by_id=self.identity.uid,
            updated_at=now,
        )
        ticket = Ticket.objects.full().get(pk=ticket.pk)
        if not updated:
            # Lost to a concurrent scan or cancellation between the read and the write.
            if ticket.status == Ticket.TicketStatus.USED:
                return self._already_used(ticket)
            raise TicketCancelledError()

        self.log.info(
            "ticket_scanned",
            ticket_id=str(ticket.id),
            ticket_number=ticket.ticket_number,
            event_id=str(ticket.event_id),
        )
        return ScanResult.for_ticket(ScanOutcome.SUCCESS, ticket, f"Welcome to {ticket.event.name}!")


def get_scan_history(
    identity: Identity,
    *,
    limit: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    event_id: UUID | None = None,
    scanner_id: UUID | None = None,
) -> QuerySet[Ticket]:
    """Tickets redeemed by the scanner, newest first.

    Site admins may pass ``scanner_id`` to look at another scanner's history.
    """
    require_scanner(identity)
    scanned_by = scanner_id if scanner_id is not None and identity.is_site_admin else identity.uid
    qs = Ticket.objects.full().filter(scanned_by_id=scanned_by, status=Ticket.TicketStatus.USED)
    if start is not None:
        qs = qs.filter(used_at__gte=start)
    if end is not None:
        qs = qs.filter(used_at__lte=end)
    if event_id is not None:
        qs = qs.filter(event_id=event_id)
    limit = min(limit or settings.SCAN_HISTORY_DEFAULT_LIMIT, settings.SCAN_HISTORY_MAX_LIMIT)
    return t.cast(QuerySet[Ticket], qs.order_by("-used_at")[:limit])
