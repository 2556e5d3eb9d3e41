"""Ticket QR payloads.

Two encodings exist and both stay readable for as long as issued tickets are
in circulation:

- the structured envelope, an orjson object tagged ``type: EVENT_TICKET`` that
  carries a truncated HMAC over ``ticket:event:user``;
- the legacy colon format ``TICKET:<id>:EVENT:<id>:USER:<id>:NUMBER:<num>``,
  written only when the envelope cannot be serialized.

``parse_qr_payload`` tries the envelope first.
"""

import random
import time
from dataclasses import dataclass

import orjson
import structlog
from django.conf import settings

from common.signing import generate_signature, verify_signature

logger = structlog.get_logger(__name__)

QR_TYPE = "EVENT_TICKET"
QR_VERSION = "1.0"
LEGACY_FIELDS = ("TICKET", "EVENT", "USER", "NUMBER")


@dataclass(frozen=True)
class StructuredPayload:
    ticket_id: str
    event_id: str
    user_id: str
    ticket_number: str
    timestamp: int | None
    version: str | None
    hash: str | None

    def has_valid_hash(self) -> bool:
        return verify_security_hash(self.hash, self.ticket_id, self.event_id, self.user_id)


@dataclass(frozen=True)
class LegacyPayload:
    ticket_id: str
    event_id: str
    user_id: str
    ticket_number: str


QRPayload = StructuredPayload | LegacyPayload


def generate_ticket_number() -> str:
    """Generate a human-readable ticket number: ``TKT`` followed by 11 digits.

    The digits are the last six of the millisecond clock, three random digits
    and a two-digit checksum of the two. Numbers are not checked for
    uniqueness when written.
    """
    timestamp = str(int(time.time() * 1000))[-6:]
    rand = str(random.randint(0, 999)).zfill(3)
    checksum = str((int(timestamp) + int(rand)) % 100).zfill(2)
    return f"{settings.TICKET_NUMBER_PREFIX}{timestamp}{rand}{checksum}"


def generate_security_hash(ticket_id: object, event_id: object, user_id: object) -> str:
    """16 hex char HMAC over the ticket, event and user ids."""
    return generate_signature(ticket_id, event_id, user_id)


def verify_security_hash(security_hash: str | None, ticket_id: object, event_id: object, user_id: object) -> bool:
    return verify_signature(security_hash, ticket_id, event_id, user_id)


def build_legacy_payload(ticket_id: object, event_id: object, user_id: object, ticket_number: str) -> str:
    return f"TICKET:{ticket_id}:EVENT:{event_id}:USER:{user_id}:NUMBER:{ticket_number}"


def build_qr_payload(ticket_id: object, event_id: object, user_id: object, ticket_number: str) -> str:
    """Build the string a client renders into the ticket's QR code.

    Falls back to the legacy colon format if the envelope cannot be serialized.
    """
    envelope = {
        "type": QR_TYPE,
        "ticketId": str(ticket_id),
        "eventId": str(event_id),
        "userId": str(user_id),
        "ticketNumber": ticket_number,
        "timestamp": int(time.time() * 1000),
        "version": QR_VERSION,
        "hash": generate_security_hash(ticket_id, event_id, user_id),
    }
    try:
        return orjson.dumps(envelope).decode()
    except (orjson.JSONEncodeError, UnicodeDecodeError):
        logger.exception("qr_payload_serialization_failed", ticket_id=str(ticket_id))
        return build_legacy_payload(ticket_id, event_id, user_id, ticket_number)


def _parse_structured(raw: str) -> StructuredPayload | None:
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError:
        return None
    if not isinstance(data, dict) or data.get("type") != QR_TYPE:
        return None
    ticket_id = data.get("ticketId")
    if not isinstance(ticket_id, str) or not ticket_id:
        return None
    return StructuredPayload(
        ticket_id=ticket_id,
        event_id=str(data.get("eventId") or ""),
        user_id=str(data.get("userId") or ""),
        ticket_number=str(data.get("ticketNumber") or ""),
        timestamp=data.get("timestamp") if isinstance(data.get("timestamp"), int) else None,
        version=data["version"] if isinstance(data.get("version"), str) else None,
        hash=data["hash"] if isinstance(data.get("hash"), str) else None,
    )


def _parse_legacy(raw: str) -> LegacyPayload | None:
    parts = raw.split(":")
    if len(parts) != 2 * len(LEGACY_FIELDS):
        return None
    labels, values = parts[0::2], parts[1::2]
    if tuple(labels) != LEGACY_FIELDS or not all(values):
        return None
    ticket_id, event_id, user_id, ticket_number = values
    return LegacyPayload(ticket_id=ticket_id, event_id=event_id, user_id=user_id, ticket_number=ticket_number)


def parse_qr_payload(raw: str | None) -> QRPayload | None:
    """Parse a scanned QR string into one of the two payload variants, or ``None``."""
    if not raw:
        return None
    raw = raw.strip()
    parsed: QRPayload | None = _parse_structured(raw)
    if parsed is None:
        parsed = _parse_legacy(raw)
    return parsed
