from .event import Event
from .payment import FailedPurchase, PendingPayment
from .ticket import HELD_TICKET_VIOLATION, Ticket
from .venue import Venue

__all__ = [
    "Event",
    "FailedPurchase",
    "HELD_TICKET_VIOLATION",
    "PendingPayment",
    "Ticket",
    "Venue",
]
