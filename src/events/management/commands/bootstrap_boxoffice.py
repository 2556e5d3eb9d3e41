"""Create a venue, a few events and the staff accounts needed to try the purchase and scan flows locally."""

import typing as t
from datetime import timedelta
from decimal import Decimal

import structlog
from decouple import config
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from accounts.models import BoxOfficeUser, Role
from events.models import Event, Venue

logger = structlog.get_logger(__name__)

DEFAULT_PASSWORD = "password"


class Command(BaseCommand):
    help = "Seed a local database with a venue, events and staff accounts. Safe to run more than once."

    @transaction.atomic
    def handle(self, *args: t.Any, **options: t.Any) -> None:
        """Create the sample data unless it already exists."""
        password = config("BOOTSTRAP_PASSWORD", default=DEFAULT_PASSWORD)
        venue, _ = Venue.objects.get_or_create(
            name="The Roundhouse",
            defaults={"address": "Chalk Farm Rd, London NW1 8EH", "timezone": "Europe/London"},
        )

        staff = [
            ("admin@boxoffice.local", Role.SITE_ADMIN, None),
            ("manager@boxoffice.local", Role.VENUE_ADMIN, venue),
            ("door@boxoffice.local", Role.SCANNER, venue),
            ("buyer@boxoffice.local", Role.USER, None),
        ]
        for email, role, user_venue in staff:
            user, created = BoxOfficeUser.objects.get_or_create(
                username=email, defaults={"email": email, "role": role, "venue": user_venue}
            )
            if created:
                user.set_password(password)
                user.save(update_fields=["password"])
                self.stdout.write(self.style.SUCCESS(f"Created {role} {email}"))

        now = timezone.localtime()
        tonight = now.replace(hour=20, minute=0, second=0, microsecond=0)
        if tonight <= now:
            tonight += timedelta(days=1)
        events = [
            ("Tonight at the Roundhouse", Decimal("15.00"), 200, tonight),
            ("Next Week Headliner", Decimal("32.50"), 1500, tonight + timedelta(days=7)),
            ("Open Rehearsal", Decimal("0"), 50, tonight + timedelta(days=3)),
        ]
        for name, price, max_tickets, start_time in events:
            _, created = Event.objects.get_or_create(
                name=name,
                venue=venue,
                defaults={"price": price, "max_tickets": max_tickets, "start_time": start_time},
            )
            if created:
                self.stdout.write(self.style.SUCCESS(f"Created event {name}"))

        logger.info("bootstrap_completed", venue_id=str(venue.id))
        if password == DEFAULT_PASSWORD:
            self.stdout.write(self.style.WARNING("The default password is being used for every account."))
