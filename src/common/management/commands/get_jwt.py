"""Print a bearer token for a user, for calling the API by hand."""

import typing as t

from django.core.management.base import BaseCommand, CommandError
from ninja_jwt.tokens import RefreshToken

from accounts.models import BoxOfficeUser
from accounts.service.identity import resolve_identity


class Command(BaseCommand):
    help = "Print JWT access and refresh tokens for the user with the given email."

    def add_arguments(self, parser: t.Any) -> None:
        """Add command arguments."""
        parser.add_argument("email", type=str, help="Email address of the user")

    def handle(self, *args: t.Any, **options: t.Any) -> None:
        """Issue the tokens and show the identity they resolve to."""
        email = options["email"]
        user = BoxOfficeUser.objects.filter(email__iexact=email).first()
        if user is None:
            raise CommandError(f'User with email "{email}" does not exist')

        identity = resolve_identity(user)
        refresh = RefreshToken.for_user(user)

        self.stdout.write(self.style.SUCCESS(f"JWT tokens for: {user.email}"))
        self.stdout.write(f"User ID: {identity.uid}")
        self.stdout.write(f"Role: {identity.role} ({'active' if identity.active else 'inactive'})")
        self.stdout.write(f"Venue: {identity.venue_id or 'all venues'}")
        self.stdout.write("")
        self.stdout.write(self.style.SUCCESS("Access token:"))
        self.stdout.write(str(refresh.access_token))  # type: ignore[attr-defined]
        self.stdout.write(self.style.SUCCESS("Refresh token:"))
        self.stdout.write(str(refresh))
