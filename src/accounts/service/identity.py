"""Identity and role resolution.

Turns an authenticated user into the canonical ``Identity`` shape that every
ticketing operation consumes, and holds the role checks shared by the
purchase, ticket and scanner services.
"""

import typing as t
import uuid
from dataclasses import dataclass

import structlog
from django.contrib.auth.models import AnonymousUser

from accounts.models import BoxOfficeUser, Role
from events.exceptions import PermissionDeniedError, ScanPermissionDeniedError, UnauthenticatedError

logger = structlog.get_logger(__name__)

# Admin hierarchy. Roles missing from the map rank 0 and never satisfy an admin check.
ROLE_HIERARCHY: dict[str, int] = {
    Role.SITE_ADMIN: 3,
    Role.VENUE_ADMIN: 2,
    Role.SUB_ADMIN: 1,
}

SCANNING_ROLES = frozenset({Role.SCANNER, Role.VENUE_ADMIN, Role.SUB_ADMIN, Role.SITE_ADMIN})


@dataclass(frozen=True)
class Identity:
    """The resolved caller: who they are, what role they hold and where."""

    uid: uuid.UUID
    role: str
    venue_id: uuid.UUID | None
    active: bool

    @property
    def is_site_admin(self) -> bool:
        return self.role == Role.SITE_ADMIN

    @property
    def role_level(self) -> int:
        return ROLE_HIERARCHY.get(self.role, 0)


def resolve_identity(user: BoxOfficeUser | AnonymousUser | None) -> Identity:
    """Resolve an authenticated user into an ``Identity``.

    Raises:
        UnauthenticatedError: If there is no authenticated user.
    """
    if user is None or not user.is_authenticated:
        raise UnauthenticatedError()
    user = t.cast(BoxOfficeUser, user)
    return Identity(
        uid=user.id,
        role=user.role,
        venue_id=user.venue_id,
        active=user.is_active and user.role_active,
    )


def require_admin(identity: Identity, minimum_role: str = Role.SUB_ADMIN) -> None:
    """Ensure the identity holds at least ``minimum_role`` in the admin hierarchy.

    Raises:
        PermissionDeniedError: If the role ranks below the required one or the identity is inactive.
    """
    required_level = ROLE_HIERARCHY[minimum_role]
    if not identity.active or identity.role_level < required_level:
        logger.warning(
            "admin_permission_denied",
            user_id=str(identity.uid),
            role=identity.role,
            required_role=str(minimum_role),
        )
        raise PermissionDeniedError(f"Insufficient permissions. Required: {minimum_role}, Have: {identity.role}")


def require_scanner(identity: Identity) -> None:
    """Ensure the identity may redeem tickets.

    Raises:
        ScanPermissionDeniedError: If the role is not a scanning role or the identity is inactive.
    """
    if identity.role not in SCANNING_ROLES or not identity.active:
        logger.warning(
            "scan_permission_denied",
            user_id=str(identity.uid),
            role=identity.role,
            active=identity.active,
        )
        raise ScanPermissionDeniedError()


def has_venue_access(identity: Identity, venue_id: uuid.UUID | None) -> bool:
    """Whether the identity's venue scope covers ``venue_id``.

    Site admins and identities without a venue are scoped to all venues.
    """
    if identity.is_site_admin or identity.venue_id is None:
        return True
    return identity.venue_id == venue_id
