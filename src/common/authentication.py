import typing as t

import structlog
from django.http import HttpRequest
from ninja_jwt.authentication import JWTAuth

from accounts.service.identity import resolve_identity


class IdentityJWTAuth(JWTAuth):
    """JWT authentication that resolves the caller's ticketing identity.

    After the token is validated the authenticated user is turned into an
    ``Identity`` (uid, role, venue scope, active flag) and stored on
    ``request.identity``, so controllers and services never look at role
    fields on the user model directly. The user id is also bound into the
    structlog context for the remainder of the request.

    Usage:
        @api_controller("/scanner", auth=IdentityJWTAuth())
        class ScannerController(IdentityAwareController):
            ...
    """

    def authenticate(self, request: HttpRequest, token: str) -> t.Any:
        """Authenticate the request and attach the resolved identity.

        Args:
            request: The HTTP request object
            token: The JWT token string

        Returns:
            The authenticated user object

        Raises:
            AuthenticationFailed: If authentication fails
            InvalidToken: If the token is invalid
        """
        user = super().authenticate(request, token)
        if user:
            identity = resolve_identity(user)
            request.identity = identity  # type: ignore[attr-defined]
            structlog.contextvars.bind_contextvars(user_id=str(identity.uid), role=identity.role)
        return user
