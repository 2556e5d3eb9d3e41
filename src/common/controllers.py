import typing as t

from ninja_extra import ControllerBase

from accounts.models import BoxOfficeUser
from accounts.service.identity import Identity, resolve_identity


class IdentityAwareController(ControllerBase):
    def user(self) -> BoxOfficeUser:
        """Get the user for this request."""
        return t.cast(BoxOfficeUser, self.context.request.user)  # type: ignore[union-attr]

    def identity(self) -> Identity:
        """Get the resolved identity for this request.

        Set by ``IdentityJWTAuth``; resolved on the spot for other auth classes.
        """
        request = self.context.request  # type: ignore[union-attr]
        identity = getattr(request, "identity", None)
        if identity is None:
            identity = resolve_identity(request.user)
        return t.cast(Identity, identity)
