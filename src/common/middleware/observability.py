"""Observability middleware for context enrichment."""

import typing as t
import uuid

import structlog
from django.conf import settings
from django.http import HttpRequest, HttpResponse


class StructlogContextMiddleware:
    """Enriches structlog context with request metadata.

    Binds request_id, method, path, client IP and, for session-authenticated
    requests, the user id to every log event emitted while serving the request.
    JWT-authenticated requests get their user id bound by the authentication
    class, which runs after this middleware.
    """

    def __init__(self, get_response: t.Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        if not settings.ENABLE_OBSERVABILITY:
            return self.get_response(request)

        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()

        context: dict[str, t.Any] = {
            "request_id": request_id,
            "method": request.method,
            "path": request.path,
            "ip_address": self._get_client_ip(request),
        }
        if hasattr(request, "user") and request.user.is_authenticated:
            context["user_id"] = str(request.user.id)

        structlog.contextvars.bind_contextvars(**context)

        response = self.get_response(request)
        response["X-Request-ID"] = request_id

        structlog.contextvars.clear_contextvars()
        return response

    def _get_client_ip(self, request: HttpRequest) -> str:
        """Extract client IP address, preferring the first X-Forwarded-For hop."""
        x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
        if x_forwarded_for:
            return str(x_forwarded_for.split(",")[0].strip())
        return str(request.META.get("REMOTE_ADDR", "unknown"))
