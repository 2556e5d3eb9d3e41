"""Exception handlers for the API."""

import typing as t

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import HttpRequest
from ninja.responses import Response

from events.exceptions import TicketingError

logger = structlog.get_logger(__name__)

SENSITIVE_KEYS = {"password", "token", "x-api-key", "authorization", "authentication", "cookie"}


def handle_general_exception(request: HttpRequest, exc: Exception | t.Type[Exception]) -> Response:
    """Handle an unexpected exception.

    Logs the failure with request context and answers with a generic 500, so
    infrastructure error text never reaches the client.

    Args:
        request: The incoming HTTP request.
        exc: The exception.

    Returns:
        The response.
    """
    logger.error(
        "internal_server_error",
        exc_info=exc if isinstance(exc, Exception) else True,
        method=request.method,
        path=request.path,
        headers=obfuscate(dict(request.headers)),
        exception_type=type(exc).__name__ if isinstance(exc, Exception) else exc.__name__,
    )
    data: dict[str, t.Any] = {"detail": "Internal Server Error."}
    if settings.DEBUG:  # pragma: no cover
        data["exception"] = repr(exc)
    return Response(status=500, data=data)


def handle_django_validation_error(request: HttpRequest, exc: ValidationError | t.Type[ValidationError]) -> Response:
    """Handle a validation error.

    Args:
        request: The incoming HTTP request.
        exc: The exception.
    """
    logger.warning("validation_error", path=request.path)
    if hasattr(exc, "error_dict"):
        error_dict = {k: [ee for e in v for ee in e] for k, v in exc.error_dict.items()}
    else:
        error_dict = {"__all__": list(t.cast(ValidationError, exc).messages)}
    return Response(status=400, data={"errors": error_dict})


def handle_ticketing_error(request: HttpRequest, exc: TicketingError | t.Type[TicketingError]) -> Response:
    """Render a domain error with its stable code.

    Args:
        request: The incoming HTTP request.
        exc: The exception.
    """
    error = t.cast(TicketingError, exc)
    log = logger.error if error.status_code >= 500 else logger.info
    log("ticketing_error", code=error.code, error=type(error).__name__, path=request.path)
    return Response(status=error.status_code, data={"code": error.code, "detail": error.message})


def obfuscate(data: dict[str, t.Any]) -> dict[str, t.Any]:
    """Obfuscate sensitive headers."""
    return {key: "********" if key.lower() in SENSITIVE_KEYS else value for key, value in data.items()}
