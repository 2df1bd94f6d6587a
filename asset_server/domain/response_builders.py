"""Pure HTTP response builders."""

from typing import Optional

from asset_server.bootstrap.config import SECURITY_HEADERS
from asset_server.domain.http_types import HttpRequest, HttpResponse, should_close

TEXT_PLAIN = "text/plain; charset=utf-8"


def text_response(
    status: int,
    reason: str,
    message: str,
    request: Optional[HttpRequest],
    close_connection: bool = False,
) -> HttpResponse:
    """Return a plain-text response honoring the caller's connection preference."""
    headers = {"Content-Type": TEXT_PLAIN, **SECURITY_HEADERS}
    if request is None:
        close_connection = True
    else:
        close_connection = close_connection or should_close(request)
    return HttpResponse(status, reason, headers, message.encode(), close_connection)


def healthz_response(request: HttpRequest) -> HttpResponse:
    """Produce the liveness response."""
    return text_response(200, "OK", "ok\n", request)


def not_found_response(request: HttpRequest) -> HttpResponse:
    """Return a 404 response reusing the connection preference."""
    return text_response(404, "Not Found", "Not Found\n", request)


def internal_error_response(request: HttpRequest) -> HttpResponse:
    """Return a 500 response for failures detected before headers were sent."""
    return text_response(
        500, "Internal Server Error", "Internal Server Error\n", request
    )


def bad_request_response() -> HttpResponse:
    """Produce a 400 response that always closes the connection."""
    return text_response(400, "Bad Request", "Bad Request\n", None)


def entity_too_large_response() -> HttpResponse:
    """Produce a 413 response that always closes the connection."""
    return text_response(413, "Payload Too Large", "Payload Too Large\n", None)
