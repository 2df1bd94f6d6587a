"""Shared HTTP type definitions to avoid circular imports."""

from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass
class HttpRequest:
    """Represents a parsed HTTP request.

    ``target`` is the raw request target, query string and fragment included,
    still percent-encoded.
    """

    method: str
    target: str
    headers: dict[str, str]
    body: bytes = b""
    version: str = "HTTP/1.1"


@dataclass
class HttpResponse:
    """Represents an HTTP response to be sent to a client.

    When ``body_iter`` is set the body is streamed from it and the
    ``Content-Length`` header must already be present in ``headers``.
    """

    status: int
    reason: str
    headers: dict[str, str]
    body: bytes
    close_connection: bool
    body_iter: Optional[Iterable[bytes]] = None

    @property
    def status_line(self) -> str:
        return f"HTTP/1.1 {self.status} {self.reason}"


def should_close(request: HttpRequest) -> bool:
    """Determine whether the connection should be closed after responding."""
    connection = request.headers.get("connection", "").lower()
    if connection == "close":
        return True
    if request.version == "HTTP/1.0":
        return connection != "keep-alive"
    return False


class RequestEntityTooLarge(Exception):
    """Raised when a declared request body exceeds the configured limit."""


class StreamFailure(Exception):
    """Raised when reading a response body fails after headers were sent."""
