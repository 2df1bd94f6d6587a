"""HTTP input/output operations."""

import socket
import time
from email.utils import formatdate
from typing import Callable, Optional, Tuple

from asset_server.bootstrap.config import (
    HEADER_DELIMITER,
    MAX_BODY_BYTES,
    MAX_HEADER_BYTES,
)
from asset_server.domain.http_types import (
    HttpRequest,
    HttpResponse,
    RequestEntityTooLarge,
)
from asset_server.domain.request_context import (
    get_logger,
    get_request_id,
    set_request_id,
)

IO_LOGGER = get_logger("io")
RECV_SIZE = 4096
BODYLESS_STATUSES = frozenset({204, 304})


def _recv_with_deadline(client_socket: socket.socket, deadline_ns: int) -> bytes:
    """Receive data from socket with a deadline, raising TimeoutError if exceeded."""
    remaining_ns = deadline_ns - time.monotonic_ns()
    if remaining_ns <= 0:
        raise TimeoutError("Request deadline exceeded")
    timeout_seconds = remaining_ns / 1_000_000_000
    client_socket.settimeout(timeout_seconds)
    return client_socket.recv(RECV_SIZE)


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert raw header lines into a lowercase-keyed dictionary."""
    parsed = {}
    for line in lines:
        if not line:
            continue
        if ":" not in line:
            raise ValueError("Malformed header line")
        name, value = line.split(":", 1)
        parsed[name.strip().lower()] = value.strip()
    return parsed


def parse_request_line(request_line: str) -> Tuple[str, str, str]:
    """Split the request line into method, raw target and protocol version."""
    try:
        method, target, version = request_line.split(" ", 2)
    except ValueError as exc:
        raise ValueError("Invalid request line") from exc
    if not method or not target or not version.startswith("HTTP/"):
        raise ValueError("Invalid request line")
    return method.upper(), target, version


def determine_content_length(headers: dict[str, str]) -> int:
    """Validate and return the declared Content-Length for the request."""
    if "transfer-encoding" in headers:
        raise ValueError("Chunked request bodies are not supported")
    header_value = headers.get("content-length")
    if header_value is None:
        return 0
    try:
        content_length = int(header_value)
    except ValueError as exc:
        raise ValueError("Invalid Content-Length") from exc
    if content_length < 0:
        raise ValueError("Negative Content-Length")
    if content_length > MAX_BODY_BYTES:
        raise RequestEntityTooLarge
    return content_length


def receive_request(
    client_socket: socket.socket,
    buffer: bytes,
    keep_alive_timeout: float,
    headers_timeout: float,
    on_first_byte: Optional[Callable[[], None]] = None,
) -> Tuple[Optional[HttpRequest], bytes]:
    """Read bytes from the socket until a complete request is available.

    Returns ``(None, b"")`` when the peer closes or stays idle longer than
    ``keep_alive_timeout`` before sending anything. Once the first byte has
    arrived the whole header block must follow within ``headers_timeout``,
    otherwise ``TimeoutError`` is raised. ``on_first_byte`` runs as soon as
    any part of the request is available.
    """
    if not buffer:
        client_socket.settimeout(keep_alive_timeout)
        try:
            buffer = client_socket.recv(RECV_SIZE)
        except TimeoutError:
            return None, b""
        if not buffer:
            return None, b""

    if on_first_byte is not None:
        on_first_byte()
    deadline_ns = time.monotonic_ns() + int(headers_timeout * 1_000_000_000)
    while HEADER_DELIMITER not in buffer:
        if len(buffer) > MAX_HEADER_BYTES:
            raise ValueError("Header block too large")
        chunk = _recv_with_deadline(client_socket, deadline_ns)
        if not chunk:
            return None, b""
        buffer += chunk

    header_block, remainder = buffer.split(HEADER_DELIMITER, 1)
    header_lines = header_block.decode("latin-1").split("\r\n")
    method, target, version = parse_request_line(header_lines[0])
    headers = parse_headers(header_lines[1:])

    incoming_request_id = headers.get("x-request-id")
    if incoming_request_id:
        set_request_id(incoming_request_id)

    content_length = determine_content_length(headers)

    while len(remainder) < content_length:
        chunk = _recv_with_deadline(client_socket, deadline_ns)
        if not chunk:
            return None, b""
        remainder += chunk

    client_socket.settimeout(keep_alive_timeout)
    body = remainder[:content_length]
    leftover = remainder[content_length:]
    IO_LOGGER.debug("Parsed request", extra={"method": method, "path": target})
    return HttpRequest(method, target, headers, body, version), leftover


def _close_body(response: HttpResponse) -> None:
    close = getattr(response.body_iter, "close", None)
    if close is not None:
        close()


def send_response(
    client_socket: socket.socket, response: HttpResponse, head_only: bool = False
) -> int:
    """Serialize the response onto the socket and return the body bytes written.

    A streamed body raises ``StreamFailure`` from its iterator when the
    underlying read fails; headers have been committed by then so the
    caller can only drop the connection.
    """
    headers = dict(response.headers)

    request_id = get_request_id()
    if request_id:
        headers["X-Request-ID"] = request_id

    if response.status >= 200 and response.status not in BODYLESS_STATUSES:
        headers.setdefault("Content-Length", str(len(response.body)))
    headers["Date"] = formatdate(usegmt=True)
    if response.close_connection:
        headers["Connection"] = "close"
    header_lines = [response.status_line]
    header_lines.extend(f"{name}: {value}" for name, value in headers.items())
    header_block = "\r\n".join(header_lines).encode("latin-1") + b"\r\n\r\n"

    if head_only or response.body_iter is None:
        try:
            payload = b"" if head_only else response.body
            client_socket.sendall(header_block + payload)
        finally:
            _close_body(response)
        IO_LOGGER.debug("Sent response", extra={"status_code": response.status})
        return len(payload)

    bytes_out = 0
    try:
        client_socket.sendall(header_block)
        for chunk in response.body_iter:
            client_socket.sendall(chunk)
            bytes_out += len(chunk)
    finally:
        _close_body(response)
    IO_LOGGER.debug(
        "Sent streamed response",
        extra={"status_code": response.status, "bytes_out": bytes_out},
    )
    return bytes_out
