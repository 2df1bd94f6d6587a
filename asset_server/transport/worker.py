"""Worker thread logic for handling individual client connections."""

import logging
import socket
from typing import Optional

from asset_server.domain.http_types import (
    HttpRequest,
    RequestEntityTooLarge,
    StreamFailure,
)
from asset_server.domain.request_context import (
    clear_request_id,
    generate_request_id,
    get_logger,
    set_request_id,
)
from asset_server.domain.response_builders import (
    bad_request_response,
    entity_too_large_response,
)
from asset_server.pipeline.io import receive_request
from asset_server.pipeline.router import handle_request, respond
from asset_server.transport.context import WorkerContext

WORKER_LOGGER = get_logger("transport.worker")


def _read_request_with_validation(
    client_socket: socket.socket,
    buffer: bytes,
    client_addr_str: str,
    context: WorkerContext,
) -> tuple[Optional[HttpRequest], bytes, bool]:
    """Read a request, answering parse failures before giving up on the connection."""

    try:
        request, buffer = receive_request(
            client_socket,
            buffer,
            context.config.keep_alive_timeout_ms / 1000,
            context.config.headers_timeout_ms / 1000,
            on_first_byte=lambda: context.registry.mark_busy(client_socket),
        )
    except RequestEntityTooLarge:
        WORKER_LOGGER.warning(
            "Request body size exceeded limit",
            extra={"event": "body_size_exceeded", "client": client_addr_str},
        )
        respond(client_socket, entity_too_large_response(), context.sampler)
        return None, b"", True
    except ValueError:
        WORKER_LOGGER.warning(
            "Malformed request received",
            extra={"event": "malformed_request", "client": client_addr_str},
        )
        respond(client_socket, bad_request_response(), context.sampler)
        return None, b"", True

    if request is None:
        if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WORKER_LOGGER.debug(
                "Client disconnected or idle",
                extra={"event": "client_disconnected", "client": client_addr_str},
            )
        return None, b"", True
    return request, buffer, False


def _cleanup_worker(
    context: WorkerContext, client_socket: socket.socket, client_addr_str: str
) -> None:
    context.registry.discard(client_socket)

    try:
        client_socket.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    client_socket.close()

    WORKER_LOGGER.debug(
        "Socket closed",
        extra={"event": "socket_closed", "client": client_addr_str},
    )
    clear_request_id()


def handle_client(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    context: WorkerContext,
) -> None:
    """Process requests on a client socket until the connection is closed."""
    buffer = b""
    client_addr_str = f"{client_address[0]}:{client_address[1]}"
    registry = context.registry

    try:
        while True:
            # Idle before checking for shutdown so a concurrent drain either
            # sees this connection as idle or this loop sees the drain.
            registry.mark_idle(client_socket)
            if context.coordinator.is_draining():
                break

            set_request_id(generate_request_id())
            request, buffer, should_terminate = _read_request_with_validation(
                client_socket, buffer, client_addr_str, context
            )
            if should_terminate:
                break

            if handle_request(request, client_socket, context):
                break
            clear_request_id()
    except StreamFailure as error:
        WORKER_LOGGER.error(
            "Asset stream failed after headers were sent",
            extra={
                "event": "stream_failed",
                "client": client_addr_str,
                "path": str(error),
                "error_type": type(error.__cause__).__name__,
            },
        )
    except TimeoutError:
        WORKER_LOGGER.warning(
            "Connection timed out",
            extra={"event": "connection_timeout", "client": client_addr_str},
        )
    except (
        ConnectionError,
        OSError,
        UnicodeDecodeError,
    ) as error:
        WORKER_LOGGER.error(
            "Error handling client connection",
            extra={
                "event": "connection_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unexpected error in worker",
            extra={
                "event": "worker_error",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
            exc_info=True,
        )
    finally:
        _cleanup_worker(context, client_socket, client_addr_str)
