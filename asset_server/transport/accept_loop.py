"""Main connection acceptance loop."""

import socket
import threading
from typing import Optional

from asset_server.bootstrap.config import ServerConfig
from asset_server.bootstrap.socket_factory import create_server_socket
from asset_server.domain.request_context import get_logger
from asset_server.lifecycle.shutdown import ShutdownCoordinator
from asset_server.metrics.sampler import MetricsSampler
from asset_server.transport.context import WorkerContext
from asset_server.transport.worker import handle_client

ACCEPT_LOGGER = get_logger("transport.accept")


def _handle_accepted_client(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    context: WorkerContext,
) -> None:
    """Register a newly accepted connection and hand it to a worker thread."""
    ACCEPT_LOGGER.debug(
        "Client connection accepted",
        extra={
            "event": "client_accepted",
            "client": f"{client_address[0]}:{client_address[1]}",
        },
    )
    context.registry.add(client_socket)
    thread = threading.Thread(
        target=handle_client,
        args=(client_socket, client_address, context),
        daemon=True,
    )
    thread.start()


def _accept_until_stopped(
    server_socket: socket.socket, context: WorkerContext
) -> None:
    coordinator = context.coordinator
    while not coordinator.should_stop():
        try:
            client_socket, client_address = server_socket.accept()
        except TimeoutError:
            continue
        except OSError as error:
            if coordinator.should_stop():
                break
            ACCEPT_LOGGER.error(
                "Socket accept failed",
                extra={"event": "accept_error", "error_type": type(error).__name__},
            )
            continue

        if coordinator.should_stop():
            client_socket.close()
            break

        _handle_accepted_client(client_socket, client_address, context)


def run_server(
    config: ServerConfig,
    coordinator: ShutdownCoordinator,
    sampler: Optional[MetricsSampler] = None,
) -> int:
    """Serve until shutdown is requested, then drain and return the exit code."""

    server_socket = create_server_socket(config)
    bound_port = server_socket.getsockname()[1]
    ACCEPT_LOGGER.info(
        "Server listening for connections",
        extra={
            "event": "server_listening",
            "host": config.host,
            "port": bound_port,
            "directory": config.root_directory,
        },
    )
    coordinator.attach_listener(server_socket)

    context = WorkerContext(
        config=config,
        registry=coordinator.registry,
        coordinator=coordinator,
        sampler=sampler,
    )

    try:
        _accept_until_stopped(server_socket, context)
    finally:
        if not coordinator.is_draining():
            coordinator.begin_draining("accept_loop_exit")
    return coordinator.drain()
