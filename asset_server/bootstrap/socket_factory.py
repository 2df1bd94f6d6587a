"""Listening socket creation."""

import socket

from asset_server.bootstrap.config import ServerConfig

ACCEPT_POLL_SECONDS = 0.5


def create_server_socket(config: ServerConfig) -> socket.socket:
    """Create the listening socket with a short accept timeout for polling."""
    server_socket = socket.create_server(
        (config.host, config.port), reuse_port=hasattr(socket, "SO_REUSEPORT")
    )
    server_socket.settimeout(ACCEPT_POLL_SECONDS)
    return server_socket
