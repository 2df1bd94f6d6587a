"""Registry of live client connections."""

import socket
import threading


class ConnectionRegistry:
    """Tracks open client sockets and whether each is mid-request.

    Every accepted connection is added once by the accept loop and removed
    once by its worker when the connection closes.
    """

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._connections: dict[socket.socket, bool] = {}

    def __len__(self) -> int:
        with self._condition:
            return len(self._connections)

    def __contains__(self, client_socket: socket.socket) -> bool:
        with self._condition:
            return client_socket in self._connections

    def add(self, client_socket: socket.socket) -> None:
        """Register a freshly accepted connection as idle."""
        with self._condition:
            self._connections[client_socket] = False

    def discard(self, client_socket: socket.socket) -> bool:
        """Forget a closed connection; returns False if it was not registered."""
        with self._condition:
            removed = self._connections.pop(client_socket, None) is not None
            if not self._connections:
                self._condition.notify_all()
            return removed

    def mark_busy(self, client_socket: socket.socket) -> None:
        with self._condition:
            if client_socket in self._connections:
                self._connections[client_socket] = True

    def mark_idle(self, client_socket: socket.socket) -> None:
        with self._condition:
            if client_socket in self._connections:
                self._connections[client_socket] = False

    def busy_count(self) -> int:
        with self._condition:
            return sum(1 for busy in self._connections.values() if busy)

    def wait_until_empty(self, timeout: float) -> bool:
        """Block until no connection is registered or the timeout elapses."""
        with self._condition:
            return self._condition.wait_for(
                lambda: not self._connections, timeout=timeout
            )

    def close_idle(self) -> int:
        """Shut down connections waiting for their next request."""
        with self._condition:
            idle = [sock for sock, busy in self._connections.items() if not busy]
        for client_socket in idle:
            _force_close(client_socket)
        return len(idle)

    def close_all(self) -> int:
        """Shut down every registered connection, busy or not."""
        with self._condition:
            sockets = list(self._connections)
        for client_socket in sockets:
            _force_close(client_socket)
        return len(sockets)


def _force_close(client_socket: socket.socket) -> None:
    # The owning worker wakes up on the shutdown and closes the descriptor.
    try:
        client_socket.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
