"""Shutdown coordination: listener close, connection drain, forced deadline."""

import enum
import socket
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Optional

from asset_server.domain.request_context import get_logger
from asset_server.metrics.sampler import MetricsSampler
from asset_server.transport.registry import ConnectionRegistry

SHUTDOWN_LOGGER = get_logger("lifecycle.shutdown")
DRAIN_POLL_SECONDS = 0.05


class ShutdownState(enum.Enum):
    RUNNING = "running"
    DRAINING = "draining"
    TERMINATED = "terminated"


class ShutdownCoordinator:
    """Drives the server from running through draining to terminated.

    ``begin_draining`` may run inside a signal handler on the main thread
    while that thread holds one of these locks, so the locks are reentrant.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        grace_ms: int,
        sampler: Optional[MetricsSampler] = None,
    ) -> None:
        self.registry = registry
        self._grace_seconds = grace_ms / 1000
        self._grace_ms = grace_ms
        self._sampler = sampler
        self._lock = threading.RLock()
        self._state = ShutdownState.RUNNING
        self._stop_event = threading.Event()
        self._signals_seen: set[str] = set()
        self._listener: Optional[socket.socket] = None
        self._listener_error: Optional[OSError] = None
        self._exit_code: Optional[int] = None
        self._draining_since: Optional[float] = None

    @property
    def state(self) -> ShutdownState:
        with self._lock:
            return self._state

    @property
    def listener_error(self) -> Optional[OSError]:
        return self._listener_error

    def attach_listener(self, listener: socket.socket) -> None:
        """Hand over the listening socket so draining can close it."""
        with self._lock:
            self._listener = listener
            draining = self._state is not ShutdownState.RUNNING
        if draining:
            self._close_listener(listener)

    def should_stop(self) -> bool:
        """Check if the accept loop should stop."""
        return self._stop_event.is_set()

    def is_draining(self) -> bool:
        return self._stop_event.is_set()

    def begin_draining(self, reason: str) -> bool:
        """Enter the draining state; returns False when the call was ignored."""
        with self._lock:
            if reason in self._signals_seen:
                return False
            self._signals_seen.add(reason)
            if self._state is not ShutdownState.RUNNING:
                already_draining = True
            else:
                already_draining = False
                self._state = ShutdownState.DRAINING
                self._draining_since = time.monotonic()
                self._stop_event.set()
            listener = self._listener

        if already_draining:
            SHUTDOWN_LOGGER.info(
                "Shutdown already in progress",
                extra={"event": "shutdown_ignored", "signal": reason},
            )
            return False

        SHUTDOWN_LOGGER.info(
            "Beginning graceful shutdown",
            extra={"event": "shutdown_started", "signal": reason},
        )
        if listener is not None:
            self._close_listener(listener)
        self.registry.close_idle()
        return True

    def _close_listener(self, listener: socket.socket) -> None:
        try:
            listener.close()
        except OSError as error:
            self._listener_error = error
            SHUTDOWN_LOGGER.error(
                "Error while closing listener",
                extra={
                    "event": "listener_close_failed",
                    "error_type": type(error).__name__,
                },
            )

    def _wait_for_drain(self, cancelled: threading.Event) -> bool:
        while not cancelled.is_set():
            if self.registry.wait_until_empty(DRAIN_POLL_SECONDS):
                return True
        return False

    def _remaining_grace(self) -> float:
        """Seconds left until the deadline, counted from the start of draining."""
        with self._lock:
            started = self._draining_since
        if started is None:
            return self._grace_seconds
        return max(0.0, started + self._grace_seconds - time.monotonic())

    def _wait_for_deadline(self, cancelled: threading.Event) -> bool:
        return not cancelled.wait(self._remaining_grace())

    def _race_deadline(self) -> bool:
        """Return True when the deadline beat the graceful drain."""
        cancelled = threading.Event()
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="shutdown") as pool:
            graceful = pool.submit(self._wait_for_drain, cancelled)
            deadline = pool.submit(self._wait_for_deadline, cancelled)
            done, _ = wait([graceful, deadline], return_when=FIRST_COMPLETED)
            cancelled.set()
        return not (graceful in done and graceful.result())

    def drain(self) -> int:
        """Wait for in-flight connections, forcing them closed at the deadline.

        The graceful drain and the deadline run as two competing futures;
        the first to finish decides the outcome and the other is cancelled.
        The deadline is measured from the call to ``begin_draining``.
        Returns the process exit code. Later calls return the same code.
        """
        with self._lock:
            if self._exit_code is not None:
                return self._exit_code

        SHUTDOWN_LOGGER.info(
            "Waiting for active connections to complete",
            extra={
                "event": "shutdown_waiting",
                "remaining_connections": len(self.registry),
                "shutdown_grace_ms": self._grace_ms,
            },
        )
        timed_out = not self.registry.wait_until_empty(0) and self._race_deadline()
        if timed_out:
            SHUTDOWN_LOGGER.warning(
                "Forced shutdown after grace period",
                extra={
                    "event": "shutdown_forced",
                    "remaining_connections": len(self.registry),
                    "shutdown_grace_ms": self._grace_ms,
                },
            )
            self.registry.close_all()

        if self._sampler is not None:
            self._sampler.disable()

        exit_code = 1 if timed_out or self._listener_error is not None else 0
        with self._lock:
            if self._exit_code is None:
                self._exit_code = exit_code
                self._state = ShutdownState.TERMINATED
            exit_code = self._exit_code

        SHUTDOWN_LOGGER.info(
            "Server shutdown complete",
            extra={"event": "server_stopped", "exit_code": exit_code},
        )
        return exit_code
