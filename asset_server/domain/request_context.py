"""Per-request context and request-id aware logging."""

import contextvars
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, MutableMapping, Optional

_request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)


@dataclass
class RequestContext:
    """Transient record describing one request/response exchange."""

    method: str
    raw_path: str
    resolved_file_path: Optional[Path] = None
    response_status: Optional[int] = None


def generate_request_id() -> str:
    """Generate a new request ID using UUID4."""
    return str(uuid.uuid4())


def get_request_id() -> Optional[str]:
    """Retrieve the request ID bound to the current thread."""
    return _request_id_var.get()


def set_request_id(request_id: str) -> None:
    """Bind a request ID to the current thread."""
    _request_id_var.set(request_id)


def clear_request_id() -> None:
    """Forget the request ID bound to the current thread."""
    _request_id_var.set(None)


class RequestLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects the request ID and component into records."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        if "extra" not in kwargs:
            kwargs["extra"] = {}
        else:
            kwargs["extra"] = dict(kwargs["extra"])

        request_id = get_request_id()
        kwargs["extra"]["request_id"] = request_id if request_id is not None else "-"

        logger_name = self.logger.name
        if logger_name.startswith("asset_server."):
            component = logger_name[len("asset_server.") :]
        else:
            component = logger_name
        kwargs["extra"]["component"] = component

        return msg, kwargs


def get_logger(name: str) -> RequestLoggerAdapter:
    """Return an adapter for a logger under the ``asset_server`` hierarchy."""
    return RequestLoggerAdapter(logging.getLogger(f"asset_server.{name}"), {})
