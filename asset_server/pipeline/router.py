"""Request routing and response completion tracking."""

import socket
import time
from typing import Optional

from asset_server.bootstrap.config import HEALTHZ_PATH
from asset_server.domain.http_types import HttpRequest, HttpResponse
from asset_server.domain.request_context import RequestContext, get_logger
from asset_server.handlers.static_files import serve_static
from asset_server.handlers.system_handlers import handle_healthz, handle_not_found
from asset_server.metrics.sampler import MetricsSampler, request_completion
from asset_server.pipeline.io import send_response
from asset_server.transport.context import WorkerContext

ROUTER_LOGGER = get_logger("pipeline.router")


def route_request(
    request: HttpRequest,
    root_directory: str,
    request_context: Optional[RequestContext] = None,
) -> HttpResponse:
    """Static assets first, then the liveness endpoint, then 404."""
    response = serve_static(request, root_directory, request_context)
    if response is None:
        if request.method == "GET" and request.target == HEALTHZ_PATH:
            response = handle_healthz(request)
        else:
            response = handle_not_found(request)
    if request_context is not None:
        request_context.response_status = response.status
    return response


def respond(
    client_socket: socket.socket,
    response: HttpResponse,
    sampler: Optional[MetricsSampler],
    head_only: bool = False,
) -> int:
    """Send a terminal response and count it once, whether or not sending succeeds."""
    with request_completion(sampler):
        return send_response(client_socket, response, head_only=head_only)


def handle_request(
    request: HttpRequest, client_socket: socket.socket, context: WorkerContext
) -> bool:
    """Route and answer one request; returns True when the connection must close."""
    started = time.perf_counter()
    request_context = RequestContext(method=request.method, raw_path=request.target)
    with request_completion(context.sampler):
        response = route_request(
            request, context.config.root_directory, request_context
        )
        if context.coordinator.is_draining():
            response.close_connection = True
        bytes_out = send_response(
            client_socket, response, head_only=request.method == "HEAD"
        )
    ROUTER_LOGGER.info(
        "Request completed",
        extra={
            "event": "request_complete",
            "method": request_context.method,
            "route": request_context.raw_path,
            "path": (
                request_context.resolved_file_path.as_posix()
                if request_context.resolved_file_path is not None
                else None
            ),
            "status_code": request_context.response_status,
            "bytes_out": bytes_out,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
        },
    )
    return response.close_connection
