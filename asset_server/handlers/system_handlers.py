"""Liveness and fallback handlers."""

import logging

from asset_server.domain.http_types import HttpRequest, HttpResponse
from asset_server.domain.request_context import get_logger
from asset_server.domain.response_builders import (
    healthz_response,
    not_found_response,
)

SYSTEM_LOGGER = get_logger("handlers.system")


def handle_healthz(request: HttpRequest) -> HttpResponse:
    """Report liveness; independent of the asset directory."""
    if SYSTEM_LOGGER.logger.isEnabledFor(logging.DEBUG):
        SYSTEM_LOGGER.debug("Health check performed", extra={"event": "healthz_check"})
    return healthz_response(request)


def handle_not_found(request: HttpRequest) -> HttpResponse:
    if SYSTEM_LOGGER.logger.isEnabledFor(logging.DEBUG):
        SYSTEM_LOGGER.debug(
            "No matching route found",
            extra={
                "event": "route_not_found",
                "route": request.target,
                "method": request.method,
            },
        )
    return not_found_response(request)
