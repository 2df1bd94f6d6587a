"""Shared fixtures for unit tests."""

import logging

import pytest

from asset_server.domain.request_context import clear_request_id


@pytest.fixture(autouse=True)
def enable_log_propagation():
    """Ensure logs propagate to root so caplog can catch them."""
    logger = logging.getLogger("asset_server")
    old_propagate = logger.propagate
    logger.propagate = True
    yield
    logger.propagate = old_propagate


@pytest.fixture(autouse=True)
def reset_request_id():
    """Keep request IDs from leaking between tests."""
    clear_request_id()
    yield
    clear_request_id()
