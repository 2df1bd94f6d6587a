"""Context object shared across worker threads."""

from dataclasses import dataclass
from typing import Optional

from asset_server.bootstrap.config import ServerConfig
from asset_server.lifecycle.shutdown import ShutdownCoordinator
from asset_server.metrics.sampler import MetricsSampler
from asset_server.transport.registry import ConnectionRegistry


@dataclass
class WorkerContext:
    """Dependencies shared across handler threads."""

    config: ServerConfig
    registry: ConnectionRegistry
    coordinator: ShutdownCoordinator
    sampler: Optional[MetricsSampler] = None
