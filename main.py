"""Static asset server entry point."""

import signal
import sys
from pathlib import Path

from asset_server.bootstrap.config import (
    metrics_config_from_args,
    parse_cli_args,
    server_config_from_args,
)
from asset_server.bootstrap.logging_setup import configure_logging
from asset_server.domain.request_context import get_logger
from asset_server.lifecycle.shutdown import ShutdownCoordinator
from asset_server.metrics.sampler import enable_metrics
from asset_server.transport.accept_loop import run_server
from asset_server.transport.registry import ConnectionRegistry

SERVER_LOGGER = get_logger("server")


def main(argv: list[str]) -> int:
    """Start the server and return the process exit code once it has shut down."""
    args = parse_cli_args(argv)
    configure_logging(args.log_level, args.log_destination, args.log_format == "json")

    config = server_config_from_args(args)
    metrics_config = metrics_config_from_args(args)

    if not Path(config.root_directory).is_dir():
        SERVER_LOGGER.critical(
            "Asset directory does not exist",
            extra={"event": "startup_failed", "directory": config.root_directory},
        )
        return 1

    sampler = enable_metrics(metrics_config)
    coordinator = ShutdownCoordinator(
        ConnectionRegistry(), config.shutdown_grace_ms, sampler
    )

    def shutdown_handler(signum: int, _frame) -> None:
        coordinator.begin_draining(signal.Signals(signum).name)

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    SERVER_LOGGER.info(
        "Starting asset server",
        extra={
            "event": "server_starting",
            "host": config.host,
            "port": config.port,
            "directory": config.root_directory,
            "log_destination": args.log_destination,
            "log_level": args.log_level,
            "keep_alive_timeout_ms": config.keep_alive_timeout_ms,
            "headers_timeout_ms": config.headers_timeout_ms,
            "shutdown_grace_ms": config.shutdown_grace_ms,
        },
    )
    return run_server(config, coordinator, sampler)


def run() -> None:
    """Console script wrapper."""
    sys.exit(main(sys.argv[1:]))


if __name__ == "__main__":
    run()
