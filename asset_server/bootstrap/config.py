"""Server configuration and CLI argument parsing."""

import argparse
import os
from dataclasses import dataclass
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


MAX_BODY_BYTES = _env_int("ASSET_SERVER_MAX_BODY_BYTES", 5 * 1024 * 1024)
MAX_HEADER_BYTES = _env_int("ASSET_SERVER_MAX_HEADER_BYTES", 64 * 1024)
DEFAULT_PORT = _env_int("PORT", 3000)
DEFAULT_KEEP_ALIVE_TIMEOUT_MS = _env_int("ASSET_SERVER_KEEP_ALIVE_TIMEOUT_MS", 5000)
DEFAULT_HEADERS_TIMEOUT_MS = _env_int("ASSET_SERVER_HEADERS_TIMEOUT_MS", 7000)
DEFAULT_SHUTDOWN_GRACE_MS = _env_int("ASSET_SERVER_SHUTDOWN_GRACE_MS", 5000)
DEFAULT_METRICS_ENABLED = _env_bool("ASSET_SERVER_METRICS", False)
DEFAULT_METRICS_SAMPLE_MS = _env_int("ASSET_SERVER_METRICS_SAMPLE_MS", 1000)
DEFAULT_METRICS_THRESHOLD_MS = _env_int("ASSET_SERVER_METRICS_THRESHOLD_MS", 50)

HEADER_DELIMITER = b"\r\n\r\n"
HEALTHZ_PATH = "/healthz"
STATIC_METHODS = frozenset({"GET", "HEAD"})
CACHE_CONTROL = "public, max-age=300"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
}


@dataclass(frozen=True)
class ServerConfig:
    """Listener, timeout and shutdown settings fixed at startup."""

    root_directory: str
    host: str = "localhost"
    port: int = DEFAULT_PORT
    keep_alive_timeout_ms: int = DEFAULT_KEEP_ALIVE_TIMEOUT_MS
    headers_timeout_ms: int = DEFAULT_HEADERS_TIMEOUT_MS
    shutdown_grace_ms: int = DEFAULT_SHUTDOWN_GRACE_MS


@dataclass(frozen=True)
class MetricsConfig:
    """Settings for the in-process metrics sampler."""

    enabled: bool = False
    sample_interval_ms: int = DEFAULT_METRICS_SAMPLE_MS
    lag_threshold_ms: int = DEFAULT_METRICS_THRESHOLD_MS

    def __post_init__(self) -> None:
        if self.sample_interval_ms <= 0:
            raise ValueError("sample_interval_ms must be positive")
        if self.lag_threshold_ms < 0:
            raise ValueError("lag_threshold_ms must not be negative")


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(
            f"expected a non-negative integer, got {value}"
        )
    return number


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for server configuration."""
    parser = argparse.ArgumentParser(description="Static asset server")
    parser.add_argument(
        "--directory",
        default=os.getenv("ASSET_SERVER_DIRECTORY", "public"),
        help="Root directory of the assets to serve",
    )
    parser.add_argument(
        "--host", default=os.getenv("ASSET_SERVER_HOST", "localhost")
    )
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    default_log_level = os.getenv("ASSET_SERVER_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("ASSET_SERVER_LOG_DESTINATION", "stdout")
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    parser.add_argument(
        "--log-format",
        default=os.getenv("ASSET_SERVER_LOG_FORMAT", "json").lower(),
        choices=["json", "text"],
        type=str.lower,
    )
    parser.add_argument(
        "--keep-alive-timeout-ms",
        type=_positive_int,
        default=DEFAULT_KEEP_ALIVE_TIMEOUT_MS,
        help="Idle time before a keep-alive connection is dropped",
    )
    parser.add_argument(
        "--headers-timeout-ms",
        type=_positive_int,
        default=DEFAULT_HEADERS_TIMEOUT_MS,
        help="Time allowed to receive a complete request header block",
    )
    parser.add_argument(
        "--shutdown-grace-ms",
        type=_non_negative_int,
        default=DEFAULT_SHUTDOWN_GRACE_MS,
        help="Grace period for in-flight requests before connections are forced closed",
    )
    parser.add_argument(
        "--metrics",
        action=argparse.BooleanOptionalAction,
        default=DEFAULT_METRICS_ENABLED,
        help="Log request rate and scheduler lag",
    )
    parser.add_argument(
        "--metrics-sample",
        type=_positive_int,
        default=DEFAULT_METRICS_SAMPLE_MS,
        help="Scheduler lag sampling interval in milliseconds",
    )
    parser.add_argument(
        "--metrics-threshold",
        type=_non_negative_int,
        default=DEFAULT_METRICS_THRESHOLD_MS,
        help="Lag in milliseconds above which a warning is logged",
    )
    return parser.parse_args(argv)


def server_config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Build the immutable server configuration from parsed arguments."""
    return ServerConfig(
        root_directory=str(Path(args.directory).resolve()),
        host=args.host,
        port=args.port,
        keep_alive_timeout_ms=args.keep_alive_timeout_ms,
        headers_timeout_ms=args.headers_timeout_ms,
        shutdown_grace_ms=args.shutdown_grace_ms,
    )


def metrics_config_from_args(args: argparse.Namespace) -> MetricsConfig:
    """Build the metrics sampler configuration from parsed arguments."""
    return MetricsConfig(
        enabled=args.metrics,
        sample_interval_ms=args.metrics_sample,
        lag_threshold_ms=args.metrics_threshold,
    )
