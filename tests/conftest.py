"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Generator, TypedDict

import pytest

from tests.utils.assets import populate_assets
from tests.utils.http import reserve_port, wait_for_port

if TYPE_CHECKING:
    from _pytest.tmpdir import TempPathFactory

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SERVER_ENTRYPOINT = PROJECT_ROOT / "main.py"


class ServerProcessInfo(TypedDict):
    """Metadata describing a running server fixture instance."""

    base_url: str
    host: str
    port: int
    directory: Path
    process: subprocess.Popen[str]
    log_file: Path


def launch_server(
    directory: Path,
    log_file: Path,
    extra_args: list[str] | None = None,
) -> Generator[ServerProcessInfo, None, None]:
    """Run main.py in a subprocess and stop it when the generator resumes."""

    host = "127.0.0.1"
    port = reserve_port(host)
    args = [
        sys.executable,
        str(SERVER_ENTRYPOINT),
        "--directory",
        str(directory),
        "--host",
        host,
        "--port",
        str(port),
        "--log-destination",
        str(log_file),
    ]
    if extra_args:
        args.extend(extra_args)

    with subprocess.Popen(
        args,
        cwd=PROJECT_ROOT,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    ) as process:
        try:
            wait_for_port(host, port)
        except Exception:
            process.terminate()
            stdout, stderr = process.communicate(timeout=5)
            print(f"\nServer stdout:\n{stdout}")
            print(f"\nServer stderr:\n{stderr}")
            raise

        yield {
            "base_url": f"http://{host}:{port}",
            "host": host,
            "port": port,
            "directory": directory,
            "process": process,
            "log_file": log_file,
        }

        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=10)
            except subprocess.TimeoutExpired:
                process.kill()


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Expose the repository root path to tests."""

    return PROJECT_ROOT


@pytest.fixture(name="start_server")
def _start_server(
    tmp_path_factory: "TempPathFactory",
) -> Generator[Callable[..., ServerProcessInfo], None, None]:
    """Factory launching a server over a fresh asset tree with extra CLI flags."""

    launched: list[Generator[ServerProcessInfo, None, None]] = []

    def _start(extra_args: list[str] | None = None) -> ServerProcessInfo:
        workspace = tmp_path_factory.mktemp("asset-server")
        directory = populate_assets(workspace / "public")
        runner = launch_server(directory, workspace / "server.log", extra_args)
        launched.append(runner)
        return next(runner)

    yield _start

    for runner in launched:
        for _ in runner:
            pass


@pytest.fixture(name="server_process")
def _server_process(
    start_server: Callable[..., ServerProcessInfo],
) -> ServerProcessInfo:
    """Launch the server in a background process for integration tests."""

    return start_server()


@pytest.fixture()
def base_url(server_process: ServerProcessInfo) -> str:
    """Expose the running server base URL to integration tests."""

    return server_process["base_url"]
