"""Integration tests proving requests cannot escape the asset directory."""

from __future__ import annotations

import pytest

from tests.utils.http import build_request, send_raw_request

pytestmark = pytest.mark.integration


@pytest.mark.parametrize(
    "path",
    [
        "/../server.log",
        "/../../../../etc/passwd",
        "/%2e%2e/server.log",
        "/%2E%2E/%2E%2E/etc/passwd",
        "/..%2f..%2fetc%2fpasswd",
        "//etc/passwd",
        "/index.html%00.png",
        "/docs/%2e%2e/%2e%2e/server.log",
        "/" + "a" * 300,
    ],
)
def test_traversal_attempts_return_404(server_process, path: str) -> None:
    response = send_raw_request(
        server_process["host"], server_process["port"], build_request(path)
    )

    assert response.status_code == 404
    assert response.body == b"Not Found\n"


def test_file_beside_root_is_not_reachable(server_process) -> None:
    outside = server_process["directory"].parent / "outside.txt"
    outside.write_text("must not leak")

    response = send_raw_request(
        server_process["host"],
        server_process["port"],
        build_request("/%2e%2e/outside.txt"),
    )

    assert response.status_code == 404
    assert b"must not leak" not in response.body


def test_dot_segments_inside_root_still_resolve(server_process) -> None:
    response = send_raw_request(
        server_process["host"],
        server_process["port"],
        build_request("/docs/../site.css"),
    )

    assert response.status_code == 200
