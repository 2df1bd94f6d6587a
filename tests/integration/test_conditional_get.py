"""Integration tests for If-Modified-Since handling."""

from __future__ import annotations

import os
import socket
from email.utils import formatdate

import pytest
import requests

from tests.utils.assets import FIXED_MTIME, INDEX_HTML
from tests.utils.http import build_request, read_http_response

pytestmark = pytest.mark.integration


def test_last_modified_round_trip_yields_304(base_url: str) -> None:
    first = requests.get(f"{base_url}/index.html", timeout=5)
    headers = {"If-Modified-Since": first.headers["Last-Modified"]}

    second = requests.get(f"{base_url}/index.html", headers=headers, timeout=5)

    assert second.status_code == 304
    assert second.content == b""
    assert second.headers["Last-Modified"] == first.headers["Last-Modified"]


def test_later_date_yields_304(base_url: str) -> None:
    headers = {"If-Modified-Since": formatdate(FIXED_MTIME + 3600, usegmt=True)}

    response = requests.get(f"{base_url}/", headers=headers, timeout=5)

    assert response.status_code == 304


def test_earlier_date_yields_full_body(base_url: str) -> None:
    headers = {"If-Modified-Since": formatdate(FIXED_MTIME - 1, usegmt=True)}

    response = requests.get(f"{base_url}/", headers=headers, timeout=5)

    assert response.status_code == 200
    assert response.content == INDEX_HTML


def test_unparseable_date_yields_full_body(base_url: str) -> None:
    headers = {"If-Modified-Since": "not a date"}

    response = requests.get(f"{base_url}/", headers=headers, timeout=5)

    assert response.status_code == 200


def test_touching_file_invalidates_cached_copy(server_process) -> None:
    base_url = server_process["base_url"]
    headers = {"If-Modified-Since": formatdate(FIXED_MTIME, usegmt=True)}
    target = server_process["directory"] / "site.css"
    os.utime(target, (FIXED_MTIME + 10, FIXED_MTIME + 10))

    response = requests.get(f"{base_url}/site.css", headers=headers, timeout=5)

    assert response.status_code == 200


def test_not_modified_keeps_connection_usable(server_process) -> None:
    headers = {"If-Modified-Since": formatdate(FIXED_MTIME, usegmt=True)}
    address = (server_process["host"], server_process["port"])

    with socket.create_connection(address, timeout=5) as client:
        client.sendall(build_request("/index.html", headers=headers))
        not_modified = read_http_response(client, expect_body=False)
        client.sendall(build_request("/healthz"))
        follow_up = read_http_response(client)

    assert not_modified.status_code == 304
    assert "content-length" not in not_modified.headers
    assert follow_up.body == b"ok\n"
