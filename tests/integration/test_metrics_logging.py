"""Integration tests for the optional metrics sampler."""

from __future__ import annotations

import json
import signal
import time

import pytest
import requests

from tests.utils.http import send_signal_to_process

pytestmark = pytest.mark.integration


def _stop_and_read_log(info) -> list[dict]:
    process = info["process"]
    send_signal_to_process(process.pid, signal.SIGTERM)
    process.wait(timeout=10)
    assert process.returncode == 0
    lines = info["log_file"].read_text().splitlines()
    return [json.loads(line) for line in lines if line]


def test_request_rate_is_logged_every_second(start_server) -> None:
    info = start_server(["--metrics", "--metrics-sample", "100"])
    for _ in range(3):
        requests.get(f"{info['base_url']}/healthz", timeout=5)
    time.sleep(2.2)

    entries = _stop_and_read_log(info)

    rates = [e for e in entries if e.get("event") == "request_rate"]
    assert len(rates) >= 2
    assert sum(e["requests"] for e in rates) >= 3
    assert all(e["level"] == "INFO" for e in rates)
    assert any(e.get("event") == "metrics_enabled" for e in entries)


def test_zero_threshold_reports_scheduler_lag(start_server) -> None:
    info = start_server(
        ["--metrics", "--metrics-sample", "20", "--metrics-threshold", "0"]
    )
    time.sleep(0.5)

    entries = _stop_and_read_log(info)

    lag = [e for e in entries if e.get("event") == "scheduler_lag"]
    assert lag
    assert lag[0]["level"] == "WARNING"
    assert lag[0]["threshold_ms"] == 0
    assert lag[0]["lag_ms"] >= 0


def test_metrics_are_off_by_default(server_process) -> None:
    requests.get(f"{server_process['base_url']}/healthz", timeout=5)
    time.sleep(1.2)

    entries = _stop_and_read_log(server_process)

    events = {e.get("event") for e in entries}
    assert "request_rate" not in events
    assert "metrics_enabled" not in events
    assert "request_complete" in events
