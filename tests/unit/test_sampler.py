"""Unit tests for the request rate and scheduler lag sampler."""

import logging
import threading

import pytest

from asset_server.bootstrap.config import MetricsConfig
from asset_server.metrics.sampler import (
    MetricsCounters,
    MetricsSampler,
    enable_metrics,
    request_completion,
)


class FakeClock:
    """Clock that advances by a fixed step every time it is read."""

    def __init__(self, step: float):
        self.now = 100.0
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


def _records(caplog, event):
    return [
        record for record in caplog.records if getattr(record, "event", None) == event
    ]


def test_counters_drain_resets():
    counters = MetricsCounters()
    for _ in range(3):
        counters.incr()
    assert counters.drain() == 3
    assert counters.drain() == 0


def test_counters_are_safe_across_threads():
    counters = MetricsCounters()

    def _bump():
        for _ in range(1000):
            counters.incr()

    threads = [threading.Thread(target=_bump) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert counters.drain() == 8000


def test_tick_logs_requests_seen_since_previous_tick(caplog):
    caplog.set_level(logging.INFO, logger="asset_server")
    sampler = MetricsSampler(MetricsConfig(enabled=True))
    sampler.incr()
    sampler.incr()

    assert sampler.tick() == 2
    assert sampler.tick() == 0

    rates = _records(caplog, "request_rate")
    assert [record.requests for record in rates] == [2, 0]


def test_probe_lag_warns_above_threshold(caplog):
    caplog.set_level(logging.INFO, logger="asset_server")
    config = MetricsConfig(enabled=True, lag_threshold_ms=50)
    sampler = MetricsSampler(config, clock=FakeClock(0.12), yield_turn=lambda: None)

    lag_ms = sampler.probe_lag()

    assert lag_ms == pytest.approx(120.0)
    (warning,) = _records(caplog, "scheduler_lag")
    assert warning.levelno == logging.WARNING
    assert warning.lag_ms == 120.0
    assert warning.threshold_ms == 50


def test_probe_lag_is_quiet_below_threshold(caplog):
    caplog.set_level(logging.INFO, logger="asset_server")
    config = MetricsConfig(enabled=True, lag_threshold_ms=50)
    sampler = MetricsSampler(config, clock=FakeClock(0.01), yield_turn=lambda: None)

    sampler.probe_lag()

    assert not _records(caplog, "scheduler_lag")


def test_probe_lag_yields_between_clock_reads():
    calls = []
    clock = FakeClock(0.0)

    def _yield():
        calls.append(clock.now)

    sampler = MetricsSampler(
        MetricsConfig(enabled=True), clock=clock, yield_turn=_yield
    )
    sampler.probe_lag()

    assert len(calls) == 1


def test_enable_metrics_returns_none_when_disabled():
    assert enable_metrics(MetricsConfig(enabled=False)) is None


def test_enable_metrics_starts_timers_and_disable_is_idempotent(caplog):
    caplog.set_level(logging.INFO, logger="asset_server")
    sampler = enable_metrics(MetricsConfig(enabled=True, sample_interval_ms=10))
    try:
        assert sampler.running
        names = {thread.name for thread in threading.enumerate()}
        assert {"metrics-rate", "metrics-lag"} <= names
    finally:
        sampler.disable()
        sampler.disable()

    assert not sampler.running
    names = {thread.name for thread in threading.enumerate()}
    assert "metrics-lag" not in names
    assert _records(caplog, "metrics_enabled")


def test_incr_after_disable_is_harmless():
    sampler = MetricsSampler(MetricsConfig(enabled=True))
    sampler.start()
    sampler.disable()

    sampler.incr()

    assert sampler.tick() == 1


def test_request_completion_counts_once_on_success_and_failure():
    sampler = MetricsSampler(MetricsConfig(enabled=True))

    with request_completion(sampler):
        pass
    with pytest.raises(RuntimeError):
        with request_completion(sampler):
            raise RuntimeError("send failed")

    assert sampler.tick() == 2


def test_request_completion_without_sampler_is_a_no_op():
    with request_completion(None):
        pass


@pytest.mark.parametrize(
    "kwargs", [{"sample_interval_ms": 0}, {"lag_threshold_ms": -1}]
)
def test_metrics_config_rejects_out_of_range_values(kwargs):
    with pytest.raises(ValueError):
        MetricsConfig(enabled=True, **kwargs)
