"""In-process request rate and scheduler lag sampling."""

import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from asset_server.bootstrap.config import MetricsConfig
from asset_server.domain.request_context import get_logger

METRICS_LOGGER = get_logger("metrics")
RATE_INTERVAL_SECONDS = 1.0


def _yield_interpreter() -> None:
    # sleep(0) releases the GIL and waits for the next turn behind runnable threads
    time.sleep(0)


class MetricsCounters:
    """Completed-request counter shared by every worker thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._requests_since_last_tick = 0

    def incr(self) -> None:
        with self._lock:
            self._requests_since_last_tick += 1

    def drain(self) -> int:
        """Return the count accumulated since the previous drain and reset it."""
        with self._lock:
            seen = self._requests_since_last_tick
            self._requests_since_last_tick = 0
            return seen


class MetricsSampler:
    """Logs requests per second and scheduler lag from two timer threads."""

    def __init__(
        self,
        config: MetricsConfig,
        clock: Callable[[], float] = time.perf_counter,
        yield_turn: Callable[[], None] = _yield_interpreter,
    ) -> None:
        self._config = config
        self._clock = clock
        self._yield_turn = yield_turn
        self._counters = MetricsCounters()
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        with self._lock:
            return bool(self._threads) and not self._stop_event.is_set()

    def start(self) -> None:
        """Start the rate and lag timer threads."""
        with self._lock:
            if self._threads or self._stop_event.is_set():
                return
            self._threads = [
                threading.Thread(
                    target=self._run_every,
                    args=(RATE_INTERVAL_SECONDS, self.tick),
                    name="metrics-rate",
                    daemon=True,
                ),
                threading.Thread(
                    target=self._run_every,
                    args=(self._config.sample_interval_ms / 1000, self.probe_lag),
                    name="metrics-lag",
                    daemon=True,
                ),
            ]
            for thread in self._threads:
                thread.start()
        METRICS_LOGGER.info(
            "Metrics sampling enabled",
            extra={
                "event": "metrics_enabled",
                "sample_interval_ms": self._config.sample_interval_ms,
                "threshold_ms": self._config.lag_threshold_ms,
            },
        )

    def _run_every(self, interval: float, action: Callable[[], object]) -> None:
        while not self._stop_event.wait(interval):
            action()

    def incr(self) -> None:
        """Record one completed response. Harmless after ``disable()``."""
        self._counters.incr()

    def tick(self) -> int:
        """Log and reset the number of requests completed since the last tick."""
        seen = self._counters.drain()
        METRICS_LOGGER.info(
            "Requests observed in the last second",
            extra={"event": "request_rate", "requests": seen},
        )
        return seen

    def probe_lag(self) -> float:
        """Measure how long a yield waits for its next turn, warning above threshold."""
        started = self._clock()
        self._yield_turn()
        lag_ms = (self._clock() - started) * 1000
        if lag_ms > self._config.lag_threshold_ms:
            METRICS_LOGGER.warning(
                "Scheduler lag detected",
                extra={
                    "event": "scheduler_lag",
                    "lag_ms": round(lag_ms, 1),
                    "threshold_ms": self._config.lag_threshold_ms,
                },
            )
        return lag_ms

    def disable(self) -> None:
        """Stop both timers; safe to call repeatedly."""
        self._stop_event.set()
        with self._lock:
            threads = list(self._threads)
        current = threading.current_thread()
        for thread in threads:
            if thread is not current:
                thread.join(timeout=RATE_INTERVAL_SECONDS)


def enable_metrics(config: MetricsConfig) -> Optional[MetricsSampler]:
    """Start a sampler when metrics are enabled, otherwise return None."""
    if not config.enabled:
        return None
    sampler = MetricsSampler(config)
    sampler.start()
    return sampler


@contextmanager
def request_completion(sampler: Optional[MetricsSampler]) -> Iterator[None]:
    """Count exactly one completed response when the block exits, however it exits."""
    try:
        yield
    finally:
        if sampler is not None:
            sampler.incr()
