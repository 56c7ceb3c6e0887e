"""
In-process dispatch metrics.

Counters are keyed by name plus labels (``collection``, ``status``,
``poller``); refresh latencies keep a bounded window per collection so a
long-running session does not grow without limit.  ``snapshot()`` renders
everything with ``name{label=value}`` keys for logs and dashboards.
"""
from __future__ import annotations

import time
from collections import deque
from threading import Lock
from typing import Deque, Dict, Tuple

from fieldmap.infra.logging_config import get_logger

logger = get_logger(__name__)

SeriesKey = Tuple[str, Tuple[Tuple[str, str], ...]]

# Latency samples kept per series
LATENCY_WINDOW = 500


def series_key(name: str, labels: dict | None = None) -> SeriesKey:
    return name, tuple(sorted((k, str(v)) for k, v in (labels or {}).items()))


def render_key(key: SeriesKey) -> str:
    name, labels = key
    if not labels:
        return name
    return name + "{" + ",".join(f"{k}={v}" for k, v in labels) + "}"


def summarize(samples: Deque[float]) -> dict:
    """count / last / mean / p50 / p95 over the retained window."""
    if not samples:
        return {"count": 0, "last": 0.0, "mean": 0.0, "p50": 0.0, "p95": 0.0}
    ordered = sorted(samples)
    n = len(ordered)
    return {
        "count": n,
        "last": samples[-1],
        "mean": sum(ordered) / n,
        "p50": ordered[(n - 1) // 2],
        "p95": ordered[min(int(n * 0.95), n - 1)],
    }


class MetricsCollector:
    """Labelled counters and latency windows for one process."""

    def __init__(self, latency_window: int = LATENCY_WINDOW):
        self._latency_window = latency_window
        self._counts: Dict[SeriesKey, int] = {}
        self._latencies: Dict[SeriesKey, Deque[float]] = {}
        self._lock = Lock()

    def increment(self, name: str, amount: int = 1, **labels) -> None:
        key = series_key(name, labels)
        with self._lock:
            self._counts[key] = self._counts.get(key, 0) + amount

    def record_latency(self, name: str, seconds: float, **labels) -> None:
        key = series_key(name, labels)
        with self._lock:
            window = self._latencies.get(key)
            if window is None:
                window = self._latencies[key] = deque(maxlen=self._latency_window)
            window.append(seconds)

    def get_counter(self, name: str, **labels) -> int:
        """Current value of a single counter (0 if never incremented)"""
        with self._lock:
            return self._counts.get(series_key(name, labels), 0)

    def latency(self, name: str, **labels) -> dict:
        with self._lock:
            window = self._latencies.get(series_key(name, labels), deque())
            return summarize(window)

    def snapshot(self) -> dict:
        with self._lock:
            counters = {render_key(k): v for k, v in self._counts.items()}
            latencies = {render_key(k): summarize(v) for k, v in self._latencies.items()}
        return {"counters": counters, "latencies": latencies}

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()
            self._latencies.clear()
        logger.debug("Dispatch metrics cleared")


_collector = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    return _collector


class Timer:
    """Records the wall time of a block as a latency sample."""

    def __init__(self, metric_name: str, **labels):
        self.metric_name = metric_name
        self.labels = labels
        self._started: float | None = None

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._started is not None:
            _collector.record_latency(
                self.metric_name, time.perf_counter() - self._started, **self.labels,
            )


class DispatchMetrics:
    """Dispatch-level metrics tracking"""

    @staticmethod
    def refresh(collection: str, status: str) -> None:
        _collector.increment("dispatch_refresh_total", collection=collection, status=status)

    @staticmethod
    def assignment(status: str) -> None:
        _collector.increment("dispatch_assignments_total", status=status)

    @staticmethod
    def optimization(status: str) -> None:
        _collector.increment("dispatch_route_optimizations_total", status=status)

    @staticmethod
    def alert_mark_read(status: str) -> None:
        _collector.increment("dispatch_alert_mark_read_total", status=status)

    @staticmethod
    def poll_tick(name: str) -> None:
        _collector.increment("dispatch_poll_ticks_total", poller=name)
