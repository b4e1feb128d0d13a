"""MetricsCollector — process-wide counters, histograms, and gauges.

Every pipeline component reports into one injected collector:
- Counters (``monitor_checks_total``, ``notifications_total``, ...)
- Histograms with percentile extraction (``monitor_check_duration_ms``)
- Gauges for current values (``active_targets``)

Series are identified by name plus an optional tag map; tags are sorted so
``{"a": "1", "b": "2"}`` and ``{"b": "2", "a": "1"}`` address the same series.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

Tags = dict[str, str]


def series_key(name: str, tags: Tags | None = None) -> str:
    """Render ``name{k1:v1,k2:v2}`` with tags sorted by key."""
    if not tags:
        return name
    tag_str = ",".join(f"{k}:{v}" for k, v in sorted(tags.items()))
    return f"{name}{{{tag_str}}}"


@dataclass
class CounterSeries:
    name: str
    tags: Tags
    value: float = 0.0


@dataclass
class GaugeSeries:
    name: str
    tags: Tags
    value: float
    updated_at: float


@dataclass
class HistogramSeries:
    """Bounded sample buffer; the oldest samples fall off once full."""

    name: str
    tags: Tags
    samples: deque[float] = field(default_factory=deque)


def percentile_stats(values: list[float]) -> dict[str, float]:
    """Return count/sum/avg/min/max/p50/p95/p99 for *values*."""
    if not values:
        return {
            "count": 0, "sum": 0.0, "avg": 0.0, "min": 0.0,
            "max": 0.0, "p50": 0.0, "p95": 0.0, "p99": 0.0,
        }

    ordered = sorted(values)
    n = len(ordered)
    total = sum(ordered)
    return {
        "count": n,
        "sum": total,
        "avg": total / n,
        "min": ordered[0],
        "max": ordered[-1],
        "p50": ordered[int(n * 0.50)],
        "p95": ordered[min(int(n * 0.95), n - 1)],
        "p99": ordered[min(int(n * 0.99), n - 1)],
    }


class MetricsCollector:
    """Thread-safe registry of counters, histograms, and gauges.

    Usage::

        metrics = MetricsCollector(max_histogram_samples=1000)
        metrics.increment("monitor_checks_total", tags={"status": "up"})
        metrics.observe("monitor_check_duration_ms", 182, tags={"target_id": "t1"})
        metrics.set_gauge("active_targets", 12)

        snap = metrics.snapshot()
    """

    def __init__(self, max_histogram_samples: int = 1000) -> None:
        if max_histogram_samples < 1:
            raise ValueError(
                f"max_histogram_samples must be >= 1, got {max_histogram_samples}"
            )
        self._max_samples = max_histogram_samples
        self._counters: dict[str, CounterSeries] = {}
        self._histograms: dict[str, HistogramSeries] = {}
        self._gauges: dict[str, GaugeSeries] = {}
        self._lock = threading.Lock()

    # ── Counters ────────────────────────────────────────────────

    def increment(self, name: str, value: float = 1.0, tags: Tags | None = None) -> None:
        key = series_key(name, tags)
        with self._lock:
            series = self._counters.get(key)
            if series is None:
                series = CounterSeries(name=name, tags=dict(tags or {}))
                self._counters[key] = series
            series.value += value

    def counter(self, name: str, tags: Tags | None = None) -> float:
        with self._lock:
            series = self._counters.get(series_key(name, tags))
            return series.value if series else 0.0

    # ── Histograms ──────────────────────────────────────────────

    def observe(self, name: str, value: float, tags: Tags | None = None) -> None:
        key = series_key(name, tags)
        with self._lock:
            series = self._histograms.get(key)
            if series is None:
                series = HistogramSeries(
                    name=name,
                    tags=dict(tags or {}),
                    samples=deque(maxlen=self._max_samples),
                )
                self._histograms[key] = series
            series.samples.append(value)

    def histogram_stats(self, name: str, tags: Tags | None = None) -> dict[str, float] | None:
        """Percentile stats for one histogram series, or None if it has no samples."""
        with self._lock:
            series = self._histograms.get(series_key(name, tags))
            if series is None or not series.samples:
                return None
            values = list(series.samples)
        return percentile_stats(values)

    @contextmanager
    def timer(self, name: str, tags: Tags | None = None) -> Iterator[None]:
        """Record the elapsed wall time of the block in milliseconds."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe(name, (time.perf_counter() - start) * 1000.0, tags)

    # ── Gauges ──────────────────────────────────────────────────

    def set_gauge(self, name: str, value: float, tags: Tags | None = None) -> None:
        key = series_key(name, tags)
        with self._lock:
            self._gauges[key] = GaugeSeries(
                name=name,
                tags=dict(tags or {}),
                value=value,
                updated_at=time.time(),
            )

    def gauge(self, name: str, tags: Tags | None = None) -> float | None:
        with self._lock:
            series = self._gauges.get(series_key(name, tags))
            return series.value if series else None

    # ── Export ──────────────────────────────────────────────────

    def snapshot(self) -> dict[str, list[dict[str, object]]]:
        """Return a consistent copy of every series, histograms with percentiles."""
        with self._lock:
            counters = [
                {"key": k, "name": s.name, "tags": dict(s.tags), "value": s.value}
                for k, s in self._counters.items()
            ]
            raw_histograms = [
                (k, s.name, dict(s.tags), list(s.samples))
                for k, s in self._histograms.items()
            ]
            gauges = [
                {
                    "key": k,
                    "name": s.name,
                    "tags": dict(s.tags),
                    "value": s.value,
                    "updated_at": s.updated_at,
                }
                for k, s in self._gauges.items()
            ]

        histograms: list[dict[str, object]] = [
            {"key": k, "name": name, "tags": tags, "stats": percentile_stats(values)}
            for k, name, tags, values in raw_histograms
        ]
        return {"counters": counters, "histograms": histograms, "gauges": gauges}

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._histograms.clear()
            self._gauges.clear()
