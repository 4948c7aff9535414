"""
schemaledger Metrics Collection.

Metrics are recorded through the OpenTelemetry metrics API and mirrored
into an in-memory collector, so counts and latencies can be inspected
(and asserted on in tests) without an exporter.

Metrics tracked:
- Migration apply latency and count, labelled by outcome
- Migration rollback latency and count
- Checksum mismatches detected on applied migrations
- Lock acquisition wait time
- Pending migrations gauge
"""

import threading
import time
from typing import Any, Dict, List, Optional

from opentelemetry import metrics

METER_PREFIX = "schemaledger"

# Global metrics instance
_metrics_instance: Optional["MigrationMetrics"] = None
_metrics_lock = threading.Lock()


class InMemoryMetricsCollector:
    """Stores metric values in memory for later retrieval."""

    def __init__(self, max_samples: int = 10000):
        self._counters: Dict[str, float] = {}
        self._histograms: Dict[str, List[float]] = {}
        self._gauges: Dict[str, float] = {}
        self._lock = threading.RLock()
        self._max_samples = max_samples

    def increment_counter(
        self,
        name: str,
        value: float = 1.0,
        labels: Optional[Dict[str, str]] = None,
    ):
        key = self._make_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0.0) + value

    def record_histogram(
        self,
        name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None,
    ):
        key = self._make_key(name, labels)
        with self._lock:
            samples = self._histograms.setdefault(key, [])
            samples.append(value)
            if len(samples) > self._max_samples:
                del samples[: len(samples) - self._max_samples]

    def set_gauge(
        self,
        name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None,
    ):
        key = self._make_key(name, labels)
        with self._lock:
            self._gauges[key] = value

    def _make_key(self, name: str, labels: Optional[Dict[str, str]] = None) -> str:
        """Create a unique key for the metric with labels."""
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        key = self._make_key(name, labels)
        with self._lock:
            return self._counters.get(key, 0.0)

    def get_counter_total(self, name: str) -> float:
        """Sum a counter across all label combinations."""
        with self._lock:
            return sum(
                value
                for key, value in self._counters.items()
                if key == name or key.startswith(name + "{")
            )

    def get_histogram_stats(
        self,
        name: str,
        labels: Optional[Dict[str, str]] = None,
    ) -> Dict[str, float]:
        key = self._make_key(name, labels)
        with self._lock:
            return _histogram_stats(self._histograms.get(key, []))

    def get_gauge(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        key = self._make_key(name, labels)
        with self._lock:
            return self._gauges.get(key, 0.0)

    def get_all_metrics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "histograms": {
                    key: _histogram_stats(values)
                    for key, values in self._histograms.items()
                },
                "gauges": dict(self._gauges),
            }

    def reset(self):
        with self._lock:
            self._counters.clear()
            self._histograms.clear()
            self._gauges.clear()


def _histogram_stats(values: List[float]) -> Dict[str, float]:
    if not values:
        return {"count": 0, "sum": 0, "min": 0, "max": 0, "avg": 0, "p95": 0}

    ordered = sorted(values)
    count = len(ordered)
    return {
        "count": count,
        "sum": sum(ordered),
        "min": ordered[0],
        "max": ordered[-1],
        "avg": sum(ordered) / count,
        "p95": ordered[min(int(count * 0.95), count - 1)],
    }


class MetricsCollector:
    """
    Records metrics to OpenTelemetry instruments and to an in-memory view.

    Instruments are created lazily on first use and named
    ``schemaledger.<name>``.
    """

    def __init__(self, service_name: str = METER_PREFIX, use_otel: bool = True):
        """
        Initialize metrics collector.

        Args:
            service_name: Meter name
            use_otel: Forward values to the OpenTelemetry meter
        """
        self.service_name = service_name
        self._use_otel = use_otel
        self._memory = InMemoryMetricsCollector()

        self._otel_counters: Dict[str, Any] = {}
        self._otel_histograms: Dict[str, Any] = {}
        self._last_gauges: Dict[str, float] = {}
        self._otel_gauges: Dict[str, Any] = {}

        if self._use_otel:
            self._meter = metrics.get_meter(service_name)

    @property
    def memory(self) -> InMemoryMetricsCollector:
        return self._memory

    def counter(
        self,
        name: str,
        value: float = 1.0,
        labels: Optional[Dict[str, str]] = None,
    ):
        """Increment a counter metric."""
        if self._use_otel:
            if name not in self._otel_counters:
                self._otel_counters[name] = self._meter.create_counter(
                    name=f"{METER_PREFIX}.{name}",
                    description=f"schemaledger counter: {name}",
                )
            self._otel_counters[name].add(value, labels or {})
        self._memory.increment_counter(name, value, labels)

    def histogram(
        self,
        name: str,
        value: float,
        unit: str = "ms",
        labels: Optional[Dict[str, str]] = None,
    ):
        """Record a histogram value (typically latency)."""
        if self._use_otel:
            if name not in self._otel_histograms:
                self._otel_histograms[name] = self._meter.create_histogram(
                    name=f"{METER_PREFIX}.{name}",
                    unit=unit,
                    description=f"schemaledger histogram: {name}",
                )
            self._otel_histograms[name].record(value, labels or {})
        self._memory.record_histogram(name, value, labels)

    def gauge(
        self,
        name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None,
    ):
        """Set a gauge value."""
        if self._use_otel:
            # Up-down counters take deltas, so adjust from the last value
            if name not in self._otel_gauges:
                self._otel_gauges[name] = self._meter.create_up_down_counter(
                    name=f"{METER_PREFIX}.{name}",
                    description=f"schemaledger gauge: {name}",
                )
            key = self._memory._make_key(name, labels)
            delta = value - self._last_gauges.get(key, 0.0)
            self._last_gauges[key] = value
            self._otel_gauges[name].add(delta, labels or {})
        self._memory.set_gauge(name, value, labels)

    def get_stats(self) -> Dict[str, Any]:
        return self._memory.get_all_metrics()

    def timer(self, name: str, labels: Optional[Dict[str, str]] = None) -> "Timer":
        """Create a timer context manager for measuring duration."""
        return Timer(self, name, labels)


class Timer:
    """Context manager for timing operations."""

    def __init__(
        self,
        collector: MetricsCollector,
        name: str,
        labels: Optional[Dict[str, str]] = None,
    ):
        self._collector = collector
        self._name = name
        self._labels = labels
        self._start_time: Optional[float] = None
        self.duration_ms: float = 0

    def __enter__(self) -> "Timer":
        self._start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._start_time is not None:
            self.duration_ms = (time.perf_counter() - self._start_time) * 1000
            labels = dict(self._labels or {})
            labels["success"] = "false" if exc_type else "true"
            self._collector.histogram(self._name, self.duration_ms, "ms", labels)
        return False


class MigrationMetrics:
    """
    High-level metrics interface for migration runs.

    Provides semantic methods so the runner does not deal with metric names
    and label sets directly.
    """

    def __init__(self, collector: Optional[MetricsCollector] = None):
        self._collector = collector or MetricsCollector()

    @property
    def collector(self) -> MetricsCollector:
        return self._collector

    def record_apply(
        self, version: int, duration_ms: float, success: bool, database: str
    ):
        """Record one migration apply attempt."""
        labels = {"database": database, "success": str(success).lower()}
        self._collector.histogram(
            "migration.apply.latency", duration_ms, "ms", labels
        )
        self._collector.counter("migration.apply.count", 1, labels)

    def record_rollback(
        self, version: int, duration_ms: float, success: bool, database: str
    ):
        """Record one migration revert attempt."""
        labels = {"database": database, "success": str(success).lower()}
        self._collector.histogram(
            "migration.rollback.latency", duration_ms, "ms", labels
        )
        self._collector.counter("migration.rollback.count", 1, labels)

    def record_checksum_mismatch(self, version: int):
        self._collector.counter("migration.checksum.mismatch", 1)

    def record_lock_wait(self, duration_ms: float, acquired: bool):
        self._collector.histogram(
            "migration.lock.wait",
            duration_ms,
            "ms",
            {"acquired": str(acquired).lower()},
        )

    def set_pending(self, count: int, database: str):
        self._collector.gauge("migration.pending", count, {"database": database})

    def get_all_metrics(self) -> Dict[str, Any]:
        return self._collector.get_stats()

    def timer(self, name: str, labels: Optional[Dict[str, str]] = None) -> Timer:
        return self._collector.timer(name, labels)


def get_meter(name: str = METER_PREFIX) -> metrics.Meter:
    """Get an OpenTelemetry meter."""
    return metrics.get_meter(name)


def get_metrics() -> MigrationMetrics:
    """
    Get the global MigrationMetrics instance.

    Creates one if it doesn't exist.
    """
    global _metrics_instance

    with _metrics_lock:
        if _metrics_instance is None:
            _metrics_instance = MigrationMetrics()
        return _metrics_instance


def set_metrics(metrics_instance: Optional[MigrationMetrics]):
    """Replace the global MigrationMetrics instance (None resets it)."""
    global _metrics_instance

    with _metrics_lock:
        _metrics_instance = metrics_instance
