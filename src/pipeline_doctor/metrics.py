"""
Prometheus metrics for Pipeline Doctor.

In-process counters and histograms describing how events were handled,
rendered in Prometheus text exposition format for the /metrics endpoint.
"""

from typing import Dict, List, Optional, Tuple
import threading


class MetricsCollector:
    """
    Singleton metrics collector.

    Counters and histograms are keyed by metric name and a rendered label
    set. Updates are guarded by a lock since the web receiver may serve
    requests from several threads.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        self._counters: Dict[str, Dict[str, int]] = {}
        # Each histogram series holds [count, sum]
        self._histograms: Dict[str, Dict[str, List[float]]] = {}
        self._update_lock = threading.Lock()

    def reset(self) -> None:
        """Drop all recorded values."""
        with self._update_lock:
            self._counters.clear()
            self._histograms.clear()

    def increment_counter(self, name: str, value: int = 1, labels: Optional[Dict[str, str]] = None):
        """
        Increment a counter metric.

        Args:
            name: Metric name
            value: Increment amount (default 1)
            labels: Label dictionary
        """
        label_key = self._make_label_key(labels or {})
        with self._update_lock:
            series = self._counters.setdefault(name, {})
            series[label_key] = series.get(label_key, 0) + value

    def record_histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None):
        """Record a histogram observation."""
        label_key = self._make_label_key(labels or {})
        with self._update_lock:
            observed = self._histograms.setdefault(name, {}).setdefault(label_key, [0, 0.0])
            observed[0] += 1
            observed[1] += value

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> int:
        """Current value of one counter series (0 if never incremented)."""
        return self._counters.get(name, {}).get(self._make_label_key(labels or {}), 0)

    def get_histogram(self, name: str, labels: Optional[Dict[str, str]] = None) -> Tuple[int, float]:
        """Observation count and sum of one histogram series."""
        count, total = self._histograms.get(name, {}).get(self._make_label_key(labels or {}), (0, 0.0))
        return count, total

    def get_metrics(self) -> str:
        """
        Get all metrics in Prometheus text format.

        Histograms are reported as ``_count`` and ``_sum`` only.
        """
        lines = []

        with self._update_lock:
            for name, series in self._counters.items():
                lines.append(f"# TYPE {name} counter")
                for label_key, value in series.items():
                    lines.append(f"{name}{{{label_key}}} {value}")

            for name, series in self._histograms.items():
                lines.append(f"# TYPE {name} histogram")
                for label_key, (count, total) in series.items():
                    lines.append(f"{name}_count{{{label_key}}} {count}")
                    lines.append(f"{name}_sum{{{label_key}}} {total}")

        return "\n".join(lines)

    def _make_label_key(self, labels: Dict[str, str]) -> str:
        if not labels:
            return ""
        return ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))


metrics = MetricsCollector()


def track_event(outcome: str, duration_seconds: Optional[float] = None):
    """Count a handled event and, optionally, how long it took."""
    metrics.increment_counter("doctor_events_total", 1, {"outcome": outcome})
    if duration_seconds is not None:
        metrics.record_histogram(
            "doctor_event_duration_seconds",
            duration_seconds,
            {"outcome": outcome}
        )


def track_remediation(action: str):
    """Count an applied remediation action."""
    metrics.increment_counter("doctor_remediations_total", 1, {"action": action})


def track_escalation(source_kind: str):
    """Count an escalation notification."""
    metrics.increment_counter("doctor_escalations_total", 1, {"source_kind": source_kind})


def get_metrics_text() -> str:
    """All metrics in Prometheus text format."""
    return metrics.get_metrics()
