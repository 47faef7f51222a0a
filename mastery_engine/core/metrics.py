"""
Engine metrics

In-process counters, gauges and histograms for the update pipeline,
exportable in Prometheus text format.
"""
from typing import Dict, Optional
import time
import logging

logger = logging.getLogger(__name__)

_metrics: Dict[str, object] = {
    "mastery_updates_total": {},
    "mastery_update_failures_total": {},
    "concurrency_conflicts_total": {},
    "mastery_update_duration_seconds": [],
    "state_cache_hits": 0,
    "state_cache_misses": 0,
}


def _label_key(labels: Optional[dict]) -> str:
    if not labels:
        return ""
    return ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))


def increment_counter(name: str, labels: dict = None):
    """Increment a counter metric"""
    if name not in _metrics:
        _metrics[name] = {}
    counter = _metrics[name]
    if isinstance(counter, dict):
        key = _label_key(labels)
        counter[key] = counter.get(key, 0) + 1
    else:
        _metrics[name] = counter + 1


def observe_histogram(name: str, value: float, labels: dict = None):
    """Record a histogram observation"""
    if name not in _metrics:
        _metrics[name] = []
    _metrics[name].append({"value": value, "labels": labels, "time": time.time()})


def set_gauge(name: str, value: float):
    """Set a gauge metric"""
    _metrics[name] = value


def get_metrics() -> dict:
    """Get all metrics for export"""
    return _metrics.copy()


def reset_metrics():
    """Clear all recorded values"""
    for name, value in list(_metrics.items()):
        if isinstance(value, dict):
            _metrics[name] = {}
        elif isinstance(value, list):
            _metrics[name] = []
        else:
            _metrics[name] = 0


class timed:
    """Context manager recording elapsed seconds into a histogram"""

    def __init__(self, name: str, labels: dict = None):
        self.name = name
        self.labels = labels
        self._start = 0.0

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        observe_histogram(self.name, time.perf_counter() - self._start, self.labels)
        return False


def format_prometheus_metrics() -> str:
    """Format metrics in Prometheus text format"""
    lines = []

    for name, value in _metrics.items():
        if isinstance(value, dict):
            lines.append(f"# TYPE {name} counter")
            for key, count in value.items():
                if key:
                    lines.append(f"{name}{{{key}}} {count}")
                else:
                    lines.append(f"{name} {count}")
        elif isinstance(value, list):
            lines.append(f"# TYPE {name} histogram")
            if value:
                total = sum(v["value"] for v in value)
                lines.append(f"{name}_sum {total}")
                lines.append(f"{name}_count {len(value)}")
        else:
            lines.append(f"# TYPE {name} gauge")
            lines.append(f"{name} {value}")

    return "\n".join(lines)
