"""Simple metrics tracking for Prometheus-compatible /metrics endpoint."""

import threading
from typing import Dict

COUNTER_HELP: Dict[str, str] = {
    "orders_created_total": "Total number of orders created",
    "orders_status_updated_total": "Total number of manual order status transitions",
    "orders_cancelled_total": "Total number of orders cancelled (deleted while pending)",
    "orders_promoted_total": "Total number of orders promoted from PENDING to PROCESSING by the batch promoter",
    "promoter_runs_total": "Total number of batch promoter runs",
    "promoter_runs_failed_total": "Total number of batch promoter runs aborted by an error",
}


class MetricsCollector:
    """Simple in-memory metrics collector."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {name: 0 for name in COUNTER_HELP}

    def increment(self, metric_name: str, value: int = 1) -> None:
        """Increment a counter metric."""
        with self._lock:
            if metric_name in self._counters:
                self._counters[metric_name] += value

    def get(self, metric_name: str) -> int:
        return self._counters.get(metric_name, 0)

    def reset(self) -> None:
        with self._lock:
            for name in self._counters:
                self._counters[name] = 0

    def get_prometheus_text(self) -> str:
        """Generate Prometheus-compatible text format."""
        lines = []
        for name, help_text in COUNTER_HELP.items():
            lines.append(f"# HELP {name} {help_text}")
            lines.append(f"# TYPE {name} counter")
            lines.append(f"{name} {self._counters[name]}")
            lines.append("")
        return "\n".join(lines)


# Global metrics instance
metrics = MetricsCollector()
