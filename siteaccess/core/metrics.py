"""
Metrics collection and Prometheus-compatible exposition.

Tracks role cache efficiency, access decisions and notification outcomes.
"""

from __future__ import annotations

import time
from collections import defaultdict
from typing import Any

PREFIX = "siteaccess_"


class MetricsCollector:
    """
    Simple metrics collector with Prometheus text format export.
    """

    def __init__(self) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        self._gauges: dict[str, float] = {}
        self._start_time = time.time()

    def inc(self, name: str, value: int = 1) -> None:
        """Increment a counter."""
        self._counters[PREFIX + name] += value

    def set_gauge(self, name: str, value: float) -> None:
        self._gauges[PREFIX + name] = value

    def get(self, name: str) -> int | float:
        """Get a metric value."""
        full = PREFIX + name
        if full in self._gauges:
            return self._gauges[full]
        return self._counters.get(full, 0)

    def cache_hit_ratio(self) -> float:
        hits = self.get("role_cache_hits_total")
        total = hits + self.get("role_cache_misses_total")
        return hits / total if total else 0.0

    def to_prometheus(self) -> str:
        """Export all metrics in Prometheus text format."""
        lines = []
        for name, value in sorted(self._counters.items()):
            lines.append(f"# TYPE {name} counter")
            lines.append(f"{name} {value}")
        for name, value in sorted(self._gauges.items()):
            lines.append(f"# TYPE {name} gauge")
            lines.append(f"{name} {value}")
        lines.append(f"# TYPE {PREFIX}role_cache_hit_ratio gauge")
        lines.append(f"{PREFIX}role_cache_hit_ratio {self.cache_hit_ratio():.3f}")
        return "\n".join(lines) + "\n"

    def to_dict(self) -> dict[str, Any]:
        return {
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
            "uptime_seconds": time.time() - self._start_time,
        }
