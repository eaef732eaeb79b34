"""Observability module for skill selection metrics and structured logging.

This module provides:
- Counter and histogram metrics (Prometheus-compatible export)
- Structured JSON logging with cycle_id correlation
- Root logging setup

Usage:
    from skillselect.observability import metrics, get_logger

    metrics.increment("evaluation_cycle_total", labels={"outcome": "published"})

    logger = get_logger("engine", cycle_id=12)
    logger.info("cycle_published", activated=2, deactivated=0)
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging with the standard format."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


# =============================================================================
# Metrics Registry
# =============================================================================

@dataclass
class Counter:
    """A simple counter metric with optional labels."""
    name: str
    help_text: str
    values: dict[tuple, int] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def increment(self, labels: Optional[dict[str, str]] = None, value: int = 1) -> None:
        """Increment counter by value."""
        label_key = tuple(sorted((labels or {}).items()))
        with self._lock:
            self.values[label_key] = self.values.get(label_key, 0) + value

    def get(self, labels: Optional[dict[str, str]] = None) -> int:
        """Get current counter value."""
        label_key = tuple(sorted((labels or {}).items()))
        return self.values.get(label_key, 0)

    def total(self) -> int:
        """Sum across all label combinations."""
        with self._lock:
            return sum(self.values.values())

    def reset(self) -> None:
        """Reset all counter values (for testing)."""
        with self._lock:
            self.values.clear()


@dataclass
class Histogram:
    """A simple histogram for latency measurements."""
    name: str
    help_text: str
    values: list[float] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def observe(self, value: float) -> None:
        """Record an observation."""
        with self._lock:
            self.values.append(value)

    def get_percentile(self, percentile: float) -> float:
        """Get a percentile value (e.g., 0.95 for p95)."""
        with self._lock:
            sorted_vals = sorted(self.values)
        if not sorted_vals:
            return 0.0
        idx = int(len(sorted_vals) * percentile)
        return sorted_vals[min(idx, len(sorted_vals) - 1)]

    def reset(self) -> None:
        """Reset all values (for testing)."""
        with self._lock:
            self.values.clear()


class MetricsRegistry:
    """Central registry for all metrics."""

    def __init__(self):
        self._counters: dict[str, Counter] = {}
        self._histograms: dict[str, Histogram] = {}
        self._lock = threading.Lock()
        self._register_default_metrics()

    def _register_default_metrics(self) -> None:
        # Registry
        self.register_counter(
            "skill_metadata_error_total",
            "Skill documents excluded for missing or malformed frontmatter"
        )
        self.register_counter(
            "skill_duplicate_total",
            "Skill documents excluded for a duplicate id"
        )
        self.register_histogram(
            "registry_refresh_duration_seconds",
            "Registry build/refresh latency"
        )

        # Selection
        self.register_counter(
            "skill_oversize_total",
            "Candidates excluded because they exceed the budget alone"
        )
        self.register_counter(
            "skill_suppressed_total",
            "Candidates suppressed by a narrower skill"
        )

        # Activation
        self.register_counter(
            "skill_activated_total",
            "Skills added to the activation set"
        )
        self.register_counter(
            "skill_deactivated_total",
            "Skills removed from the activation set"
        )
        self.register_counter(
            "evaluation_cycle_total",
            "Evaluation cycles by outcome"
        )
        self.register_histogram(
            "evaluation_duration_seconds",
            "Evaluation cycle latency"
        )

    def register_counter(self, name: str, help_text: str) -> Counter:
        """Register a new counter metric."""
        with self._lock:
            if name not in self._counters:
                self._counters[name] = Counter(name=name, help_text=help_text)
            return self._counters[name]

    def register_histogram(self, name: str, help_text: str) -> Histogram:
        """Register a new histogram metric."""
        with self._lock:
            if name not in self._histograms:
                self._histograms[name] = Histogram(name=name, help_text=help_text)
            return self._histograms[name]

    def increment(self, name: str, labels: Optional[dict[str, str]] = None, value: int = 1) -> None:
        """Increment a counter."""
        if name in self._counters:
            self._counters[name].increment(labels, value)

    def observe(self, name: str, value: float) -> None:
        """Record a histogram observation."""
        if name in self._histograms:
            self._histograms[name].observe(value)

    def get_counter(self, name: str) -> Optional[Counter]:
        return self._counters.get(name)

    def get_histogram(self, name: str) -> Optional[Histogram]:
        return self._histograms.get(name)

    def to_json(self) -> dict[str, Any]:
        """Export all metrics as JSON."""
        result: dict[str, Any] = {
            "timestamp": _utc_now(),
            "counters": {},
            "histograms": {},
        }

        for name, counter in self._counters.items():
            result["counters"][name] = [
                {"labels": dict(labels), "value": value}
                for labels, value in counter.values.items()
            ]

        for name, histogram in self._histograms.items():
            result["histograms"][name] = {
                "count": len(histogram.values),
                "p50": histogram.get_percentile(0.50),
                "p95": histogram.get_percentile(0.95),
                "p99": histogram.get_percentile(0.99),
            }

        return result

    def to_prometheus(self) -> str:
        """Export all metrics in Prometheus format."""
        lines = []

        for name, counter in self._counters.items():
            lines.append(f"# HELP {name} {counter.help_text}")
            lines.append(f"# TYPE {name} counter")
            if counter.values:
                for labels, value in counter.values.items():
                    label_str = ",".join(f'{k}="{v}"' for k, v in labels)
                    if label_str:
                        lines.append(f"{name}{{{label_str}}} {value}")
                    else:
                        lines.append(f"{name} {value}")
            else:
                lines.append(f"{name} 0")

        for name, histogram in self._histograms.items():
            lines.append(f"# HELP {name} {histogram.help_text}")
            lines.append(f"# TYPE {name} histogram")
            lines.append(f"{name}_count {len(histogram.values)}")
            lines.append(f"{name}_sum {sum(histogram.values):.6f}")

        return "\n".join(lines)

    def reset_all(self) -> None:
        """Reset all metrics (for testing)."""
        for counter in self._counters.values():
            counter.reset()
        for histogram in self._histograms.values():
            histogram.reset()


# Global metrics instance
metrics = MetricsRegistry()


# =============================================================================
# Structured Logging
# =============================================================================

class StructuredLogger:
    """Logger that outputs structured JSON events with cycle_id correlation."""

    def __init__(self, component: str, cycle_id: Optional[int] = None):
        self.component = component
        self.cycle_id = cycle_id
        self._logger = logging.getLogger(f"skillselect.{component}")

    def _format(self, level: str, event: str, **kwargs) -> str:
        entry: dict[str, Any] = {
            "timestamp": _utc_now(),
            "level": level,
            "component": self.component,
            "event": event,
        }
        if self.cycle_id is not None:
            entry["cycle_id"] = self.cycle_id
        entry.update(kwargs)
        return json.dumps(entry, default=str)

    def info(self, event: str, **kwargs) -> None:
        self._logger.info(self._format("INFO", event, **kwargs))

    def debug(self, event: str, **kwargs) -> None:
        self._logger.debug(self._format("DEBUG", event, **kwargs))


def get_logger(component: str, cycle_id: Optional[int] = None) -> StructuredLogger:
    """Get a structured logger for a component.

    Args:
        component: Name of the component (e.g., "engine", "session")
        cycle_id: Optional evaluation cycle id for correlation

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(component, cycle_id)
