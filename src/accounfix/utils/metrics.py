"""In-process session metrics.

Counts what happens to error records during one session (creations, status
changes, chat turns), how the AI service and the ERP behave, and how many
reports were written. Values can be dumped as a nested dictionary or as
Prometheus text.
"""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from threading import Lock
from typing import Any

LabelKey = tuple[tuple[str, str], ...]


class MetricType(StrEnum):
    """Types of metrics."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass
class MetricValue:
    """One labelled sample of a metric."""

    name: str
    type: MetricType
    value: float
    labels: dict[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    help_text: str = ""


def _label_key(labels: dict[str, str] | None) -> LabelKey:
    return tuple(sorted(labels.items())) if labels else ()


class _LabelledSeries:
    """Float values keyed by label set, shared by counters and gauges."""

    metric_type: MetricType

    def __init__(self, name: str, help_text: str = "") -> None:
        self.name = name
        self.help_text = help_text
        self._values: dict[LabelKey, float] = defaultdict(float)
        self._lock = Lock()

    def get(self, labels: dict[str, str] | None = None) -> float:
        """Value for exactly this label set (0 when never touched)."""
        with self._lock:
            return self._values.get(_label_key(labels), 0)

    def get_all(self) -> list[MetricValue]:
        with self._lock:
            samples = list(self._values.items())
        return [
            MetricValue(
                name=self.name,
                type=self.metric_type,
                value=value,
                labels=dict(key),
                help_text=self.help_text,
            )
            for key, value in samples
        ]


class Counter(_LabelledSeries):
    """A monotonically increasing counter.

    Example:
        created = Counter("records_created", "Error records created")
        created.inc(labels={"category": "Tax"})
        created.total()  # summed over all categories
    """

    metric_type = MetricType.COUNTER

    def inc(self, value: float = 1, labels: dict[str, str] | None = None) -> None:
        if value < 0:
            raise ValueError("Counter can only increase")
        key = _label_key(labels)
        with self._lock:
            self._values[key] += value

    def total(self) -> float:
        """Sum over every label combination."""
        with self._lock:
            return sum(self._values.values())


class Gauge(_LabelledSeries):
    """A value that can go up or down, such as the number of records held."""

    metric_type = MetricType.GAUGE

    def set(self, value: float, labels: dict[str, str] | None = None) -> None:
        key = _label_key(labels)
        with self._lock:
            self._values[key] = value


class Histogram:
    """Keeps raw observations and reports count, sum, min, max and mean."""

    def __init__(self, name: str, help_text: str = "") -> None:
        self.name = name
        self.help_text = help_text
        self._observations: dict[LabelKey, list[float]] = defaultdict(list)
        self._lock = Lock()

    def observe(self, value: float, labels: dict[str, str] | None = None) -> None:
        key = _label_key(labels)
        with self._lock:
            self._observations[key].append(value)

    def get_stats(self, labels: dict[str, str] | None = None) -> dict[str, float]:
        """Summary of the observations recorded under this label set.

        Args:
            labels: Label set to summarise; None means unlabelled observations

        Returns:
            Dictionary with count, sum, min, max and mean (all 0 when empty)
        """
        with self._lock:
            values = list(self._observations.get(_label_key(labels), []))

        if not values:
            return {"count": 0, "sum": 0, "min": 0, "max": 0, "mean": 0}

        total = sum(values)
        return {
            "count": len(values),
            "sum": total,
            "min": min(values),
            "max": max(values),
            "mean": total / len(values),
        }


def _prometheus_sample(name: str, sample: MetricValue) -> str:
    if not sample.labels:
        return f"{name} {sample.value}"
    label_str = ",".join(f'{k}="{v}"' for k, v in sample.labels.items())
    return f"{name}{{{label_str}}} {sample.value}"


class MetricsRegistry:
    """Process-wide holder of every AccounFix metric.

    Use get_metrics() to reach the shared instance. Tests call
    reset_instance() to start each case from zero.
    """

    _instance: MetricsRegistry | None = None
    _lock = Lock()

    def __init__(self) -> None:
        self.records_created = Counter(
            "accounfix_records_created_total", "Error records created, by category"
        )
        self.status_updates = Counter(
            "accounfix_status_updates_total", "Status changes applied, by new status"
        )
        self.drafts_rejected = Counter(
            "accounfix_drafts_rejected_total", "Creation drafts refused by validation"
        )
        self.ai_requests = Counter(
            "accounfix_ai_requests_total", "AI service requests, by operation"
        )
        self.ai_errors = Counter(
            "accounfix_ai_errors_total", "Failed AI service requests, by operation and reason"
        )
        self.classification_fallbacks = Counter(
            "accounfix_classification_fallbacks_total",
            "Classifications answered with the fallback analysis",
        )
        self.chat_messages = Counter(
            "accounfix_chat_messages_total", "Chat messages appended, by role"
        )
        self.chat_failures = Counter(
            "accounfix_chat_failures_total", "Chat requests that got no reply"
        )
        self.erp_syncs = Counter("accounfix_erp_syncs_total", "Records pushed to the ERP")
        self.erp_sync_failures = Counter(
            "accounfix_erp_sync_failures_total", "ERP pushes that failed"
        )
        self.reports_exported = Counter(
            "accounfix_reports_exported_total", "CSV reports written"
        )

        self.records_held = Gauge("accounfix_records_held", "Error records in the session")

        self.ai_request_duration = Histogram(
            "accounfix_ai_request_duration_seconds", "AI service request duration"
        )
        self.erp_sync_duration = Histogram(
            "accounfix_erp_sync_duration_seconds", "ERP push duration"
        )

        self._start_time = time.time()

    @classmethod
    def get_instance(cls) -> MetricsRegistry:
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the shared registry so the next get_instance() starts from zero."""
        with cls._lock:
            cls._instance = None

    def _series(self) -> list[_LabelledSeries]:
        return [v for v in vars(self).values() if isinstance(v, _LabelledSeries)]

    def _histograms(self) -> list[Histogram]:
        return [v for v in vars(self).values() if isinstance(v, Histogram)]

    def get_uptime_seconds(self) -> float:
        return time.time() - self._start_time

    def get_all_metrics(self) -> dict[str, Any]:
        """Totals grouped the way the shell's ``metrics`` command prints them."""
        return {
            "uptime_seconds": self.get_uptime_seconds(),
            "records": {
                "created": self.records_created.total(),
                "status_updates": self.status_updates.total(),
                "drafts_rejected": self.drafts_rejected.total(),
                "held": self.records_held.get(),
            },
            "ai": {
                "requests": self.ai_requests.total(),
                "errors": self.ai_errors.total(),
                "classification_fallbacks": self.classification_fallbacks.total(),
                "duration_stats": self.ai_request_duration.get_stats(),
            },
            "chat": {
                "messages": self.chat_messages.total(),
                "failures": self.chat_failures.total(),
            },
            "erp": {
                "syncs": self.erp_syncs.total(),
                "failures": self.erp_sync_failures.total(),
                "duration_stats": self.erp_sync_duration.get_stats(),
            },
            "reports": {
                "exported": self.reports_exported.total(),
            },
        }

    def to_prometheus_format(self) -> str:
        """Export every metric in Prometheus text exposition format.

        Histograms are exported as summaries (count and sum only).
        """
        lines: list[str] = []

        for series in self._series():
            if series.help_text:
                lines.append(f"# HELP {series.name} {series.help_text}")
            lines.append(f"# TYPE {series.name} {series.metric_type.value}")
            lines.extend(_prometheus_sample(series.name, s) for s in series.get_all())

        for histogram in self._histograms():
            stats = histogram.get_stats()
            if histogram.help_text:
                lines.append(f"# HELP {histogram.name} {histogram.help_text}")
            lines.append(f"# TYPE {histogram.name} summary")
            lines.append(f"{histogram.name}_count {stats['count']}")
            lines.append(f"{histogram.name}_sum {stats['sum']}")

        lines.append("# HELP accounfix_uptime_seconds Session uptime in seconds")
        lines.append("# TYPE accounfix_uptime_seconds gauge")
        lines.append(f"accounfix_uptime_seconds {self.get_uptime_seconds()}")

        return "\n".join(lines)


def get_metrics() -> MetricsRegistry:
    """Return the shared MetricsRegistry."""
    return MetricsRegistry.get_instance()


class Timer:
    """Record the duration of a block into a histogram, even when it raises.

    Example:
        with Timer(get_metrics().erp_sync_duration):
            external_id = await adapter.push(record)
    """

    def __init__(self, histogram: Histogram, labels: dict[str, str] | None = None) -> None:
        self._histogram = histogram
        self._labels = labels
        self._start: float | None = None

    def __enter__(self) -> Timer:
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        if self._start is not None:
            self._histogram.observe(time.perf_counter() - self._start, labels=self._labels)
