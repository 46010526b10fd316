"""
Metrics hooks for declarative_policy.

The engine emits counters and timings without depending on a metrics
library. Register a hook that forwards them to Prometheus, StatsD or
OpenTelemetry, or use the in-memory hook in tests.

Quick Start:
    >>> from declarative_policy.observability import (
    ...     ObservabilityHooks,
    ...     InMemoryMetricHook,
    ...     METRIC_DECISIONS,
    ... )
    >>>
    >>> hooks = ObservabilityHooks.get_instance()
    >>> memory_hook = InMemoryMetricHook()
    >>> hooks.add_metric_hook(memory_hook)
    >>>
    >>> resolver.allowed(ctx, user, build, "read_build")
    >>> memory_hook.get_counter(
    ...     METRIC_DECISIONS,
    ...     {"policy": "build", "ability": "read_build", "allowed": True},
    ... )
    1.0

Integration with Prometheus:
    >>> from prometheus_client import Counter
    >>>
    >>> class PrometheusMetricHook:
    ...     def __init__(self):
    ...         self.decisions = Counter(
    ...             "declarative_policy_decisions_total",
    ...             "Resolved abilities",
    ...             ["policy", "ability", "allowed"],
    ...         )
    ...
    ...     def increment(self, name, value=1.0, tags=None):
    ...         if name == METRIC_DECISIONS:
    ...             self.decisions.labels(**(tags or {})).inc(value)
    ...
    ...     def timing(self, name, duration_ms, tags=None):
    ...         pass
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class MetricHook(Protocol):
    """
    Protocol for metric backends.

    Example:
        >>> class MyMetricHook:
        ...     def increment(self, name, value=1.0, tags=None):
        ...         statsd.increment(name, value, tags=tags)
        ...
        ...     def timing(self, name, duration_ms, tags=None):
        ...         statsd.timing(name, duration_ms, tags=tags)
    """

    def increment(self, name: str, value: float = 1.0, tags: dict[str, Any] | None = None) -> None:
        """
        Increment a counter metric.

        Args:
            name: The metric name (e.g., "declarative_policy.decisions").
            value: The amount to increment by (default 1.0).
            tags: Optional tags/labels for the metric.
        """
        ...

    def timing(self, name: str, duration_ms: float, tags: dict[str, Any] | None = None) -> None:
        """
        Record a timing/duration measurement.

        Args:
            name: The metric name.
            duration_ms: The duration in milliseconds.
            tags: Optional tags/labels for the metric.
        """
        ...


class LoggingMetricHook:
    """
    Hook that logs metrics (for development and debugging).

    Example:
        >>> import logging
        >>> logging.basicConfig(level=logging.DEBUG)
        >>> hook = LoggingMetricHook()
        >>> hook.increment("declarative_policy.decisions", 1.0, {"policy": "build"})
        DEBUG:declarative_policy.metrics:COUNTER declarative_policy.decisions=1.0 tags={'policy': 'build'}
    """

    def __init__(self, logger: logging.Logger | None = None, level: int = logging.DEBUG):
        self.logger = logger or logging.getLogger("declarative_policy.metrics")
        self.level = level

    def increment(self, name: str, value: float = 1.0, tags: dict[str, Any] | None = None) -> None:
        """Log a counter increment."""
        self.logger.log(self.level, f"COUNTER {name}={value} tags={tags}")

    def timing(self, name: str, duration_ms: float, tags: dict[str, Any] | None = None) -> None:
        """Log a timing value."""
        self.logger.log(self.level, f"TIMING {name}={duration_ms}ms tags={tags}")


@dataclass
class TimingStats:
    """Statistics for a timing metric."""

    count: int
    total: float
    min: float
    max: float
    avg: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "count": self.count,
            "total": self.total,
            "min": self.min,
            "max": self.max,
            "avg": self.avg,
        }


class InMemoryMetricHook:
    """
    In-memory metrics for testing.

    Example:
        >>> hook = InMemoryMetricHook()
        >>> hook.increment("decisions", tags={"allowed": True})
        >>> hook.increment("decisions", tags={"allowed": True})
        >>> hook.get_counter("decisions", {"allowed": True})
        2.0
    """

    def __init__(self) -> None:
        self.counters: dict[str, float] = defaultdict(float)
        self.timings: dict[str, list[float]] = defaultdict(list)
        self._lock = threading.Lock()

    def _make_key(self, name: str, tags: dict[str, Any] | None) -> str:
        """Create a unique key from metric name and tags."""
        if not tags:
            return name
        sorted_tags = sorted(tags.items())
        tag_str = ",".join(f"{k}={v}" for k, v in sorted_tags)
        return f"{name}[{tag_str}]"

    def increment(self, name: str, value: float = 1.0, tags: dict[str, Any] | None = None) -> None:
        """Increment a counter."""
        key = self._make_key(name, tags)
        with self._lock:
            self.counters[key] += value

    def timing(self, name: str, duration_ms: float, tags: dict[str, Any] | None = None) -> None:
        """Record a timing value."""
        key = self._make_key(name, tags)
        with self._lock:
            self.timings[key].append(duration_ms)

    def get_counter(self, name: str, tags: dict[str, Any] | None = None) -> float:
        """
        Get the current value of a counter.

        Returns:
            The current counter value, or 0.0 if never incremented.
        """
        key = self._make_key(name, tags)
        with self._lock:
            return self.counters.get(key, 0.0)

    def get_timing_stats(
        self, name: str, tags: dict[str, Any] | None = None
    ) -> TimingStats | None:
        """
        Get statistics for timing measurements.

        Returns:
            TimingStats with count, total, min, max, avg, or None if empty.
        """
        key = self._make_key(name, tags)
        with self._lock:
            values = list(self.timings.get(key, []))
        if not values:
            return None
        return TimingStats(
            count=len(values),
            total=sum(values),
            min=min(values),
            max=max(values),
            avg=sum(values) / len(values),
        )

    def get_all_counters(self) -> dict[str, float]:
        """Get all counter values."""
        with self._lock:
            return dict(self.counters)

    def reset(self) -> None:
        """Reset all metrics to initial state."""
        with self._lock:
            self.counters.clear()
            self.timings.clear()


class ObservabilityHooks:
    """
    Central registry for metric hooks.

    A process-wide singleton; use ``get_instance()``. Emitting with no
    hooks registered is a no-op.
    """

    _instance: ObservabilityHooks | None = None
    _instance_lock = threading.Lock()

    def __init__(self) -> None:
        self._metric_hooks: list[MetricHook] = []
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> ObservabilityHooks:
        """Get the global ObservabilityHooks instance."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """
        Reset the global instance.

        Useful for testing to ensure a clean state.
        """
        with cls._instance_lock:
            cls._instance = None

    def add_metric_hook(self, hook: MetricHook) -> None:
        """Register a metric hook."""
        with self._lock:
            self._metric_hooks.append(hook)

    def remove_metric_hook(self, hook: MetricHook) -> bool:
        """
        Remove a metric hook.

        Returns:
            True if the hook was removed, False if not found.
        """
        with self._lock:
            try:
                self._metric_hooks.remove(hook)
                return True
            except ValueError:
                return False

    @property
    def metric_hooks(self) -> list[MetricHook]:
        """Get a copy of the registered metric hooks."""
        with self._lock:
            return list(self._metric_hooks)

    def emit_counter(
        self, name: str, value: float = 1.0, tags: dict[str, Any] | None = None
    ) -> None:
        """Emit a counter metric to all registered hooks."""
        for hook in self.metric_hooks:
            hook.increment(name, value, tags)

    def emit_timing(
        self, name: str, duration_ms: float, tags: dict[str, Any] | None = None
    ) -> None:
        """Emit a timing metric to all registered hooks."""
        for hook in self.metric_hooks:
            hook.timing(name, duration_ms, tags)


# Standard metric names emitted by the resolver

METRIC_DECISIONS = "declarative_policy.decisions"
"""Counter: Resolved abilities. Tags: policy, ability, allowed."""

METRIC_DECISION_LATENCY = "declarative_policy.decision.latency_ms"
"""Timing: Time to resolve one ability. Tags: policy."""

METRIC_CONDITION_EVALUATIONS = "declarative_policy.condition.evaluations"
"""Counter: Condition predicates actually run. Tags: condition."""

METRIC_CONDITION_CACHE_HITS = "declarative_policy.condition.cache_hits"
"""Counter: Condition lookups answered from the context cache. Tags: condition."""

METRIC_EVALUATION_ERRORS = "declarative_policy.evaluation.errors"
"""Counter: Failed condition or delegation lookups. Tags: policy."""


def emit_counter(name: str, value: float = 1.0, tags: dict[str, Any] | None = None) -> None:
    """
    Emit a counter metric to all registered hooks.

    Example:
        >>> emit_counter(METRIC_DECISIONS, tags={"policy": "build"})
    """
    ObservabilityHooks.get_instance().emit_counter(name, value, tags)


def emit_timing(name: str, duration_ms: float, tags: dict[str, Any] | None = None) -> None:
    """Emit a timing metric to all registered hooks."""
    ObservabilityHooks.get_instance().emit_timing(name, duration_ms, tags)
