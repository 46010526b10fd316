"""
Observability components for declarative_policy.

Standard Metrics:
    - declarative_policy.decisions: Resolved abilities
    - declarative_policy.decision.latency_ms: Resolution latency
    - declarative_policy.condition.evaluations: Predicates actually run
    - declarative_policy.condition.cache_hits: Lookups served from the context cache
    - declarative_policy.evaluation.errors: Failed condition or delegation lookups
"""

from declarative_policy.observability.hooks import (
    METRIC_CONDITION_CACHE_HITS,
    METRIC_CONDITION_EVALUATIONS,
    METRIC_DECISION_LATENCY,
    METRIC_DECISIONS,
    METRIC_EVALUATION_ERRORS,
    InMemoryMetricHook,
    LoggingMetricHook,
    MetricHook,
    ObservabilityHooks,
    TimingStats,
    emit_counter,
    emit_timing,
)

__all__ = [
    "MetricHook",
    "LoggingMetricHook",
    "InMemoryMetricHook",
    "TimingStats",
    "ObservabilityHooks",
    "emit_counter",
    "emit_timing",
    "METRIC_DECISIONS",
    "METRIC_DECISION_LATENCY",
    "METRIC_CONDITION_EVALUATIONS",
    "METRIC_CONDITION_CACHE_HITS",
    "METRIC_EVALUATION_ERRORS",
]
