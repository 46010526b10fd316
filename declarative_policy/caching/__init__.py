"""
Caching components for declarative_policy.

Provides the per-context condition cache that bounds expensive condition
lookups to one evaluation per unique key.

Example:
    >>> from declarative_policy.caching import ConditionCache, ConditionKey
    >>>
    >>> cache = ConditionCache()
    >>> key = ConditionKey("project", "public", None, ("project", 1))
    >>> value, cached = cache.get_or_compute(key, lambda: True)
    >>> print(f"Hit rate: {cache.stats.hit_rate:.2%}")
"""

from declarative_policy.caching.condition_cache import (
    CacheStats,
    ConditionCache,
    ConditionKey,
)

__all__ = [
    "ConditionCache",
    "ConditionKey",
    "CacheStats",
]
