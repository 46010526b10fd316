"""
Condition result caching.

Memoizes condition predicate results for the lifetime of one
authorization context. Predicates may hit a database (team membership,
protected-branch lookups), so each unique key is evaluated at most once
per context no matter how many abilities are resolved.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Hashable, NamedTuple

from declarative_policy.types import ConditionScope

logger = logging.getLogger(__name__)


class ConditionKey(NamedTuple):
    """
    Cache key of one condition evaluation.

    ``subject`` and ``resource`` are identities, not objects, and are
    replaced by None when the condition's scope ignores them.
    """

    policy_type: str
    condition: str
    subject: Hashable
    resource: Hashable

    @classmethod
    def build(
        cls,
        policy_type: str,
        condition: str,
        scope: ConditionScope,
        subject: Hashable,
        resource: Hashable,
    ) -> ConditionKey:
        """Build a key, dropping the inputs ``scope`` says the condition ignores."""
        if scope in (ConditionScope.RESOURCE, ConditionScope.GLOBAL):
            subject = None
        if scope in (ConditionScope.USER, ConditionScope.GLOBAL):
            resource = None
        return cls(policy_type, condition, subject, resource)


@dataclass
class CacheStats:
    """
    Cache statistics.

    Attributes:
        hits: Number of lookups answered from the cache.
        misses: Number of lookups that ran the predicate.
        size: Current number of entries.

    Example:
        >>> stats = ctx.cache.stats
        >>> print(f"Hit rate: {stats.hit_rate:.2%}")
    """

    hits: int = 0
    misses: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "size": self.size,
            "hit_rate": self.hit_rate,
            "total_requests": self.total_requests,
        }


class ConditionCache:
    """
    Per-context memo of condition results.

    There is no expiry and no size bound: entries live exactly as long as
    the owning AuthorizationContext and are dropped by ``clear()`` when the
    context closes.

    Each key gets its own lock while its predicate runs, so concurrent
    queries on one context never compute the same key twice, while
    unrelated keys are computed in parallel. The map lock is only held
    for bookkeeping. Per-key locks are reentrant because a predicate may
    itself trigger nested lookups on the same context. A failed compute
    is not cached; a thread waiting on the same key then runs the
    predicate itself.

    Example:
        >>> cache = ConditionCache()
        >>> key = ConditionKey("project", "developer", 42, ("project", 7))
        >>> cache.get_or_compute(key, lambda: expensive_check())
        (True, False)
        >>> cache.get_or_compute(key, lambda: expensive_check())
        (True, True)
    """

    def __init__(self) -> None:
        self._entries: dict[ConditionKey, bool] = {}
        self._in_flight: dict[ConditionKey, threading.RLock] = {}
        self._lock = threading.RLock()
        self._stats = CacheStats()

    def get_or_compute(self, key: ConditionKey, compute: Callable[[], bool]) -> tuple[bool, bool]:
        """
        Return the cached value for ``key``, computing it on first use.

        Args:
            key: The condition key.
            compute: Runs the predicate. Exceptions propagate and nothing
                is cached for the key.

        Returns:
            Tuple of (value, was_cached).
        """
        with self._lock:
            if key in self._entries:
                self._stats.hits += 1
                return self._entries[key], True
            key_lock = self._in_flight.setdefault(key, threading.RLock())

        with key_lock:
            with self._lock:
                if key in self._entries:
                    self._stats.hits += 1
                    return self._entries[key], True
                self._stats.misses += 1

            try:
                value = bool(compute())
            except BaseException:
                with self._lock:
                    if self._in_flight.get(key) is key_lock:
                        del self._in_flight[key]
                raise

            with self._lock:
                self._entries[key] = value
                self._stats.size = len(self._entries)
                if self._in_flight.get(key) is key_lock:
                    del self._in_flight[key]
            logger.debug(f"Cached condition {key.policy_type}.{key.condition} = {value}")
            return value, False

    def peek(self, key: ConditionKey) -> bool | None:
        """Return a cached value without computing it, or None."""
        with self._lock:
            return self._entries.get(key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> CacheStats:
        """Snapshot of the cache statistics."""
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                size=len(self._entries),
            )

    def clear(self) -> int:
        """
        Drop every entry.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._stats.size = 0
            return count
