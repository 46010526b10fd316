"""
Authorization context for declarative_policy.

An AuthorizationContext is the unit of caching and consistency: one per
"question session", typically one request or transaction. It owns

- the condition cache, so each expensive predicate runs at most once per
  key while the context is open,
- the data-access collaborator that predicates and delegation accessors
  use to load records,
- a memo of related resources loaded through delegations.

Contexts are never shared across unrelated requests. Use one as a
context manager so it is released when the request ends:

    >>> with resolver.new_context(store) as ctx:
    ...     if resolver.allowed(ctx, user, build, "update_build"):
    ...         retry_build(build)
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import TYPE_CHECKING, Any, Hashable

from declarative_policy.caching import CacheStats, ConditionCache, ConditionKey
from declarative_policy.exceptions import (
    ConditionEvaluationError,
    ContextClosedError,
    DeclarativePolicyError,
    DelegationError,
)
from declarative_policy.observability.hooks import (
    METRIC_CONDITION_CACHE_HITS,
    METRIC_CONDITION_EVALUATIONS,
    emit_counter,
)
from declarative_policy.types import Subject, subject_key

if TYPE_CHECKING:
    from declarative_policy.policies.base import Delegation, PolicyDefinition

logger = logging.getLogger(__name__)


class AuthorizationContext:
    """
    Per-request scope for condition memoization.

    Attributes:
        data: The data-access collaborator handed to predicates and accessors.
        context_id: Identifier used in logs and errors.
        cache: The condition cache owned by this context.

    Thread Safety:
        One context normally serves one logical request. Concurrent
        queries on the same context are still safe: cache and delegate
        memo are lock-protected and a key is never computed twice.
    """

    def __init__(
        self,
        data: Any = None,
        context_id: str | None = None,
        cache_conditions: bool = True,
        emit_metrics: bool = True,
    ) -> None:
        """
        Create a fresh context.

        Args:
            data: Data-access collaborator (e.g., an InMemoryStore or a
                repository over your database).
            context_id: Optional identifier; a random one is generated.
            cache_conditions: Memoize condition results. Disable only for
                debugging; every rule evaluation then runs its predicate.
            emit_metrics: Send condition counters to the observability hooks.
        """
        self.data = data
        self.context_id = context_id or uuid.uuid4().hex[:12]
        self.cache = ConditionCache()
        self.cache_conditions = cache_conditions
        self.emit_metrics = emit_metrics
        self._delegates: dict[tuple[Hashable, str], Any] = {}
        self._lock = threading.RLock()
        self._closed = False

    # Lifetime

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release cached state. Further use raises ContextClosedError."""
        with self._lock:
            if self._closed:
                return
            dropped = self.cache.clear()
            self._delegates.clear()
            self._closed = True
        logger.debug(f"Closed authorization context {self.context_id} ({dropped} cached conditions)")

    def __enter__(self) -> AuthorizationContext:
        self._check_open()
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    def _check_open(self) -> None:
        if self._closed:
            raise ContextClosedError(self.context_id)

    @property
    def stats(self) -> CacheStats:
        """Condition cache statistics for this context."""
        return self.cache.stats

    # Evaluation

    def evaluate_condition(
        self,
        definition: PolicyDefinition,
        name: str,
        subject: Subject | None,
        resource: Any,
    ) -> bool:
        """
        Evaluate a condition of ``definition`` through the cache.

        The cache key is ``(policy type, condition, subject identity,
        resource identity)``, narrowed by the condition's scope.

        Raises:
            ConditionEvaluationError: The predicate raised.
            ResourceIdentityError: The resource cannot be keyed.
            ContextClosedError: The context is closed.
        """
        self._check_open()
        condition = definition.get_condition(name)
        policy_type = definition.policy_type

        def compute() -> bool:
            if self.emit_metrics:
                emit_counter(METRIC_CONDITION_EVALUATIONS, tags={"condition": f"{policy_type}.{name}"})
            try:
                return condition(subject, resource, self.data)
            except DeclarativePolicyError:
                raise
            except Exception as e:
                logger.error(
                    f"Condition '{policy_type}.{name}' failed in context {self.context_id}: {e}"
                )
                raise ConditionEvaluationError(policy_type, name, str(e) or type(e).__name__) from e

        if not self.cache_conditions:
            return compute()

        key = ConditionKey.build(
            policy_type,
            name,
            condition.scope,
            subject_key(subject),
            definition.resource_key(resource),
        )
        value, cached = self.cache.get_or_compute(key, compute)
        if cached and self.emit_metrics:
            emit_counter(METRIC_CONDITION_CACHE_HITS, tags={"condition": f"{policy_type}.{name}"})
        return value

    def resolve_delegate(
        self,
        definition: PolicyDefinition,
        resource: Any,
        delegation: Delegation,
    ) -> Any:
        """
        Load the related resource of a delegation, at most once per context.

        Returns:
            The related resource, or None when the accessor reports none.

        Raises:
            DelegationError: The accessor raised.
            ContextClosedError: The context is closed.
        """
        self._check_open()
        key = (definition.resource_key(resource), delegation.name)
        with self._lock:
            if key in self._delegates:
                return self._delegates[key]
            try:
                related = delegation.accessor(resource, self.data)
            except DeclarativePolicyError:
                raise
            except Exception as e:
                logger.error(
                    f"Delegation '{definition.policy_type}.{delegation.name}' failed "
                    f"in context {self.context_id}: {e}"
                )
                raise DelegationError(
                    definition.policy_type, delegation.name, str(e) or type(e).__name__
                ) from e
            self._delegates[key] = related
            logger.debug(
                f"Resolved delegation '{definition.policy_type}.{delegation.name}' "
                f"-> {'none' if related is None else delegation.policy_type}"
            )
            return related

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"AuthorizationContext(id={self.context_id!r}, {state}, cached={len(self.cache)})"


def new_context(data: Any = None, **kwargs: Any) -> AuthorizationContext:
    """Create a fresh authorization context."""
    return AuthorizationContext(data, **kwargs)
