"""
Ability resolver for declarative_policy.

This module answers "is ability A allowed for subject S on resource R?".

The evaluation process:
1. Find the policy governing R and check A is recognized for it.
2. Start from ``state = False`` (default deny).
3. Walk the rule sequence in order: delegated policies first (each
   flattened recursively, related resources loaded lazily), then the
   policy's own rules.
4. For every rule whose ability set contains A, evaluate its condition
   through the context cache. If it holds, ENABLE sets the state to True
   and PREVENT sets it to False. Rules that do not mention A are skipped
   without evaluating anything.
5. The state after the last rule is the decision: the last matching rule
   wins. Delegated (general) rules run first, so the delegating
   (specific) policy can override them.

Lookup failures propagate as EvaluationErrors; they are never turned
into an allow or a deny.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from declarative_policy.context import AuthorizationContext
from declarative_policy.exceptions import (
    AuthorizationError,
    EvaluationError,
    UnknownAbilityError,
)
from declarative_policy.observability.hooks import (
    METRIC_DECISION_LATENCY,
    METRIC_DECISIONS,
    METRIC_EVALUATION_ERRORS,
    emit_counter,
    emit_timing,
)
from declarative_policy.types import Decision, RuleOutcome, Subject, describe_subject

if TYPE_CHECKING:
    from declarative_policy.policies.base import PolicyDefinition, Rule
    from declarative_policy.policies.registry import PolicyRegistry

logger = logging.getLogger(__name__)


class AbilityResolver:
    """
    Resolves abilities against a frozen PolicyRegistry.

    The resolver holds no per-request state; all memoization lives in the
    AuthorizationContext passed to every call. One resolver can serve
    any number of threads, each with its own context.

    Example:
        >>> resolver = AbilityResolver(registry)
        >>> with resolver.new_context(store) as ctx:
        ...     resolver.allowed(ctx, user, build, "read_build")
        True

    Configuration:
        - cache_conditions: Memoize condition results in new contexts.
            Defaults to True.
        - record_trace: Collect the rule trail on decisions. Defaults to True.
        - emit_metrics: Send counters and timings to the observability
            hooks. Defaults to True.
    """

    name = "declarative"

    def __init__(
        self,
        registry: PolicyRegistry,
        config: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize the resolver and freeze the registry.

        Args:
            registry: Registry holding the policy declarations.
            config: Resolver configuration options.

        Raises:
            ConfigurationError: The registry's declarations are invalid.
        """
        self.config = config or {}
        self.registry = registry
        registry.freeze()
        self.graph = registry.graph

        self.record_trace = bool(self.get_config("record_trace", True))
        self.emit_metrics = bool(self.get_config("emit_metrics", True))
        logger.debug(f"AbilityResolver initialized with config: {self.config}")

    def get_config(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self.config.get(key, default)

    def new_context(self, data: Any = None, context_id: str | None = None) -> AuthorizationContext:
        """
        Create a fresh authorization context configured for this resolver.

        Args:
            data: The data-access collaborator for this request.
            context_id: Optional identifier for logs.
        """
        return AuthorizationContext(
            data,
            context_id=context_id,
            cache_conditions=bool(self.get_config("cache_conditions", True)),
            emit_metrics=self.emit_metrics,
        )

    # Queries

    def allowed(
        self,
        context: AuthorizationContext,
        subject: Subject | None,
        resource: Any,
        ability: str,
        policy_type: str | None = None,
    ) -> bool:
        """
        Check whether ``subject`` may perform ``ability`` on ``resource``.

        Args:
            context: The request's authorization context.
            subject: The acting user, or None for anonymous.
            resource: The record being protected.
            ability: Ability name (e.g., "update_build").
            policy_type: Override the policy lookup by resource class.

        Returns:
            True if allowed, False otherwise.

        Raises:
            UnknownAbilityError: The ability is not recognized for the policy.
            UnknownResourceTypeError: No policy governs the resource.
            EvaluationError: A condition or delegation lookup failed.
        """
        return self.decide(context, subject, resource, ability, policy_type).allowed

    def disallowed(
        self,
        context: AuthorizationContext,
        subject: Subject | None,
        resource: Any,
        ability: str,
        policy_type: str | None = None,
    ) -> bool:
        """Negation of ``allowed()`` with the same error behaviour."""
        return not self.allowed(context, subject, resource, ability, policy_type)

    def authorize(
        self,
        context: AuthorizationContext,
        subject: Subject | None,
        resource: Any,
        ability: str,
        policy_type: str | None = None,
    ) -> Decision:
        """
        Like ``decide()``, but raise when the ability is denied.

        Raises:
            AuthorizationError: The decision is a deny.
        """
        decision = self.decide(context, subject, resource, ability, policy_type)
        if not decision.allowed:
            raise AuthorizationError(
                subject=describe_subject(subject),
                ability=ability,
                policy_type=decision.policy_type,
                reason=decision.reason,
            )
        return decision

    def decide(
        self,
        context: AuthorizationContext,
        subject: Subject | None,
        resource: Any,
        ability: str,
        policy_type: str | None = None,
    ) -> Decision:
        """
        Resolve one ability and return the decision with its rule trail.

        See ``allowed()`` for arguments and errors.
        """
        start = time.perf_counter()
        definition = self.registry.policy_for(resource, policy_type)
        self._check_ability(definition, ability)

        outcomes: list[RuleOutcome] | None = [] if self.record_trace else None
        try:
            state, deciding = self._apply(
                context, definition, resource, subject, ability, (False, None), outcomes
            )
        except EvaluationError:
            if self.emit_metrics:
                emit_counter(METRIC_EVALUATION_ERRORS, tags={"policy": definition.policy_type})
            raise

        decision = Decision(
            allowed=state,
            policy_type=definition.policy_type,
            ability=ability,
            outcomes=tuple(outcomes or ()),
            decided_by=deciding,
        )

        if self.emit_metrics:
            emit_counter(
                METRIC_DECISIONS,
                tags={
                    "policy": definition.policy_type,
                    "ability": ability,
                    "allowed": state,
                },
            )
            emit_timing(
                METRIC_DECISION_LATENCY,
                (time.perf_counter() - start) * 1000,
                tags={"policy": definition.policy_type},
            )
        logger.debug(
            f"[{context.context_id}] {describe_subject(subject)} "
            f"{definition.policy_type}:{ability} -> {'allowed' if state else 'denied'}"
        )
        return decision

    def allowed_abilities(
        self,
        context: AuthorizationContext,
        subject: Subject | None,
        resource: Any,
        policy_type: str | None = None,
    ) -> frozenset[str]:
        """
        Resolve every ability recognized for the resource's policy.

        Conditions shared between abilities are evaluated once thanks to
        the context cache.
        """
        definition = self.registry.policy_for(resource, policy_type)
        abilities = sorted(self.graph.recognized_abilities(definition.policy_type))
        return frozenset(
            ability
            for ability in abilities
            if self.allowed(context, subject, resource, ability, definition.policy_type)
        )

    def recognized_abilities(self, policy_type: str) -> frozenset[str]:
        """Abilities that may be requested for a policy type."""
        self.registry.get_policy(policy_type)
        return self.graph.recognized_abilities(policy_type)

    def rules(self, policy_type: str) -> list[tuple[str, Rule]]:
        """
        The flattened rule sequence of a policy type, in evaluation order.

        Returns:
            List of ``(declaring policy type, rule)`` pairs.
        """
        self.registry.get_policy(policy_type)
        return self.graph.flattened_rules(policy_type)

    # Internals

    def _check_ability(self, definition: PolicyDefinition, ability: str) -> None:
        recognized = self.graph.recognized_abilities(definition.policy_type)
        if ability not in recognized:
            raise UnknownAbilityError(definition.policy_type, ability, sorted(recognized))

    def _apply(
        self,
        context: AuthorizationContext,
        definition: PolicyDefinition,
        resource: Any,
        subject: Subject | None,
        ability: str,
        state: tuple[bool, RuleOutcome | None],
        outcomes: list[RuleOutcome] | None,
    ) -> tuple[bool, RuleOutcome | None]:
        for target_type, related in self.graph.delegates(
            definition.policy_type, resource, context, ability
        ):
            target = self.registry.get_policy(target_type)
            state = self._apply(context, target, related, subject, ability, state, outcomes)

        def lookup(name: str) -> bool:
            return context.evaluate_condition(definition, name, subject, resource)

        for rule in definition.rules:
            if not rule.affects(ability):
                continue
            matched = rule.condition.evaluate(lookup)
            if not matched and outcomes is None:
                continue
            outcome = RuleOutcome(
                policy_type=definition.policy_type,
                position=rule.position,
                effect=rule.effect,
                condition=str(rule.condition),
                matched=matched,
            )
            if matched:
                state = (rule.effect.apply(), outcome)
            if outcomes is not None:
                outcomes.append(outcome)
        return state
