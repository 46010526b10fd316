"""
Policy declarations for declarative_policy.

A policy is the bound pairing of a resource type with its ordered rules
and its delegations to related resources. Policies are declared once, at
startup, through a PolicyBuilder and become immutable PolicyDefinitions
when the registry is frozen.

Example:
    >>> builder = PolicyBuilder("build", resource_type=Build,
    ...                         abilities=["read_build", "update_build"])
    >>> builder.delegate("project", "project", lambda build, data: data.project_of(build))
    >>> builder.condition("branch_protected", is_protected, scope=ConditionScope.RESOURCE)
    >>> builder.condition("push_allowed", can_push)
    >>> builder.rule(cond("branch_protected") & ~cond("push_allowed")).prevent("update_build")
    >>> definition = builder.build()
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Hashable

from declarative_policy.exceptions import (
    ConfigurationError,
    RegistryFrozenError,
    ResourceIdentityError,
    UndeclaredAbilityError,
    UndeclaredConditionError,
)
from declarative_policy.policies.conditions import (
    Condition,
    ConditionExpr,
    Predicate,
    as_expr,
)
from declarative_policy.types import ConditionScope, Effect

logger = logging.getLogger(__name__)

# accessor(resource, data) -> related resource or None
Accessor = Callable[[Any, Any], Any]


@dataclass(frozen=True)
class Rule:
    """
    One ordered ``(condition, abilities, effect)`` entry of a policy.

    Attributes:
        condition: Expression that must hold for the effect to apply.
        abilities: Abilities the rule affects.
        effect: ENABLE or PREVENT.
        position: Declaration index within the owning policy.
        all_abilities: True for prevent-all rules, which affect every ability.
    """
    condition: ConditionExpr
    abilities: frozenset[str]
    effect: Effect
    position: int
    all_abilities: bool = False

    def affects(self, ability: str) -> bool:
        """Whether this rule must be evaluated when resolving ``ability``."""
        return self.all_abilities or ability in self.abilities

    def __str__(self) -> str:
        target = "*" if self.all_abilities else ", ".join(sorted(self.abilities))
        return f"{self.condition} -> {self.effect.value} {{{target}}}"


@dataclass(frozen=True)
class Delegation:
    """
    A link from a policy to the policy of a related resource.

    Attributes:
        name: Identifier unique within the delegating policy.
        policy_type: Policy type of the related resource.
        accessor: Loads the related resource; returns None when there is none.
    """
    name: str
    policy_type: str
    accessor: Accessor


@dataclass(frozen=True)
class PolicyDefinition:
    """
    Immutable, validated policy for one resource type.

    Attributes:
        policy_type: Identifier of the policy (e.g., "build").
        resource_types: Python classes whose instances this policy governs.
        abilities: Abilities this policy's own rules may name.
        conditions: Declared conditions by name.
        rules: Rules in declaration order.
        delegations: Delegations in declaration order.
    """
    policy_type: str
    resource_types: tuple[type, ...]
    abilities: frozenset[str]
    conditions: Mapping[str, Condition]
    rules: tuple[Rule, ...]
    delegations: tuple[Delegation, ...]
    identity: Callable[[Any], Hashable] | None = field(default=None, compare=False)

    def resource_key(self, resource: Any) -> Hashable:
        """
        Identity of a resource for cache keys.

        Structurally equal but distinct instances share the same key, so
        two copies of the same record hit the same cache entries.

        Raises:
            ResourceIdentityError: The resource has no ``id`` and no identity
                function is declared, or the identity function raised.
        """
        resource_type = type(resource).__name__
        if self.identity is not None:
            try:
                return (self.policy_type, self.identity(resource))
            except Exception as e:
                raise ResourceIdentityError(
                    self.policy_type, resource_type, str(e) or type(e).__name__
                ) from e
        try:
            return (self.policy_type, resource.id)
        except AttributeError as e:
            raise ResourceIdentityError(
                self.policy_type,
                resource_type,
                "no 'id' attribute and no identity function declared",
            ) from e

    @property
    def named_abilities(self) -> frozenset[str]:
        """Abilities named by at least one rule."""
        return frozenset().union(*(rule.abilities for rule in self.rules))

    @property
    def has_prevent_all(self) -> bool:
        return any(rule.all_abilities for rule in self.rules)

    def get_condition(self, name: str) -> Condition:
        return self.conditions[name]


class RuleBuilder:
    """
    Finishes a rule declaration started with ``PolicyBuilder.rule``.

    Example:
        >>> policy.rule(cond("developer")).enable("update_build")
        >>> policy.rule(cond("blocked")).prevent_all()
    """

    def __init__(self, policy: PolicyBuilder, condition: ConditionExpr) -> None:
        self._policy = policy
        self._condition = condition

    def enable(self, *abilities: str) -> PolicyBuilder:
        """Grant ``abilities`` when the condition holds."""
        return self._policy._add_rule(self._condition, abilities, Effect.ENABLE)

    def prevent(self, *abilities: str) -> PolicyBuilder:
        """Deny ``abilities`` when the condition holds."""
        return self._policy._add_rule(self._condition, abilities, Effect.PREVENT)

    def prevent_all(self) -> PolicyBuilder:
        """Deny every ability, including delegated ones, when the condition holds."""
        return self._policy._add_rule(
            self._condition, (), Effect.PREVENT, all_abilities=True
        )


class PolicyBuilder:
    """
    Startup-time declaration API for one policy type.

    Conditions, delegations and rules are recorded in call order; rule
    order is significant because the last matching rule wins. Validation
    happens in ``build()``, which the registry calls when it is frozen.
    """

    def __init__(
        self,
        policy_type: str,
        resource_type: type | Iterable[type] | None = None,
        abilities: Iterable[str] = (),
        identity: Callable[[Any], Hashable] | None = None,
        is_frozen: Callable[[], bool] | None = None,
    ) -> None:
        """
        Initialize a policy declaration.

        Args:
            policy_type: Identifier of the policy.
            resource_type: Class (or classes) the policy governs.
            abilities: Abilities this policy's rules may name.
            identity: Optional function returning a resource's identity.
                Defaults to the resource's ``id`` attribute.
            is_frozen: Callback from the owning registry; declarations are
                rejected once it returns True.
        """
        if not policy_type:
            raise ConfigurationError("Policy type must be a non-empty string")
        self.policy_type = policy_type
        if resource_type is None:
            self.resource_types: tuple[type, ...] = ()
        elif isinstance(resource_type, type):
            self.resource_types = (resource_type,)
        else:
            self.resource_types = tuple(resource_type)
        self._abilities: list[str] = list(dict.fromkeys(abilities))
        self._identity = identity
        self._is_frozen = is_frozen or (lambda: False)
        self._conditions: dict[str, Condition] = {}
        self._delegations: list[Delegation] = []
        self._rules: list[Rule] = []

    def _check_mutable(self) -> None:
        if self._is_frozen():
            raise RegistryFrozenError(self.policy_type)

    def ability(self, *names: str) -> PolicyBuilder:
        """Declare additional abilities."""
        self._check_mutable()
        for name in names:
            if name not in self._abilities:
                self._abilities.append(name)
        return self

    def condition(
        self,
        name: str,
        predicate: Predicate | None = None,
        scope: ConditionScope = ConditionScope.NORMAL,
        description: str | None = None,
    ) -> Any:
        """
        Declare a named condition.

        Can be called directly or used as a decorator:

            >>> @policy.condition("public_project", scope=ConditionScope.RESOURCE)
            ... def public_project(subject, project, data):
            ...     return project.visibility is Visibility.PUBLIC

        Raises:
            ConfigurationError: If the name is already declared on this policy.
        """
        def register(fn: Predicate) -> Predicate:
            self._check_mutable()
            if name in self._conditions:
                raise ConfigurationError(
                    f"Condition '{name}' is already declared on policy '{self.policy_type}'",
                    policy_type=self.policy_type,
                    details={"condition": name},
                )
            self._conditions[name] = Condition(
                name=name,
                predicate=fn,
                scope=ConditionScope(scope),
                description=description or fn.__doc__,
            )
            return fn

        if predicate is None:
            return register
        register(predicate)
        return self

    def delegate(self, name: str, policy_type: str, accessor: Accessor) -> PolicyBuilder:
        """
        Delegate to the policy of a related resource.

        Rules of the delegated policy run before this policy's own rules,
        so this policy can override them.

        Args:
            name: Identifier of the delegation within this policy.
            policy_type: Policy type of the related resource.
            accessor: ``accessor(resource, data)`` returning the related
                resource, or None when there is none. Called lazily.
        """
        self._check_mutable()
        if any(d.name == name for d in self._delegations):
            raise ConfigurationError(
                f"Delegation '{name}' is already declared on policy '{self.policy_type}'",
                policy_type=self.policy_type,
                details={"delegation": name},
            )
        self._delegations.append(Delegation(name, policy_type, accessor))
        return self

    def rule(self, condition: ConditionExpr | str) -> RuleBuilder:
        """Start a rule; finish it with enable(), prevent() or prevent_all()."""
        self._check_mutable()
        return RuleBuilder(self, as_expr(condition))

    def _add_rule(
        self,
        condition: ConditionExpr,
        abilities: Iterable[str],
        effect: Effect,
        all_abilities: bool = False,
    ) -> PolicyBuilder:
        self._check_mutable()
        ability_set = frozenset(abilities)
        if not ability_set and not all_abilities:
            raise ConfigurationError(
                f"Rule '{condition}' on policy '{self.policy_type}' names no abilities",
                policy_type=self.policy_type,
            )
        self._rules.append(
            Rule(
                condition=condition,
                abilities=ability_set,
                effect=effect,
                position=len(self._rules),
                all_abilities=all_abilities,
            )
        )
        return self

    def build(self) -> PolicyDefinition:
        """
        Validate the declaration and produce an immutable definition.

        Raises:
            UndeclaredConditionError: A rule references an unknown condition.
            UndeclaredAbilityError: A rule names an ability not declared here.
        """
        declared_abilities = frozenset(self._abilities)
        for rule in self._rules:
            for name in sorted(rule.condition.references()):
                if name not in self._conditions:
                    raise UndeclaredConditionError(
                        self.policy_type, name, sorted(self._conditions)
                    )
            for ability in sorted(rule.abilities):
                if ability not in declared_abilities:
                    raise UndeclaredAbilityError(
                        self.policy_type, ability, sorted(declared_abilities)
                    )

        referenced = frozenset().union(*(r.condition.references() for r in self._rules))
        for name in self._conditions:
            if name not in referenced:
                logger.warning(
                    f"Condition '{name}' on policy '{self.policy_type}' is never used by a rule"
                )

        return PolicyDefinition(
            policy_type=self.policy_type,
            resource_types=self.resource_types,
            abilities=declared_abilities,
            conditions=MappingProxyType(dict(self._conditions)),
            rules=tuple(self._rules),
            delegations=tuple(self._delegations),
            identity=self._identity,
        )
