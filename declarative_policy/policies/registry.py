"""
Policy registry for declarative_policy.

This module provides the PolicyRegistry class for declaring policies at
startup, validating them, and looking them up while answering questions.
A registry has two phases:

1. Declaration: ``define()`` / ``@registry.policy(...)`` record conditions,
   delegations and rules through PolicyBuilders.
2. Frozen: ``freeze()`` validates every declaration (undeclared
   conditions or abilities, unknown or cyclic delegations) and turns them
   into immutable PolicyDefinitions. No further changes are accepted.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any, Hashable, cast

from declarative_policy.exceptions import (
    ConfigurationError,
    RegistryFrozenError,
    UnknownResourceTypeError,
)
from declarative_policy.policies.base import PolicyBuilder, PolicyDefinition, Rule
from declarative_policy.policies.delegation import DelegationGraph

logger = logging.getLogger(__name__)


class PolicyRegistry:
    """
    Registry of policy declarations.

    Features:
        - Builder-based declaration (``registry.define("build", ...)``)
        - Decorator-based declaration (``@registry.policy("build", ...)``)
        - Fail-fast validation when frozen
        - Resource-to-policy lookup through the resource's class hierarchy

    Example:
        >>> registry = PolicyRegistry()
        >>>
        >>> @registry.policy("project", resource_type=Project,
        ...                  abilities=["read_project"])
        ... def project_policy(policy):
        ...     policy.condition("public", lambda s, p, data: p.public,
        ...                      scope=ConditionScope.RESOURCE)
        ...     policy.rule("public").enable("read_project")
        >>>
        >>> registry.freeze()
        >>> registry.policy_for(project).policy_type
        'project'

    Thread Safety:
        Declarations and freezing are serialized by an internal lock.
        Once frozen, lookups read immutable state only.
    """

    def __init__(self) -> None:
        self._builders: dict[str, PolicyBuilder] = {}
        self._definitions: dict[str, PolicyDefinition] = {}
        self._resource_types: dict[type, str] = {}
        self._graph: DelegationGraph | None = None
        self._frozen = False
        self._lock = threading.RLock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def define(
        self,
        policy_type: str,
        resource_type: type | Iterable[type] | None = None,
        abilities: Iterable[str] = (),
        identity: Callable[[Any], Hashable] | None = None,
    ) -> PolicyBuilder:
        """
        Start declaring a policy.

        Args:
            policy_type: Identifier of the policy (e.g., "build").
            resource_type: Class (or classes) whose instances the policy governs.
            abilities: Abilities this policy's own rules may name.
            identity: Optional resource identity function (defaults to ``.id``).

        Returns:
            The PolicyBuilder to declare conditions, delegations and rules on.

        Raises:
            ConfigurationError: The policy type or a resource class is already registered.
            RegistryFrozenError: The registry is frozen.
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(policy_type)
            if policy_type in self._builders:
                raise ConfigurationError(
                    f"Policy '{policy_type}' is already defined",
                    policy_type=policy_type,
                )

            builder = PolicyBuilder(
                policy_type,
                resource_type=resource_type,
                abilities=abilities,
                identity=identity,
                is_frozen=lambda: self._frozen,
            )
            for cls in builder.resource_types:
                existing = self._resource_types.get(cls)
                if existing is not None:
                    raise ConfigurationError(
                        f"Resource class '{cls.__name__}' is already governed by "
                        f"policy '{existing}'",
                        policy_type=policy_type,
                        details={"resource_type": cls.__name__, "existing": existing},
                    )
            for cls in builder.resource_types:
                self._resource_types[cls] = policy_type

            self._builders[policy_type] = builder
            logger.debug(f"Defined policy '{policy_type}'")
            return builder

    def policy(
        self,
        policy_type: str,
        resource_type: type | Iterable[type] | None = None,
        abilities: Iterable[str] = (),
        identity: Callable[[Any], Hashable] | None = None,
    ) -> Callable[[Callable[[PolicyBuilder], Any]], Callable[[PolicyBuilder], Any]]:
        """
        Decorator for declaring a policy with a function.

        The decorated function receives the PolicyBuilder and is called
        immediately.

        Example:
            >>> @registry.policy("build", resource_type=Build,
            ...                  abilities=["read_build", "update_build"])
            ... def build_policy(policy):
            ...     policy.delegate("project", "project", project_of_build)
        """
        def decorator(fn: Callable[[PolicyBuilder], Any]) -> Callable[[PolicyBuilder], Any]:
            fn(self.define(policy_type, resource_type, abilities, identity))
            return fn
        return decorator

    def freeze(self) -> None:
        """
        Validate every declaration and make the registry read-only.

        Idempotent. Must be called at startup, before the first question.

        Raises:
            UndeclaredConditionError: A rule references an unknown condition.
            UndeclaredAbilityError: A rule names an ability its policy did not declare.
            CyclicDelegationError: Delegations form a cycle.
            ConfigurationError: A delegation targets an undeclared policy.
        """
        with self._lock:
            if self._frozen:
                return
            definitions = {
                policy_type: builder.build()
                for policy_type, builder in self._builders.items()
            }
            graph = DelegationGraph(definitions)

            self._definitions = definitions
            self._graph = graph
            self._frozen = True
            logger.info(
                f"Policy registry frozen with {len(definitions)} policies: "
                f"{', '.join(sorted(definitions))}"
            )

    def _require_frozen(self) -> None:
        if not self._frozen:
            self.freeze()

    @property
    def graph(self) -> DelegationGraph:
        """The validated delegation graph (freezes the registry if needed)."""
        self._require_frozen()
        return cast(DelegationGraph, self._graph)

    def get_policy(self, policy_type: str) -> PolicyDefinition:
        """
        Get the definition of a policy type.

        Raises:
            UnknownResourceTypeError: No such policy is registered.
        """
        self._require_frozen()
        try:
            return self._definitions[policy_type]
        except KeyError:
            raise UnknownResourceTypeError(policy_type, sorted(self._definitions)) from None

    def policy_for(self, resource: Any, policy_type: str | None = None) -> PolicyDefinition:
        """
        Find the policy governing ``resource``.

        Walks the resource's class hierarchy so subclasses of a registered
        resource class use the parent's policy. An explicit ``policy_type``
        skips the lookup.

        Raises:
            UnknownResourceTypeError: No registered policy governs the resource.
        """
        if policy_type is not None:
            return self.get_policy(policy_type)
        self._require_frozen()
        for cls in type(resource).__mro__:
            found = self._resource_types.get(cls)
            if found is not None:
                return self._definitions[found]
        raise UnknownResourceTypeError(type(resource).__name__, sorted(self._definitions))

    def rules(self, policy_type: str) -> tuple[Rule, ...]:
        """Own rules of a policy type, in declaration order."""
        return self.get_policy(policy_type).rules

    def has_policy(self, policy_type: str) -> bool:
        """Check whether a policy type is declared."""
        with self._lock:
            return policy_type in self._builders

    def list_policies(self) -> dict[str, list[str]]:
        """
        List declared policies.

        Returns:
            Mapping of policy type to the names of the resource classes it governs.

        Example:
            >>> registry.list_policies()
            {'build': ['Build'], 'project': ['Project']}
        """
        with self._lock:
            return {
                policy_type: [cls.__name__ for cls in builder.resource_types]
                for policy_type, builder in self._builders.items()
            }


# Global registry instance for convenience
_global_registry: PolicyRegistry | None = None
_global_registry_lock = threading.Lock()


def get_global_registry() -> PolicyRegistry:
    """
    Get the process-wide policy registry.

    Creates one if it doesn't exist. Declare policies on it at import time
    and freeze it at startup.

    Returns:
        The global PolicyRegistry instance.
    """
    global _global_registry
    if _global_registry is not None:
        return _global_registry
    with _global_registry_lock:
        # Double-check after acquiring lock
        if _global_registry is None:
            _global_registry = PolicyRegistry()
        return _global_registry


def reset_global_registry() -> None:
    """
    Drop the global registry.

    The next ``get_global_registry()`` call creates an empty one.
    Primarily useful for testing.
    """
    global _global_registry
    with _global_registry_lock:
        _global_registry = None
