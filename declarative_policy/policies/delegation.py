"""
Delegation graph for declarative_policy.

Policies may delegate to the policy of a related resource (a build to its
project, a project to its namespace). This module validates the declared
delegation edges once, at freeze time, and answers structural questions
the resolver needs while evaluating:

- which abilities a policy type recognizes (its own plus its delegates'),
- whether following a delegation can affect a given ability at all, so
  related resources are only loaded when a rule actually needs them,
- the flattened, general-to-specific rule order of a policy type.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from declarative_policy.exceptions import ConfigurationError, CyclicDelegationError

if TYPE_CHECKING:
    from declarative_policy.context import AuthorizationContext
    from declarative_policy.policies.base import Delegation, PolicyDefinition, Rule

logger = logging.getLogger(__name__)

_WHITE, _GREY, _BLACK = 0, 1, 2


class DelegationGraph:
    """
    Validated, read-only view over declared delegation edges.

    Built once from the frozen set of policy definitions. Safe for
    unsynchronized concurrent reads.

    Raises:
        ConfigurationError: A delegation targets an undeclared policy type.
        CyclicDelegationError: Delegations form a cycle.
    """

    def __init__(self, definitions: Mapping[str, PolicyDefinition]) -> None:
        self._definitions = definitions
        self._check_targets()
        self._topological = self._check_cycles()

        self._recognized: dict[str, frozenset[str]] = {}
        self._reachable: dict[str, frozenset[str]] = {}
        self._reaches_all: dict[str, bool] = {}
        # delegates come before delegators in topological order
        for policy_type in self._topological:
            definition = definitions[policy_type]
            targets = [d.policy_type for d in definition.delegations]
            self._recognized[policy_type] = definition.abilities.union(
                *(self._recognized[t] for t in targets)
            )
            self._reachable[policy_type] = definition.named_abilities.union(
                *(self._reachable[t] for t in targets)
            )
            self._reaches_all[policy_type] = definition.has_prevent_all or any(
                self._reaches_all[t] for t in targets
            )

        for policy_type, definition in definitions.items():
            unused = definition.abilities - self._reachable[policy_type]
            if unused:
                logger.warning(
                    f"Policy '{policy_type}' declares abilities no rule names: "
                    f"{', '.join(sorted(unused))}"
                )

    def _check_targets(self) -> None:
        for policy_type, definition in self._definitions.items():
            for delegation in definition.delegations:
                if delegation.policy_type not in self._definitions:
                    raise ConfigurationError(
                        f"Policy '{policy_type}' delegates to undeclared policy "
                        f"'{delegation.policy_type}' (delegation '{delegation.name}')",
                        policy_type=policy_type,
                        details={
                            "delegation": delegation.name,
                            "target": delegation.policy_type,
                        },
                    )

    def _check_cycles(self) -> list[str]:
        """Depth-first search over declared edges; returns a topological order."""
        color = {policy_type: _WHITE for policy_type in self._definitions}
        order: list[str] = []

        def visit(policy_type: str, path: list[str]) -> None:
            color[policy_type] = _GREY
            path.append(policy_type)
            for delegation in self._definitions[policy_type].delegations:
                target = delegation.policy_type
                if color[target] == _GREY:
                    cycle = path[path.index(target):] + [target]
                    raise CyclicDelegationError(cycle)
                if color[target] == _WHITE:
                    visit(target, path)
            path.pop()
            color[policy_type] = _BLACK
            order.append(policy_type)

        for policy_type in self._definitions:
            if color[policy_type] == _WHITE:
                visit(policy_type, [])
        return order

    def edges(self, policy_type: str) -> tuple[Delegation, ...]:
        """Declared delegations of a policy type, in declaration order."""
        return self._definitions[policy_type].delegations

    def recognized_abilities(self, policy_type: str) -> frozenset[str]:
        """Abilities that may be requested on resources of this policy type."""
        return self._recognized[policy_type]

    def reaches(self, policy_type: str, ability: str) -> bool:
        """
        Whether any rule of the policy, or of a policy it delegates to
        (transitively), can affect ``ability``.
        """
        return self._reaches_all[policy_type] or ability in self._reachable[policy_type]

    def flattened_rules(self, policy_type: str) -> list[tuple[str, Rule]]:
        """
        Ordered rule sequence of a policy type over declared edges.

        Delegated rules come first, in delegation order and recursively
        flattened, followed by the policy's own rules. A policy reached
        through two paths appears once per path, matching evaluation.
        """
        result: list[tuple[str, Rule]] = []
        definition = self._definitions[policy_type]
        for delegation in definition.delegations:
            result.extend(self.flattened_rules(delegation.policy_type))
        result.extend((policy_type, rule) for rule in definition.rules)
        return result

    def delegates(
        self,
        policy_type: str,
        resource: Any,
        context: AuthorizationContext,
        ability: str | None = None,
    ) -> Iterator[tuple[str, Any]]:
        """
        Resolve the related resources of ``resource``, lazily and in order.

        Yields ``(delegated policy type, related resource)`` pairs. When
        ``ability`` is given, delegations that cannot affect it are skipped
        without calling their accessor. Delegations whose accessor returns
        None are skipped.

        Raises:
            DelegationError: An accessor failed.
        """
        definition = self._definitions[policy_type]
        for delegation in definition.delegations:
            if ability is not None and not self.reaches(delegation.policy_type, ability):
                logger.debug(
                    f"Skipping delegation '{policy_type}.{delegation.name}': "
                    f"cannot affect '{ability}'"
                )
                continue
            related = context.resolve_delegate(definition, resource, delegation)
            if related is None:
                continue
            yield delegation.policy_type, related
