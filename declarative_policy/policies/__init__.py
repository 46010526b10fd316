"""
Policy declarations for declarative_policy.

Quick Start:
    >>> from declarative_policy.policies import PolicyRegistry, cond
    >>> from declarative_policy.types import ConditionScope
    >>>
    >>> registry = PolicyRegistry()
    >>> project = registry.define("project", resource_type=Project,
    ...                           abilities=["read_project", "read_build"])
    >>> project.condition("public", lambda s, p, data: p.public,
    ...                   scope=ConditionScope.RESOURCE)
    >>> project.condition("member", lambda s, p, data: data.is_member(p, s))
    >>> project.rule(cond("public") | cond("member")).enable("read_project")
    >>> registry.freeze()
"""

from declarative_policy.policies.base import (
    Delegation,
    PolicyBuilder,
    PolicyDefinition,
    Rule,
    RuleBuilder,
)
from declarative_policy.policies.conditions import (
    And,
    Condition,
    ConditionExpr,
    Not,
    Or,
    Ref,
    all_of,
    any_of,
    as_expr,
    cond,
    negate,
)
from declarative_policy.policies.delegation import DelegationGraph
from declarative_policy.policies.registry import (
    PolicyRegistry,
    get_global_registry,
    reset_global_registry,
)

__all__ = [
    # Declarations
    "PolicyBuilder",
    "RuleBuilder",
    "PolicyDefinition",
    "Rule",
    "Delegation",
    # Conditions
    "Condition",
    "ConditionExpr",
    "Ref",
    "And",
    "Or",
    "Not",
    "cond",
    "all_of",
    "any_of",
    "negate",
    "as_expr",
    # Registry
    "PolicyRegistry",
    "DelegationGraph",
    "get_global_registry",
    "reset_global_registry",
]
