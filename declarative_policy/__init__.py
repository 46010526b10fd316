"""
declarative_policy: Declarative, delegating authorization policies.

Policies are declared once per resource type as ordered rules over named
conditions. Each rule enables or prevents a set of abilities; the last
matching rule wins and anything not enabled is denied. A policy may
delegate to the policy of a related resource (a build to its project),
whose rules run first so the more specific policy can override them.
Condition results are memoized per authorization context.

Basic Usage:
    >>> from declarative_policy import AbilityResolver, PolicyRegistry, Subject, cond
    >>>
    >>> registry = PolicyRegistry()
    >>> project = registry.define("project", resource_type=Project,
    ...                           abilities=["read_project", "update_project"])
    >>> project.condition("member", lambda s, p, data: data.is_member(p, s))
    >>> project.condition("archived", lambda s, p, data: p.archived,
    ...                   scope=ConditionScope.RESOURCE)
    >>> project.rule("member").enable("read_project", "update_project")
    >>> project.rule("archived").prevent("update_project")
    >>>
    >>> resolver = AbilityResolver(registry)
    >>> with resolver.new_context(store) as ctx:
    ...     resolver.allowed(ctx, Subject(id=42), project_record, "update_project")
"""

__version__ = "0.1.0"

from declarative_policy.context import AuthorizationContext, new_context
from declarative_policy.engines import AbilityResolver

# Exceptions
from declarative_policy.exceptions import (
    AuthorizationError,
    ConditionEvaluationError,
    ConfigurationError,
    ContextClosedError,
    CyclicDelegationError,
    DeclarativePolicyError,
    DelegationError,
    EvaluationError,
    RegistryFrozenError,
    ResourceIdentityError,
    UndeclaredAbilityError,
    UndeclaredConditionError,
    UnknownAbilityError,
    UnknownResourceTypeError,
)

# Observability
from declarative_policy.observability import (
    InMemoryMetricHook,
    LoggingMetricHook,
    MetricHook,
    ObservabilityHooks,
)

# Declarations
from declarative_policy.policies import (
    PolicyBuilder,
    PolicyDefinition,
    PolicyRegistry,
    Rule,
    all_of,
    any_of,
    cond,
    get_global_registry,
    negate,
    reset_global_registry,
)
from declarative_policy.types import (
    ConditionScope,
    Decision,
    Effect,
    RuleOutcome,
    Subject,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "AbilityResolver",
    "AuthorizationContext",
    "new_context",
    # Types
    "Subject",
    "Effect",
    "ConditionScope",
    "Decision",
    "RuleOutcome",
    # Declarations
    "PolicyRegistry",
    "PolicyBuilder",
    "PolicyDefinition",
    "Rule",
    "cond",
    "all_of",
    "any_of",
    "negate",
    "get_global_registry",
    "reset_global_registry",
    # Observability
    "MetricHook",
    "LoggingMetricHook",
    "InMemoryMetricHook",
    "ObservabilityHooks",
    # Exceptions
    "DeclarativePolicyError",
    "ConfigurationError",
    "UndeclaredConditionError",
    "UndeclaredAbilityError",
    "CyclicDelegationError",
    "RegistryFrozenError",
    "EvaluationError",
    "ConditionEvaluationError",
    "DelegationError",
    "ResourceIdentityError",
    "AuthorizationError",
    "UnknownAbilityError",
    "UnknownResourceTypeError",
    "ContextClosedError",
]
