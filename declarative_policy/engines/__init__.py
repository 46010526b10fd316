"""
Resolution engine for declarative_policy.

Example:
    >>> from declarative_policy.engines import AbilityResolver
    >>>
    >>> resolver = AbilityResolver(registry, config={"record_trace": False})
    >>> with resolver.new_context(store) as ctx:
    ...     resolver.allowed(ctx, user, build, "read_build")
"""

from declarative_policy.engines.resolver import AbilityResolver

__all__ = [
    "AbilityResolver",
]
