"""
Custom exceptions for declarative_policy.

This module defines the exception hierarchy for the engine. Errors fall
into three families:

- Configuration errors, raised while policies are declared or frozen.
  A process must not start with an invalid policy configuration.
- Evaluation errors, raised when a condition or delegation lookup fails
  while answering a question. They are never converted into a decision.
- Call-site errors, raised when a caller asks about an ability or a
  resource type the registry does not know.
"""

from __future__ import annotations

from typing import Any


class DeclarativePolicyError(Exception):
    """
    Base exception for all declarative_policy errors.

    Attributes:
        message: Human-readable error description.
        details: Additional context about the error.

    Example:
        >>> try:
        ...     resolver.allowed(ctx, user, build, "read_build")
        ... except DeclarativePolicyError as e:
        ...     logger.error(f"Authorization failed: {e}")
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# Configuration errors


class ConfigurationError(DeclarativePolicyError):
    """
    Raised when a policy declaration is invalid.

    Attributes:
        policy_type: The policy type being declared, if known.

    Example:
        >>> raise ConfigurationError(
        ...     "Policy 'build' is already defined",
        ...     policy_type="build",
        ... )
    """

    def __init__(
        self,
        message: str,
        policy_type: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.policy_type = policy_type
        merged = {"policy_type": policy_type}
        merged.update(details or {})
        super().__init__(message, merged)


class UndeclaredConditionError(ConfigurationError):
    """Raised when a rule references a condition its policy never declared."""

    def __init__(self, policy_type: str, condition: str, declared: list[str]) -> None:
        self.condition = condition
        message = (
            f"Policy '{policy_type}' has a rule referencing undeclared "
            f"condition '{condition}'"
        )
        super().__init__(
            message,
            policy_type=policy_type,
            details={"condition": condition, "declared_conditions": declared},
        )


class UndeclaredAbilityError(ConfigurationError):
    """Raised when a rule names an ability its policy never declared."""

    def __init__(self, policy_type: str, ability: str, declared: list[str]) -> None:
        self.ability = ability
        message = (
            f"Policy '{policy_type}' has a rule naming undeclared ability '{ability}'"
        )
        super().__init__(
            message,
            policy_type=policy_type,
            details={"ability": ability, "declared_abilities": declared},
        )


class CyclicDelegationError(ConfigurationError):
    """
    Raised when declared delegations form a cycle.

    Attributes:
        cycle: The policy types on the cycle, first element repeated last.

    Example:
        >>> raise CyclicDelegationError(["build", "project", "build"])
    """

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        path = " -> ".join(cycle)
        super().__init__(
            f"Cyclic delegation detected: {path}",
            policy_type=cycle[0] if cycle else None,
            details={"cycle": cycle},
        )


class RegistryFrozenError(ConfigurationError):
    """Raised when a frozen registry is asked to accept new declarations."""

    def __init__(self, policy_type: str | None = None) -> None:
        super().__init__(
            "Policy registry is frozen; policies cannot be changed at runtime",
            policy_type=policy_type,
        )


# Evaluation errors


class EvaluationError(DeclarativePolicyError):
    """
    Raised when a lookup backing a decision fails.

    The original exception is always chained as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        policy_type: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.policy_type = policy_type
        merged = {"policy_type": policy_type}
        merged.update(details or {})
        super().__init__(message, merged)


class ConditionEvaluationError(EvaluationError):
    """
    Raised when a condition predicate fails.

    Attributes:
        condition: Name of the condition that failed.

    Example:
        >>> raise ConditionEvaluationError("project", "developer", "timeout")
    """

    def __init__(self, policy_type: str, condition: str, reason: str) -> None:
        self.condition = condition
        self.reason = reason
        super().__init__(
            f"Condition '{condition}' of policy '{policy_type}' failed: {reason}",
            policy_type=policy_type,
            details={"condition": condition, "reason": reason},
        )


class DelegationError(EvaluationError):
    """Raised when a delegation accessor fails to load the related resource."""

    def __init__(self, policy_type: str, delegation: str, reason: str) -> None:
        self.delegation = delegation
        self.reason = reason
        super().__init__(
            f"Delegation '{delegation}' of policy '{policy_type}' failed: {reason}",
            policy_type=policy_type,
            details={"delegation": delegation, "reason": reason},
        )


class ResourceIdentityError(EvaluationError):
    """
    Raised when a resource's cache identity cannot be determined.

    Happens when the resource has no ``id`` attribute and the policy
    declares no identity function, or when the identity function raises.
    """

    def __init__(self, policy_type: str, resource_type: str, reason: str) -> None:
        self.resource_type = resource_type
        self.reason = reason
        super().__init__(
            f"Cannot identify '{resource_type}' resource for policy '{policy_type}': {reason}",
            policy_type=policy_type,
            details={"resource_type": resource_type, "reason": reason},
        )


# Call-site errors


class AuthorizationError(DeclarativePolicyError):
    """
    Raised by ``AbilityResolver.authorize()`` when an ability is denied.

    Attributes:
        subject: Label of the subject that asked.
        ability: The denied ability.
        policy_type: Policy type of the resource.
        reason: Explanation of the deciding rule (or default deny).

    Example:
        >>> raise AuthorizationError(
        ...     subject="alice",
        ...     ability="update_build",
        ...     policy_type="build",
        ...     reason="'update_build' denied by prevent rule #0 of policy 'build'",
        ... )
    """

    def __init__(
        self,
        subject: str,
        ability: str,
        policy_type: str,
        reason: str | None = None,
    ) -> None:
        self.subject = subject
        self.ability = ability
        self.policy_type = policy_type
        self.reason = reason or "Authorization denied"
        message = (
            f"Authorization denied: '{subject}' cannot '{ability}' "
            f"on '{policy_type}'. Reason: {self.reason}"
        )
        super().__init__(
            message,
            {
                "subject": subject,
                "ability": ability,
                "policy_type": policy_type,
                "reason": self.reason,
            },
        )


class UnknownAbilityError(DeclarativePolicyError):
    """
    Raised when an ability is requested that the policy type does not recognize.

    Attributes:
        policy_type: The resource's policy type.
        ability: The requested ability.
        known_abilities: Abilities recognized for that policy type.
    """

    def __init__(self, policy_type: str, ability: str, known_abilities: list[str]) -> None:
        self.policy_type = policy_type
        self.ability = ability
        self.known_abilities = known_abilities
        message = f"Ability '{ability}' is not declared for policy '{policy_type}'"
        if known_abilities:
            message += f". Known abilities: {', '.join(known_abilities)}"
        super().__init__(
            message,
            {
                "policy_type": policy_type,
                "ability": ability,
                "known_abilities": known_abilities,
            },
        )


class UnknownResourceTypeError(DeclarativePolicyError):
    """
    Raised when no policy is registered for a resource.

    Attributes:
        resource_type: Name of the resource's type, or the requested policy type.
        available_policies: Registered policy types (for debugging).
    """

    def __init__(
        self,
        resource_type: str,
        available_policies: list[str] | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.available_policies = available_policies or []

        message = f"No policy found for resource type '{resource_type}'"
        if available_policies:
            message += f". Available policies: {', '.join(available_policies)}"

        super().__init__(
            message,
            {
                "resource_type": resource_type,
                "available_policies": self.available_policies,
            },
        )


class ContextClosedError(DeclarativePolicyError):
    """Raised when a closed authorization context is used again."""

    def __init__(self, context_id: str) -> None:
        self.context_id = context_id
        super().__init__(
            f"Authorization context '{context_id}' is closed",
            {"context_id": context_id},
        )
