"""
Core type definitions for declarative_policy.

This module defines the fundamental data structures shared by the
registry, the resolver and the authorization context: the subject asking
a question, rule effects, condition scopes and authorization decisions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Hashable


@dataclass(frozen=True)
class Subject:
    """
    The authenticated actor an authorization question is asked for.

    Anonymous requests are represented by ``None`` rather than a Subject;
    every predicate must handle a ``None`` subject.

    Attributes:
        id: Stable identifier for the user (e.g., from your auth system).
        username: Optional display name, used only in logs.
        admin: Whether the user is an instance administrator.
        attributes: Additional custom attributes for condition predicates.

    Example:
        >>> user = Subject(id=42, username="alice")
        >>> admin = Subject(id=1, username="root", admin=True)
    """
    id: Hashable
    username: str | None = None
    admin: bool = False
    attributes: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        if self.id is None:
            raise ValueError("Subject id must not be None; pass None as the subject for anonymous access")

    def get_attribute(self, key: str, default: Any = None) -> Any:
        """Get a subject attribute with optional default."""
        return self.attributes.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "username": self.username,
            "admin": self.admin,
            "attributes": self.attributes,
        }


class _Anonymous:
    """Cache identity of the anonymous subject."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "<anonymous>"


ANONYMOUS = _Anonymous()


def subject_key(subject: Subject | None) -> Hashable:
    """
    Identity of a subject for cache keys.

    Anonymous subjects map to ``ANONYMOUS``, which equals no subject id and
    differs from the None a scope puts in place of a dropped subject.
    """
    if subject is None:
        return ANONYMOUS
    return subject.id


def describe_subject(subject: Subject | None) -> str:
    """Short human-readable label for log lines."""
    if subject is None:
        return "anonymous"
    return subject.username or str(subject.id)


class Effect(str, Enum):
    """What a rule does to an ability's state when its condition holds."""

    ENABLE = "enable"
    PREVENT = "prevent"

    def apply(self) -> bool:
        """Return the ability state this effect produces."""
        return self is Effect.ENABLE


class ConditionScope(str, Enum):
    """
    Which inputs a condition depends on.

    The scope decides the cache key: a USER condition is evaluated once per
    subject no matter how many resources are checked, a RESOURCE condition
    once per resource no matter how many subjects ask.
    """

    NORMAL = "normal"      # subject and resource
    USER = "user"          # subject only
    RESOURCE = "resource"  # resource only
    GLOBAL = "global"      # neither


@dataclass(frozen=True)
class RuleOutcome:
    """
    One rule considered while resolving an ability.

    Attributes:
        policy_type: Policy that declared the rule.
        position: Index of the rule in that policy's declaration order.
        effect: The rule's effect.
        condition: Printable form of the rule's condition expression.
        matched: Whether the condition held (and so the effect applied).
    """
    policy_type: str
    position: int
    effect: Effect
    condition: str
    matched: bool

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "policy_type": self.policy_type,
            "position": self.position,
            "effect": self.effect.value,
            "condition": self.condition,
            "matched": self.matched,
        }


@dataclass(frozen=True)
class Decision:
    """
    Result of resolving one ability.

    Captures the final answer and the ordered trail of rules that were
    considered. The last matched outcome, if any, is the rule that decided.
    ``decided_by`` is set by the resolver even when the trail is not
    recorded.

    Example:
        >>> decision = resolver.decide(ctx, user, build, "update_build")
        >>> decision.allowed
        False
        >>> decision.deciding_rule.condition
        'branch_protected & ~(push_allowed | merge_allowed)'
    """
    allowed: bool
    policy_type: str
    ability: str
    outcomes: tuple[RuleOutcome, ...] = ()
    decided_by: RuleOutcome | None = None

    @property
    def deciding_rule(self) -> RuleOutcome | None:
        """The last rule whose condition held, or None for a default deny."""
        if self.decided_by is not None:
            return self.decided_by
        for outcome in reversed(self.outcomes):
            if outcome.matched:
                return outcome
        return None

    @property
    def reason(self) -> str:
        """Human-readable explanation of the decision."""
        rule = self.deciding_rule
        verdict = "allowed" if self.allowed else "denied"
        if rule is None:
            return f"'{self.ability}' {verdict}: no matching rule (default deny)"
        return (
            f"'{self.ability}' {verdict} by {rule.effect.value} rule "
            f"#{rule.position} of policy '{rule.policy_type}' ({rule.condition})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "allowed": self.allowed,
            "policy_type": self.policy_type,
            "ability": self.ability,
            "reason": self.reason,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }
