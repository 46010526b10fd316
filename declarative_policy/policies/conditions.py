"""
Condition declarations and condition expressions.

A condition is a named predicate over ``(subject, resource, data)``.
Rules do not hold predicates directly; they hold an expression tree of
condition references combined with AND, OR and NOT. At evaluation time an
expression reduces to one boolean, with every leaf looked up through the
authorization context so that each predicate runs at most once per key.

Example:
    >>> expr = cond("branch_protected") & ~(cond("push_allowed") | cond("merge_allowed"))
    >>> str(expr)
    'branch_protected & ~(push_allowed | merge_allowed)'
    >>> sorted(expr.references())
    ['branch_protected', 'merge_allowed', 'push_allowed']
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from declarative_policy.types import ConditionScope

# predicate(subject, resource, data) -> bool
Predicate = Callable[[Any, Any, Any], Any]


@dataclass(frozen=True)
class Condition:
    """
    A named predicate declared on a policy.

    Attributes:
        name: Identifier used by rules, unique within the policy.
        predicate: Callable receiving ``(subject, resource, data)``.
        scope: Which inputs the predicate depends on (see ConditionScope).
        description: Optional text shown when decisions are explained.
    """
    name: str
    predicate: Predicate
    scope: ConditionScope = ConditionScope.NORMAL
    description: str | None = None

    def __call__(self, subject: Any, resource: Any, data: Any) -> bool:
        return bool(self.predicate(subject, resource, data))


class ConditionExpr(ABC):
    """
    Base class for condition expressions.

    Supports ``&``, ``|`` and ``~`` so rules read like the boolean
    logic they express.
    """

    @abstractmethod
    def evaluate(self, lookup: Callable[[str], bool]) -> bool:
        """
        Reduce the expression to a boolean.

        Args:
            lookup: Returns the (cached) value of a named condition.
                Operands are consulted left to right and short-circuit.
        """

    @abstractmethod
    def references(self) -> frozenset[str]:
        """Names of every condition this expression mentions."""

    def __and__(self, other: ConditionExpr) -> ConditionExpr:
        return all_of(self, other)

    def __or__(self, other: ConditionExpr) -> ConditionExpr:
        return any_of(self, other)

    def __invert__(self) -> ConditionExpr:
        return negate(self)


@dataclass(frozen=True)
class Ref(ConditionExpr):
    """Reference to a single named condition."""

    name: str

    def evaluate(self, lookup: Callable[[str], bool]) -> bool:
        return lookup(self.name)

    def references(self) -> frozenset[str]:
        return frozenset((self.name,))

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class And(ConditionExpr):
    """All operands must hold."""

    operands: tuple[ConditionExpr, ...]

    def evaluate(self, lookup: Callable[[str], bool]) -> bool:
        return all(operand.evaluate(lookup) for operand in self.operands)

    def references(self) -> frozenset[str]:
        return frozenset().union(*(operand.references() for operand in self.operands))

    def __str__(self) -> str:
        return " & ".join(_parenthesize(operand) for operand in self.operands)


@dataclass(frozen=True)
class Or(ConditionExpr):
    """At least one operand must hold."""

    operands: tuple[ConditionExpr, ...]

    def evaluate(self, lookup: Callable[[str], bool]) -> bool:
        return any(operand.evaluate(lookup) for operand in self.operands)

    def references(self) -> frozenset[str]:
        return frozenset().union(*(operand.references() for operand in self.operands))

    def __str__(self) -> str:
        return " | ".join(_parenthesize(operand) for operand in self.operands)


@dataclass(frozen=True)
class Not(ConditionExpr):
    """The operand must not hold."""

    operand: ConditionExpr

    def evaluate(self, lookup: Callable[[str], bool]) -> bool:
        return not self.operand.evaluate(lookup)

    def references(self) -> frozenset[str]:
        return self.operand.references()

    def __str__(self) -> str:
        return f"~{_parenthesize(self.operand)}"


def _parenthesize(expr: ConditionExpr) -> str:
    if isinstance(expr, (And, Or)):
        return f"({expr})"
    return str(expr)


def cond(name: str) -> Ref:
    """Reference a condition by name."""
    return Ref(name)


def all_of(*exprs: ConditionExpr | str) -> ConditionExpr:
    """
    Combine expressions with AND.

    Strings are treated as condition names. Nested ANDs are flattened so
    ``a & b & c`` prints and evaluates as a single conjunction.
    """
    operands: list[ConditionExpr] = []
    for expr in map(as_expr, exprs):
        if isinstance(expr, And):
            operands.extend(expr.operands)
        else:
            operands.append(expr)
    if not operands:
        raise ValueError("all_of() needs at least one expression")
    if len(operands) == 1:
        return operands[0]
    return And(tuple(operands))


def any_of(*exprs: ConditionExpr | str) -> ConditionExpr:
    """Combine expressions with OR. Strings are treated as condition names."""
    operands: list[ConditionExpr] = []
    for expr in map(as_expr, exprs):
        if isinstance(expr, Or):
            operands.extend(expr.operands)
        else:
            operands.append(expr)
    if not operands:
        raise ValueError("any_of() needs at least one expression")
    if len(operands) == 1:
        return operands[0]
    return Or(tuple(operands))


def negate(expr: ConditionExpr | str) -> ConditionExpr:
    """Negate an expression; double negation collapses."""
    expr = as_expr(expr)
    if isinstance(expr, Not):
        return expr.operand
    return Not(expr)


def as_expr(expr: ConditionExpr | str) -> ConditionExpr:
    if isinstance(expr, ConditionExpr):
        return expr
    if isinstance(expr, str):
        return Ref(expr)
    raise TypeError(f"Expected a condition expression or name, got {type(expr).__name__}")
