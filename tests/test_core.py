"""
Tests for core types and the exception hierarchy.
"""

from __future__ import annotations

import pytest

from declarative_policy import __version__
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
from declarative_policy.types import (
    ANONYMOUS,
    ConditionScope,
    Decision,
    Effect,
    RuleOutcome,
    Subject,
    describe_subject,
    subject_key,
)


class TestSubject:
    """Tests for the Subject dataclass."""

    def test_attributes(self):
        """Test attribute access with defaults."""
        subject = Subject(id=1, username="alice", attributes={"team": "ci"})
        assert subject.get_attribute("team") == "ci"
        assert subject.get_attribute("missing", "default") == "default"

    def test_equality_ignores_attributes(self):
        """Test subjects compare and hash by identity fields."""
        a = Subject(id=1, attributes={"x": 1})
        b = Subject(id=1, attributes={"x": 2})
        assert a == b
        assert hash(a) == hash(b)

    def test_to_dict(self):
        """Test dictionary form."""
        assert Subject(id=1, username="alice").to_dict() == {
            "id": 1,
            "username": "alice",
            "admin": False,
            "attributes": {},
        }

    def test_subject_key(self):
        """Test anonymous subjects map to the ANONYMOUS sentinel."""
        assert subject_key(None) is ANONYMOUS
        assert subject_key(Subject(id="u-1")) == "u-1"
        assert subject_key(None) != subject_key(Subject(id=0))

    def test_id_required(self):
        """Test a subject cannot be built without an id."""
        with pytest.raises(ValueError, match="must not be None"):
            Subject(id=None)

    def test_describe_subject(self):
        """Test log labels."""
        assert describe_subject(None) == "anonymous"
        assert describe_subject(Subject(id=7)) == "7"
        assert describe_subject(Subject(id=7, username="bob")) == "bob"


class TestEnums:
    """Tests for Effect and ConditionScope."""

    def test_effect_apply(self):
        """Test the state each effect produces."""
        assert Effect.ENABLE.apply() is True
        assert Effect.PREVENT.apply() is False

    def test_scope_values(self):
        """Test scopes are string-valued."""
        assert ConditionScope("resource") is ConditionScope.RESOURCE
        assert [s.value for s in ConditionScope] == ["normal", "user", "resource", "global"]


class TestDecision:
    """Tests for Decision."""

    def outcome(self, position: int, effect: Effect, matched: bool) -> RuleOutcome:
        return RuleOutcome("build", position, effect, f"c{position}", matched)

    def test_deciding_rule_is_last_match(self):
        """Test the deciding rule is the last matched outcome."""
        decision = Decision(
            allowed=False,
            policy_type="build",
            ability="update_build",
            outcomes=(
                self.outcome(0, Effect.ENABLE, True),
                self.outcome(1, Effect.PREVENT, True),
                self.outcome(2, Effect.ENABLE, False),
            ),
        )
        assert decision.deciding_rule.position == 1
        assert decision.reason == (
            "'update_build' denied by prevent rule #1 of policy 'build' (c1)"
        )

    def test_decided_by_without_trail(self):
        """Test the deciding rule is reported when no outcomes were recorded."""
        decision = Decision(
            allowed=True,
            policy_type="build",
            ability="read_build",
            decided_by=self.outcome(3, Effect.ENABLE, True),
        )
        assert decision.outcomes == ()
        assert decision.deciding_rule.position == 3
        assert decision.reason == "'read_build' allowed by enable rule #3 of policy 'build' (c3)"

    def test_default_deny_reason(self):
        """Test the reason when nothing matched."""
        decision = Decision(False, "build", "read_build", (self.outcome(0, Effect.ENABLE, False),))
        assert decision.deciding_rule is None
        assert decision.reason == "'read_build' denied: no matching rule (default deny)"


class TestExceptions:
    """Tests for the exception hierarchy."""

    @pytest.mark.parametrize(
        "error_class,parent",
        [
            (ConfigurationError, DeclarativePolicyError),
            (UndeclaredConditionError, ConfigurationError),
            (UndeclaredAbilityError, ConfigurationError),
            (CyclicDelegationError, ConfigurationError),
            (RegistryFrozenError, ConfigurationError),
            (EvaluationError, DeclarativePolicyError),
            (ConditionEvaluationError, EvaluationError),
            (DelegationError, EvaluationError),
            (ResourceIdentityError, EvaluationError),
            (AuthorizationError, DeclarativePolicyError),
            (UnknownAbilityError, DeclarativePolicyError),
            (UnknownResourceTypeError, DeclarativePolicyError),
            (ContextClosedError, DeclarativePolicyError),
        ],
    )
    def test_hierarchy(self, error_class, parent):
        """Test each error sits in its family."""
        assert issubclass(error_class, parent)

    def test_str_includes_details(self):
        """Test details are appended to the message."""
        error = DeclarativePolicyError("failed", {"key": "value"})
        assert str(error) == "failed | Details: {'key': 'value'}"
        assert str(DeclarativePolicyError("plain")) == "plain"

    def test_to_dict(self):
        """Test serialization for logs."""
        error = ConditionEvaluationError("project", "developer", "timeout")
        data = error.to_dict()
        assert data["error_type"] == "ConditionEvaluationError"
        assert data["message"] == "Condition 'developer' of policy 'project' failed: timeout"
        assert data["details"] == {
            "policy_type": "project",
            "condition": "developer",
            "reason": "timeout",
        }

    def test_unknown_ability_message(self):
        """Test the known abilities are listed."""
        error = UnknownAbilityError("build", "fly", ["read_build", "update_build"])
        assert error.message == (
            "Ability 'fly' is not declared for policy 'build'. "
            "Known abilities: read_build, update_build"
        )

    def test_authorization_error_defaults(self):
        """Test the default reason."""
        error = AuthorizationError("alice", "update_build", "build")
        assert error.reason == "Authorization denied"
        assert "'alice' cannot 'update_build' on 'build'" in error.message

    def test_cycle_message(self):
        """Test the cycle path is in the message."""
        error = CyclicDelegationError(["build", "project", "build"])
        assert error.message == "Cyclic delegation detected: build -> project -> build"
        assert error.policy_type == "build"


def test_version():
    """Test the package exposes a version."""
    assert __version__ == "0.1.0"
