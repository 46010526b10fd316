"""
Tests for AuthorizationContext.
"""

from __future__ import annotations

import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor

import pytest

from declarative_policy import AbilityResolver, AuthorizationContext, Subject, new_context
from declarative_policy.exceptions import ConditionEvaluationError, ContextClosedError
from declarative_policy.policies import PolicyRegistry
from declarative_policy.types import ConditionScope
from tests.records import Document, DocumentStore, Folder


class TestLifetime:
    """Tests for opening and closing contexts."""

    def test_context_manager_closes(self):
        """Test leaving the with block closes the context."""
        with AuthorizationContext() as ctx:
            assert not ctx.closed
        assert ctx.closed

    def test_close_is_idempotent(self):
        """Test closing twice is harmless."""
        ctx = AuthorizationContext()
        ctx.close()
        ctx.close()
        assert ctx.closed

    def test_reentering_closed_context(self):
        """Test a closed context cannot be entered again."""
        ctx = AuthorizationContext(context_id="req-1")
        ctx.close()
        with pytest.raises(ContextClosedError) as exc_info:
            with ctx:
                pass
        assert exc_info.value.context_id == "req-1"

    def test_close_on_exception(self):
        """Test the context closes when the block raises."""
        with pytest.raises(RuntimeError):
            with AuthorizationContext() as ctx:
                raise RuntimeError("handler failed")
        assert ctx.closed

    def test_close_drops_cache(
        self, resolver: AbilityResolver, document_store: DocumentStore,
        owner: Subject, private_doc: Document,
    ):
        """Test closing releases cached conditions."""
        ctx = resolver.new_context(document_store)
        resolver.allowed(ctx, owner, private_doc, "read_document")
        assert len(ctx.cache) > 0
        ctx.close()
        assert len(ctx.cache) == 0

    def test_context_ids(self):
        """Test ids are generated unless given."""
        assert AuthorizationContext().context_id != AuthorizationContext().context_id
        assert AuthorizationContext(context_id="req-42").context_id == "req-42"

    def test_repr(self):
        """Test the repr shows id and state."""
        ctx = AuthorizationContext(context_id="req-7")
        assert repr(ctx) == "AuthorizationContext(id='req-7', open, cached=0)"
        ctx.close()
        assert "closed" in repr(ctx)

    def test_new_context_helper(self):
        """Test the module-level factory passes options through."""
        store = DocumentStore()
        ctx = new_context(store, context_id="req-9", cache_conditions=False)
        assert ctx.data is store
        assert ctx.context_id == "req-9"
        assert ctx.cache_conditions is False

    def test_resolver_context_uses_config(self, registry: PolicyRegistry):
        """Test resolver.new_context applies the resolver configuration."""
        resolver = AbilityResolver(registry, config={"cache_conditions": False, "emit_metrics": False})
        ctx = resolver.new_context(DocumentStore(), context_id="req-3")
        assert ctx.cache_conditions is False
        assert ctx.emit_metrics is False
        assert ctx.context_id == "req-3"


class TestEvaluation:
    """Tests for evaluating conditions through a context."""

    def test_evaluate_condition_caches(self, registry: PolicyRegistry, owner: Subject, calls: Counter):
        """Test evaluate_condition memoizes per key."""
        definition = registry.get_policy("document")
        doc = Document(1, folder_id=1, owner_id=owner.id)
        ctx = AuthorizationContext()

        assert ctx.evaluate_condition(definition, "owner", owner, doc) is True
        assert ctx.evaluate_condition(definition, "owner", owner, doc) is True
        assert calls["owner"] == 1
        assert ctx.stats.hits == 1

    def test_evaluate_after_close(self, registry: PolicyRegistry, owner: Subject):
        """Test evaluating through a closed context raises."""
        definition = registry.get_policy("document")
        ctx = AuthorizationContext()
        ctx.close()
        with pytest.raises(ContextClosedError):
            ctx.evaluate_condition(definition, "owner", owner, Document(1, folder_id=1))

    def test_predicate_sees_context_data(self, owner: Subject):
        """Test predicates receive the context's data collaborator."""
        registry = PolicyRegistry()
        policy = registry.define("document", resource_type=Document, abilities=["read"])
        policy.condition("granted", lambda s, doc, data: doc.id in data["grants"])
        policy.rule("granted").enable("read")
        definition = registry.get_policy("document")

        ctx = AuthorizationContext({"grants": {1}})
        assert ctx.evaluate_condition(definition, "granted", owner, Document(1, folder_id=1))
        assert not ctx.evaluate_condition(definition, "granted", owner, Document(2, folder_id=1))

    def test_policy_errors_pass_through(self, owner: Subject):
        """Test library errors raised by predicates are not wrapped again."""
        registry = PolicyRegistry()
        policy = registry.define("document", resource_type=Document, abilities=["read"])

        def nested(subject, doc, data):
            raise ConditionEvaluationError("folder", "archived", "boom")

        policy.condition("nested", nested).rule("nested").enable("read")
        definition = registry.get_policy("document")

        with pytest.raises(ConditionEvaluationError) as exc_info:
            AuthorizationContext().evaluate_condition(definition, "nested", owner, Document(1, folder_id=1))
        assert exc_info.value.policy_type == "folder"

    def test_anonymous_and_user_results_kept_apart(self, owner: Subject):
        """Test a user-scoped result cached for anonymous is not reused for a user."""
        registry = PolicyRegistry()
        policy = registry.define("document", resource_type=Document, abilities=["read"])
        policy.condition(
            "authenticated",
            lambda subject, doc, data: subject is not None,
            scope=ConditionScope.USER,
        )
        policy.rule("authenticated").enable("read")
        resolver = AbilityResolver(registry)
        doc = Document(1, folder_id=1)
        falsy_id = Subject(id=0)

        with resolver.new_context() as ctx:
            assert resolver.allowed(ctx, None, doc, "read") is False
            assert resolver.allowed(ctx, falsy_id, doc, "read") is True
            assert resolver.allowed(ctx, owner, doc, "read") is True
            assert ctx.stats.misses == 3

    def test_resolve_delegate_memoizes(self, registry: PolicyRegistry, open_folder: Folder):
        """Test related resources are loaded once per resource and delegation."""
        definition = registry.get_policy("document")
        delegation = definition.delegations[0]
        store = DocumentStore(open_folder)
        ctx = AuthorizationContext(store)

        doc = Document(1, folder_id=open_folder.id)
        assert ctx.resolve_delegate(definition, doc, delegation) == open_folder
        assert ctx.resolve_delegate(definition, doc, delegation) == open_folder
        assert store.folder_loads == 1

        other = Document(2, folder_id=open_folder.id)
        ctx.resolve_delegate(definition, other, delegation)
        assert store.folder_loads == 2

    def test_resolve_delegate_memoizes_none(self, registry: PolicyRegistry):
        """Test a missing related resource is memoized too."""
        definition = registry.get_policy("document")
        store = DocumentStore()
        ctx = AuthorizationContext(store)
        doc = Document(1, folder_id=404)
        assert ctx.resolve_delegate(definition, doc, definition.delegations[0]) is None
        assert ctx.resolve_delegate(definition, doc, definition.delegations[0]) is None
        assert store.folder_loads == 1


class TestIsolation:
    """Tests for context isolation and concurrent use."""

    def test_contexts_do_not_share_cache(
        self, resolver: AbilityResolver, document_store: DocumentStore,
        owner: Subject, private_doc: Document, calls: Counter,
    ):
        """Test each context evaluates its own conditions."""
        first = resolver.new_context(document_store)
        second = resolver.new_context(document_store)
        resolver.allowed(first, owner, private_doc, "share_document")
        resolver.allowed(second, owner, private_doc, "share_document")
        assert calls["owner"] == 2

    def test_contexts_on_separate_threads(
        self, resolver: AbilityResolver, document_store: DocumentStore,
        owner: Subject, stranger: Subject, private_doc: Document,
    ):
        """Test independent contexts can be used concurrently."""

        def ask(subject):
            with resolver.new_context(document_store) as ctx:
                return resolver.allowed(ctx, subject, private_doc, "edit_document")

        subjects = [owner, stranger] * 10
        with ThreadPoolExecutor(max_workers=4) as executor:
            results = list(executor.map(ask, subjects))
        assert results == [True, False] * 10

    def test_shared_context_computes_once(self, owner: Subject):
        """Test concurrent questions on one context never duplicate a predicate."""
        evaluations = []

        def slow_member(subject, doc, data):
            evaluations.append(threading.get_ident())
            time.sleep(0.01)
            return True

        registry = PolicyRegistry()
        policy = registry.define("document", resource_type=Document, abilities=["read"])
        policy.condition("member", slow_member).rule("member").enable("read")
        resolver = AbilityResolver(registry)
        doc = Document(1, folder_id=1)
        start = threading.Barrier(6)

        with resolver.new_context() as ctx:

            def ask():
                start.wait()
                return resolver.allowed(ctx, owner, doc, "read")

            with ThreadPoolExecutor(max_workers=6) as executor:
                futures = [executor.submit(ask) for _ in range(6)]
                results = [f.result() for f in futures]

        assert results == [True] * 6
        assert len(evaluations) == 1
