"""
Pytest fixtures for declarative_policy tests.

Provides common fixtures used across all test modules.
"""

from __future__ import annotations

from collections import Counter

import pytest

from declarative_policy import AbilityResolver, PolicyRegistry, Subject
from declarative_policy.ci import (
    AccessLevel,
    Build,
    InMemoryStore,
    Namespace,
    Pipeline,
    Project,
    create_ci_resolver,
)
from declarative_policy.observability import InMemoryMetricHook, ObservabilityHooks
from declarative_policy.policies import reset_global_registry
from tests.records import Document, DocumentStore, Folder, make_document_registry


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset process-wide singletons before and after each test."""
    ObservabilityHooks.reset_instance()
    reset_global_registry()
    yield
    ObservabilityHooks.reset_instance()
    reset_global_registry()


@pytest.fixture
def metrics() -> InMemoryMetricHook:
    """An in-memory metric hook registered with the global hooks."""
    hook = InMemoryMetricHook()
    ObservabilityHooks.get_instance().add_metric_hook(hook)
    return hook


# ============================================================================
# Subject Fixtures
# ============================================================================


@pytest.fixture
def owner() -> Subject:
    """Owner of the documents in the document domain."""
    return Subject(id=1, username="alice")


@pytest.fixture
def stranger() -> Subject:
    """Authenticated user with no relation to anything."""
    return Subject(id=2, username="mallory")


@pytest.fixture
def admin() -> Subject:
    """Instance administrator."""
    return Subject(id=3, username="root", admin=True)


# ============================================================================
# Document Domain Fixtures
# ============================================================================


@pytest.fixture
def calls() -> Counter:
    """Counts predicate invocations by condition name."""
    return Counter()


@pytest.fixture
def registry(calls: Counter) -> PolicyRegistry:
    """Unfrozen registry with the folder and document policies."""
    return make_document_registry(calls)


@pytest.fixture
def resolver(registry: PolicyRegistry) -> AbilityResolver:
    return AbilityResolver(registry)


@pytest.fixture
def open_folder() -> Folder:
    return Folder(id=10)


@pytest.fixture
def archived_folder() -> Folder:
    return Folder(id=20, archived=True)


@pytest.fixture
def document_store(open_folder: Folder, archived_folder: Folder) -> DocumentStore:
    return DocumentStore(open_folder, archived_folder)


@pytest.fixture
def private_doc(open_folder: Folder, owner: Subject) -> Document:
    return Document(id=100, folder_id=open_folder.id, owner_id=owner.id)


@pytest.fixture
def public_doc(open_folder: Folder, owner: Subject) -> Document:
    return Document(id=101, folder_id=open_folder.id, owner_id=owner.id, public=True)


@pytest.fixture
def archived_doc(archived_folder: Folder, owner: Subject) -> Document:
    return Document(id=102, folder_id=archived_folder.id, owner_id=owner.id)


# ============================================================================
# CI Domain Fixtures
# ============================================================================


@pytest.fixture
def ci_resolver() -> AbilityResolver:
    return create_ci_resolver()


@pytest.fixture
def namespace_owner() -> Subject:
    return Subject(id=900, username="group-owner")


@pytest.fixture
def developer() -> Subject:
    return Subject(id=11, username="dev")


@pytest.fixture
def reporter() -> Subject:
    return Subject(id=12, username="reporter")


@pytest.fixture
def guest() -> Subject:
    return Subject(id=13, username="guest")


@pytest.fixture
def maintainer() -> Subject:
    return Subject(id=14, username="maintainer")


@pytest.fixture
def ci_store(
    namespace_owner: Subject,
    developer: Subject,
    reporter: Subject,
    guest: Subject,
    maintainer: Subject,
) -> InMemoryStore:
    """
    One private project with a pipeline and builds on master and a feature branch.

    Members: developer, reporter, guest and maintainer (MASTER). The
    namespace owner is an implicit OWNER. No branches are protected.
    """
    store = InMemoryStore()
    store.add_namespace(Namespace(1, "gitlab-org", owner_id=namespace_owner.id))
    project = store.add_project(Project(1, "gitlab-ce", namespace_id=1))
    store.add_pipeline(Pipeline(1, project.id, ref="master"))
    store.add_pipeline(Pipeline(2, project.id, ref="feature"))
    store.add_build(Build(1, pipeline_id=1, ref="master"))
    store.add_build(Build(2, pipeline_id=2, ref="feature"))
    store.add_member(project, developer, AccessLevel.DEVELOPER)
    store.add_member(project, reporter, AccessLevel.REPORTER)
    store.add_member(project, guest, AccessLevel.GUEST)
    store.add_member(project, maintainer, AccessLevel.MASTER)
    return store


@pytest.fixture
def project(ci_store: InMemoryStore) -> Project:
    return ci_store.get_project(1)


@pytest.fixture
def pipeline(ci_store: InMemoryStore) -> Pipeline:
    return ci_store.get_pipeline(1)


@pytest.fixture
def build(ci_store: InMemoryStore) -> Build:
    return ci_store.get_build(1)


@pytest.fixture
def feature_build(ci_store: InMemoryStore) -> Build:
    return ci_store.get_build(2)
