"""
Data access for the CI policies.

The engine never queries storage itself. Conditions and delegation
accessors call a DataAccess collaborator, which an application backs with
its database. Calls must be idempotent for identical arguments; they are
not assumed to be cheap, which is why the context caches condition
results.

InMemoryStore is a complete implementation over dictionaries, used by the
tests and handy for prototyping policies.
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol, runtime_checkable

from declarative_policy.ci.models import (
    AccessLevel,
    Build,
    Namespace,
    Pipeline,
    Project,
    ProtectedBranch,
)

logger = logging.getLogger(__name__)


class DataAccessError(Exception):
    """Base exception for failures of the data-access collaborator."""


class RecordNotFoundError(DataAccessError):
    """Raised when a referenced record does not exist."""

    def __init__(self, record_type: str, record_id: object) -> None:
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f"{record_type} {record_id!r} not found")


@runtime_checkable
class DataAccess(Protocol):
    """
    Protocol for the data-access collaborator used by the CI policies.

    Example:
        >>> class SqlDataAccess:
        ...     def __init__(self, session):
        ...         self.session = session
        ...
        ...     def get_project(self, project_id):
        ...         row = self.session.get(ProjectRow, project_id)
        ...         if row is None:
        ...             raise RecordNotFoundError("project", project_id)
        ...         return row.to_record()
        ...     ...
    """

    def get_namespace(self, namespace_id: int) -> Namespace:
        ...

    def get_project(self, project_id: int) -> Project:
        ...

    def get_pipeline(self, pipeline_id: int) -> Pipeline:
        ...

    def member_access_level(self, project_id: int, user_id: object) -> AccessLevel:
        """Membership level of a user in a project (NO_ACCESS if not a member)."""
        ...

    def protected_branch(self, project_id: int, ref: str) -> ProtectedBranch | None:
        """Protection matching ``ref`` in a project, or None."""
        ...


class InMemoryStore:
    """
    Dictionary-backed DataAccess.

    Namespace owners count as OWNER members of every project in their
    namespace. When several protections match a ref, the first one
    added wins.

    Example:
        >>> store = InMemoryStore()
        >>> ns = store.add_namespace(Namespace(1, "gitlab-org"))
        >>> project = store.add_project(Project(1, "gitlab", namespace_id=1))
        >>> store.add_member(project, user, AccessLevel.DEVELOPER)
        >>> store.protect_branch(ProtectedBranch.no_one_can_push(project.id, "master"))
    """

    def __init__(self) -> None:
        self._namespaces: dict[int, Namespace] = {}
        self._projects: dict[int, Project] = {}
        self._pipelines: dict[int, Pipeline] = {}
        self._builds: dict[int, Build] = {}
        self._members: dict[tuple[int, object], AccessLevel] = {}
        self._protected: list[ProtectedBranch] = []
        self._lock = threading.RLock()

    # Writes

    def add_namespace(self, namespace: Namespace) -> Namespace:
        with self._lock:
            self._namespaces[namespace.id] = namespace
        return namespace

    def add_project(self, project: Project) -> Project:
        with self._lock:
            self._projects[project.id] = project
        return project

    def update_project(self, project: Project) -> Project:
        """Replace a stored project (records are immutable)."""
        with self._lock:
            if project.id not in self._projects:
                raise RecordNotFoundError("project", project.id)
            self._projects[project.id] = project
        return project

    def add_pipeline(self, pipeline: Pipeline) -> Pipeline:
        with self._lock:
            self._pipelines[pipeline.id] = pipeline
        return pipeline

    def add_build(self, build: Build) -> Build:
        with self._lock:
            self._builds[build.id] = build
        return build

    def add_member(self, project: Project | int, user: object, level: AccessLevel) -> None:
        """
        Add (or change) a project member.

        Args:
            project: Project record or id.
            user: A Subject or a raw user id.
            level: Membership level.
        """
        project_id = project if isinstance(project, int) else project.id
        user_id = getattr(user, "id", user)
        with self._lock:
            self._members[(project_id, user_id)] = AccessLevel(level)

    def protect_branch(self, protection: ProtectedBranch) -> ProtectedBranch:
        with self._lock:
            self._protected.append(protection)
        return protection

    # Reads

    def get_namespace(self, namespace_id: int) -> Namespace:
        with self._lock:
            try:
                return self._namespaces[namespace_id]
            except KeyError:
                raise RecordNotFoundError("namespace", namespace_id) from None

    def get_project(self, project_id: int) -> Project:
        with self._lock:
            try:
                return self._projects[project_id]
            except KeyError:
                raise RecordNotFoundError("project", project_id) from None

    def get_pipeline(self, pipeline_id: int) -> Pipeline:
        with self._lock:
            try:
                return self._pipelines[pipeline_id]
            except KeyError:
                raise RecordNotFoundError("pipeline", pipeline_id) from None

    def get_build(self, build_id: int) -> Build:
        with self._lock:
            try:
                return self._builds[build_id]
            except KeyError:
                raise RecordNotFoundError("build", build_id) from None

    def member_access_level(self, project_id: int, user_id: object) -> AccessLevel:
        with self._lock:
            level = self._members.get((project_id, user_id), AccessLevel.NO_ACCESS)
            project = self._projects.get(project_id)
            if project is not None:
                namespace = self._namespaces.get(project.namespace_id)
                if namespace is not None and namespace.owner_id == user_id:
                    level = max(level, AccessLevel.OWNER)
            return level

    def protected_branch(self, project_id: int, ref: str) -> ProtectedBranch | None:
        with self._lock:
            for protection in self._protected:
                if protection.project_id == project_id and protection.matches(ref):
                    return protection
            return None
