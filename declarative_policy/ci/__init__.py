"""
CI authorization policies built on declarative_policy.

Protects namespaces, projects, pipelines and builds. Builds and pipelines
delegate to their project, which delegates to its namespace; protected
branches can take ``update_build`` / ``update_pipeline`` away from users
who could otherwise update them.

Example:
    >>> from declarative_policy.ci import (
    ...     AccessLevel, Build, InMemoryStore, Namespace, Pipeline, Project,
    ...     ProtectedBranch, create_ci_resolver,
    ... )
    >>> store = InMemoryStore()
    >>> store.add_namespace(Namespace(1, "gitlab-org"))
    >>> project = store.add_project(Project(1, "gitlab", namespace_id=1))
    >>> pipeline = store.add_pipeline(Pipeline(1, project.id, ref="master"))
    >>> build = store.add_build(Build(1, pipeline.id, ref="master"))
    >>> store.add_member(project, user, AccessLevel.DEVELOPER)
    >>> store.protect_branch(ProtectedBranch.no_one_can_push(project.id, "master"))
    >>>
    >>> resolver = create_ci_resolver()
    >>> with resolver.new_context(store) as ctx:
    ...     resolver.allowed(ctx, user, build, "update_build")
    False
"""

from declarative_policy.ci.models import (
    AccessLevel,
    Build,
    Namespace,
    Pipeline,
    Project,
    ProtectedBranch,
    Visibility,
)
from declarative_policy.ci.policies import (
    BUILD_ABILITIES,
    NAMESPACE_ABILITIES,
    PIPELINE_ABILITIES,
    PROJECT_ABILITIES,
    create_ci_resolver,
    define_build_policy,
    define_ci_policies,
    define_namespace_policy,
    define_pipeline_policy,
    define_project_policy,
)
from declarative_policy.ci.store import (
    DataAccess,
    DataAccessError,
    InMemoryStore,
    RecordNotFoundError,
)

__all__ = [
    # Records
    "AccessLevel",
    "Visibility",
    "Namespace",
    "Project",
    "Pipeline",
    "Build",
    "ProtectedBranch",
    # Data access
    "DataAccess",
    "DataAccessError",
    "RecordNotFoundError",
    "InMemoryStore",
    # Policies
    "NAMESPACE_ABILITIES",
    "PROJECT_ABILITIES",
    "PIPELINE_ABILITIES",
    "BUILD_ABILITIES",
    "define_namespace_policy",
    "define_project_policy",
    "define_pipeline_policy",
    "define_build_policy",
    "define_ci_policies",
    "create_ci_resolver",
]
