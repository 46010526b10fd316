"""
Policy definitions for the CI domain.

Delegation edges (general to specific):

    namespace  <-  project  <-  pipeline
                      ^
                      +------  build (through its pipeline)

Project rules grant access from visibility and membership. Pipeline and
build rules come after them and can only take access away: when the ref
is a protected branch the user may neither push to nor merge into, the
update ability is prevented even for developers.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from declarative_policy.ci.models import (
    AccessLevel,
    Build,
    Namespace,
    Pipeline,
    Project,
    Visibility,
)
from declarative_policy.engines import AbilityResolver
from declarative_policy.policies import PolicyBuilder, PolicyRegistry, cond
from declarative_policy.types import ConditionScope, Subject


NAMESPACE_ABILITIES = ("read_namespace", "admin_namespace")
PROJECT_ABILITIES = (
    "read_project",
    "read_pipeline",
    "update_pipeline",
    "read_build",
    "update_build",
    "admin_project",
)
PIPELINE_ABILITIES = ("read_pipeline", "update_pipeline")
BUILD_ABILITIES = ("read_build", "update_build")


def _access_level(subject: Subject | None, project: Project, data: Any) -> AccessLevel:
    if subject is None:
        return AccessLevel.NO_ACCESS
    return AccessLevel(data.member_access_level(project.id, subject.id))


def _member_at_least(level: AccessLevel) -> Callable[[Subject | None, Project, Any], bool]:
    def check(subject: Subject | None, project: Project, data: Any) -> bool:
        return _access_level(subject, project, data) >= level
    check.__doc__ = f"Subject is a project member with {level.name.lower()} access or above"
    return check


def define_namespace_policy(registry: PolicyRegistry) -> PolicyBuilder:
    policy = registry.define("namespace", resource_type=Namespace, abilities=NAMESPACE_ABILITIES)

    @policy.condition("owner")
    def owner(subject: Subject | None, namespace: Namespace, data: Any) -> bool:
        """Subject owns the namespace"""
        return subject is not None and namespace.owner_id == subject.id

    policy.rule("owner").enable("read_namespace", "admin_namespace")
    return policy


def define_project_policy(registry: PolicyRegistry) -> PolicyBuilder:
    policy = registry.define("project", resource_type=Project, abilities=PROJECT_ABILITIES)
    policy.delegate(
        "namespace",
        "namespace",
        lambda project, data: data.get_namespace(project.namespace_id),
    )

    policy.condition(
        "public_project",
        lambda subject, project, data: project.visibility is Visibility.PUBLIC,
        scope=ConditionScope.RESOURCE,
        description="Project is public",
    )
    policy.condition(
        "internal_project",
        lambda subject, project, data: project.visibility is Visibility.INTERNAL,
        scope=ConditionScope.RESOURCE,
        description="Project is internal",
    )
    policy.condition(
        "public_builds",
        lambda subject, project, data: project.public_builds,
        scope=ConditionScope.RESOURCE,
        description="Builds are visible to everyone who can read the project",
    )
    policy.condition(
        "authenticated",
        lambda subject, project, data: subject is not None,
        scope=ConditionScope.USER,
    )
    policy.condition(
        "admin",
        lambda subject, project, data: subject is not None and subject.admin,
        scope=ConditionScope.USER,
        description="Subject is an instance administrator",
    )
    policy.condition("guest", _member_at_least(AccessLevel.GUEST))
    policy.condition("reporter", _member_at_least(AccessLevel.REPORTER))
    policy.condition("developer", _member_at_least(AccessLevel.DEVELOPER))
    policy.condition("master", _member_at_least(AccessLevel.MASTER))

    can_see_project = (
        cond("public_project")
        | (cond("internal_project") & cond("authenticated"))
        | cond("guest")
    )

    policy.rule("public_project").enable("read_project")
    policy.rule(cond("internal_project") & cond("authenticated")).enable("read_project")
    policy.rule("guest").enable("read_project")
    policy.rule(can_see_project & cond("public_builds")).enable("read_build", "read_pipeline")
    policy.rule("reporter").enable("read_build", "read_pipeline")
    policy.rule("developer").enable("update_build", "update_pipeline")
    policy.rule("master").enable("admin_project")
    policy.rule(~cond("public_builds") & ~cond("reporter")).prevent("read_build")
    policy.rule("admin").enable("read_project", "read_build", "read_pipeline")
    return policy


def _declare_branch_conditions(
    policy: PolicyBuilder,
    project_id_of: Callable[[Any, Any], int],
) -> None:
    """Declare branch_protected, push_allowed and merge_allowed for a ref-carrying resource."""

    def protection(resource: Any, data: Any) -> Any:
        return data.protected_branch(project_id_of(resource, data), resource.ref)

    def level(subject: Subject | None, resource: Any, data: Any) -> AccessLevel:
        if subject is None:
            return AccessLevel.NO_ACCESS
        return AccessLevel(data.member_access_level(project_id_of(resource, data), subject.id))

    @policy.condition("branch_protected", scope=ConditionScope.RESOURCE)
    def branch_protected(subject: Subject | None, resource: Any, data: Any) -> bool:
        """Ref is a protected branch"""
        return protection(resource, data) is not None

    @policy.condition("push_allowed")
    def push_allowed(subject: Subject | None, resource: Any, data: Any) -> bool:
        """Subject may push to the protected ref"""
        branch = protection(resource, data)
        return branch is not None and branch.can_push(level(subject, resource, data))

    @policy.condition("merge_allowed")
    def merge_allowed(subject: Subject | None, resource: Any, data: Any) -> bool:
        """Subject may merge into the protected ref"""
        branch = protection(resource, data)
        return branch is not None and branch.can_merge(level(subject, resource, data))


def _pipeline_project_id(pipeline: Pipeline, data: Any) -> int:
    return pipeline.project_id


def _build_project_id(build: Build, data: Any) -> int:
    return data.get_pipeline(build.pipeline_id).project_id


def define_pipeline_policy(registry: PolicyRegistry) -> PolicyBuilder:
    policy = registry.define("pipeline", resource_type=Pipeline, abilities=PIPELINE_ABILITIES)
    policy.delegate(
        "project",
        "project",
        lambda pipeline, data: data.get_project(pipeline.project_id),
    )
    _declare_branch_conditions(policy, _pipeline_project_id)
    policy.rule(
        cond("branch_protected") & ~(cond("push_allowed") | cond("merge_allowed"))
    ).prevent("update_pipeline")
    return policy


def define_build_policy(registry: PolicyRegistry) -> PolicyBuilder:
    policy = registry.define("build", resource_type=Build, abilities=BUILD_ABILITIES)
    policy.delegate(
        "project",
        "project",
        lambda build, data: data.get_project(_build_project_id(build, data)),
    )
    _declare_branch_conditions(policy, _build_project_id)
    policy.rule(
        cond("branch_protected") & ~(cond("push_allowed") | cond("merge_allowed"))
    ).prevent("update_build")
    return policy


def define_ci_policies(registry: PolicyRegistry | None = None) -> PolicyRegistry:
    """
    Declare the namespace, project, pipeline and build policies.

    Args:
        registry: Registry to declare on; a new one is created if omitted.

    Returns:
        The registry, not yet frozen.
    """
    registry = registry or PolicyRegistry()
    define_namespace_policy(registry)
    define_project_policy(registry)
    define_pipeline_policy(registry)
    define_build_policy(registry)
    return registry


def create_ci_resolver(config: dict[str, Any] | None = None) -> AbilityResolver:
    """
    Build a resolver over a fresh, frozen registry of the CI policies.

    Example:
        >>> resolver = create_ci_resolver()
        >>> with resolver.new_context(store) as ctx:
        ...     resolver.allowed(ctx, developer, build, "update_build")
    """
    return AbilityResolver(define_ci_policies(), config=config)
