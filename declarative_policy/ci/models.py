"""
Plain records for the CI domain.

These are the resources the CI policies protect. They are deliberately
dumb: the policies load whatever they need through the data-access
collaborator rather than following object references.
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass
from enum import Enum, IntEnum


class AccessLevel(IntEnum):
    """Project membership levels. Higher values include lower ones."""

    NO_ACCESS = 0
    GUEST = 10
    REPORTER = 20
    DEVELOPER = 30
    MASTER = 40
    OWNER = 50


class Visibility(str, Enum):
    PRIVATE = "private"
    INTERNAL = "internal"
    PUBLIC = "public"


@dataclass(frozen=True)
class Namespace:
    id: int
    path: str
    owner_id: int | None = None


@dataclass(frozen=True)
class Project:
    """
    A project.

    Attributes:
        public_builds: Whether users below reporter may see builds and
            pipelines of a project they can otherwise read.
    """
    id: int
    name: str
    namespace_id: int
    visibility: Visibility = Visibility.PRIVATE
    public_builds: bool = True


@dataclass(frozen=True)
class Pipeline:
    id: int
    project_id: int
    ref: str = "master"


@dataclass(frozen=True)
class Build:
    id: int
    pipeline_id: int
    ref: str = "master"
    name: str = "test"


@dataclass(frozen=True)
class ProtectedBranch:
    """
    Branch protection for a project.

    ``NO_ACCESS`` as a level means no one may push (or merge). A ``*`` in
    ``name`` matches any sequence of characters.
    """
    project_id: int
    name: str
    push_access_level: AccessLevel = AccessLevel.MASTER
    merge_access_level: AccessLevel = AccessLevel.MASTER

    def matches(self, ref: str) -> bool:
        if "*" in self.name:
            return fnmatch.fnmatchcase(ref, self.name)
        return ref == self.name

    def can_push(self, level: AccessLevel) -> bool:
        return _grants(self.push_access_level, level)

    def can_merge(self, level: AccessLevel) -> bool:
        return _grants(self.merge_access_level, level)

    @classmethod
    def no_one_can_push(cls, project_id: int, name: str) -> ProtectedBranch:
        return cls(project_id, name, push_access_level=AccessLevel.NO_ACCESS)

    @classmethod
    def developers_can_push(cls, project_id: int, name: str) -> ProtectedBranch:
        return cls(project_id, name, push_access_level=AccessLevel.DEVELOPER)

    @classmethod
    def developers_can_merge(cls, project_id: int, name: str) -> ProtectedBranch:
        return cls(project_id, name, merge_access_level=AccessLevel.DEVELOPER)


def _grants(required: AccessLevel, level: AccessLevel) -> bool:
    return required != AccessLevel.NO_ACCESS and level >= required
