"""State domain models: identities, groups, roles and grant snapshots.

Everything here is frozen. A snapshot is built once per check execution
and thrown away when the check finishes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator


class Role(str, Enum):
    """Role hierarchy: owner > maintainer > developer > reporter > guest > minimal."""

    minimal = "minimal"
    guest = "guest"
    reporter = "reporter"
    developer = "developer"
    maintainer = "maintainer"
    owner = "owner"

    @property
    def level(self) -> int:
        """Return the forge access level (higher = more privileges)."""
        return _LEVELS[self]

    @classmethod
    def from_level(cls, level: int) -> "Role":
        """Map a numeric access level to the highest role not above it.

        Levels below ``minimal`` still map to ``minimal``.
        """
        best = cls.minimal
        for role in cls:
            if role.level <= level and role.level >= best.level:
                best = role
        return best

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.level < other.level

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.level <= other.level

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.level > other.level

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.level >= other.level


_LEVELS = {
    Role.minimal: 5,
    Role.guest: 10,
    Role.reporter: 20,
    Role.developer: 30,
    Role.maintainer: 40,
    Role.owner: 50,
}


@dataclass(frozen=True)
class Identity:
    """An account as one backend knows it.

    ``id`` is unique within the backend. ``external_uid`` is the linking
    attribute pointing at the identity provider account, when the backend
    records one.
    """

    id: str
    username: str
    email: str = ""
    external_uid: str = ""


class ResourceKind(str, Enum):
    """What a resource path names on the backend."""

    group = "group"
    project = "project"


@dataclass(frozen=True)
class BackendGroup:
    """A group or project addressed by its full path.

    Projects carry members the same way groups do, so both are resources
    grants can be made on.
    """

    id: str
    name: str
    path: str
    kind: ResourceKind = ResourceKind.group

    @property
    def is_project(self) -> bool:
        return self.kind == ResourceKind.project


@dataclass(frozen=True)
class Membership:
    """One member of a group as reported by a backend."""

    identity: Identity
    role: Role = Role.minimal


@dataclass(frozen=True)
class Grant:
    """A single access-control fact: *subject* holds *role* on *resource*."""

    resource: str
    subject: Identity
    role: Role

    @property
    def key(self) -> tuple[str, str]:
        return (self.resource, self.subject.username)


class Snapshot:
    """Immutable set of grants, unique by ``(resource, username)``.

    Grants are kept sorted by key so iteration order never depends on the
    order the backend returned them in.
    """

    __slots__ = ("_grants", "_by_key")

    def __init__(self, grants: Iterable[Grant] = ()) -> None:
        by_key: dict[tuple[str, str], Grant] = {}
        for grant in grants:
            if grant.key in by_key:
                raise ValueError(
                    f"duplicate grant for {grant.subject.username} on {grant.resource}"
                )
            by_key[grant.key] = grant
        self._by_key = by_key
        self._grants = tuple(by_key[key] for key in sorted(by_key))

    @classmethod
    def effective(cls, grants: Iterable[Grant]) -> "Snapshot":
        """Collapse grants reaching the same key through several paths.

        The highest-privilege role wins. When two grants tie on role, the
        subject with the smallest id is kept so the result does not depend
        on input order.
        """
        best: dict[tuple[str, str], Grant] = {}
        for grant in grants:
            current = best.get(grant.key)
            if current is None or _outranks(grant, current):
                best[grant.key] = grant
        return cls(best.values())

    @property
    def grants(self) -> tuple[Grant, ...]:
        return self._grants

    @property
    def resources(self) -> tuple[str, ...]:
        return tuple(sorted({grant.resource for grant in self._grants}))

    def get(self, resource: str, username: str) -> Grant | None:
        return self._by_key.get((resource, username))

    def keys(self) -> set[tuple[str, str]]:
        return set(self._by_key)

    def __iter__(self) -> Iterator[Grant]:
        return iter(self._grants)

    def __len__(self) -> int:
        return len(self._grants)

    def __contains__(self, grant: object) -> bool:
        if not isinstance(grant, Grant):
            return False
        return self._by_key.get(grant.key) == grant

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Snapshot):
            return NotImplemented
        return self._grants == other._grants

    def __hash__(self) -> int:
        return hash(self._grants)

    def __repr__(self) -> str:
        return f"Snapshot({list(self._grants)!r})"


def _outranks(candidate: Grant, current: Grant) -> bool:
    if candidate.role.level != current.role.level:
        return candidate.role.level > current.role.level
    return candidate.subject.id < current.subject.id


# Both sides of a diff share one shape.
DesiredState = Snapshot
ObservedState = Snapshot
