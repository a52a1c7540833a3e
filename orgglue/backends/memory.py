"""In-memory backend.

Holds groups, projects, users and memberships in dictionaries. Used for offline
runs against a fixture and throughout the test suite. Failures and latency
can be injected per method.
"""

from __future__ import annotations

import asyncio
from typing import Iterable

from orgglue.backends.base import BackendClient
from orgglue.errors import NotFound
from orgglue.models import BackendGroup, Identity, Membership, ResourceKind, Role


class InMemoryBackend(BackendClient):
    """Dictionary-backed :class:`BackendClient`.

    Parameters
    ----------
    name:
        Backend name used in logs and error messages.
    groups:
        Groups and projects known to the backend.
    users:
        Accounts known to the backend.
    failures:
        Method name (or ``method:argument``, e.g. ``set_membership:alice``)
        to the error raised when that call is made.
    latency:
        Seconds every call sleeps before answering.
    """

    def __init__(
        self,
        name: str = "memory",
        groups: Iterable[BackendGroup] = (),
        users: Iterable[Identity] = (),
        failures: dict[str, Exception] | None = None,
        latency: float = 0.0,
    ) -> None:
        self.name = name
        self.groups: dict[str, BackendGroup] = {g.path: g for g in groups}
        self.users: dict[str, Identity] = {u.id: u for u in users}
        self.members: dict[str, dict[str, Role]] = {g.id: {} for g in self.groups.values()}
        self.failures = dict(failures or {})
        self.latency = latency
        self.calls: list[tuple[str, ...]] = []

    # -- fixture helpers -----------------------------------------------------

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "InMemoryBackend":
        """Build a backend from a fixture mapping.

        The mapping has a ``users`` list (``username`` plus optional ``id``,
        ``email``, ``external_uid``) and a ``groups`` mapping of group path
        to ``{username: role}``. An optional ``projects`` mapping has the
        same shape::

            users:
              - username: alice
                external_uid: alice
            groups:
              org/team: {alice: developer}
            projects:
              org/infrastructure: {}
        """
        backend = cls(name=name)
        by_name: dict[str, Identity] = {}
        for entry in data.get("users") or []:
            user = backend.add_user(
                str(entry["username"]),
                id=str(entry["id"]) if "id" in entry else None,
                email=entry.get("email", ""),
                external_uid=str(entry.get("external_uid", "")),
            )
            by_name[user.username] = user
        sections = ((ResourceKind.group, "groups"), (ResourceKind.project, "projects"))
        for kind, section in sections:
            for path, members in (data.get(section) or {}).items():
                backend.add_group(path, kind=kind)
                for username, role in (members or {}).items():
                    user = by_name.get(username) or backend.add_user(username)
                    by_name[username] = user
                    backend.add_member(path, user, Role(role or Role.minimal.value))
        return backend

    def add_group(
        self, path: str, id: str | None = None, kind: ResourceKind = ResourceKind.group
    ) -> BackendGroup:
        group = BackendGroup(id=id or path, name=path.rsplit("/", 1)[-1], path=path, kind=kind)
        self.groups[path] = group
        self.members.setdefault(group.id, {})
        return group

    def add_project(self, path: str, id: str | None = None) -> BackendGroup:
        return self.add_group(path, id=id, kind=ResourceKind.project)

    def add_user(
        self, username: str, id: str | None = None, email: str = "", external_uid: str = ""
    ) -> Identity:
        user = Identity(id=id or username, username=username, email=email, external_uid=external_uid)
        self.users[user.id] = user
        return user

    def add_member(self, path: str, user: Identity, role: Role = Role.minimal) -> None:
        group = self.groups[path] if path in self.groups else self.add_group(path)
        self.users.setdefault(user.id, user)
        self.members[group.id][user.id] = role

    def roles(self, path: str) -> dict[str, Role]:
        """Return ``username -> role`` for one group or project."""
        group = self.groups[path]
        return {self.users[uid].username: role for uid, role in self.members[group.id].items()}

    # -- contract ------------------------------------------------------------

    async def list_groups(self) -> list[BackendGroup]:
        await self._enter("list_groups")
        return self._sorted(ResourceKind.group)

    async def list_projects(self) -> list[BackendGroup]:
        await self._enter("list_projects")
        return self._sorted(ResourceKind.project)

    def _sorted(self, kind: ResourceKind) -> list[BackendGroup]:
        return sorted((g for g in self.groups.values() if g.kind == kind), key=lambda g: g.path)

    async def list_memberships(self, group: BackendGroup) -> list[Membership]:
        await self._enter("list_memberships", group.path)
        if group.id not in self.members:
            raise NotFound(f"{self.name}: group {group.path} not found", 404)
        return [
            Membership(identity=self.users[uid], role=role)
            for uid, role in self.members[group.id].items()
        ]

    async def list_users(self) -> list[Identity]:
        await self._enter("list_users")
        return list(self.users.values())

    async def set_membership(self, group: BackendGroup, user: Identity, role: Role) -> None:
        await self._enter("set_membership", group.path, user.username, role.value)
        if group.id not in self.members:
            raise NotFound(f"{self.name}: group {group.path} not found", 404)
        self.users.setdefault(user.id, user)
        self.members[group.id][user.id] = role

    async def remove_membership(self, group: BackendGroup, user: Identity) -> None:
        await self._enter("remove_membership", group.path, user.username)
        members = self.members.get(group.id, {})
        if user.id not in members:
            raise NotFound(f"{self.name}: {user.username} is not a member of {group.path}", 404)
        del members[user.id]

    async def _enter(self, method: str, *args: str) -> None:
        self.calls.append((method, *args))
        if self.latency:
            await asyncio.sleep(self.latency)
        for key in (method, *(f"{method}:{arg}" for arg in args)):
            error = self.failures.get(key)
            if error is not None:
                raise error
