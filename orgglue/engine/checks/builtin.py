"""Built-in check types.

``group_members`` keeps one target group or project equal to what the
policy derives from source groups. ``max_access`` caps roles across a
target tree. ``identity_link`` reports source accounts that have no
linked target account.
"""

from __future__ import annotations

import asyncio
from typing import Any

from orgglue.engine.checks.base import (
    Check,
    FetchedState,
    in_tree,
    link_identities,
    select_groups,
)
from orgglue.engine.context import ReconContext
from orgglue.errors import ConfigError, FetchError
from orgglue.models import BackendGroup, Grant, Identity, Role, Snapshot

SOURCE_KEYS = frozenset({"group", "role", "recursive"})


class GroupMembersCheck(Check):
    """Keep one target group or project equal to source group members plus direct grants.

    Config keys: ``resource`` (target group or project path), ``sources``
    (list of ``{group, role, recursive}``) and ``users``
    (``{username: role}``). Every other non-bot member of the resource is
    removed. A check without sources or users empties its resource, so it
    has to say ``allow_empty: true``.
    """

    TYPE = "group_members"
    KEYS = frozenset({"resource", "sources", "users", "allow_empty"})

    def __init__(self, name: str, cfg: dict[str, Any] | None = None) -> None:
        super().__init__(name, cfg)
        self.resource = str(self._require("resource")).strip("/")
        self.sources: list[tuple[str, Role, bool]] = []
        for entry in self.cfg.get("sources") or []:
            if not isinstance(entry, dict) or not entry.get("group"):
                raise ConfigError(f"check '{self.name}': every source needs a 'group'")
            unknown = sorted(set(entry) - SOURCE_KEYS)
            if unknown:
                raise ConfigError(
                    f"check '{self.name}': unknown source key(s) {', '.join(unknown)}"
                )
            self.sources.append(
                (
                    str(entry["group"]),
                    self._role(entry.get("role", Role.minimal.value), "role"),
                    bool(entry.get("recursive", False)),
                )
            )
        users = self.cfg.get("users") or {}
        if not isinstance(users, dict):
            raise ConfigError(f"check '{self.name}': 'users' must map username to role")
        self.users = {str(u): self._role(r, "role") for u, r in users.items()}
        self.allow_empty = self.cfg.get("allow_empty", False) is True
        if not self.sources and not self.users and not self.allow_empty:
            raise ConfigError(
                f"check '{self.name}': no 'sources' or 'users' would remove every member "
                f"of {self.resource}; set 'allow_empty: true' if that is intended"
            )

    def describe(self) -> str:
        return f"{self.type_name()} -> {self.resource}"

    def owns(self, resource: str) -> bool:
        return resource == self.resource

    async def fetch(self, context: ReconContext) -> FetchedState:
        source = context.client(self.source)
        target = context.client(self.target)

        (
            source_groups,
            target_groups,
            target_projects,
            source_users,
            target_users,
        ) = await asyncio.gather(
            source.list_groups(),
            target.list_groups(),
            target.list_projects(),
            source.list_users(),
            target.list_users(),
        )
        group = next(
            (g for g in [*target_groups, *target_projects] if g.path == self.resource), None
        )
        if group is None:
            raise FetchError(f"{self.target} group or project {self.resource} not found")

        plan: list[tuple[BackendGroup, Role]] = []
        for path, role, recursive in self.sources:
            for match in select_groups(source_groups, path, recursive, self.source):
                plan.append((match, role))

        results = await asyncio.gather(
            target.list_memberships(group),
            *(source.list_memberships(g) for g, _ in plan),
        )
        observed_members, source_members = results[0], results[1:]

        candidates: list[tuple[Identity, Role]] = []
        for (_, role), members in zip(plan, source_members):
            candidates.extend((member.identity, role) for member in members)
        by_username = {user.username: user for user in source_users}
        notes: list[str] = []
        for username, role in sorted(self.users.items()):
            user = by_username.get(username)
            if user is None:
                notes.append(f"{username} has no {self.source} account")
                continue
            candidates.append((user, role))

        links = link_identities(
            (identity for identity, _ in candidates), target_users, self.target
        )
        desired: list[Grant] = []
        unlinked: set[str] = set()
        for identity, role in candidates:
            if context.is_bot(identity.username):
                continue
            account = links.get(identity.id)
            if account is None:
                unlinked.add(identity.username)
                continue
            if context.is_bot(account.username):
                continue
            desired.append(Grant(self.resource, account, role))
        notes.extend(f"{username} has no linked {self.target} account" for username in sorted(unlinked))

        observed = [
            Grant(self.resource, member.identity, member.role)
            for member in observed_members
            if not context.is_bot(member.identity.username)
        ]
        return FetchedState(
            desired=Snapshot.effective(desired),
            observed=Snapshot(observed),
            groups={self.resource: group},
            notes=tuple(notes),
        )


class MaxAccessCheck(Check):
    """Cap the role of every member in a target group tree.

    The tree covers the groups and projects under ``root``. Members that
    are not in any ``allowed`` source group are removed; allowed members
    above ``max_role`` are lowered to it. Paths listed in ``exclude`` (and
    their descendants) are left alone.
    """

    TYPE = "max_access"
    KEYS = frozenset({"root", "max_role", "allowed", "exclude"})

    def __init__(self, name: str, cfg: dict[str, Any] | None = None) -> None:
        super().__init__(name, cfg)
        self.root = str(self._require("root")).strip("/")
        self.max_role = self._role(self._require("max_role"), "max_role")
        self.allowed = [str(path) for path in self._require("allowed")]
        self.exclude = [str(path).strip("/") for path in self.cfg.get("exclude") or []]

    def describe(self) -> str:
        return f"{self.type_name()} -> {self.root}/** <= {self.max_role.value}"

    def owns(self, resource: str) -> bool:
        if not in_tree(resource, self.root):
            return False
        return not any(in_tree(resource, path) for path in self.exclude)

    async def fetch(self, context: ReconContext) -> FetchedState:
        source = context.client(self.source)
        target = context.client(self.target)

        source_groups, target_groups, target_projects, target_users = await asyncio.gather(
            source.list_groups(),
            target.list_groups(),
            target.list_projects(),
            target.list_users(),
        )
        if not any(g.path == self.root for g in target_groups):
            raise FetchError(f"{self.target} group {self.root} not found")
        allowed_groups: dict[str, BackendGroup] = {}
        for path in self.allowed:
            for match in select_groups(source_groups, path, True, self.source):
                allowed_groups[match.path] = match
        managed = sorted(
            (g for g in [*target_groups, *target_projects] if self.owns(g.path)),
            key=lambda g: g.path,
        )

        results = await asyncio.gather(
            *(source.list_memberships(g) for g in allowed_groups.values()),
            *(target.list_memberships(g) for g in managed),
        )
        source_members = results[: len(allowed_groups)]
        target_members = results[len(allowed_groups):]

        people = [member.identity for members in source_members for member in members]
        links = link_identities(people, target_users, self.target)
        allowed = {account.id for account in links.values()}

        desired: list[Grant] = []
        observed: list[Grant] = []
        for group, members in zip(managed, target_members):
            for member in members:
                if context.is_bot(member.identity.username):
                    continue
                observed.append(Grant(group.path, member.identity, member.role))
                if member.identity.id in allowed:
                    role = min(member.role, self.max_role)
                    desired.append(Grant(group.path, member.identity, role))
        return FetchedState(
            desired=Snapshot(desired),
            observed=Snapshot(observed),
            groups={g.path: g for g in managed},
        )


class IdentityLinkCheck(Check):
    """Report source accounts without a linked target account.

    Report-only. Missing links show up as additions on the ``resource``
    pseudo-resource (``users`` by default); linked accounts whose
    usernames differ are reported as notes.
    """

    TYPE = "identity_link"
    MUTATES = False
    KEYS = frozenset({"sources", "resource"})

    def __init__(self, name: str, cfg: dict[str, Any] | None = None) -> None:
        super().__init__(name, cfg)
        self.source_groups = [str(path) for path in self._require("sources")]
        self.resource = str(self.cfg.get("resource", "users"))

    def describe(self) -> str:
        return f"{self.type_name()} ({self.source} -> {self.target}, report only)"

    def owns(self, resource: str) -> bool:
        return False

    async def fetch(self, context: ReconContext) -> FetchedState:
        source = context.client(self.source)
        target = context.client(self.target)

        source_groups, target_users = await asyncio.gather(
            source.list_groups(), target.list_users()
        )
        selected: dict[str, BackendGroup] = {}
        for path in self.source_groups:
            for match in select_groups(source_groups, path, True, self.source):
                selected[match.path] = match
        memberships = await asyncio.gather(*(source.list_memberships(g) for g in selected.values()))

        people: dict[str, Identity] = {}
        for members in memberships:
            for member in members:
                if not context.is_bot(member.identity.username):
                    people[member.identity.id] = member.identity
        links = link_identities(people.values(), target_users, self.target)

        desired: list[Grant] = []
        observed: list[Grant] = []
        notes: list[str] = []
        for person in sorted(people.values(), key=lambda p: p.username):
            subject = Identity(id=person.id, username=person.username)
            desired.append(Grant(self.resource, subject, Role.minimal))
            account = links.get(person.id)
            if account is None:
                continue
            observed.append(Grant(self.resource, subject, Role.minimal))
            if account.username != person.username:
                notes.append(
                    f"username mismatch between {self.source} and {self.target}: "
                    f"{person.username} vs {account.username}"
                )
        return FetchedState(
            desired=Snapshot(desired),
            observed=Snapshot(observed),
            notes=tuple(notes),
        )
