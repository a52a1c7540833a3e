"""Tests for the action executor."""

import asyncio

from orgglue.backends import InMemoryBackend
from orgglue.engine import ActionExecutor, diff
from orgglue.errors import Transport
from orgglue.models import DiffEntry, Grant, Identity, OutcomeStatus, Role


def _backend():
    backend = InMemoryBackend(name="gitlab")
    backend.add_group("org/team")
    backend.add_group("org/other")
    return backend


def _executor(backend, owns=lambda resource: True):
    return ActionExecutor(backend, dict(backend.groups), owns)


def test_add_applies_and_is_idempotent():
    backend = _backend()
    alice = backend.add_user("alice")
    entry = DiffEntry.add(Grant("org/team", alice, Role.developer))
    executor = _executor(backend)

    first = asyncio.run(executor.apply(entry))
    second = asyncio.run(executor.apply(entry))

    assert first.status == OutcomeStatus.applied
    assert second.status == OutcomeStatus.applied
    assert backend.roles("org/team") == {"alice": Role.developer}


def test_remove_of_absent_grant_is_skipped():
    backend = _backend()
    alice = backend.add_user("alice")
    entry = DiffEntry.remove(Grant("org/team", alice, Role.guest))

    outcome = asyncio.run(_executor(backend).apply(entry))

    assert outcome.status == OutcomeStatus.skipped
    assert outcome.reason == "already absent"
    assert not outcome.failed


def test_change_updates_role_in_place():
    backend = _backend()
    alice = backend.add_user("alice")
    backend.add_member("org/team", alice, Role.maintainer)
    entry = DiffEntry.change(
        Grant("org/team", alice, Role.maintainer), Grant("org/team", alice, Role.reporter)
    )

    outcome = asyncio.run(_executor(backend).apply(entry))

    assert outcome.status == OutcomeStatus.applied
    assert backend.roles("org/team") == {"alice": Role.reporter}
    assert [call[0] for call in backend.calls] == ["set_membership"]


def test_failure_does_not_stop_remaining_actions():
    backend = _backend()
    backend.failures["set_membership:bob"] = Transport("HTTP 500", 500)
    users = [backend.add_user(name) for name in ("alice", "bob", "carol")]
    entries = [DiffEntry.add(Grant("org/team", user, Role.guest)) for user in users]

    outcomes = asyncio.run(_executor(backend).apply_all(entries))

    assert [o.status for o in outcomes] == [
        OutcomeStatus.applied,
        OutcomeStatus.failed,
        OutcomeStatus.applied,
    ]
    assert "bob" in outcomes[1].reason
    assert "HTTP 500" in outcomes[1].reason
    assert backend.roles("org/team") == {"alice": Role.guest, "carol": Role.guest}


def test_unexpected_error_is_recorded_and_remaining_actions_run():
    backend = _backend()
    backend.failures["set_membership:bob"] = ValueError("malformed member payload")
    users = [backend.add_user(name) for name in ("alice", "bob", "carol")]
    entries = [DiffEntry.add(Grant("org/team", user, Role.guest)) for user in users]

    outcomes = asyncio.run(_executor(backend).apply_all(entries))

    assert len(outcomes) == 3
    assert [o.status for o in outcomes] == [
        OutcomeStatus.applied,
        OutcomeStatus.failed,
        OutcomeStatus.applied,
    ]
    assert "ValueError: malformed member payload" in outcomes[1].reason
    assert backend.roles("org/team") == {"alice": Role.guest, "carol": Role.guest}


def test_project_members_are_applied_like_group_members():
    backend = _backend()
    backend.add_project("org/infrastructure")
    alice = backend.add_user("alice")
    backend.add_member("org/infrastructure", alice, Role.maintainer)
    entry = DiffEntry.remove(Grant("org/infrastructure", alice, Role.maintainer))

    outcome = asyncio.run(_executor(backend).apply(entry))

    assert outcome.status == OutcomeStatus.applied
    assert backend.roles("org/infrastructure") == {}

def test_entries_outside_the_domain_are_skipped():
    backend = _backend()
    alice = backend.add_user("alice")
    entry = DiffEntry.add(Grant("org/other", alice, Role.owner))

    outcome = asyncio.run(_executor(backend, owns=lambda r: r == "org/team").apply(entry))

    assert outcome.status == OutcomeStatus.skipped
    assert backend.calls == []


def test_unknown_group_is_skipped():
    backend = _backend()
    entry = DiffEntry.add(Grant("org/ghost", Identity(id="1", username="alice"), Role.guest))

    outcome = asyncio.run(_executor(backend).apply(entry))

    assert outcome.status == OutcomeStatus.skipped
    assert "org/ghost" in outcome.reason


def test_apply_then_rediff_is_empty():
    backend = _backend()
    alice = backend.add_user("alice")
    bob = backend.add_user("bob")
    carol = backend.add_user("carol")
    backend.add_member("org/team", bob, Role.owner)
    backend.add_member("org/team", carol, Role.guest)
    desired = [
        Grant("org/team", alice, Role.developer),
        Grant("org/team", bob, Role.maintainer),
    ]

    async def observed():
        group = backend.groups["org/team"]
        members = await backend.list_memberships(group)
        return [Grant(group.path, m.identity, m.role) for m in members]

    entries = diff(desired, asyncio.run(observed()))
    assert len(entries) == 3
    asyncio.run(_executor(backend).apply_all(entries))
    assert diff(desired, asyncio.run(observed())) == ()
