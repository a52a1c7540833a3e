"""Tests for the domain models: roles, snapshots, results and reports."""

import pytest

from orgglue.models import (
    ActionOutcome,
    CheckResult,
    CheckStatus,
    DiffEntry,
    Grant,
    Identity,
    OutcomeStatus,
    Report,
    Role,
    Snapshot,
)


def _user(name, id=None):
    return Identity(id=id or name, username=name)


# --- Role Tests ---


def test_role_ordering():
    assert Role.minimal < Role.guest < Role.reporter < Role.developer < Role.maintainer < Role.owner
    assert max(Role.reporter, Role.maintainer) == Role.maintainer
    assert min(Role.owner, Role.developer) == Role.developer


def test_role_levels_match_forge_access_levels():
    assert [role.level for role in Role] == [5, 10, 20, 30, 40, 50]


def test_role_from_level():
    assert Role.from_level(30) == Role.developer
    assert Role.from_level(35) == Role.developer
    assert Role.from_level(50) == Role.owner
    assert Role.from_level(60) == Role.owner
    assert Role.from_level(0) == Role.minimal


# --- Snapshot Tests ---


def test_snapshot_rejects_duplicate_keys():
    alice = _user("alice")
    with pytest.raises(ValueError):
        Snapshot([Grant("team", alice, Role.guest), Grant("team", alice, Role.owner)])


def test_snapshot_is_sorted_by_resource_then_username():
    grants = [
        Grant("b", _user("zed"), Role.guest),
        Grant("a", _user("yann"), Role.guest),
        Grant("b", _user("amy"), Role.guest),
    ]
    snapshot = Snapshot(grants)
    assert [g.key for g in snapshot] == [("a", "yann"), ("b", "amy"), ("b", "zed")]
    assert snapshot == Snapshot(reversed(grants))
    assert snapshot.resources == ("a", "b")


def test_snapshot_lookup():
    grant = Grant("team", _user("alice"), Role.developer)
    snapshot = Snapshot([grant])
    assert snapshot.get("team", "alice") == grant
    assert snapshot.get("team", "bob") is None
    assert grant in snapshot
    assert Grant("team", _user("alice"), Role.owner) not in snapshot
    assert len(snapshot) == 1


def test_effective_highest_role_wins():
    alice = _user("alice")
    snapshot = Snapshot.effective(
        [
            Grant("team", alice, Role.reporter),
            Grant("team", alice, Role.maintainer),
            Grant("team", alice, Role.developer),
        ]
    )
    assert len(snapshot) == 1
    assert snapshot.get("team", "alice").role == Role.maintainer


def test_effective_tie_keeps_smallest_id():
    first = Grant("team", _user("alice", id="2"), Role.developer)
    second = Grant("team", _user("alice", id="1"), Role.developer)
    assert Snapshot.effective([first, second]) == Snapshot.effective([second, first])
    assert Snapshot.effective([first, second]).get("team", "alice").subject.id == "1"


# --- Report Tests ---


def test_check_status_severity():
    assert CheckStatus.clean.severity == 0
    assert CheckStatus.diverged.severity == 1
    assert CheckStatus.action_failed.severity == 2
    assert CheckStatus.fetch_failed.severity == 2
    assert CheckStatus.fetch_failed.is_failure
    assert not CheckStatus.diverged.is_failure


def test_report_orders_by_name_and_takes_worst_status():
    report = Report.from_results(
        [
            CheckResult(name="zeta", status=CheckStatus.diverged),
            CheckResult(name="alpha", status=CheckStatus.clean),
            CheckResult(name="mid", status=CheckStatus.fetch_failed, error="boom"),
        ]
    )
    assert [r.name for r in report.results] == ["alpha", "mid", "zeta"]
    assert report.status == CheckStatus.fetch_failed
    assert report.exit_code == 2
    assert report.get("mid").error == "boom"
    assert report.get("missing") is None


def test_empty_report_is_clean():
    report = Report.from_results([])
    assert report.status == CheckStatus.clean
    assert report.exit_code == 0


def test_report_to_dict_counts_plan():
    alice = _user("alice")
    add = DiffEntry.add(Grant("team", alice, Role.developer))
    remove = DiffEntry.remove(Grant("other", alice, Role.guest))
    result = CheckResult(
        name="team",
        status=CheckStatus.action_failed,
        entries=(add, remove),
        outcomes=(
            ActionOutcome(add, OutcomeStatus.applied),
            ActionOutcome(remove, OutcomeStatus.failed, "HTTP 500"),
        ),
    )
    data = Report.from_results([result], dry_run=False).to_dict()
    assert data["summary"] == {"total": 1, "add": 1, "change": 0, "destroy": 1}
    assert data["exit_code"] == 2
    assert data["dry_run"] is False
    assert data["checks"][0]["outcomes"][1] == {
        "entry": remove.to_dict(),
        "status": "failed",
        "reason": "HTTP 500",
    }
