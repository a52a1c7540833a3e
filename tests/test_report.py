"""Tests for report rendering."""

import json

from rich.console import Console

from orgglue.engine.report import plan_line, print_report, render_json, render_text
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
)


def _report():
    alice = Identity(id="1", username="alice")
    bob = Identity(id="2", username="bob")
    add = DiffEntry.add(Grant("org/team", alice, Role.developer))
    change = DiffEntry.change(
        Grant("org/team", bob, Role.owner), Grant("org/team", bob, Role.reporter)
    )
    return Report.from_results(
        [
            CheckResult(name="up-to-date", status=CheckStatus.clean, check_type="group_members"),
            CheckResult(
                name="team",
                status=CheckStatus.action_failed,
                check_type="group_members",
                entries=(add, change),
                outcomes=(
                    ActionOutcome(add, OutcomeStatus.applied),
                    ActionOutcome(change, OutcomeStatus.failed, "HTTP 500"),
                ),
                notes=("carol has no linked gitlab account",),
            ),
            CheckResult(
                name="broken",
                status=CheckStatus.fetch_failed,
                check_type="max_access",
                error="Unauthorized: HTTP 401",
            ),
        ],
        dry_run=False,
    )


def test_render_text():
    text = render_text(_report())
    assert text.splitlines() == [
        "== broken (max_access): fetch_failed",
        "  error: Unauthorized: HTTP 401",
        "",
        "== team (group_members): action_failed",
        "  + org/team alice developer",
        "  ~ org/team bob owner -> reporter",
        "  [applied] + org/team alice developer",
        "  [failed] ~ org/team bob owner -> reporter (HTTP 500)",
        "  note: carol has no linked gitlab account",
        "  Plan: 1 to add, 1 to change, 0 to destroy.",
        "",
        "== up-to-date (group_members): clean",
        "  No changes. up-to-date is up-to-date.",
        "",
        "3 check(s) [apply], worst status: fetch_failed (exit 2)",
    ]


def test_plan_line_for_clean_check():
    result = CheckResult(name="staff", status=CheckStatus.clean)
    assert plan_line(result) == "No changes. staff is up-to-date."


def test_render_json():
    data = json.loads(render_json(_report()))
    assert data["status"] == "fetch_failed"
    assert [c["name"] for c in data["checks"]] == ["broken", "team", "up-to-date"]
    assert data["summary"]["change"] == 1


def test_print_report():
    console = Console(record=True, width=120)
    print_report(console, _report())
    text = console.export_text()
    assert "+ org/team alice developer" in text
    assert "[failed]" in text
    assert "worst status: fetch_failed" in text
