"""Tests for the command line interface, against fixture backends."""

import json
import tempfile
from pathlib import Path

import yaml
from click.testing import CliRunner

from orgglue import __version__
from orgglue.cli import main

POLICY = {
    "name": "example",
    "bots": ["archbot"],
    "checks": [
        {
            "name": "staff",
            "type": "group_members",
            "resource": "org/staff",
            "sources": [{"group": "/Staff", "role": "developer"}],
        },
        {
            "name": "links",
            "type": "identity_link",
            "sources": ["/Staff"],
        },
    ],
}


def _fixture(staff):
    return {
        "keycloak": {"groups": {"/Staff": {"alice": None}}},
        "gitlab": {
            "users": [
                {"username": "alice", "id": 11, "external_uid": "alice"},
                {"username": "archbot", "id": 99},
            ],
            "groups": {"org/staff": staff},
        },
    }


def _invoke(args, staff=None, env=None, policy_data=POLICY):
    """Run the CLI with a policy and fixture written to a temp directory."""
    staff = {"mallory": "guest", "archbot": "owner"} if staff is None else staff
    with tempfile.TemporaryDirectory() as tmpdir:
        policy = Path(tmpdir) / "orgglue.yaml"
        policy.write_text(yaml.dump(policy_data))
        fixture = Path(tmpdir) / "state.yaml"
        fixture.write_text(yaml.dump(_fixture(staff)))
        output = Path(tmpdir) / "report.json"
        args = [a.format(fixture=fixture, output=output) for a in args]

        result = CliRunner().invoke(main, ["--policy", str(policy), *args], env=env)
        data = json.loads(output.read_text()) if output.exists() else None
    return result, data


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_plan_reports_divergence():
    result, data = _invoke(["plan", "--fixture", "{fixture}", "--output-json", "{output}"])

    assert result.exit_code == 1, result.output
    assert "diverged" in result.output
    staff = next(c for c in data["checks"] if c["name"] == "staff")
    assert [(e["kind"], e["subject"]) for e in staff["entries"]] == [
        ("add", "alice"),
        ("remove", "mallory"),
    ]
    assert staff["outcomes"] == []
    assert data["dry_run"] is True


def test_run_applies_corrections():
    result, data = _invoke(["run", "--fixture", "{fixture}", "--output-json", "{output}"])

    assert result.exit_code == 1, result.output
    staff = next(c for c in data["checks"] if c["name"] == "staff")
    assert [o["status"] for o in staff["outcomes"]] == ["applied", "applied"]
    assert data["dry_run"] is False


def test_run_clean_state_exits_zero():
    result, data = _invoke(
        ["run", "staff", "links", "--fixture", "{fixture}", "--output-json", "{output}"],
        staff={"alice": "developer"},
    )

    assert result.exit_code == 0, result.output
    assert data["status"] == "clean"
    assert [c["name"] for c in data["checks"]] == ["links", "staff"]


def test_fetch_failure_exits_two():
    broken = dict(POLICY)
    broken["checks"] = [dict(POLICY["checks"][0], resource="org/missing"), POLICY["checks"][1]]

    result, data = _invoke(
        ["run", "--fixture", "{fixture}", "--output-json", "{output}"],
        policy_data=broken,
    )

    assert result.exit_code == 2, result.output
    assert data["checks"][0]["status"] == "clean"
    assert data["checks"][1]["status"] == "fetch_failed"
    assert "org/missing" in data["checks"][1]["error"]


def test_plan_prints_plain_lines_when_not_a_terminal():
    result, _ = _invoke(["plan", "staff", "--fixture", "{fixture}"])

    assert result.exit_code == 1, result.output
    lines = result.output.splitlines()
    assert "== staff (group_members): diverged" in lines
    assert "  + org/staff alice developer" in lines
    assert "  - org/staff mallory guest" in lines


def test_format_option_selects_the_renderer():
    text, _ = _invoke(["plan", "staff", "--fixture", "{fixture}", "--format", "text"])
    rich_output, _ = _invoke(["plan", "staff", "--fixture", "{fixture}", "--format", "rich"])

    assert text.exit_code == rich_output.exit_code == 1
    assert "  + org/staff alice developer" in text.output.splitlines()
    assert "== staff" not in rich_output.output
    assert "alice developer" in rich_output.output


def test_unwritable_json_report_exits_two():
    result, _ = _invoke(
        ["plan", "--fixture", "{fixture}", "--output-json", "{fixture}.d/report.json"]
    )

    assert result.exit_code == 2, result.output
    assert "Cannot write JSON report" in result.output
    assert result.exception is None or isinstance(result.exception, SystemExit)


def test_missing_credentials_exit_two_before_any_request():
    result, _ = _invoke(
        ["plan"],
        env={"ORGGLUE_FIXTURE": None, "ORGGLUE_GITLAB_TOKEN": None},
    )

    assert result.exit_code == 2
    assert "ORGGLUE_GITLAB_TOKEN" in result.output


def test_unknown_check_name():
    result, _ = _invoke(["plan", "nope", "--fixture", "{fixture}"])
    assert result.exit_code == 2
    assert "nope" in result.output


def test_invalid_concurrency():
    result, _ = _invoke(["run", "--concurrency", "0", "--fixture", "{fixture}"])
    assert result.exit_code == 2


def test_checks_lists_policy():
    result, _ = _invoke(["checks"])
    assert result.exit_code == 0, result.output
    assert "staff" in result.output
    assert "links" in result.output


def test_completions():
    result = CliRunner().invoke(main, ["completions", "bash"])
    assert result.exit_code == 0
    assert "_ORGGLUE_COMPLETE" in result.output
