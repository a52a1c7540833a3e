"""Render a :class:`Report` as plain text or on a rich console."""

from __future__ import annotations

import json
from typing import Iterator

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from orgglue.models import CheckResult, CheckStatus, DiffKind, OutcomeStatus, Report

STATUS_STYLE = {
    CheckStatus.clean: "green",
    CheckStatus.diverged: "yellow",
    CheckStatus.action_failed: "red",
    CheckStatus.fetch_failed: "red",
}

KIND_STYLE = {
    DiffKind.add: "green",
    DiffKind.remove: "red",
    DiffKind.change: "yellow",
}

OUTCOME_STYLE = {
    OutcomeStatus.applied: "green",
    OutcomeStatus.skipped: "dim",
    OutcomeStatus.failed: "red",
}


def plan_line(result: CheckResult) -> str:
    if not result.entries:
        return f"No changes. {result.name} is up-to-date."
    return (
        f"Plan: {result.additions} to add, {result.changes} to change, "
        f"{result.removals} to destroy."
    )


def summary_line(report: Report) -> str:
    mode = "dry-run" if report.dry_run else "apply"
    return (
        f"{len(report.results)} check(s) [{mode}], "
        f"worst status: {report.status.value} (exit {report.exit_code})"
    )


def _check_lines(result: CheckResult) -> Iterator[str]:
    yield f"== {result.name} ({result.check_type}): {result.status.value}"
    if result.error:
        yield f"  error: {result.error}"
        return
    for entry in result.entries:
        yield f"  {entry.describe()}"
    for outcome in result.outcomes:
        reason = f" ({outcome.reason})" if outcome.reason else ""
        yield f"  [{outcome.status.value}] {outcome.entry.describe()}{reason}"
    for note in result.notes:
        yield f"  note: {note}"
    yield f"  {plan_line(result)}"


def render_text(report: Report) -> str:
    """Render *report* as plain text, one block per check in name order."""
    lines: list[str] = []
    for result in report.results:
        lines.extend(_check_lines(result))
        lines.append("")
    lines.append(summary_line(report))
    return "\n".join(lines) + "\n"


def render_json(report: Report) -> str:
    return json.dumps(report.to_dict(), indent=2, sort_keys=True) + "\n"


def print_report(console: Console, report: Report) -> None:
    """Print *report* with colours: one panel per check and a summary line."""
    for result in report.results:
        style = STATUS_STYLE[result.status]
        body: list[str] = []
        if result.error:
            body.append(f"[red]error:[/] {escape(result.error)}")
        else:
            for entry in result.entries:
                body.append(f"[{KIND_STYLE[entry.kind]}]{escape(entry.describe())}[/]")
            for outcome in result.outcomes:
                reason = f" ({escape(outcome.reason)})" if outcome.reason else ""
                body.append(
                    f"[{OUTCOME_STYLE[outcome.status]}]\\[{outcome.status.value}][/] "
                    f"{escape(outcome.entry.describe())}{reason}"
                )
            for note in result.notes:
                body.append(f"[dim]note:[/] {escape(note)}")
            body.append(f"[bold]{escape(plan_line(result))}[/]")
        console.print(
            Panel(
                "\n".join(body),
                title=f"{escape(result.name)} [{style}]{result.status.value}[/]",
                subtitle=result.check_type,
                border_style=style,
            )
        )

    style = STATUS_STYLE[report.status]
    console.print(f"[{style}]{escape(summary_line(report))}[/]")
