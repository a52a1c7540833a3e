"""Result models: diff entries, action outcomes, check results and the run report."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from orgglue.models.state import Grant, Identity, Role


class DiffKind(str, Enum):
    add = "add"
    remove = "remove"
    change = "change"


@dataclass(frozen=True)
class DiffEntry:
    """One unit of divergence, keyed by ``(resource, subject.username)``."""

    kind: DiffKind
    resource: str
    subject: Identity
    old_role: Role | None = None
    new_role: Role | None = None

    @classmethod
    def add(cls, grant: Grant) -> "DiffEntry":
        return cls(DiffKind.add, grant.resource, grant.subject, new_role=grant.role)

    @classmethod
    def remove(cls, grant: Grant) -> "DiffEntry":
        return cls(DiffKind.remove, grant.resource, grant.subject, old_role=grant.role)

    @classmethod
    def change(cls, observed: Grant, desired: Grant) -> "DiffEntry":
        return cls(
            DiffKind.change,
            desired.resource,
            desired.subject,
            old_role=observed.role,
            new_role=desired.role,
        )

    @property
    def key(self) -> tuple[str, str]:
        return (self.resource, self.subject.username)

    def describe(self) -> str:
        """Render as one unified-diff style line."""
        name = self.subject.username
        if self.kind == DiffKind.add:
            return f"+ {self.resource} {name} {self.new_role.value}"
        if self.kind == DiffKind.remove:
            return f"- {self.resource} {name} {self.old_role.value}"
        return f"~ {self.resource} {name} {self.old_role.value} -> {self.new_role.value}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "resource": self.resource,
            "subject": self.subject.username,
            "old_role": self.old_role.value if self.old_role else None,
            "new_role": self.new_role.value if self.new_role else None,
        }


class OutcomeStatus(str, Enum):
    applied = "applied"
    skipped = "skipped"
    failed = "failed"


@dataclass(frozen=True)
class ActionOutcome:
    """What happened when one diff entry was applied."""

    entry: DiffEntry
    status: OutcomeStatus
    reason: str = ""

    @property
    def failed(self) -> bool:
        return self.status == OutcomeStatus.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry": self.entry.to_dict(),
            "status": self.status.value,
            "reason": self.reason,
        }


class CheckStatus(str, Enum):
    """Check outcome. Any failure outranks divergence, which outranks clean."""

    clean = "clean"
    diverged = "diverged"
    action_failed = "action_failed"
    fetch_failed = "fetch_failed"

    @property
    def severity(self) -> int:
        return {
            CheckStatus.clean: 0,
            CheckStatus.diverged: 1,
            CheckStatus.action_failed: 2,
            CheckStatus.fetch_failed: 2,
        }[self]

    @property
    def is_failure(self) -> bool:
        return self.severity >= 2


@dataclass(frozen=True)
class CheckResult:
    """Everything one check produced during a run."""

    name: str
    status: CheckStatus
    check_type: str = ""
    entries: tuple[DiffEntry, ...] = ()
    outcomes: tuple[ActionOutcome, ...] = ()
    error: str | None = None
    notes: tuple[str, ...] = ()

    @property
    def additions(self) -> int:
        return sum(1 for e in self.entries if e.kind == DiffKind.add)

    @property
    def changes(self) -> int:
        return sum(1 for e in self.entries if e.kind == DiffKind.change)

    @property
    def removals(self) -> int:
        return sum(1 for e in self.entries if e.kind == DiffKind.remove)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "check_type": self.check_type,
            "status": self.status.value,
            "error": self.error,
            "entries": [entry.to_dict() for entry in self.entries],
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class Report:
    """Ordered check results for one full run."""

    results: tuple[CheckResult, ...] = field(default_factory=tuple)
    dry_run: bool = True

    @classmethod
    def from_results(cls, results: Iterable[CheckResult], dry_run: bool = True) -> "Report":
        ordered = tuple(sorted(results, key=lambda r: r.name))
        return cls(results=ordered, dry_run=dry_run)

    @property
    def status(self) -> CheckStatus:
        """Worst status over all results; an empty report is clean."""
        worst = CheckStatus.clean
        for result in self.results:
            if result.status.severity > worst.severity:
                worst = result.status
        return worst

    @property
    def exit_code(self) -> int:
        return self.status.severity

    def get(self, name: str) -> CheckResult | None:
        for result in self.results:
            if result.name == name:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "exit_code": self.exit_code,
            "dry_run": self.dry_run,
            "summary": {
                "total": len(self.results),
                "add": sum(r.additions for r in self.results),
                "change": sum(r.changes for r in self.results),
                "destroy": sum(r.removals for r in self.results),
            },
            "checks": [result.to_dict() for result in self.results],
        }
