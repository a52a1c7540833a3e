"""Immutable domain models for one reconciliation pass."""

from orgglue.models.results import (
    ActionOutcome,
    CheckResult,
    CheckStatus,
    DiffEntry,
    DiffKind,
    OutcomeStatus,
    Report,
)
from orgglue.models.state import (
    BackendGroup,
    DesiredState,
    Grant,
    Identity,
    Membership,
    ObservedState,
    ResourceKind,
    Role,
    Snapshot,
)

__all__ = [
    "ActionOutcome",
    "BackendGroup",
    "CheckResult",
    "CheckStatus",
    "DesiredState",
    "DiffEntry",
    "DiffKind",
    "Grant",
    "Identity",
    "Membership",
    "ObservedState",
    "OutcomeStatus",
    "Report",
    "ResourceKind",
    "Role",
    "Snapshot",
]
