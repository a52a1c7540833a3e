"""Reconciliation engine: diff, checks, executor and runner."""

from orgglue.engine.context import ReconContext, ResourceLocks
from orgglue.engine.diff import diff
from orgglue.engine.executor import ActionExecutor
from orgglue.engine.runner import ReconciliationRunner

__all__ = [
    "ActionExecutor",
    "ReconContext",
    "ReconciliationRunner",
    "ResourceLocks",
    "diff",
]
