"""Check base class and the registry of check types.

A check fetches one slice of state from the backends, derives the desired
grants for it, diffs, and (outside dry-run) applies the corrections. The
set of check types is closed: only the classes registered in
``orgglue.engine.checks`` exist, and a policy can only instantiate them.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Type

from orgglue.backends.factory import SOURCE, TARGET
from orgglue.engine.context import ReconContext
from orgglue.engine.diff import diff
from orgglue.engine.executor import ActionExecutor
from orgglue.errors import BackendError, ConfigError, FetchError
from orgglue.models import (
    BackendGroup,
    CheckResult,
    CheckStatus,
    Identity,
    Role,
    Snapshot,
)

logger = logging.getLogger(__name__)

COMMON_KEYS = frozenset({"source_backend", "target_backend"})


@dataclass(frozen=True)
class FetchedState:
    """Everything a check learned from the backends in its fetch phase."""

    desired: Snapshot
    observed: Snapshot
    groups: Mapping[str, BackendGroup] = field(default_factory=dict)
    notes: tuple[str, ...] = ()


class CheckRegistry:
    """Registry of available check types."""

    def __init__(self) -> None:
        self._by_type: dict[str, Type["Check"]] = {}

    def register(self, check_cls: Type["Check"]) -> None:
        self._by_type[check_cls.type_name()] = check_cls

    def get(self, check_type: str) -> Type["Check"] | None:
        return self._by_type.get(check_type.lower())

    def all(self) -> dict[str, Type["Check"]]:
        return dict(self._by_type)


registry = CheckRegistry()


class Check(abc.ABC):
    """Base class for reconciliation checks.

    Subclasses set ``TYPE`` and the config ``KEYS`` they accept, implement
    :meth:`fetch` and :meth:`owns`, and may set ``MUTATES = False`` to stay
    report-only even outside dry-run.
    """

    TYPE = ""
    MUTATES = True
    KEYS: frozenset[str] = frozenset()

    def __init__(self, name: str, cfg: dict[str, Any] | None = None) -> None:
        self.cfg = cfg or {}
        self.name = str(name or self.type_name()).strip()
        unknown = sorted(set(self.cfg) - COMMON_KEYS - self.KEYS)
        if unknown:
            expected = ", ".join(sorted(COMMON_KEYS | self.KEYS))
            raise ConfigError(
                f"check '{self.name}': unknown key(s) {', '.join(unknown)} (expected {expected})"
            )
        self.source = str(self.cfg.get("source_backend", SOURCE))
        self.target = str(self.cfg.get("target_backend", TARGET))

    @classmethod
    def type_name(cls) -> str:
        return cls.TYPE or cls.__name__.lower()

    @property
    def mutates(self) -> bool:
        return self.MUTATES

    @property
    def backends(self) -> tuple[str, ...]:
        return (self.source, self.target)

    def describe(self) -> str:
        """One line summary used by ``orgglue checks``."""
        return self.type_name()

    @abc.abstractmethod
    def owns(self, resource: str) -> bool:
        """Return True if *resource* is inside this check's declared domain."""

    @abc.abstractmethod
    async def fetch(self, context: ReconContext) -> FetchedState:
        ...

    async def run(self, context: ReconContext) -> CheckResult:
        try:
            state = await asyncio.wait_for(self.fetch(context), timeout=context.fetch_timeout)
        except asyncio.TimeoutError:
            return self._fetch_failed(f"fetch timed out after {context.fetch_timeout:g}s")
        except (BackendError, FetchError) as exc:
            return self._fetch_failed(f"{type(exc).__name__}: {exc}")

        entries = diff(state.desired, state.observed)
        outcomes = ()
        if entries and self.mutates and not context.dry_run:
            executor = ActionExecutor(context.client(self.target), state.groups, self.owns)
            owned = [entry.resource for entry in entries if self.owns(entry.resource)]
            async with context.locks.hold(owned):
                outcomes = await executor.apply_all(entries)

        if not entries:
            status = CheckStatus.clean
        elif any(outcome.failed for outcome in outcomes):
            status = CheckStatus.action_failed
        else:
            status = CheckStatus.diverged
        logger.info("%s: %d difference(s), %s", self.name, len(entries), status.value)
        return CheckResult(
            name=self.name,
            check_type=self.type_name(),
            status=status,
            entries=entries,
            outcomes=outcomes,
            notes=state.notes,
        )

    def _fetch_failed(self, error: str) -> CheckResult:
        logger.error("%s: %s", self.name, error)
        return CheckResult(
            name=self.name,
            check_type=self.type_name(),
            status=CheckStatus.fetch_failed,
            error=error,
        )

    # -- config helpers ------------------------------------------------------

    def _require(self, key: str) -> Any:
        value = self.cfg.get(key)
        if value in (None, "", [], {}):
            raise ConfigError(f"check '{self.name}': '{key}' is required")
        return value

    def _role(self, value: Any, key: str) -> Role:
        try:
            return Role(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(role.value for role in Role)
            raise ConfigError(
                f"check '{self.name}': invalid {key} '{value}' (expected one of {choices})"
            ) from None


# ---------------------------------------------------------------------------
# Shared fetch helpers
# ---------------------------------------------------------------------------


def in_tree(path: str, root: str) -> bool:
    """Return True if *path* is *root* or one of its descendants."""
    root = root.rstrip("/")
    return path == root or path.startswith(root + "/")


def select_groups(
    groups: Iterable[BackendGroup], path: str, recursive: bool, backend: str
) -> list[BackendGroup]:
    """Return the group at *path* (and its descendants when *recursive*)."""
    selected = [
        group
        for group in groups
        if group.path == path or (recursive and in_tree(group.path, path))
    ]
    if not any(group.path == path for group in selected):
        raise FetchError(f"{backend} group {path} not found")
    return sorted(selected, key=lambda g: g.path)


def link_identities(
    sources: Iterable[Identity], targets: Iterable[Identity], backend: str = "target"
) -> dict[str, Identity]:
    """Map source ids to target accounts.

    A target account links to a source account only when its
    ``external_uid`` equals the source username or id. Accounts without a
    linking attribute never link, whatever their username. Raises
    ``FetchError`` when more than one target account claims the same
    source account.
    """
    by_external: dict[str, list[Identity]] = {}
    for target in targets:
        if target.external_uid:
            by_external.setdefault(target.external_uid, []).append(target)

    links: dict[str, Identity] = {}
    for source in sources:
        matches = {
            account.id: account
            for key in dict.fromkeys((source.username, source.id))
            for account in by_external.get(key, ())
        }
        if len(matches) > 1:
            raise FetchError(f"{len(matches)} {backend} accounts link to {source.username}")
        if matches:
            links[source.id] = next(iter(matches.values()))
    return links
