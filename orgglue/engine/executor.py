"""Action executor — apply diff entries to a backend, one at a time.

Every action is idempotent: adding a grant that already exists is an
upsert, removing one that is already gone is skipped. A failed action is
recorded and the remaining actions still run.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Mapping

from orgglue.backends.base import BackendClient
from orgglue.errors import ApplyError, BackendError, NotFound
from orgglue.models import ActionOutcome, BackendGroup, DiffEntry, DiffKind, OutcomeStatus

logger = logging.getLogger(__name__)


class ActionExecutor:
    """Apply entries for one check against one backend.

    Parameters
    ----------
    client:
        Backend the check reconciles.
    groups:
        Resource path to the backend group it names.
    owns:
        Predicate for the check's declared domain. Entries on other
        resources are skipped, never applied.
    """

    def __init__(
        self,
        client: BackendClient,
        groups: Mapping[str, BackendGroup],
        owns: Callable[[str], bool] = lambda resource: True,
    ) -> None:
        self.client = client
        self.groups = groups
        self.owns = owns

    async def apply(self, entry: DiffEntry) -> ActionOutcome:
        if not self.owns(entry.resource):
            return _outcome(entry, OutcomeStatus.skipped, "outside the check's domain")
        group = self.groups.get(entry.resource)
        if group is None:
            return _outcome(entry, OutcomeStatus.skipped, f"unknown group {entry.resource}")

        try:
            if entry.kind == DiffKind.remove:
                await self.client.remove_membership(group, entry.subject)
            else:
                await self.client.set_membership(group, entry.subject, entry.new_role)
        except NotFound as exc:
            if entry.kind == DiffKind.remove:
                return _outcome(entry, OutcomeStatus.skipped, "already absent")
            return self._failed(entry, exc)
        except BackendError as exc:
            return self._failed(entry, exc)
        except Exception as exc:
            logger.exception("%s: unexpected error", entry.describe())
            return self._failed(entry, exc)
        return _outcome(entry, OutcomeStatus.applied)

    async def apply_all(self, entries: Iterable[DiffEntry]) -> tuple[ActionOutcome, ...]:
        outcomes = []
        for entry in entries:
            outcomes.append(await self.apply(entry))
        return tuple(outcomes)

    def _failed(self, entry: DiffEntry, exc: Exception) -> ActionOutcome:
        detail = str(exc) if isinstance(exc, BackendError) else f"{type(exc).__name__}: {exc}"
        error = ApplyError(f"{entry.describe()}: {detail}")
        logger.error("%s", error)
        return ActionOutcome(entry=entry, status=OutcomeStatus.failed, reason=str(error))


def _outcome(entry: DiffEntry, status: OutcomeStatus, reason: str = "") -> ActionOutcome:
    level = logging.DEBUG if status == OutcomeStatus.skipped else logging.INFO
    logger.log(level, "%s [%s] %s", entry.describe(), status.value, reason)
    return ActionOutcome(entry=entry, status=status, reason=reason)
