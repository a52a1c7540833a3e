"""Diff engine — compute ordered divergence between desired and observed grants."""

from __future__ import annotations

from typing import Iterable

from orgglue.models import DiffEntry, Grant, Snapshot


def diff(desired: Snapshot | Iterable[Grant], observed: Snapshot | Iterable[Grant]) -> tuple[DiffEntry, ...]:
    """Return the entries that turn *observed* into *desired*.

    Keys only in *desired* become ADD, keys only in *observed* become
    REMOVE, keys on both sides with different roles become CHANGE. Output
    is sorted by ``(resource, username)``.

    Plain iterables of desired grants are resolved with
    :meth:`Snapshot.effective` first, so a subject reaching a resource
    through several paths is compared with its highest role.
    """
    if not isinstance(desired, Snapshot):
        desired = Snapshot.effective(desired)
    if not isinstance(observed, Snapshot):
        observed = Snapshot(observed)

    entries: list[DiffEntry] = []
    for resource, username in sorted(desired.keys() | observed.keys()):
        want = desired.get(resource, username)
        have = observed.get(resource, username)
        if have is None:
            entries.append(DiffEntry.add(want))
        elif want is None:
            entries.append(DiffEntry.remove(have))
        elif want.role != have.role:
            # act on the observed account, it is the one the backend knows
            entries.append(DiffEntry.change(have, Grant(resource, have.subject, want.role)))
    return tuple(entries)
