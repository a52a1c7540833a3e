"""Backend client contract.

The engine only talks to backends through this interface. Implementations
must be safe to share between concurrently running checks.
"""

from __future__ import annotations

import abc

from orgglue.models import BackendGroup, Identity, Membership, Role


class BackendClient(abc.ABC):
    """Async client for one identity or collaboration backend.

    Every method either returns a typed result or raises a
    :class:`~orgglue.errors.BackendError` subclass.
    """

    name: str = "backend"

    @abc.abstractmethod
    async def list_groups(self) -> list[BackendGroup]:
        ...

    async def list_projects(self) -> list[BackendGroup]:
        """Projects that carry their own members. Backends without projects have none."""
        return []

    @abc.abstractmethod
    async def list_memberships(self, group: BackendGroup) -> list[Membership]:
        ...

    @abc.abstractmethod
    async def list_users(self) -> list[Identity]:
        ...

    @abc.abstractmethod
    async def set_membership(self, group: BackendGroup, user: Identity, role: Role) -> None:
        """Create the membership or update its role. Must succeed if it already matches."""

    @abc.abstractmethod
    async def remove_membership(self, group: BackendGroup, user: Identity) -> None:
        """Delete the membership. Raises ``NotFound`` when it is already gone."""

    async def aclose(self) -> None:
        """Release pooled connections."""
