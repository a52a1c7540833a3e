"""Execution context handed to every check."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import AsyncIterator, Iterable, Mapping

from orgglue.backends.base import BackendClient
from orgglue.config import DEFAULT_FETCH_TIMEOUT
from orgglue.errors import ConfigError


class ResourceLocks:
    """One lock per resource so two checks never mutate a resource at once."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, resource: str) -> asyncio.Lock:
        if resource not in self._locks:
            self._locks[resource] = asyncio.Lock()
        return self._locks[resource]

    @asynccontextmanager
    async def hold(self, resources: Iterable[str]) -> AsyncIterator[None]:
        """Hold every lock in *resources*, acquired in sorted order."""
        locks = [self._lock(resource) for resource in sorted(set(resources))]
        acquired: list[asyncio.Lock] = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


@dataclass(frozen=True)
class ReconContext:
    """Immutable per-run context: authenticated clients and run mode."""

    clients: Mapping[str, BackendClient]
    dry_run: bool = True
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    bots: frozenset[str] = frozenset()
    locks: ResourceLocks = field(default_factory=ResourceLocks, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "clients", MappingProxyType(dict(self.clients)))
        object.__setattr__(self, "bots", frozenset(self.bots))

    def client(self, name: str) -> BackendClient:
        try:
            return self.clients[name]
        except KeyError:
            raise ConfigError(f"No client configured for backend '{name}'") from None

    def is_bot(self, username: str) -> bool:
        return username in self.bots
