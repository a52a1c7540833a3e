"""Build authenticated backend clients from settings."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import yaml

from orgglue.backends.base import BackendClient
from orgglue.backends.gitlab import GitLabClient
from orgglue.backends.keycloak import KeycloakClient
from orgglue.backends.memory import InMemoryBackend
from orgglue.config import Settings
from orgglue.errors import ConfigError

logger = logging.getLogger(__name__)

SOURCE = "keycloak"
TARGET = "gitlab"


def load_fixture(path: str) -> dict[str, BackendClient]:
    """Load in-memory backends from a YAML fixture with one section per backend."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read fixture {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid fixture {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Fixture {path} must be a mapping of backend name to state")
    try:
        return {
            name: InMemoryBackend.from_dict(name, section or {}) for name, section in data.items()
        }
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ConfigError(f"Invalid fixture {path}: {e}") from e


@asynccontextmanager
async def open_clients(settings: Settings) -> AsyncIterator[dict[str, BackendClient]]:
    """Yield ``{backend name: client}`` and close every client afterwards."""
    if settings.fixture_path:
        logger.info("using offline fixture %s", settings.fixture_path)
        clients = load_fixture(settings.fixture_path)
    else:
        settings.require_backends()
        clients = {}
        clients[SOURCE] = await KeycloakClient.connect(
            settings.keycloak_url,
            settings.keycloak_realm,
            settings.keycloak_client_id,
            settings.keycloak_client_secret,
            retries=settings.http_retries,
        )
        clients[TARGET] = GitLabClient(
            settings.gitlab_url,
            settings.gitlab_token,
            root_group=settings.gitlab_root_group,
            identity_provider=settings.gitlab_identity_provider,
            retries=settings.http_retries,
        )
    try:
        yield clients
    finally:
        for client in clients.values():
            await client.aclose()
