"""State source adapters for the identity provider and the forge."""

from orgglue.backends.base import BackendClient
from orgglue.backends.gitlab import GitLabClient
from orgglue.backends.keycloak import KeycloakClient
from orgglue.backends.memory import InMemoryBackend

__all__ = [
    "BackendClient",
    "GitLabClient",
    "InMemoryBackend",
    "KeycloakClient",
]
