"""Environment configuration.

Settings are read once at startup into a frozen :class:`Settings` value.
Nothing else in the package reads the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from orgglue.errors import ConfigError

ENV_PREFIX = "ORGGLUE_"

DEFAULT_CONCURRENCY = 4
DEFAULT_FETCH_TIMEOUT = 120.0
DEFAULT_HTTP_RETRIES = 3
DEFAULT_POLICY = "orgglue.yaml"

_BACKEND_VARS = (
    "KEYCLOAK_URL",
    "KEYCLOAK_REALM",
    "KEYCLOAK_CLIENT_ID",
    "KEYCLOAK_CLIENT_SECRET",
    "GITLAB_URL",
    "GITLAB_TOKEN",
)


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, constructed once and never mutated."""

    keycloak_url: str = ""
    keycloak_realm: str = ""
    keycloak_client_id: str = ""
    keycloak_client_secret: str = ""
    gitlab_url: str = ""
    gitlab_token: str = ""
    gitlab_root_group: str = ""
    gitlab_identity_provider: str = "saml"
    bot_users: frozenset[str] = frozenset()
    policy_path: str = DEFAULT_POLICY
    fixture_path: str = ""
    concurrency: int = DEFAULT_CONCURRENCY
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    http_retries: int = DEFAULT_HTTP_RETRIES

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Read ``ORGGLUE_*`` variables.

        Only types are validated here; :meth:`require_backends` checks that
        credentials are present once we know they are needed.
        """
        env = os.environ if environ is None else environ

        def get(name: str, default: str = "") -> str:
            return env.get(ENV_PREFIX + name, default).strip()

        return cls(
            keycloak_url=get("KEYCLOAK_URL"),
            keycloak_realm=get("KEYCLOAK_REALM"),
            keycloak_client_id=get("KEYCLOAK_CLIENT_ID"),
            keycloak_client_secret=get("KEYCLOAK_CLIENT_SECRET"),
            gitlab_url=get("GITLAB_URL"),
            gitlab_token=get("GITLAB_TOKEN"),
            gitlab_root_group=get("GITLAB_ROOT_GROUP"),
            gitlab_identity_provider=get("GITLAB_IDENTITY_PROVIDER", "saml") or "saml",
            bot_users=parse_user_list(get("BOT_USERS")),
            policy_path=get("POLICY", DEFAULT_POLICY) or DEFAULT_POLICY,
            fixture_path=get("FIXTURE"),
            concurrency=_positive_int("CONCURRENCY", get("CONCURRENCY"), DEFAULT_CONCURRENCY),
            fetch_timeout=_positive_float(
                "FETCH_TIMEOUT", get("FETCH_TIMEOUT"), DEFAULT_FETCH_TIMEOUT
            ),
            http_retries=_non_negative_int("HTTP_RETRIES", get("HTTP_RETRIES"), DEFAULT_HTTP_RETRIES),
        )

    def require_backends(self) -> None:
        """Raise ``ConfigError`` naming every missing credential variable."""
        if self.fixture_path:
            return
        missing = [
            ENV_PREFIX + name
            for name in _BACKEND_VARS
            if not getattr(self, name.lower())
        ]
        if missing:
            raise ConfigError(f"Missing env var(s): {', '.join(missing)}")


def parse_user_list(value: str) -> frozenset[str]:
    """Split a comma separated list of usernames, ignoring blanks."""
    return frozenset(part.strip() for part in value.split(",") if part.strip())


def _positive_int(name: str, raw: str, default: int) -> int:
    value = _non_negative_int(name, raw, default)
    if value < 1:
        raise ConfigError(f"{ENV_PREFIX}{name} must be at least 1, got {raw!r}")
    return value


def _non_negative_int(name: str, raw: str, default: int) -> int:
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{ENV_PREFIX}{name} must not be negative, got {raw!r}")
    return value


def _positive_float(name: str, raw: str, default: float) -> float:
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{ENV_PREFIX}{name} must be positive, got {raw!r}")
    return value
