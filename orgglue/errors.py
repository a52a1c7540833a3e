"""Error taxonomy shared by the backends, the engine and the CLI."""

from __future__ import annotations


class OrgglueError(Exception):
    """Base class for every error raised by orgglue."""


class ConfigError(OrgglueError):
    """Missing or invalid settings or policy. Fatal, raised before any network activity."""


class FetchError(OrgglueError):
    """Reading state from a backend failed for one check."""


class ApplyError(OrgglueError):
    """A single corrective mutation failed."""


# ---------------------------------------------------------------------------
# Backend client errors
# ---------------------------------------------------------------------------


class BackendError(OrgglueError):
    """Typed error returned by a backend client.

    Parameters
    ----------
    message:
        Human readable description.
    status_code:
        HTTP status code when the error came from a response.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class Unauthorized(BackendError):
    """Credentials were rejected or lack the required scope."""


class NotFound(BackendError):
    """The addressed group, user or membership does not exist."""


class RateLimited(BackendError):
    """The backend asked us to slow down."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code)
        self.retry_after = retry_after


class Transport(BackendError):
    """Network failure or server-side error."""
