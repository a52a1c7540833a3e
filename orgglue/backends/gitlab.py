"""GitLab adapter — the collaboration backend that gets reconciled.

Groups are the configured root group and all of its descendants, projects
are every project in that tree. Users
carry the ``extern_uid`` of the configured identity provider, which links
them to identity provider accounts.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from orgglue.backends.base import BackendClient
from orgglue.backends.http import HttpBackend
from orgglue.errors import BackendError
from orgglue.models import BackendGroup, Identity, Membership, ResourceKind, Role

logger = logging.getLogger(__name__)

PER_PAGE = 100


class GitLabClient(HttpBackend, BackendClient):
    """GitLab REST v4 client.

    Parameters
    ----------
    url:
        Instance URL, e.g. ``https://gitlab.example.org``.
    token:
        Personal or group access token with ``api`` scope.
    root_group:
        Full path of the group tree to manage. When empty, every group
        visible to the token is listed.
    identity_provider:
        Provider name whose ``extern_uid`` links users to the identity
        provider (``saml`` by default).
    """

    name = "gitlab"

    def __init__(
        self,
        url: str,
        token: str,
        root_group: str = "",
        identity_provider: str = "saml",
        **kwargs: Any,
    ) -> None:
        super().__init__(
            f"{url.rstrip('/')}/api/v4",
            headers={"PRIVATE-TOKEN": token},
            **kwargs,
        )
        self.root_group = root_group.strip("/")
        self.identity_provider = identity_provider

    # -- reads ---------------------------------------------------------------

    async def list_groups(self) -> list[BackendGroup]:
        if not self.root_group:
            items = await self._paginate("/groups", {"all_available": "false"})
            return [_group(item) for item in items]

        encoded = quote(self.root_group, safe="")
        root = await self.get_json(f"/groups/{encoded}")
        descendants = await self._paginate(f"/groups/{encoded}/descendant_groups")
        return [_group(root)] + [_group(item) for item in descendants]

    async def list_projects(self) -> list[BackendGroup]:
        if not self.root_group:
            items = await self._paginate("/projects", {"membership": "true", "simple": "true"})
        else:
            encoded = quote(self.root_group, safe="")
            items = await self._paginate(
                f"/groups/{encoded}/projects", {"include_subgroups": "true", "simple": "true"}
            )
        return [_project(item) for item in items]

    async def list_memberships(self, group: BackendGroup) -> list[Membership]:
        items = await self._paginate(_members(group))
        return [
            Membership(identity=_identity(item), role=Role.from_level(int(item["access_level"])))
            for item in items
        ]

    async def list_users(self) -> list[Identity]:
        items = await self._paginate("/users", {"active": "true"})
        return [_identity(item, self.identity_provider) for item in items]

    # -- writes --------------------------------------------------------------

    async def set_membership(self, group: BackendGroup, user: Identity, role: Role) -> None:
        try:
            await self.request(
                "POST",
                _members(group),
                data={"user_id": user.id, "access_level": role.level},
            )
        except BackendError as exc:
            if exc.status_code != 409:
                raise
            logger.debug("%s already in %s, updating role", user.username, group.path)
            await self.request(
                "PUT",
                _members(group, user),
                data={"access_level": role.level},
            )

    async def remove_membership(self, group: BackendGroup, user: Identity) -> None:
        await self.request("DELETE", _members(group, user))

    # -- helpers -------------------------------------------------------------

    async def _paginate(self, path: str, params: dict[str, Any] | None = None) -> list[dict]:
        items: list[dict] = []
        page = "1"
        while page:
            query = {**(params or {}), "per_page": PER_PAGE, "page": page}
            response = await self.request("GET", path, params=query)
            items.extend(response.json())
            page = response.headers.get("X-Next-Page", "")
        return items


def _group(data: dict) -> BackendGroup:
    return BackendGroup(id=str(data["id"]), name=data.get("name", ""), path=data["full_path"])


def _project(data: dict) -> BackendGroup:
    return BackendGroup(
        id=str(data["id"]),
        name=data.get("name", ""),
        path=data["path_with_namespace"],
        kind=ResourceKind.project,
    )


def _members(resource: BackendGroup, user: Identity | None = None) -> str:
    collection = "projects" if resource.is_project else "groups"
    path = f"/{collection}/{resource.id}/members"
    return f"{path}/{user.id}" if user else path


def _identity(data: dict, provider: str | None = None) -> Identity:
    external_uid = ""
    if provider:
        for identity in data.get("identities") or []:
            if identity.get("provider") == provider:
                external_uid = identity.get("extern_uid", "")
                break
    return Identity(
        id=str(data["id"]),
        username=data["username"],
        email=data.get("email") or "",
        external_uid=external_uid,
    )
