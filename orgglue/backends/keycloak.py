"""Keycloak adapter — the authoritative identity backend.

Identity groups carry no role, so memberships are reported with the
lowest role and checks assign roles from the policy.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from orgglue.backends.base import BackendClient
from orgglue.backends.http import HttpBackend
from orgglue.errors import BackendError, Transport, Unauthorized
from orgglue.models import BackendGroup, Identity, Membership, Role

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class KeycloakClient(HttpBackend, BackendClient):
    """Keycloak admin REST client bound to one realm.

    Use :meth:`connect` to exchange client credentials for a token; the
    constructor expects an already issued access token.
    """

    name = "keycloak"

    def __init__(self, url: str, realm: str, token: str, **kwargs: Any) -> None:
        super().__init__(
            f"{url.rstrip('/')}/admin/realms/{realm}",
            headers={"Authorization": f"Bearer {token}"},
            **kwargs,
        )
        self.realm = realm

    @classmethod
    async def connect(
        cls,
        url: str,
        realm: str,
        client_id: str,
        client_secret: str,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: Any,
    ) -> "KeycloakClient":
        """Acquire an API token with the client-credentials grant and build a client."""
        logger.info("acquire API token for keycloak %s using realm %s", url, realm)
        token_url = f"{url.rstrip('/')}/realms/{realm}/protocol/openid-connect/token"
        async with httpx.AsyncClient(transport=transport) as client:
            try:
                response = await client.post(
                    token_url,
                    data={
                        "client_id": client_id,
                        "client_secret": client_secret,
                        "grant_type": "client_credentials",
                    },
                )
            except httpx.TransportError as exc:
                raise Transport(f"Keycloak token request failed: {exc}") from exc
        status = response.status_code
        if status != 200:
            message = f"Keycloak token error: HTTP {status}"
            if status >= 500:
                raise Transport(message, status)
            if status in (400, 401, 403):
                raise Unauthorized(message, status)
            raise BackendError(message, status)
        token = response.json().get("access_token", "")
        if not token:
            raise Unauthorized("Keycloak token response carried no access_token")
        return cls(url, realm, token, transport=transport, **kwargs)

    # -- reads ---------------------------------------------------------------

    async def list_groups(self) -> list[BackendGroup]:
        data = await self.get_json("/groups", {"briefRepresentation": "false"})
        groups: list[BackendGroup] = []
        to_visit = list(data)
        while to_visit:
            item = to_visit.pop()
            groups.append(BackendGroup(id=item["id"], name=item["name"], path=item["path"]))
            to_visit.extend(item.get("subGroups") or [])
        return sorted(groups, key=lambda g: g.path)

    async def list_memberships(self, group: BackendGroup) -> list[Membership]:
        users = await self._paginate(f"/groups/{group.id}/members")
        return [Membership(identity=_identity(user), role=Role.minimal) for user in users]

    async def list_users(self) -> list[Identity]:
        users = await self._paginate("/users", {"briefRepresentation": "true"})
        return [_identity(user) for user in users]

    # -- writes --------------------------------------------------------------

    async def set_membership(self, group: BackendGroup, user: Identity, role: Role) -> None:
        await self.request("PUT", f"/users/{user.id}/groups/{group.id}")

    async def remove_membership(self, group: BackendGroup, user: Identity) -> None:
        await self.request("DELETE", f"/users/{user.id}/groups/{group.id}")

    # -- helpers -------------------------------------------------------------

    async def _paginate(self, path: str, params: dict[str, Any] | None = None) -> list[dict]:
        items: list[dict] = []
        first = 0
        while True:
            page = await self.get_json(path, {**(params or {}), "first": first, "max": PAGE_SIZE})
            items.extend(page)
            if len(page) < PAGE_SIZE:
                return items
            first += PAGE_SIZE


def _identity(data: dict) -> Identity:
    return Identity(
        id=data["id"],
        username=data["username"],
        email=data.get("email") or "",
    )
