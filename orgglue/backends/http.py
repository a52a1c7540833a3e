"""Shared HTTP plumbing for the REST backends.

Wraps one pooled ``httpx.AsyncClient`` per backend, maps response codes to
the typed backend errors and retries transient failures with bounded
exponential backoff. Nothing above this layer retries.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any

import httpx

from orgglue.errors import BackendError, NotFound, RateLimited, Transport, Unauthorized

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRIES = 3
DEFAULT_BACKOFF = 0.5
MAX_BACKOFF = 10.0


class HttpBackend:
    """Base class for the REST adapters.

    Parameters
    ----------
    base_url:
        Root URL every request path is joined to.
    headers:
        Default headers, typically the authorization header.
    retries:
        How many times a rate-limited or failed request is retried.
    backoff:
        Base delay in seconds for the exponential backoff.
    transport:
        Optional ``httpx`` transport, used by tests to mock the backend.
    """

    name = "http"

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        retries: int = DEFAULT_RETRIES,
        backoff: float = DEFAULT_BACKOFF,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.retries = max(0, retries)
        self.backoff = backoff
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"User-Agent": "orgglue", **(headers or {})},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- requests ------------------------------------------------------------

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying ``RateLimited`` and ``Transport`` errors."""
        attempt = 0
        while True:
            try:
                return await self._send(method, path, **kwargs)
            except (RateLimited, Transport) as exc:
                attempt += 1
                if attempt > self.retries:
                    raise
                delay = self._delay(attempt, exc)
                logger.warning(
                    "%s %s %s failed (%s), retry %d/%d in %.2fs",
                    self.name, method, path, exc, attempt, self.retries, delay,
                )
                await asyncio.sleep(delay)

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise Transport(f"{method} {path}: {exc}") from exc

        logger.debug("%s %s %s -> %d", self.name, method, path, response.status_code)
        status = response.status_code
        if status < 400:
            return response

        message = f"{method} {path}: HTTP {status} {response.text[:200]}"
        if status in (401, 403):
            raise Unauthorized(message, status)
        if status == 404:
            raise NotFound(message, status)
        if status == 429:
            raise RateLimited(message, status, retry_after=_retry_after(response))
        if status >= 500:
            raise Transport(message, status)
        raise BackendError(message, status)

    def _delay(self, attempt: int, exc: BackendError) -> float:
        if isinstance(exc, RateLimited) and exc.retry_after is not None:
            return min(MAX_BACKOFF, exc.retry_after)
        delay = min(MAX_BACKOFF, self.backoff * (2 ** (attempt - 1)))
        return delay * random.uniform(0.8, 1.2)

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = await self.request("GET", path, params=params)
        return response.json()


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None
