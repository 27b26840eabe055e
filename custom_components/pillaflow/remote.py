# File: remote.py
"""Remote data source for the Pillaflow integration.

Talks to a PostgREST-style backend: one REST collection per entity kind,
rows filtered by owning user id. Every failure (HTTP status, timeout,
connection error, unexpected payload) is raised as PillaflowRemoteError so
callers can degrade to cached data.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import aiohttp
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.aiohttp_client import async_get_clientsession

from . import const

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant


class PillaflowRemoteError(HomeAssistantError):
    """Transient failure talking to the remote backend."""


def _eq_filters(filters: dict[str, Any]) -> dict[str, str]:
    """Translate {"id": 1} into PostgREST query params {"id": "eq.1"}."""
    return {key: f"eq.{value}" for key, value in filters.items()}


class PillaflowRemoteClient:
    """Row-oriented fetch/insert/update/delete against the backend."""

    def __init__(self, hass: HomeAssistant, base_url: str, api_key: str) -> None:
        """Initialize the client.

        Args:
            hass: Home Assistant core object (provides the shared aiohttp session).
            base_url: Backend root URL, e.g. "https://example.supabase.co".
            api_key: Key sent as `apikey` and bearer token.
        """
        self.hass = hass
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key

    def _url(self, collection: str) -> str:
        return self._base_url + const.REMOTE_REST_PATH.format(collection=collection)

    def _headers(self, *, representation: bool = False) -> dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if representation:
            headers["Prefer"] = "return=representation"
        return headers

    async def _request(
        self,
        method: str,
        collection: str,
        *,
        params: dict[str, str] | None = None,
        payload: Any = None,
        representation: bool = False,
    ) -> list[dict[str, Any]]:
        """Perform one request and return the row list it yields."""
        session = async_get_clientsession(self.hass)
        url = self._url(collection)
        try:
            async with asyncio.timeout(const.REMOTE_FETCH_TIMEOUT):
                async with session.request(
                    method,
                    url,
                    params=params,
                    json=payload,
                    headers=self._headers(representation=representation),
                ) as response:
                    if response.status >= 400:
                        raise PillaflowRemoteError(
                            f"HTTP {response.status} on {method} {collection}"
                        )
                    if response.status == 204:
                        return []
                    body = await response.json(content_type=None)
        except TimeoutError as err:
            raise PillaflowRemoteError(
                f"Timed out on {method} {collection}"
            ) from err
        except (aiohttp.ClientError, ValueError) as err:
            raise PillaflowRemoteError(
                f"Connection error on {method} {collection}: {err}"
            ) from err

        if body is None:
            return []
        if isinstance(body, dict):
            return [body]
        if not isinstance(body, list):
            raise PillaflowRemoteError(f"Unexpected response shape for {collection}")
        return [row for row in body if isinstance(row, dict)]

    async def async_fetch(
        self,
        collection: str,
        user_id: str,
        order: str | None = None,
        filters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Return the rows of collection owned by user_id (optionally filtered)."""
        params = {
            "select": "*",
            **_eq_filters({**(filters or {}), const.DATA_USER_ID: user_id}),
        }
        if order:
            params["order"] = order
        return await self._request("GET", collection, params=params)

    async def async_insert(
        self, collection: str, row: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Insert a row and return the stored representation."""
        rows = await self._request(
            "POST", collection, payload=row, representation=True
        )
        return rows[0] if rows else None

    async def async_update(
        self, collection: str, filters: dict[str, Any], changes: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Patch rows matching filters and return them."""
        return await self._request(
            "PATCH",
            collection,
            params=_eq_filters(filters),
            payload=changes,
            representation=True,
        )

    async def async_delete(self, collection: str, filters: dict[str, Any]) -> None:
        """Delete rows matching filters."""
        if not filters:
            raise PillaflowRemoteError(f"Refusing unfiltered delete on {collection}")
        await self._request("DELETE", collection, params=_eq_filters(filters))

    async def async_fetch_all(
        self, collections: Iterable[str], user_id: str
    ) -> dict[str, list[dict[str, Any]] | None]:
        """Fetch several collections concurrently.

        One collection failing never blocks the others: its entry is None
        and the failure is logged.
        """
        names = list(collections)
        results = await asyncio.gather(
            *(self.async_fetch(name, user_id) for name in names),
            return_exceptions=True,
        )

        fetched: dict[str, list[dict[str, Any]] | None] = {}
        for name, result in zip(names, results, strict=True):
            if isinstance(result, PillaflowRemoteError):
                const.LOGGER.warning(
                    "WARNING: Fetching '%s' failed, using cached copy: %s",
                    name,
                    result,
                )
                fetched[name] = None
            elif isinstance(result, BaseException):
                raise result
            else:
                fetched[name] = result
        return fetched
