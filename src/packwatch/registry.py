"""Async client for the MCP registry server listing."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp
from pydantic import ValidationError

from packwatch._constants import MAX_PAGE_LIMIT, SERVERS_ENDPOINT
from packwatch._transport import HttpTransport, Transport
from packwatch.exceptions import PackwatchError, RegistryError
from packwatch.models.entry import PackageEntry
from packwatch.models.registry import ServerListResponse, ServerResponse

_logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=30)


class RegistryClient:
    """Lists package entries from the registry.

    Usage::

        async with RegistryClient("https://registry.modelcontextprotocol.io") as client:
            entries = await client.list_entries()

    Any failure (network, HTTP status, malformed page) surfaces as a
    :class:`RegistryError`. An empty registry is an empty list, never an
    error.
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        page_limit: int = MAX_PAGE_LIMIT,
    ) -> None:
        self._base_url = base_url
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._page_limit = max(1, min(page_limit, MAX_PAGE_LIMIT))

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> RegistryClient:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession(timeout=DEFAULT_TIMEOUT)
            self._transport = HttpTransport(self._base_url, self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise PackwatchError("Client not initialized. Use 'async with RegistryClient(...) as client:'")
        return self._transport

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_servers(self, *, search: str | None = None) -> list[ServerResponse]:
        """Fetch every page of ``/v0/servers``.

        Pages are not remembered between calls; a failure on any page
        discards the whole listing.
        """
        transport = self._require_transport()
        servers: list[ServerResponse] = []
        cursor: str | None = None
        while True:
            params: dict[str, str] = {"limit": str(self._page_limit)}
            if cursor:
                params["cursor"] = cursor
            if search:
                params["search"] = search

            body = await transport.get_json(SERVERS_ENDPOINT, params)
            try:
                page = ServerListResponse.model_validate(body)
            except ValidationError as exc:
                raise RegistryError(f"Malformed server list page from {SERVERS_ENDPOINT}: {exc}") from exc

            servers.extend(page.servers)
            next_cursor = page.metadata.next_cursor
            if not next_cursor or next_cursor == cursor:
                break
            cursor = next_cursor

        _logger.debug("Listed %d servers (search=%r)", len(servers), search)
        return servers

    async def list_entries(self, *, names: tuple[str, ...] = ()) -> list[PackageEntry]:
        """List package entries, one per server package.

        With *names*, the registry is searched once per name and only exact
        matches are kept, de-duplicated by ``name@version``. Servers with an
        invalid name are skipped with a warning.
        """
        if names:
            seen: set[str] = set()
            responses: list[ServerResponse] = []
            for name in names:
                for response in await self.list_servers(search=name):
                    ident = f"{response.server.name}@{response.server.version}"
                    if response.server.name != name or ident in seen:
                        continue
                    seen.add(ident)
                    responses.append(response)
        else:
            responses = await self.list_servers()

        entries: list[PackageEntry] = []
        for response in responses:
            if not response.server.packages:
                _logger.debug("Server %s is remote-only, skipping", response.server.name)
                continue
            try:
                entries.extend(response.to_entries())
            except (ValueError, ValidationError) as exc:
                _logger.warning("Skipping server %r: %s", response.server.name, exc)
        return entries
