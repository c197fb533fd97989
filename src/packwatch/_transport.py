"""HTTP transport for the registry JSON API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from packwatch._constants import USER_AGENT
from packwatch.exceptions import RegistryTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by :class:`~packwatch.registry.RegistryClient`.

    Tests pass a fake with the same method instead of a real session.
    """

    async def get_json(self, endpoint: str, params: Mapping[str, str]) -> dict[str, Any]:
        ...


class HttpTransport:
    """GET requests against the registry base URL, decoded as JSON objects."""

    def __init__(self, base_url: str, http_session: aiohttp.ClientSession) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_session

    async def get_json(self, endpoint: str, params: Mapping[str, str]) -> dict[str, Any]:
        url = f"{self._base_url}{endpoint}"
        headers = {"accept": "application/json", "user-agent": USER_AGENT}

        _logger.debug("GET %s params=%s", url, dict(params))

        try:
            async with self._http.get(url, params=dict(params), headers=headers) as resp:
                raw = await resp.read()
                if resp.status != 200:
                    raise RegistryTransportError(
                        f"HTTP {resp.status} from {endpoint}: {raw[:200].decode('utf-8', errors='replace')}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except RegistryTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise RegistryTransportError(
                f"Request to {endpoint} failed: {exc!r}",
                endpoint=endpoint,
            ) from exc

        try:
            body = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise RegistryTransportError(
                f"Invalid JSON from {endpoint}: {raw[:200]!r}",
                endpoint=endpoint,
            ) from exc

        if not isinstance(body, dict):
            raise RegistryTransportError(
                f"Expected a JSON object from {endpoint}, got {type(body).__name__}",
                endpoint=endpoint,
            )
        return body
