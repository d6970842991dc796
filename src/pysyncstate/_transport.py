"""HTTP transport and the fetcher used by the remote cache."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import aiohttp

from pysyncstate._constants import USER_AGENT
from pysyncstate.exceptions import RemoteFetchError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by :class:`HttpFetcher`.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpTransport`) concrete.
    """

    async def get_json(self, url: str) -> Any:
        ...


class HttpTransport:
    """JSON-over-HTTP GET on top of a caller-owned aiohttp session."""

    def __init__(self, http_session: aiohttp.ClientSession) -> None:
        self._http = http_session

    async def get_json(self, url: str) -> Any:
        """GET *url* and return the decoded JSON body.

        Non-2xx responses, connection errors and bodies that are not JSON
        all raise :class:`RemoteFetchError`.
        """
        headers: dict[str, str] = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }

        _logger.debug("GET %s", url)

        try:
            async with self._http.get(url, headers=headers) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise RemoteFetchError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        url=url,
                    )
        except RemoteFetchError:
            raise
        except aiohttp.ClientError as exc:
            raise RemoteFetchError(f"Request to {url} failed: {exc}", url=url) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise RemoteFetchError(f"Invalid JSON from {url}: {text[:200]}", url=url) from exc


class HttpFetcher:
    """Fetch one field of a remote JSON object.

    Called with the cache key; reads ``payload[field]`` where ``field``
    defaults to the key itself.
    """

    def __init__(self, transport: Transport, url: str, *, field: str | None = None) -> None:
        self._transport = transport
        self._url = url
        self._field = field

    async def __call__(self, key: str) -> Any:
        payload = await self._transport.get_json(self._url)
        field = self._field or key
        if not isinstance(payload, dict):
            raise RemoteFetchError(
                f"Expected a JSON object from {self._url}, got {type(payload).__name__}",
                url=self._url,
            )
        if field not in payload:
            raise RemoteFetchError(f"Missing {field!r} field from {self._url}", url=self._url)
        return payload[field]
