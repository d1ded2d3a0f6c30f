"""HTTP transport shared by the token endpoint and the tile-source adapters."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pyalbumart._constants import USER_AGENT
from pyalbumart._redact import redact_url
from pyalbumart.exceptions import TransportError

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class HttpResponse:
    """Fully-read HTTP response. Header names are lower-cased."""

    status: int
    text: str = ""
    headers: Mapping[str, str] = dataclasses.field(default_factory=dict)
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises
        ------
        TransportError
            If the body is not valid JSON.
        """
        try:
            return json.loads(self.text)
        except json.JSONDecodeError as exc:
            raise TransportError(
                f"Invalid JSON from {redact_url(self.url)}: {self.text[:200]}",
                status_code=self.status,
                url=self.url,
            ) from exc

    def json_or_none(self) -> Any:
        try:
            return json.loads(self.text) if self.text else None
        except json.JSONDecodeError:
            return None

    def raise_for_status(self, what: str) -> None:
        """Raise :class:`TransportError` unless the status is 2xx."""
        if self.ok:
            return
        raise TransportError(
            f"{what} failed: HTTP {self.status}",
            status_code=self.status,
            url=self.url,
            body=self.json_or_none(),
        )


class Transport(Protocol):
    """Structural transport interface used by the API and source modules.

    Tests pass small fakes implementing this instead of patching aiohttp.
    """

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        ...


class AiohttpTransport:
    """:class:`Transport` over a shared :class:`aiohttp.ClientSession`."""

    def __init__(self, http_session: aiohttp.ClientSession, *, timeout: float = 30.0) -> None:
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        request_headers: dict[str, str] = {"user-agent": USER_AGENT}
        if headers:
            request_headers.update(headers)

        _logger.debug("%s %s", method, redact_url(url))

        try:
            async with self._http.request(
                method,
                url,
                headers=request_headers,
                data=dict(data) if data is not None else None,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                response_headers = {k.lower(): v for k, v in resp.headers.items()}
                status = resp.status
        except aiohttp.ClientError as exc:
            raise TransportError(f"Request to {redact_url(url)} failed: {exc}", url=url) from exc
        except asyncio.TimeoutError as exc:
            raise TransportError(f"Request to {redact_url(url)} timed out", url=url) from exc

        _logger.debug("%s %s -> HTTP %s", method, redact_url(url), status)
        return HttpResponse(status=status, text=text, headers=response_headers, url=url)
