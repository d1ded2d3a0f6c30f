"""Visible-location abstraction for the OAuth redirect dance.

In a browser this is ``window.location`` plus ``history.replaceState``.
Here the redirect opens the system browser and the callback URL is fed
back in by whatever receives it (local HTTP handler, pasted URL...).
"""

from __future__ import annotations

import logging
import webbrowser
from typing import Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pyalbumart._redact import redact_url

_logger = logging.getLogger(__name__)

AUTH_QUERY_PARAMS: frozenset[str] = frozenset({"code", "state"})


class Navigator(Protocol):
    @property
    def current_url(self) -> str:
        ...

    def assign(self, url: str) -> None:
        """Navigate away to *url* (authorization redirect)."""
        ...

    def replace(self, url: str) -> None:
        """Rewrite the current location without reloading."""
        ...


class BrowserNavigator:
    """Opens authorization URLs in the system web browser."""

    def __init__(self, current_url: str = "", *, open_browser: bool = True) -> None:
        self._current_url = current_url
        self._open_browser = open_browser
        self.last_redirect: str | None = None

    @property
    def current_url(self) -> str:
        return self._current_url

    def assign(self, url: str) -> None:
        self.last_redirect = url
        _logger.info("Redirecting to %s", redact_url(url))
        if self._open_browser:
            webbrowser.open(url)

    def replace(self, url: str) -> None:
        self._current_url = url

    def receive_callback(self, url: str) -> None:
        """Record the URL the provider redirected back to."""
        self._current_url = url


def strip_auth_params(url: str) -> str:
    """Remove ``code`` and ``state`` from the query string of *url*."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in AUTH_QUERY_PARAMS]
    return urlunsplit(parts._replace(query=urlencode(query)))


def auth_params(url: str) -> tuple[str | None, str | None]:
    """Return ``(code, state)`` from the query string of *url*."""
    params = dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))
    return params.get("code") or None, params.get("state")
