"""Custom exception hierarchy for pyalbumart."""

from __future__ import annotations

from typing import Any


class AlbumArtError(Exception):
    """Base exception for all pyalbumart errors."""


class ConfigError(AlbumArtError):
    """Invalid or missing configuration."""


class TransportError(AlbumArtError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
        body: Any = None,
    ) -> None:
        self.status_code = status_code
        self.url = url
        self.body = body
        super().__init__(message)

    @property
    def error_code(self) -> str:
        """OAuth-style ``error`` field from a JSON error body, if any."""
        if isinstance(self.body, dict):
            value = self.body.get("error")
            if isinstance(value, str):
                return value
            if isinstance(value, dict):
                # Web API errors nest as {"error": {"status": 401, "message": ...}}
                message = value.get("message")
                return message if isinstance(message, str) else ""
        return ""


class AuthExchangeError(AlbumArtError):
    """Authorization code could not be exchanged for a token.

    Non-fatal: the login simply does not complete and the user stays
    logged out.
    """


class AuthStateMismatchError(AuthExchangeError):
    """No pending PKCE session, or the returned ``state`` does not match it.

    The attempt is ignored without touching the stored token.
    """


class TokenRefreshError(AlbumArtError):
    """Refreshing the access token failed.

    ``fatal`` is ``True`` when the server rejected the refresh token
    (``invalid_grant``); the token has then been discarded. Otherwise the
    failure is transient and the existing token is kept.
    """

    def __init__(self, message: str, *, fatal: bool = False) -> None:
        self.fatal = fatal
        super().__init__(message)


class SourceFetchError(AlbumArtError):
    """A dynamic tile source raised while fetching a batch.

    Never raised to callers of the polling engine; recorded as
    :attr:`PollingEngine.last_error` while tiles stay at their last good value.
    """
