"""OAuth token and PKCE session models."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pyalbumart.exceptions import AuthExchangeError


class Token(BaseModel):
    """Access/refresh token pair as persisted in the key-value store.

    Parameters
    ----------
    access_token : str or None
        Bearer token for API calls.
    refresh_token : str or None
        Long-lived token used to obtain new access tokens. The provider
        may rotate it on refresh.
    expires_in : int
        Lifetime in seconds reported by the token endpoint.
    expires_at : int
        Epoch milliseconds, ``received_at + expires_in * 1000``.
    received_at : int
        Epoch milliseconds when the token response was received.
    """

    # Extra fields (token_type, scope...) are persisted as received.
    model_config = ConfigDict(frozen=True, extra="allow")

    access_token: str | None = None
    refresh_token: str | None = None
    expires_in: int = 0
    expires_at: int = 0
    received_at: int = 0

    @classmethod
    def from_response(cls, payload: Mapping[str, Any], *, now_ms: int) -> Token:
        """Build a token from a token-endpoint JSON response.

        Raises
        ------
        AuthExchangeError
            If the response lacks ``access_token`` or ``expires_in``.
        """
        if not payload.get("access_token"):
            raise AuthExchangeError("Token response missing access_token")
        try:
            expires_in = int(payload["expires_in"])
        except (KeyError, TypeError, ValueError) as exc:
            raise AuthExchangeError("Token response missing a numeric expires_in") from exc
        try:
            return cls.model_validate(
                {
                    **payload,
                    "expires_in": expires_in,
                    "received_at": now_ms,
                    "expires_at": now_ms + expires_in * 1000,
                }
            )
        except ValidationError as exc:
            raise AuthExchangeError(f"Malformed token response: {exc}") from exc

    def refreshed(self, payload: Mapping[str, Any], *, now_ms: int) -> Token:
        """Return a new token with the fields a refresh response replaces.

        ``refresh_token`` is only replaced when the server rotated it.
        """
        expires_in = int(payload["expires_in"])
        return self.model_copy(
            update={
                "access_token": str(payload["access_token"]),
                "expires_in": expires_in,
                "expires_at": now_ms + expires_in * 1000,
                "refresh_token": payload.get("refresh_token") or self.refresh_token,
                "received_at": now_ms,
            }
        )

    def is_fresh(self, now_ms: int, skew_ms: int) -> bool:
        """Whether the access token is usable for at least *skew_ms* more."""
        return bool(self.access_token) and now_ms < self.expires_at - skew_ms

    @property
    def signed_in(self) -> bool:
        return bool(self.access_token or self.refresh_token)


class PkceSession(BaseModel):
    """Single-use verifier/state pair created when a login starts."""

    model_config = ConfigDict(frozen=True)

    verifier: str = Field(min_length=43, max_length=128)
    state: str = Field(min_length=1)
