"""Client configuration for pyalbumart."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyalbumart._constants import (
    DEFAULT_MAX_TILES,
    DEFAULT_POLL_MS,
    DEFAULT_REDIRECT_URI,
    DEFAULT_RETRY_AFTER_S,
    DEFAULT_SCOPES,
    DEFAULT_SKEW_MS,
    ERROR_RETRY_MS,
    SPOTIFY_API_BASE_URL,
    SPOTIFY_AUTHORIZE_URL,
    SPOTIFY_TOKEN_URL,
)
from pyalbumart.exceptions import ConfigError


@dataclasses.dataclass(frozen=True)
class AlbumArtConfig:
    """Client configuration.

    Parameters
    ----------
    client_id : str
        Spotify application client ID (public client, no secret).
    redirect_uri : str
        Redirect URI registered on the Spotify application. Must match
        the registered value exactly.
    scopes : tuple of str
        OAuth scopes requested at login.
    authorize_url : str
        Authorization endpoint the user is sent to.
    token_url : str
        Token endpoint used for code exchange and refresh.
    api_base_url : str
        Spotify Web API base URL.
    poll_ms : int
        Delay between tile polls when the source gives no hint.
    max_tiles : int
        Number of tiles in every emitted tile set.
    refresh_skew_ms : int
        Safety margin subtracted from a token's expiry when deciding
        whether it is still fresh.
    error_retry_ms : int
        Delay before the next poll after a source fetch failed.
    recent_limit : int
        ``limit`` query parameter for recently-played requests.
    default_retry_after_s : int
        Back-off used on HTTP 429 when ``Retry-After`` is missing.
    storage_path : str or None
        JSON file backing the key-value store. ``None`` keeps everything
        in memory for the lifetime of the process.
    http_timeout : float
        Total timeout in seconds for each HTTP request.
    """

    client_id: str
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scopes: tuple[str, ...] = DEFAULT_SCOPES
    authorize_url: str = SPOTIFY_AUTHORIZE_URL
    token_url: str = SPOTIFY_TOKEN_URL
    api_base_url: str = SPOTIFY_API_BASE_URL
    poll_ms: int = DEFAULT_POLL_MS
    max_tiles: int = DEFAULT_MAX_TILES
    refresh_skew_ms: int = DEFAULT_SKEW_MS
    error_retry_ms: int = ERROR_RETRY_MS
    recent_limit: int = 50
    default_retry_after_s: int = DEFAULT_RETRY_AFTER_S
    storage_path: str | None = None
    http_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.max_tiles < 1:
            raise ConfigError(f"max_tiles must be at least 1, got {self.max_tiles}")
        if self.poll_ms <= 0:
            raise ConfigError(f"poll_ms must be positive, got {self.poll_ms}")
        if self.error_retry_ms <= 0:
            raise ConfigError(f"error_retry_ms must be positive, got {self.error_retry_ms}")
        if self.refresh_skew_ms < 0:
            raise ConfigError(f"refresh_skew_ms must not be negative, got {self.refresh_skew_ms}")

    @classmethod
    def from_env(cls, **overrides: Any) -> AlbumArtConfig:
        """Create configuration from environment variables.

        Reads ``SPOTIFY_CLIENT_ID`` and the optional ``SPOTIFY_*`` /
        ``ALBUMART_*`` variables. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        AlbumArtConfig
            Populated configuration.

        Raises
        ------
        ConfigError
            If no client ID is available or a numeric variable is malformed.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "SPOTIFY_CLIENT_ID": "client_id",
            "SPOTIFY_REDIRECT_URI": "redirect_uri",
            "SPOTIFY_AUTHORIZE_URL": "authorize_url",
            "SPOTIFY_TOKEN_URL": "token_url",
            "SPOTIFY_API_BASE_URL": "api_base_url",
            "ALBUMART_STORAGE_PATH": "storage_path",
        }
        _ENV_INT_MAP = {
            "ALBUMART_POLL_MS": "poll_ms",
            "ALBUMART_MAX_TILES": "max_tiles",
            "ALBUMART_REFRESH_SKEW_MS": "refresh_skew_ms",
            "ALBUMART_ERROR_RETRY_MS": "error_retry_ms",
            "ALBUMART_RECENT_LIMIT": "recent_limit",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = int(val)
            except ValueError as exc:
                raise ConfigError(f"{env_key} must be an integer, got {val!r}") from exc

        scopes_env = env.get("SPOTIFY_SCOPES")
        if scopes_env is not None and "scopes" not in overrides:
            config_kwargs["scopes"] = tuple(scopes_env.split())

        config_kwargs.update(overrides)

        if not config_kwargs.get("client_id"):
            raise ConfigError("SPOTIFY_CLIENT_ID is not set")

        return cls(**config_kwargs)
