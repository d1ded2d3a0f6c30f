"""High-level async client tying token lifecycle and tile polling together."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import aiohttp

from pyalbumart._transport import AiohttpTransport, Transport
from pyalbumart.config import AlbumArtConfig
from pyalbumart.exceptions import AlbumArtError, ConfigError
from pyalbumart.models.tile import Tile
from pyalbumart.models.token import Token
from pyalbumart.navigation import BrowserNavigator, Navigator
from pyalbumart.polling.engine import PollHandle, PollingEngine, TileListener
from pyalbumart.scheduler import AsyncioScheduler, Scheduler
from pyalbumart.sources.plex import (
    PlexSettings,
    fetch_plex_accounts,
    load_plex_settings,
    plex_history_source,
    save_plex_settings,
)
from pyalbumart.sources.spotify import SpotifyProfile, fetch_profile, spotify_recent_source
from pyalbumart.storage import JsonStore
from pyalbumart.tokens import TokenManager

_logger = logging.getLogger(__name__)


class AlbumArtClient:
    """Async client for album-art tiles from Spotify or Plex.

    Usage::

        async with AlbumArtClient(config) as client:
            client.subscribe(render)
            await client.handle_redirect()
            await client.watch_spotify()

    While watching Spotify, polling restarts with a freshly bound source
    whenever the access token changes and stops on logout.
    """

    def __init__(
        self,
        config: AlbumArtConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        store: JsonStore | None = None,
        navigator: Navigator | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._store = store if store is not None else JsonStore.from_path(config.storage_path)
        self._navigator: Navigator = navigator if navigator is not None else BrowserNavigator(config.redirect_uri)
        self._owns_scheduler = scheduler is None
        self._scheduler: Scheduler = scheduler if scheduler is not None else AsyncioScheduler()
        self._engine = PollingEngine(self._scheduler, error_retry_ms=config.error_retry_ms)
        self._tokens: TokenManager | None = None
        self._remove_token_listener: Callable[[], None] | None = None
        self._watching: str | None = None
        self._bound_access_token: str | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> AlbumArtClient:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = AiohttpTransport(self._http_session, timeout=self._config.http_timeout)
        self._tokens = TokenManager(
            self._config,
            self._transport,
            self._store,
            scheduler=self._scheduler,
            navigator=self._navigator,
            auto_refresh=True,
        )
        self._remove_token_listener = self._tokens.add_listener(self._on_token_change)
        self._tokens.schedule_refresh()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        self._engine.stop()
        self._watching = None
        if self._tokens is not None:
            if self._remove_token_listener is not None:
                self._remove_token_listener()
                self._remove_token_listener = None
            await self._tokens.aclose()
            self._tokens = None
        if self._owns_scheduler and isinstance(self._scheduler, AsyncioScheduler):
            await self._scheduler.aclose()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._transport = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def tokens(self) -> TokenManager:
        if self._tokens is None:
            raise AlbumArtError("Client not initialized. Use 'async with AlbumArtClient(...) as client:'")
        return self._tokens

    @property
    def engine(self) -> PollingEngine:
        return self._engine

    @property
    def store(self) -> JsonStore:
        return self._store

    @property
    def tiles(self) -> list[Tile]:
        return self._engine.tiles

    def subscribe(self, listener: TileListener) -> Callable[[], None]:
        return self._engine.subscribe(listener)

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise AlbumArtError("Client not initialized. Use 'async with AlbumArtClient(...) as client:'")
        return self._transport

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def login(self) -> str:
        """Start a Spotify PKCE login. Returns the authorization URL."""
        return self.tokens.begin_login()

    async def handle_redirect(self, url: str | None = None) -> Token | None:
        """Complete a login from the callback *url* (or the navigator's URL)."""
        if url is not None and isinstance(self._navigator, BrowserNavigator):
            self._navigator.receive_callback(url)
        return await self.tokens.handle_redirect()

    def logout(self) -> None:
        self.tokens.logout()

    async def get_profile(self) -> SpotifyProfile | None:
        """Profile of the signed-in user, ``None`` when not signed in."""
        token = self.tokens.token
        if token is None or not token.access_token:
            return None
        return await fetch_profile(
            self._require_transport(),
            token.access_token,
            api_base_url=self._config.api_base_url,
        )

    # ------------------------------------------------------------------
    # Tile polling
    # ------------------------------------------------------------------

    async def watch_spotify(self) -> PollHandle:
        """Poll recently played albums of the signed-in user."""
        if self._watching != "spotify":
            self._engine.reset()
        self._watching = "spotify"
        return self._start_spotify(self.tokens.token)

    async def watch_plex(self, settings: PlexSettings | None = None) -> PollHandle:
        """Poll a Plex server's play history.

        Without an account selected, the first account reported by the
        server is picked and saved.

        Raises
        ------
        ConfigError
            If the server URL or token is missing.
        """
        settings = settings if settings is not None else load_plex_settings(self._store)
        if not settings.configured:
            raise ConfigError("Plex server URL and token are required")
        transport = self._require_transport()
        if not settings.account_id:
            accounts = await fetch_plex_accounts(transport, settings)
            if accounts:
                settings = settings.model_copy(update={"account_id": accounts[0].id})
        save_plex_settings(self._store, settings)

        if self._watching != "plex":
            self._engine.reset()
        self._watching = "plex"
        source = plex_history_source(transport, settings, take=self._config.max_tiles)
        return self._engine.start(source, self._config.max_tiles, self._config.poll_ms)

    def stop(self) -> None:
        self._engine.stop()
        self._watching = None

    def _start_spotify(self, token: Token | None) -> PollHandle:
        self._bound_access_token = token.access_token if token is not None else None
        source = spotify_recent_source(
            self._require_transport(),
            token,
            limit=self._config.recent_limit,
            take=self._config.max_tiles,
            api_base_url=self._config.api_base_url,
            default_retry_after_s=self._config.default_retry_after_s,
        )
        return self._engine.start(source, self._config.max_tiles, self._config.poll_ms)

    def _on_token_change(self, token: Token | None) -> None:
        if self._watching != "spotify":
            return
        if token is None:
            _logger.debug("Signed out; stopping Spotify polling")
            self.stop()
            return
        if token.access_token != self._bound_access_token:
            self._start_spotify(token)
