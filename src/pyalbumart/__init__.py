"""pyalbumart - Async album-art tiles from Spotify and Plex with OAuth2 PKCE token lifecycle."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyalbumart")
except PackageNotFoundError:
    __version__ = "0+local"
from pyalbumart.client import AlbumArtClient
from pyalbumart.config import AlbumArtConfig
from pyalbumart.exceptions import (
    AlbumArtError,
    AuthExchangeError,
    AuthStateMismatchError,
    ConfigError,
    SourceFetchError,
    TokenRefreshError,
    TransportError,
)
from pyalbumart.models import PkceSession, SourceResult, Tile, Token
from pyalbumart.navigation import BrowserNavigator
from pyalbumart.polling import PollHandle, PollingEngine, reconcile
from pyalbumart.scheduler import AsyncioScheduler
from pyalbumart.sources import (
    DynamicSource,
    MediaKind,
    PlexSettings,
    StaticSource,
    plex_history_source,
    spotify_recent_source,
)
from pyalbumart.storage import FileStorage, JsonStore, MemoryStorage
from pyalbumart.tokens import AuthState, TokenManager

__all__ = [
    "__version__",
    "AlbumArtClient",
    "AlbumArtConfig",
    "AlbumArtError",
    "AsyncioScheduler",
    "AuthExchangeError",
    "AuthState",
    "AuthStateMismatchError",
    "BrowserNavigator",
    "ConfigError",
    "DynamicSource",
    "FileStorage",
    "JsonStore",
    "MediaKind",
    "MemoryStorage",
    "PkceSession",
    "PlexSettings",
    "PollHandle",
    "PollingEngine",
    "SourceFetchError",
    "SourceResult",
    "StaticSource",
    "Tile",
    "Token",
    "TokenManager",
    "TokenRefreshError",
    "TransportError",
    "plex_history_source",
    "reconcile",
    "spotify_recent_source",
]
