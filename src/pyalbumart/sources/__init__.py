"""Tile sources: the static/dynamic variants and per-service adapters."""

from pyalbumart.sources._base import DynamicSource, Source, StaticSource, as_source
from pyalbumart.sources.plex import (
    MediaKind,
    PlexAccount,
    PlexSettings,
    fetch_plex_accounts,
    load_plex_settings,
    plex_history_source,
    save_plex_settings,
)
from pyalbumart.sources.spotify import SpotifyProfile, fetch_profile, spotify_recent_source

__all__ = [
    "DynamicSource",
    "MediaKind",
    "PlexAccount",
    "PlexSettings",
    "Source",
    "SpotifyProfile",
    "StaticSource",
    "as_source",
    "fetch_plex_accounts",
    "fetch_profile",
    "load_plex_settings",
    "plex_history_source",
    "save_plex_settings",
    "spotify_recent_source",
]
