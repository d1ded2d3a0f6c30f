"""Spotify Web API adapters.

Endpoints:
  - GET /me/player/recently-played
  - GET /me
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict

from pyalbumart._constants import DEFAULT_RETRY_AFTER_S, SPOTIFY_API_BASE_URL
from pyalbumart._transport import HttpResponse, Transport
from pyalbumart.models.tile import SourceResult, Tile
from pyalbumart.models.token import Token
from pyalbumart.sources._base import DynamicSource

_logger = logging.getLogger(__name__)


class SpotifyProfile(BaseModel):
    """Subset of ``GET /me`` shown next to the logout button."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    display_name: str | None = None
    country: str | None = None
    product: str | None = None


def _bearer(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


def retry_after_ms(response: HttpResponse, default_s: float = DEFAULT_RETRY_AFTER_S) -> float:
    """``Retry-After`` (seconds) as milliseconds, falling back to *default_s*."""
    raw = response.header("retry-after")
    try:
        seconds = float(raw) if raw else default_s
    except ValueError:
        seconds = default_s
    if seconds <= 0:
        seconds = default_s
    return seconds * 1000


def parse_recently_played(data: Any, take: int) -> list[Tile]:
    """Newest-first album tiles from a recently-played payload, one per album."""
    items = data.get("items") if isinstance(data, dict) else None
    if not isinstance(items, list):
        return []

    seen: set[str] = set()
    tiles: list[Tile] = []
    for item in items:
        track = item.get("track") if isinstance(item, dict) else None
        album = track.get("album") if isinstance(track, dict) else None
        if not isinstance(album, dict):
            continue
        tile_id = album.get("id") or album.get("name")
        images = album.get("images")
        src = images[0].get("url") if isinstance(images, list) and images and isinstance(images[0], dict) else None
        if not tile_id or not src or tile_id in seen:
            continue
        seen.add(tile_id)
        tiles.append(Tile(id=str(tile_id), src=str(src)))
        if len(tiles) >= take:
            break
    return tiles


def spotify_recent_source(
    transport: Transport,
    token: Token | None,
    *,
    limit: int = 50,
    take: int = 6,
    api_base_url: str = SPOTIFY_API_BASE_URL,
    default_retry_after_s: float = DEFAULT_RETRY_AFTER_S,
) -> DynamicSource:
    """Dynamic source over the user's recently played tracks.

    The access token is captured when the source is built; build a new
    source whenever the token changes.
    """
    access_token = token.access_token if token is not None else None
    url = f"{api_base_url}/me/player/recently-played?limit={limit}"

    async def fetch_recently_played() -> SourceResult:
        if not access_token:
            return SourceResult()
        response = await transport.request("GET", url, headers=_bearer(access_token))
        if response.status == 429:
            wait_ms = retry_after_ms(response, default_retry_after_s)
            _logger.info("Spotify rate limit hit; backing off %sms", wait_ms)
            return SourceResult(retry_ms=wait_ms)
        response.raise_for_status("recently-played")
        tiles = parse_recently_played(response.json(), take)
        _logger.debug("recently-played returned %d tiles", len(tiles))
        return SourceResult(tiles=tiles)

    return DynamicSource(fetch=fetch_recently_played, name="spotify")


async def fetch_profile(
    transport: Transport,
    access_token: str,
    *,
    api_base_url: str = SPOTIFY_API_BASE_URL,
) -> SpotifyProfile | None:
    """Current user's profile, or ``None`` when the API answers 204.

    Raises
    ------
    TransportError
        On any other non-2xx status (``status_code == 401`` when the token
        was rejected).
    """
    response = await transport.request("GET", f"{api_base_url}/me", headers=_bearer(access_token))
    if response.status == 204:
        return None
    response.raise_for_status("GET /me")
    return SpotifyProfile.model_validate(response.json())
