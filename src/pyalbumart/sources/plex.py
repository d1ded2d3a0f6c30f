"""Plex Media Server adapters.

Endpoints (XML):
  - GET /accounts/
  - GET /status/sessions/history/all
  - GET /photo/:/transcode  (artwork URLs handed to the renderer)

Plex settings are a per-service blob persisted in the key-value store.
"""

from __future__ import annotations

import dataclasses
import logging
import re
import uuid
import xml.etree.ElementTree as ET
from enum import StrEnum
from urllib.parse import quote, urlencode, urlsplit

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from pyalbumart._constants import PLEX_HEADERS, PLEX_SETTINGS_KEY, PLEX_THUMB_SIZE
from pyalbumart._redact import redact_url
from pyalbumart._transport import Transport
from pyalbumart.exceptions import TransportError
from pyalbumart.models.tile import SourceResult, Tile
from pyalbumart.sources._base import DynamicSource
from pyalbumart.storage import JsonStore

_logger = logging.getLogger(__name__)

# Artwork attributes in order of preference (album before track).
_THUMB_ATTRIBUTES = ("grandparentThumb", "parentThumb", "thumb", "grandparentArt", "art")
_TRACK_ID_ATTRIBUTES = ("grandparentKey", "parentKey", "ratingKey", "historyKey")
_VIDEO_ID_ATTRIBUTES = ("ratingKey", "historyKey")


class MediaKind(StrEnum):
    MUSIC = "music"
    VIDEO = "video"
    ALL = "all"


class PlexSettings(BaseModel):
    """Connection settings, persisted with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
    )

    server_url: str = "http://localhost:32400"
    token: str = ""
    account_id: str = ""
    media_kind: MediaKind = MediaKind.MUSIC

    @property
    def base_url(self) -> str:
        return self.server_url.rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self.server_url and self.token)


class PlexAccount(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""


@dataclasses.dataclass(frozen=True)
class HistoryEntry:
    kind: str  # "track" | "video"
    type: str
    viewed_at: int
    node: ET.Element


def load_plex_settings(store: JsonStore) -> PlexSettings:
    raw = store.get(PLEX_SETTINGS_KEY)
    if not isinstance(raw, dict):
        return PlexSettings()
    try:
        return PlexSettings.model_validate(raw)
    except ValidationError:
        _logger.warning("Ignoring malformed Plex settings")
        return PlexSettings()


def save_plex_settings(store: JsonStore, settings: PlexSettings) -> None:
    store.set(PLEX_SETTINGS_KEY, settings.model_dump(mode="json", by_alias=True))


# ------------------------------------------------------------------
# URL helpers
# ------------------------------------------------------------------


def with_token(base: str, path: str, token: str) -> str:
    separator = "&" if "?" in path else "?"
    return f"{base}{path}{separator}X-Plex-Token={quote(token, safe='')}"


def as_relative_path(path: str) -> str:
    """Normalize an artwork path to a server-relative one.

    Backslashes become slashes; absolute http(s) URLs keep only their path
    and query; a leading ``/`` is ensured.
    """
    if not path:
        return ""
    value = re.sub(r"\\+", "/", path)
    parts = urlsplit(value)
    if parts.scheme.lower() in ("http", "https") and parts.netloc:
        return (parts.path or "/") + (f"?{parts.query}" if parts.query else "")
    return value if value.startswith("/") else f"/{value}"


def is_valid_thumb(path: str | None) -> bool:
    """Plex uses a trailing ``-1`` for "no artwork"."""
    if not path:
        return False
    return not path.endswith("-1")


def transcode_square_url(base: str, path: str | None, token: str, size: int = PLEX_THUMB_SIZE) -> str | None:
    """Photo-transcoder URL returning a *size* x *size* image of *path*."""
    if path is None or not is_valid_thumb(path):
        return None
    query = urlencode(
        {
            "width": str(size),
            "height": str(size),
            "minSize": "1",
            "upscale": "1",
            "url": as_relative_path(path),
        }
    )
    return f"{base}/photo/:/transcode?{query}&X-Plex-Token={quote(token, safe='')}"


def resolve_thumb_url(node: ET.Element, base: str, token: str) -> str | None:
    for attribute in _THUMB_ATTRIBUTES:
        url = transcode_square_url(base, node.get(attribute), token)
        if url:
            return url
    return None


# ------------------------------------------------------------------
# XML parsing
# ------------------------------------------------------------------


def parse_xml(text: str, url: str = "") -> ET.Element:
    try:
        return ET.fromstring(text)
    except ET.ParseError as exc:
        raise TransportError(f"Invalid XML from {redact_url(url)}: {exc}", url=url) from exc


def parse_accounts(root: ET.Element) -> list[PlexAccount]:
    accounts: list[PlexAccount] = []
    if root.tag != "MediaContainer":
        return accounts
    for node in root.findall("Account"):
        account_id = node.get("id") or ""
        if account_id:
            accounts.append(PlexAccount(id=account_id, name=node.get("name") or ""))
    return accounts


def parse_history(root: ET.Element) -> list[HistoryEntry]:
    """Play history entries, most recently viewed first."""
    container = root if root.tag == "MediaContainer" else root.find(".//MediaContainer")
    if container is None:
        return []
    entries: list[HistoryEntry] = []
    for node in container.iter():
        if node.tag not in ("Video", "Track"):
            continue
        kind = "track" if node.tag == "Track" else "video"
        try:
            viewed_at = int(node.get("viewedAt") or 0)
        except ValueError:
            viewed_at = 0
        entries.append(HistoryEntry(kind=kind, type=node.get("type") or kind, viewed_at=viewed_at, node=node))
    entries.sort(key=lambda entry: entry.viewed_at, reverse=True)
    return entries


def _first_attribute(node: ET.Element, names: tuple[str, ...]) -> str:
    for name in names:
        value = node.get(name)
        if value:
            return value
    return uuid.uuid4().hex


def build_tile(entry: HistoryEntry, base: str, token: str) -> Tile | None:
    """Tile for a history entry; tracks are keyed by album, videos by item."""
    names = _TRACK_ID_ATTRIBUTES if entry.kind == "track" else _VIDEO_ID_ATTRIBUTES
    src = resolve_thumb_url(entry.node, base, token)
    if not src:
        return None
    return Tile(id=_first_attribute(entry.node, names), src=src)


def matches_kind(entry: HistoryEntry, media_kind: MediaKind) -> bool:
    if media_kind is MediaKind.MUSIC:
        return entry.kind == "track" or entry.type == "track"
    if media_kind is MediaKind.VIDEO:
        return entry.kind == "video" and entry.type in ("movie", "episode")
    return True


# ------------------------------------------------------------------
# Network
# ------------------------------------------------------------------


async def _get_xml(transport: Transport, url: str) -> ET.Element:
    response = await transport.request("GET", url, headers=PLEX_HEADERS)
    response.raise_for_status(f"Plex GET {redact_url(url)}")
    return parse_xml(response.text, url)


async def fetch_plex_accounts(transport: Transport, settings: PlexSettings) -> list[PlexAccount]:
    """Accounts known to the server (``id``, ``name``)."""
    if not settings.configured:
        return []
    return parse_accounts(await _get_xml(transport, with_token(settings.base_url, "/accounts/", settings.token)))


def plex_history_source(transport: Transport, settings: PlexSettings, *, take: int = 6) -> DynamicSource:
    """Dynamic source over a Plex server's play history.

    The server may ignore ``accountID``, so entries are filtered by account
    client-side as well.
    """
    base = settings.base_url
    token = settings.token
    account_id = settings.account_id
    path = "/status/sessions/history/all"
    if account_id:
        path = f"{path}?{urlencode({'accountID': account_id})}"
    url = with_token(base, path, token)

    async def fetch_history() -> SourceResult:
        if not base or not token:
            return SourceResult()
        entries = parse_history(await _get_xml(transport, url))
        if account_id:
            entries = [e for e in entries if e.node.get("accountID") == account_id]

        seen: set[str] = set()
        tiles: list[Tile] = []
        for entry in entries:
            if not matches_kind(entry, settings.media_kind):
                continue
            tile = build_tile(entry, base, token)
            if tile is None or tile.id in seen:
                continue
            seen.add(tile.id)
            tiles.append(tile)
            if len(tiles) >= take:
                break

        _logger.debug("Plex history: %d entries, %d tiles", len(entries), len(tiles))
        return SourceResult(tiles=tiles)

    return DynamicSource(fetch=fetch_history, name="plex")
