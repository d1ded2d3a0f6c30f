"""Tile reconciliation.

Merges a fresh newest-first batch with the previous stable tiles into a
fixed-size, de-duplicated tile set. Everything here is pure.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from pyalbumart.models.tile import Tile


def _static_tile(entry: Any) -> Tile | None:
    if isinstance(entry, Tile):
        return entry if entry.src else None
    if isinstance(entry, str):
        uri = entry.strip()
        return Tile(id=uri, src=uri) if uri else None
    if isinstance(entry, Mapping):
        tile_id = entry.get("id")
        src = entry.get("src")
        if not isinstance(tile_id, str) or not isinstance(src, str):
            return None
        try:
            tile = Tile(id=tile_id, src=src)
        except ValidationError:
            return None
        return tile if tile.src else None
    return None


def normalize_static(entries: Iterable[Any], max_tiles: int) -> list[Tile]:
    """Turn static source entries into tiles.

    Bare strings become ``Tile(id=s, src=s)``; entries without a non-empty
    id and src are dropped. The result is truncated to *max_tiles*.
    """
    tiles: list[Tile] = []
    for entry in entries:
        if len(tiles) >= max_tiles:
            break
        tile = _static_tile(entry)
        if tile is not None:
            tiles.append(tile)
    return tiles


def reconcile(fresh: Sequence[Tile], previous: Sequence[Tile], max_tiles: int) -> list[Tile]:
    """Build the next tile set.

    1. Fresh tiles in order, first occurrence of each id wins.
    2. Backfill from *previous* (in its order) with ids not yet taken.
    3. Pad with ``placeholder-<slot>`` tiles.

    The result always has exactly *max_tiles* entries.
    """
    accepted: list[Tile] = []
    seen: set[str] = set()

    for pool in (fresh, previous):
        for tile in pool:
            if len(accepted) >= max_tiles:
                break
            if tile.is_placeholder or tile.id in seen:
                continue
            seen.add(tile.id)
            accepted.append(tile)

    while len(accepted) < max_tiles:
        accepted.append(Tile.placeholder(len(accepted)))
    return accepted


def same_tiles(a: Sequence[Tile], b: Sequence[Tile]) -> bool:
    """Order-sensitive comparison on ``id`` and ``src``."""
    return len(a) == len(b) and all(x.id == y.id and x.src == y.src for x, y in zip(a, b))
