"""Tile source variants consumed by the polling engine."""

from __future__ import annotations

import dataclasses
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from pyalbumart.models.tile import SourceResult, Tile

StaticEntry = str | Tile | Mapping[str, Any]
FetchResult = SourceResult | Mapping[str, Any] | None
FetchFn = Callable[[], Awaitable[FetchResult]]


@dataclasses.dataclass(frozen=True)
class StaticSource:
    """Fixed list of tiles, normalized and emitted once.

    Entries are bare image URIs (used as both id and src), :class:`Tile`
    objects, or mappings with ``id`` and ``src`` keys.
    """

    entries: tuple[StaticEntry, ...]


@dataclasses.dataclass(frozen=True)
class DynamicSource:
    """Zero-argument coroutine function polled repeatedly.

    It returns a :class:`SourceResult` (or an equivalent mapping with
    ``tiles`` and optional ``retry_ms``/``retryMs``).
    """

    fetch: FetchFn
    name: str = "dynamic"


Source = StaticSource | DynamicSource


def as_source(value: Source | FetchFn | Iterable[StaticEntry]) -> Source:
    """Resolve *value* to a :data:`Source` variant once, up front.

    Raises
    ------
    TypeError
        If *value* is neither callable nor an iterable of entries.
    """
    if isinstance(value, (StaticSource, DynamicSource)):
        return value
    if callable(value):
        return DynamicSource(fetch=value, name=getattr(value, "__name__", "dynamic"))
    if isinstance(value, (str, bytes, Mapping)):
        raise TypeError(f"expected a list of tile entries, got {type(value).__name__}")
    try:
        entries = tuple(value)
    except TypeError as exc:
        raise TypeError(f"cannot use {type(value).__name__} as a tile source") from exc
    return StaticSource(entries=entries)
