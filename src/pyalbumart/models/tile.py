"""Tile models exchanged between sources, the polling engine and renderers."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pyalbumart._constants import PLACEHOLDER_PREFIX


class Tile(BaseModel):
    """A single piece of visual content.

    Parameters
    ----------
    id : str
        Identifier, unique within a tile set (album id, Plex rating key...).
    src : str or None
        Image URI. ``None`` marks a placeholder slot.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str
    src: str | None = None

    @field_validator("id")
    @classmethod
    def _require_id(cls, value: str) -> str:
        if not value:
            raise ValueError("tile id must be non-empty")
        return value

    @classmethod
    def placeholder(cls, index: int) -> Tile:
        """Empty slot at zero-based position *index*."""
        return cls(id=f"{PLACEHOLDER_PREFIX}{index}", src=None)

    @property
    def is_placeholder(self) -> bool:
        return self.src is None


class SourceResult(BaseModel):
    """One batch returned by a dynamic source.

    ``tiles`` are ordered newest-first. ``retry_ms`` is a server-suggested
    delay before the next poll (e.g. from a 429 ``Retry-After``); only
    positive values are honoured.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    tiles: list[Tile] = Field(default_factory=list)
    retry_ms: float | None = Field(default=None, alias="retryMs")

    @field_validator("tiles", mode="before")
    @classmethod
    def _default_tiles(cls, value: object) -> object:
        return [] if value is None else value
