"""Data models for tiles, tokens and PKCE sessions."""

from pyalbumart.models.tile import SourceResult, Tile
from pyalbumart.models.token import PkceSession, Token

__all__ = [
    "PkceSession",
    "SourceResult",
    "Tile",
    "Token",
]
