"""Synchronous key-value persistence for tokens, PKCE sessions and settings.

Values are stored as JSON strings, mirroring browser ``localStorage``.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

_logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """String-to-string storage backend."""

    def get_item(self, key: str) -> str | None:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...


class MemoryStorage:
    """Process-local backend. Nothing survives a restart."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._items


class FileStorage:
    """Backend persisted as a single JSON object on disk.

    Every write rewrites the file atomically (temp file + rename).
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._items: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            _logger.warning("Ignoring unreadable storage file %s", self._path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._items, fh, indent=2, sort_keys=True)
            os.replace(tmp, self._path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._flush()


class JsonStore:
    """JSON get/set/delete on top of a :class:`KeyValueStore`.

    Unparseable values read back as ``None``.
    """

    def __init__(self, backend: KeyValueStore | None = None) -> None:
        self._backend: KeyValueStore = backend if backend is not None else MemoryStorage()

    @classmethod
    def from_path(cls, path: str | os.PathLike[str] | None) -> JsonStore:
        """File-backed store at *path*, or an in-memory one when ``None``."""
        return cls(FileStorage(path) if path else MemoryStorage())

    @property
    def backend(self) -> KeyValueStore:
        return self._backend

    def get(self, key: str) -> Any:
        raw = self._backend.get_item(key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    def set(self, key: str, value: Any) -> None:
        self._backend.set_item(key, json.dumps(value))

    def delete(self, key: str) -> None:
        self._backend.remove_item(key)
