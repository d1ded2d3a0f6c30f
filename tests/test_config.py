from __future__ import annotations

import pytest

from pyalbumart.config import AlbumArtConfig
from pyalbumart.exceptions import ConfigError

_ENV_KEYS = (
    "SPOTIFY_CLIENT_ID",
    "SPOTIFY_REDIRECT_URI",
    "SPOTIFY_SCOPES",
    "ALBUMART_POLL_MS",
    "ALBUMART_MAX_TILES",
    "ALBUMART_STORAGE_PATH",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults() -> None:
    config = AlbumArtConfig(client_id="cid")

    assert config.redirect_uri == "http://localhost:5173/spotify"
    assert config.poll_ms == 30_000
    assert config.max_tiles == 6
    assert config.refresh_skew_ms == 60_000
    assert config.error_retry_ms == 30_000
    assert "user-read-recently-played" in config.scopes


def test_from_env_reads_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "env-client")
    monkeypatch.setenv("SPOTIFY_SCOPES", "user-read-email  user-read-recently-played")
    monkeypatch.setenv("ALBUMART_POLL_MS", "5000")
    monkeypatch.setenv("ALBUMART_MAX_TILES", "12")

    config = AlbumArtConfig.from_env()

    assert config.client_id == "env-client"
    assert config.scopes == ("user-read-email", "user-read-recently-played")
    assert config.poll_ms == 5000
    assert config.max_tiles == 12


def test_from_env_overrides_take_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "env-client")
    monkeypatch.setenv("ALBUMART_MAX_TILES", "not-a-number")

    config = AlbumArtConfig.from_env(client_id="explicit", max_tiles=3)

    assert config.client_id == "explicit"
    assert config.max_tiles == 3


def test_from_env_requires_client_id() -> None:
    with pytest.raises(ConfigError, match="SPOTIFY_CLIENT_ID"):
        AlbumArtConfig.from_env()


def test_from_env_rejects_malformed_integer(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "cid")
    monkeypatch.setenv("ALBUMART_POLL_MS", "soon")

    with pytest.raises(ConfigError, match="ALBUMART_POLL_MS"):
        AlbumArtConfig.from_env()


@pytest.mark.parametrize(
    "kwargs",
    [{"max_tiles": 0}, {"poll_ms": 0}, {"error_retry_ms": -1}, {"refresh_skew_ms": -1}],
)
def test_invalid_values_rejected(kwargs: dict[str, int]) -> None:
    with pytest.raises(ConfigError):
        AlbumArtConfig(client_id="cid", **kwargs)
