#!/usr/bin/env python3
"""Watch album-art tiles from Spotify or Plex in the terminal.

Every time the tile set changes, the tiles are printed one per line
(placeholders shown as ``-``).

Usage
-----
Spotify (PKCE login through the system browser)::

    export SPOTIFY_CLIENT_ID="your-client-id"
    python scripts/watch_tiles.py spotify

After authorizing, paste the URL the browser was redirected to.

Plex::

    python scripts/watch_tiles.py plex --server http://localhost:32400 --token XXXX

Options::

    --store FILE        Persist tokens and settings in FILE (default: ~/.pyalbumart.json)
    --max-tiles N       Number of tiles to keep (default: 6)
    --poll-ms MS        Poll interval in milliseconds (default: 30000)
    --once              Exit after the first tile set
    --logout            Forget the stored Spotify token and exit
    -v, --verbose       Debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyalbumart import AlbumArtClient, AlbumArtConfig, AlbumArtError, MediaKind, Tile  # noqa: E402
from pyalbumart.sources import load_plex_settings  # noqa: E402

_DEFAULT_STORE = Path.home() / ".pyalbumart.json"


def _print_tiles(tiles: list[Tile]) -> None:
    print(f"\n--- {len(tiles)} tiles ---")
    for index, tile in enumerate(tiles, start=1):
        print(f"{index:>2}. {tile.id:<32} {tile.src or '-'}")


async def _spotify(client: AlbumArtClient, args: argparse.Namespace) -> None:
    if args.logout:
        client.logout()
        print("Logged out.")
        return

    if not client.tokens.signed_in:
        url = client.login()
        print(f"Authorize in your browser:\n  {url}")
        callback = await asyncio.to_thread(input, "Redirected URL: ")
        await client.handle_redirect(callback.strip())
        if not client.tokens.signed_in:
            reason = client.tokens.last_error or "state mismatch or missing code"
            raise SystemExit(f"Login failed: {reason}")

    profile = await client.get_profile()
    if profile is not None:
        print(f"Signed in as {profile.display_name or profile.id}")
    await client.watch_spotify()


async def _plex(client: AlbumArtClient, args: argparse.Namespace) -> None:
    settings = load_plex_settings(client.store)
    updates: dict[str, object] = {}
    if args.server:
        updates["server_url"] = args.server
    if args.token:
        updates["token"] = args.token
    if args.account:
        updates["account_id"] = args.account
    if args.kind:
        updates["media_kind"] = MediaKind(args.kind)
    if updates:
        settings = settings.model_copy(update=updates)
    await client.watch_plex(settings)


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, object] = {
        "storage_path": str(args.store),
        "max_tiles": args.max_tiles,
        "poll_ms": args.poll_ms,
    }
    if args.service == "plex":
        # The Plex source needs no OAuth client.
        overrides["client_id"] = os.environ.get("SPOTIFY_CLIENT_ID") or "plex-only"

    try:
        config = AlbumArtConfig.from_env(**overrides)
    except AlbumArtError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    first_batch = asyncio.Event()

    def _on_tiles(tiles: list[Tile]) -> None:
        _print_tiles(tiles)
        first_batch.set()

    async with AlbumArtClient(config) as client:
        client.subscribe(_on_tiles)
        try:
            if args.service == "spotify":
                await _spotify(client, args)
                if args.logout:
                    return 0
            else:
                await _plex(client, args)
        except AlbumArtError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1

        if args.once:
            await first_batch.wait()
            return 0
        while True:
            await asyncio.sleep(3600)


def main() -> None:
    parser = argparse.ArgumentParser(description="Watch album-art tiles from Spotify or Plex")
    parser.add_argument("service", choices=("spotify", "plex"))
    parser.add_argument("--store", type=Path, default=_DEFAULT_STORE, help="State file")
    parser.add_argument("--max-tiles", type=int, default=6)
    parser.add_argument("--poll-ms", type=int, default=30_000)
    parser.add_argument("--once", action="store_true", help="Exit after the first tile set")
    parser.add_argument("--logout", action="store_true", help="Forget the stored Spotify token")
    parser.add_argument("--server", help="Plex server URL")
    parser.add_argument("--token", help="Plex token")
    parser.add_argument("--account", help="Plex account ID")
    parser.add_argument("--kind", choices=[kind.value for kind in MediaKind], help="Plex media kind")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    try:
        sys.exit(asyncio.run(_run(args)))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
