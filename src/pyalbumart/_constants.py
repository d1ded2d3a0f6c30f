"""Internal constants shared across the library."""

SPOTIFY_AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"
DEFAULT_REDIRECT_URI = "http://localhost:5173/spotify"
DEFAULT_SCOPES: tuple[str, ...] = (
    "user-read-currently-playing",
    "user-read-playback-state",
    "user-read-recently-played",
)

USER_AGENT = "pyalbumart/0.1"

# ------------------------------------------------------------------
# Key-value storage keys
# ------------------------------------------------------------------

TOKEN_KEY = "spotify_token"
PKCE_VERIFIER_KEY = "pkce_verifier"
PKCE_STATE_KEY = "pkce_state"
PLEX_SETTINGS_KEY = "plex_settings_v1"

# ------------------------------------------------------------------
# Timing (milliseconds)
# ------------------------------------------------------------------

DEFAULT_SKEW_MS = 60_000
DEFAULT_POLL_MS = 30_000
ERROR_RETRY_MS = 30_000
DEFAULT_RETRY_AFTER_S = 15

DEFAULT_MAX_TILES = 6
PLACEHOLDER_PREFIX = "placeholder-"

# ------------------------------------------------------------------
# Plex
# ------------------------------------------------------------------

PLEX_HEADERS: dict[str, str] = {
    "X-Plex-Product": "AlbumArtVisualizer",
    "X-Plex-Version": "1.0",
    "X-Plex-Client-Identifier": "aav-web-client",
}
PLEX_THUMB_SIZE = 512
