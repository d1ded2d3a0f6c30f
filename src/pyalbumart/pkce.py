"""PKCE helpers (RFC 7636, ``S256`` method)."""

from __future__ import annotations

import base64
import hashlib
import secrets
from collections.abc import Iterable
from urllib.parse import urlencode

from pyalbumart.models.token import PkceSession

_VERIFIER_BYTES = 64
_VERIFIER_MAX_LEN = 128


def make_code_verifier() -> str:
    """Random verifier: 64 bytes hex-encoded, at most 128 characters."""
    return secrets.token_hex(_VERIFIER_BYTES)[:_VERIFIER_MAX_LEN]


def make_code_challenge(verifier: str) -> str:
    """``base64url(SHA-256(verifier))`` without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def make_state() -> str:
    """Opaque random value binding the redirect to this login attempt."""
    return secrets.token_urlsafe(16)


def new_session() -> PkceSession:
    return PkceSession(verifier=make_code_verifier(), state=make_state())


def build_authorize_url(
    authorize_url: str,
    *,
    client_id: str,
    redirect_uri: str,
    challenge: str,
    state: str,
    scopes: Iterable[str],
) -> str:
    """Authorization endpoint URL for the ``code`` flow with an S256 challenge."""
    params = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "code_challenge_method": "S256",
        "code_challenge": challenge,
        "state": state,
        "scope": " ".join(scopes),
    }
    return f"{authorize_url}?{urlencode(params)}"
