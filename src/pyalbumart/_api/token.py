"""Token endpoint.

Both grants are a form-encoded ``POST`` answered with JSON:
  - ``authorization_code``: client_id, code, redirect_uri, code_verifier
  - ``refresh_token``: client_id, refresh_token
"""

from __future__ import annotations

import logging
from typing import Any

from pyalbumart._redact import redact_for_log
from pyalbumart._transport import Transport
from pyalbumart.config import AlbumArtConfig
from pyalbumart.exceptions import TransportError

_logger = logging.getLogger(__name__)

_FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


async def _post_form(transport: Transport, url: str, form: dict[str, str], *, what: str) -> dict[str, Any]:
    _logger.debug("Token request %s form=%s", what, redact_for_log(form))
    response = await transport.request("POST", url, headers=_FORM_HEADERS, data=form)
    response.raise_for_status(what)
    payload = response.json()
    if not isinstance(payload, dict):
        raise TransportError(f"{what} returned a non-object body", status_code=response.status, url=url)
    _logger.debug("Token response %s body=%s", what, redact_for_log(payload))
    return payload


async def exchange_code(
    config: AlbumArtConfig,
    transport: Transport,
    *,
    code: str,
    verifier: str,
) -> dict[str, Any]:
    """Exchange an authorization code for a token response.

    Raises
    ------
    TransportError
        On network failure, non-2xx status, or a non-JSON body.
    """
    form = {
        "client_id": config.client_id,
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": config.redirect_uri,
        "code_verifier": verifier,
    }
    return await _post_form(transport, config.token_url, form, what="Token exchange")


async def refresh_access_token(
    config: AlbumArtConfig,
    transport: Transport,
    *,
    refresh_token: str,
) -> dict[str, Any]:
    """Trade a refresh token for a new access token.

    The error body of a failed call is kept on the raised
    :class:`TransportError` so callers can detect ``invalid_grant``.
    """
    form = {
        "client_id": config.client_id,
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
    }
    return await _post_form(transport, config.token_url, form, what="Refresh")
