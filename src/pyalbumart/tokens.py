"""Token lifecycle: PKCE login, persistence, refresh scheduling.

States::

    LOGGED_OUT -> EXCHANGING -> AUTHENTICATED <-> REFRESHING
         ^______________________________|___________|   (logout / invalid_grant)

The manager owns the current :class:`Token`, the pending PKCE session and
the refresh in-flight marker. Nothing outside it writes any of them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from pyalbumart._api.token import exchange_code, refresh_access_token
from pyalbumart._constants import PKCE_STATE_KEY, PKCE_VERIFIER_KEY, TOKEN_KEY
from pyalbumart._transport import Transport
from pyalbumart.config import AlbumArtConfig
from pyalbumart.exceptions import (
    AuthExchangeError,
    AuthStateMismatchError,
    TokenRefreshError,
    TransportError,
)
from pyalbumart.models.token import PkceSession, Token
from pyalbumart.navigation import Navigator, auth_params, strip_auth_params
from pyalbumart.pkce import build_authorize_url, make_code_challenge, new_session
from pyalbumart.scheduler import Cancellable, Scheduler
from pyalbumart.storage import JsonStore

_logger = logging.getLogger(__name__)

TokenListener = Callable[[Token | None], None]


class AuthState(StrEnum):
    LOGGED_OUT = "logged_out"
    EXCHANGING = "exchanging"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class TokenManager:
    """Owns OAuth token acquisition and refresh for one account.

    Parameters
    ----------
    config : AlbumArtConfig
        Endpoints, client ID, scopes and refresh skew.
    transport : Transport
        HTTP transport used for the token endpoint.
    store : JsonStore
        Persistence for the token record and the PKCE session.
    scheduler : Scheduler
        Arms the single pre-expiry refresh timer.
    navigator : Navigator or None
        Visible location used for the authorization redirect and for
        clearing ``code``/``state`` after a successful exchange.
    clock : callable
        Returns the current epoch time in milliseconds.
    auto_refresh : bool
        Re-arm the refresh timer after every token change, and retry
        transient refresh failures after ``config.error_retry_ms``.
    """

    def __init__(
        self,
        config: AlbumArtConfig,
        transport: Transport,
        store: JsonStore,
        *,
        scheduler: Scheduler,
        navigator: Navigator | None = None,
        clock: Callable[[], int] = _now_ms,
        auto_refresh: bool = False,
    ) -> None:
        self._config = config
        self._transport = transport
        self._store = store
        self._scheduler = scheduler
        self._navigator = navigator
        self._clock = clock
        self._auto_refresh = auto_refresh
        self._listeners: list[TokenListener] = []
        self._refreshing = False
        self._refresh_handle: Cancellable | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False
        self._generation = 0
        self._token = self._load_token()
        self._state = AuthState.AUTHENTICATED if self._token is not None else AuthState.LOGGED_OUT
        self.last_error: str = ""
        self.last_refresh_error: TokenRefreshError | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def token(self) -> Token | None:
        return self._token

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def signed_in(self) -> bool:
        return self._token is not None and self._token.signed_in

    @property
    def refresh_in_flight(self) -> bool:
        return self._refreshing

    def is_fresh(self, token: Token | None = None, skew_ms: int | None = None) -> bool:
        """``True`` iff the access token outlives ``now + skew_ms``."""
        token = token if token is not None else self._token
        if token is None:
            return False
        skew = self._config.refresh_skew_ms if skew_ms is None else skew_ms
        return token.is_fresh(self._clock(), skew)

    def add_listener(self, listener: TokenListener) -> Callable[[], None]:
        """Call *listener* with the new token (or ``None``) after every change."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def begin_login(self) -> str:
        """Start a PKCE login and redirect to the authorization endpoint.

        Returns
        -------
        str
            The authorization URL (also passed to the navigator, if any).
        """
        session = new_session()
        self._store.set(PKCE_STATE_KEY, session.state)
        self._store.set(PKCE_VERIFIER_KEY, session.verifier)
        url = build_authorize_url(
            self._config.authorize_url,
            client_id=self._config.client_id,
            redirect_uri=self._config.redirect_uri,
            challenge=make_code_challenge(session.verifier),
            state=session.state,
            scopes=self._config.scopes,
        )
        if self._navigator is not None:
            self._navigator.assign(url)
        return url

    async def complete_login(self, code: str, returned_state: str | None) -> Token | None:
        """Exchange *code* for a token if *returned_state* matches the stored one.

        Returns ``None`` only if the manager was closed mid-exchange.

        Raises
        ------
        AuthStateMismatchError
            No pending PKCE session, or the state differs. Nothing changes.
        AuthExchangeError
            The token endpoint refused or failed. The user stays logged out.
        """
        session = self._load_pkce()
        if session is None:
            raise AuthStateMismatchError("No pending login to complete")
        if returned_state != session.state:
            raise AuthStateMismatchError("Returned state does not match the pending login")

        # Matched: the session is consumed whatever the exchange outcome.
        self._clear_pkce()
        previous_state = self._state
        self._state = AuthState.EXCHANGING

        try:
            payload = await exchange_code(
                self._config,
                self._transport,
                code=code,
                verifier=session.verifier,
            )
            token = Token.from_response(payload, now_ms=self._clock())
        except (TransportError, AuthExchangeError) as exc:
            if self._closed:
                return None
            self._state = previous_state if self._token is not None else AuthState.LOGGED_OUT
            self.last_error = f"Token exchange failed: {exc}"
            _logger.warning("Token exchange failed: %s", exc)
            if isinstance(exc, AuthExchangeError):
                raise
            raise AuthExchangeError(f"Token exchange failed: {exc}") from exc

        if self._closed:
            return None

        self.last_error = ""
        self._set_token(token)
        self._state = AuthState.AUTHENTICATED
        if self._navigator is not None:
            self._navigator.replace(strip_auth_params(self._navigator.current_url))
        _logger.info("Login completed; token valid for %ss", token.expires_in)
        return token

    async def handle_redirect(self) -> Token | None:
        """Complete a login from ``code``/``state`` in the navigator's URL.

        A missing code or a state mismatch is ignored. An exchange failure
        is reported through :attr:`last_error`.
        """
        if self._navigator is None:
            return None
        code, state = auth_params(self._navigator.current_url)
        if not code:
            return None
        try:
            return await self.complete_login(code, state)
        except AuthStateMismatchError as exc:
            _logger.debug("Ignoring authorization redirect: %s", exc)
            return None
        except AuthExchangeError:
            return None

    def logout(self) -> None:
        """Forget the token and stop refreshing."""
        self._generation += 1
        self._cancel_refresh_timer()
        self._store.delete(TOKEN_KEY)
        had_token = self._token is not None
        self._token = None
        self._state = AuthState.LOGGED_OUT
        if had_token:
            _logger.info("Logged out")
            self._notify(None)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self, token: Token | None = None) -> Token | None:
        """Refresh *token* (default: the current one).

        Single-flight: while a refresh is in progress, further calls return
        ``None`` immediately without touching the network. Failures also
        return ``None``; see :attr:`last_refresh_error`.
        A :meth:`logout` while the request is in flight discards its result.
        """
        if self._refreshing:
            return None
        token = token if token is not None else self._token
        if token is None or not token.refresh_token:
            return None

        generation = self._generation
        self._refreshing = True
        self._state = AuthState.REFRESHING
        try:
            try:
                payload = await refresh_access_token(
                    self._config,
                    self._transport,
                    refresh_token=token.refresh_token,
                )
                new_token = token.refreshed(payload, now_ms=self._clock())
            except (TransportError, KeyError, TypeError, ValueError) as exc:
                if not self._closed and self._generation == generation:
                    self._on_refresh_failure(exc)
                return None
        finally:
            self._refreshing = False

        if self._closed or self._generation != generation:
            _logger.debug("Discarding refresh result after logout")
            return None

        self.last_error = ""
        self.last_refresh_error = None
        self._set_token(new_token)
        self._state = AuthState.AUTHENTICATED
        _logger.info("Access token refreshed; valid for %ss", new_token.expires_in)
        return new_token

    def schedule_refresh(self, token: Token | None = None) -> None:
        """Arm the refresh timer for ``expires_at - skew``.

        Replaces any previously armed timer. A token that is already stale
        is refreshed immediately instead of arming a timer.
        """
        token = token if token is not None else self._token
        self._cancel_refresh_timer()
        if self._closed or token is None or not token.refresh_token:
            return

        skew = self._config.refresh_skew_ms
        now = self._clock()
        if not token.is_fresh(now, skew):
            _logger.debug("Token is stale; refreshing now")
            self._spawn(self._scheduled_refresh(token))
            return

        delay_ms = token.expires_at - now - skew
        _logger.debug("Next token refresh in %.1fs", delay_ms / 1000)
        self._refresh_handle = self._scheduler.schedule_once(
            delay_ms / 1000,
            lambda: self._scheduled_refresh(token),
        )

    async def _scheduled_refresh(self, token: Token) -> None:
        if self._closed or self._refreshing:
            return
        new_token = await self.refresh(token)
        error = self.last_refresh_error
        if new_token is None and error is not None and not error.fatal and self._auto_refresh and not self._closed:
            retry_ms = self._config.error_retry_ms
            _logger.debug("Retrying token refresh in %.1fs", retry_ms / 1000)
            self._cancel_refresh_timer()
            self._refresh_handle = self._scheduler.schedule_once(
                retry_ms / 1000,
                lambda: self._scheduled_refresh(token),
            )

    def _on_refresh_failure(self, exc: Exception) -> None:
        fatal = isinstance(exc, TransportError) and exc.error_code == "invalid_grant"
        self.last_refresh_error = TokenRefreshError(f"Refresh failed: {exc}", fatal=fatal)
        self.last_error = f"Refresh error: {exc}"
        if fatal:
            _logger.warning("Refresh token rejected (invalid_grant); logging out")
            self.logout()
            return
        _logger.warning("Token refresh failed, keeping current token: %s", exc)
        self._state = AuthState.AUTHENTICATED if self._token is not None else AuthState.LOGGED_OUT

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Stop all timers. Pending network calls finish without side effects."""
        self._closed = True
        self._cancel_refresh_timer()
        for task in self._tasks:
            task.cancel()

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        self.close()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_refresh_timer(self) -> None:
        handle = self._refresh_handle
        self._refresh_handle = None
        if handle is not None:
            handle.cancel()

    def _set_token(self, token: Token) -> None:
        self._token = token
        self._store.set(TOKEN_KEY, token.model_dump(mode="json"))
        if self._auto_refresh:
            self.schedule_refresh(token)
        self._notify(token)

    def _notify(self, token: Token | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(token)
            except Exception:
                _logger.exception("Token listener failed")

    def _load_token(self) -> Token | None:
        raw = self._store.get(TOKEN_KEY)
        if not isinstance(raw, dict):
            return None
        try:
            token = Token.model_validate(raw)
        except ValidationError:
            _logger.warning("Discarding malformed persisted token")
            return None
        return token if token.signed_in else None

    def _load_pkce(self) -> PkceSession | None:
        state = self._store.get(PKCE_STATE_KEY)
        verifier = self._store.get(PKCE_VERIFIER_KEY)
        if not isinstance(state, str) or not isinstance(verifier, str):
            return None
        try:
            return PkceSession(verifier=verifier, state=state)
        except ValidationError:
            return None

    def _clear_pkce(self) -> None:
        self._store.delete(PKCE_STATE_KEY)
        self._store.delete(PKCE_VERIFIER_KEY)
