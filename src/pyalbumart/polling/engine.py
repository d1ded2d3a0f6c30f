"""Polling & reconciliation engine.

Drives a tile source on a schedule and keeps a stable, fixed-size tile
set for render consumers. Fetch failures never reach the caller: tiles
freeze at their last good value and the next poll is pushed back.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from pyalbumart._constants import DEFAULT_MAX_TILES, DEFAULT_POLL_MS, ERROR_RETRY_MS
from pyalbumart.exceptions import SourceFetchError
from pyalbumart.models.tile import SourceResult, Tile
from pyalbumart.polling.reconcile import normalize_static, reconcile, same_tiles
from pyalbumart.scheduler import Cancellable, Scheduler
from pyalbumart.sources._base import DynamicSource, FetchFn, Source, StaticEntry, StaticSource, as_source

_logger = logging.getLogger(__name__)

TileListener = Callable[[list[Tile]], None]


class PollHandle:
    """One run of the engine against one source.

    Once :attr:`stopped` is set, no callback of this run mutates engine
    state or arms another timer.
    """

    def __init__(self, source: Source, max_tiles: int, poll_ms: float) -> None:
        self.source = source
        self.max_tiles = max_tiles
        self.poll_ms = poll_ms
        self.stopped = False
        self.cycles = 0
        self.next_delay_ms: float | None = None
        self._timer: Cancellable | None = None

    def _cancel_timer(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()


class PollingEngine:
    """Keeps the previous stable tile set and emits changes to subscribers.

    Parameters
    ----------
    scheduler : Scheduler
        Arms the single outstanding poll timer.
    error_retry_ms : float
        Delay before the next poll after a failed fetch, regardless of
        ``poll_ms`` or any earlier ``retry_ms`` hint.
    """

    def __init__(self, scheduler: Scheduler, *, error_retry_ms: float = ERROR_RETRY_MS) -> None:
        self._scheduler = scheduler
        self._error_retry_ms = error_retry_ms
        self._listeners: list[TileListener] = []
        self._active: PollHandle | None = None
        # Real tiles only; used for backfill.
        self._stable: list[Tile] = []
        # Last emitted set, placeholders included; used for change detection.
        self._emitted: list[Tile] = []
        self.last_error: SourceFetchError | None = None

    @property
    def tiles(self) -> list[Tile]:
        """Snapshot of the last emitted tile set."""
        return list(self._emitted)

    @property
    def running(self) -> bool:
        return self._active is not None and not self._active.stopped

    def subscribe(self, listener: TileListener) -> Callable[[], None]:
        """Call *listener* with every new tile set. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def start(
        self,
        source: Source | FetchFn | Iterable[StaticEntry],
        max_tiles: int = DEFAULT_MAX_TILES,
        poll_ms: float = DEFAULT_POLL_MS,
    ) -> PollHandle:
        """Begin polling *source*, replacing any run in progress.

        Static sources are reconciled and emitted once, synchronously, and
        never polled again. Dynamic sources get their first poll armed
        with no delay.
        """
        if max_tiles < 1:
            raise ValueError(f"max_tiles must be at least 1, got {max_tiles}")
        if poll_ms <= 0:
            raise ValueError(f"poll_ms must be positive, got {poll_ms}")

        if self._active is not None:
            self.stop(self._active)

        resolved = as_source(source)
        handle = PollHandle(resolved, max_tiles, poll_ms)
        self._active = handle

        if isinstance(resolved, StaticSource):
            _logger.debug("Static source with %d entries", len(resolved.entries))
            handle.cycles += 1
            self._apply(handle, normalize_static(resolved.entries, max_tiles))
        else:
            _logger.debug("Polling %s every %sms", resolved.name, poll_ms)
            self._arm(handle, resolved, 0)
        return handle

    def stop(self, handle: PollHandle | None = None) -> None:
        """Stop *handle* (default: the active run). Idempotent."""
        handle = handle if handle is not None else self._active
        if handle is None:
            return
        handle.stopped = True
        handle._cancel_timer()
        if self._active is handle:
            self._active = None

    def reset(self) -> None:
        """Stop polling and forget the stable tile set."""
        self.stop()
        self._stable = []
        self._emitted = []
        self.last_error = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _arm(self, handle: PollHandle, source: DynamicSource, delay_ms: float) -> None:
        if handle.stopped:
            return
        handle._cancel_timer()
        handle.next_delay_ms = delay_ms
        handle._timer = self._scheduler.schedule_once(delay_ms / 1000, lambda: self._cycle(handle, source))

    async def _cycle(self, handle: PollHandle, source: DynamicSource) -> None:
        if handle.stopped:
            return
        handle._timer = None

        try:
            raw = await source.fetch()
            result = raw if isinstance(raw, SourceResult) else SourceResult.model_validate(raw or {})
        except Exception as exc:
            if handle.stopped:
                return
            error = SourceFetchError(f"{source.name} fetch failed: {exc}")
            error.__cause__ = exc
            self.last_error = error
            _logger.warning("Tile source %s failed, retrying in %sms: %s", source.name, self._error_retry_ms, exc)
            self._arm(handle, source, self._error_retry_ms)
            return

        if handle.stopped:
            return

        handle.cycles += 1
        self.last_error = None
        self._apply(handle, result.tiles)

        retry_ms = result.retry_ms
        if retry_ms is not None and retry_ms > 0:
            _logger.debug("Source %s asked to back off for %sms", source.name, retry_ms)
            self._arm(handle, source, retry_ms)
        else:
            self._arm(handle, source, handle.poll_ms)

    def _apply(self, handle: PollHandle, fresh: list[Tile]) -> None:
        result = reconcile(fresh, self._stable, handle.max_tiles)
        if same_tiles(result, self._emitted):
            return
        self._emitted = result
        self._stable = [tile for tile in result if not tile.is_placeholder]
        _logger.debug("Tiles changed: %s", [tile.id for tile in result])
        for listener in list(self._listeners):
            try:
                listener(list(result))
            except Exception:
                _logger.exception("Tile listener failed")
