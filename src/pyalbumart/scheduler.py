"""One-shot timer abstraction used by the token manager and polling engine.

Components hold at most one outstanding :class:`Cancellable` and replace
it atomically when re-armed, so timers never stack.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

_logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None] | None]


class Cancellable(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Runs a callback once after a delay."""

    def schedule_once(self, delay: float, callback: TimerCallback) -> Cancellable:
        """Arm *callback* to run after *delay* seconds.

        Cancelling the returned handle before it fires guarantees the
        callback body never runs.
        """
        ...


class AsyncioScheduler:
    """:class:`Scheduler` backed by ``loop.call_later``.

    Coroutine callbacks are wrapped in tasks; the scheduler keeps strong
    references to them until they finish. Exceptions escaping a callback
    are logged, not re-raised into the event loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task[None]] = set()

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule_once(self, delay: float, callback: TimerCallback) -> asyncio.TimerHandle:
        loop = self._require_loop()
        return loop.call_later(max(0.0, delay), self._fire, callback)

    def _fire(self, callback: TimerCallback) -> None:
        try:
            result = callback()
        except Exception:
            _logger.exception("Scheduled callback failed")
            return
        if inspect.isawaitable(result):
            task = self._require_loop().create_task(self._guard(result))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _guard(awaitable: Awaitable[None]) -> None:
        try:
            await awaitable
        except Exception:
            _logger.exception("Scheduled callback failed")

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def aclose(self) -> None:
        """Cancel callbacks that are still running and wait for them."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
