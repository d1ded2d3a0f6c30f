from __future__ import annotations

import asyncio
import inspect
import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import pytest

from pyalbumart._transport import HttpResponse
from pyalbumart.config import AlbumArtConfig
from pyalbumart.scheduler import TimerCallback
from pyalbumart.storage import JsonStore, MemoryStorage

NOW_MS = 1_700_000_000_000


@dataclass
class FakeTimer:
    delay: float
    callback: TimerCallback
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Records armed timers; tests fire them explicitly."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def schedule_once(self, delay: float, callback: TimerCallback) -> FakeTimer:
        timer = FakeTimer(delay=delay, callback=callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    async def fire(self, timer: FakeTimer | None = None) -> None:
        timer = timer if timer is not None else self.pending[0]
        assert not timer.cancelled
        timer.fired = True
        result = timer.callback()
        if inspect.isawaitable(result):
            await result


@dataclass
class FakeCall:
    method: str
    url: str
    headers: dict[str, str]
    data: dict[str, str]


@dataclass
class FakeTransport:
    """Replays queued responses (or raises queued exceptions) in order."""

    responses: list[HttpResponse | Exception] = field(default_factory=list)
    calls: list[FakeCall] = field(default_factory=list)
    gate: asyncio.Event | None = None

    def queue(self, *responses: HttpResponse | Exception) -> None:
        self.responses.extend(responses)

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        self.calls.append(FakeCall(method, url, dict(headers or {}), dict(data or {})))
        if self.gate is not None:
            await self.gate.wait()
        if not self.responses:
            raise AssertionError(f"unexpected request {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeClock:
    def __init__(self, now_ms: int = NOW_MS) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class FakeNavigator:
    def __init__(self, current_url: str = "http://localhost:5173/spotify") -> None:
        self.current_url = current_url
        self.assigned: list[str] = []

    def assign(self, url: str) -> None:
        self.assigned.append(url)

    def replace(self, url: str) -> None:
        self.current_url = url


def _json_response(
    body: Any,
    status: int = 200,
    headers: Mapping[str, str] | None = None,
    url: str = "",
) -> HttpResponse:
    text = body if isinstance(body, str) else json.dumps(body)
    return HttpResponse(status=status, text=text, headers=dict(headers or {}), url=url)


async def drain(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def make_response() -> Callable[..., HttpResponse]:
    return _json_response


@pytest.fixture
def settle() -> Callable[..., Any]:
    """Let spawned tasks run to completion against immediate fakes."""
    return drain


@pytest.fixture
def config() -> AlbumArtConfig:
    return AlbumArtConfig(client_id="client-123")


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def navigator() -> FakeNavigator:
    return FakeNavigator()


@pytest.fixture
def store() -> JsonStore:
    return JsonStore(MemoryStorage())
